"""
Generator configuration

Everything a generator needs beyond its clock and entropy collaborators.
Setting `lock_path` switches the generator to cross-process mode: the lock
token and the shared state file live on the filesystem and every process
using the same path continues one sequence counter.
"""

import os
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

from tiny64.kernel.layout import RANDOM_BITS, BitLayout
from tiny64.kernel.locking import LockBackend
from tiny64.kernel.sequence import DEFAULT_SPIN_INTERVAL
from tiny64.kernel.timeout import GENERATION_TIMEOUT, LOCK_TIMEOUT, STALE_LOCK_AFTER

ENV_PREFIX = "TINY64_"

# stale_lock_after must be this multiple of the longest critical section
STALE_LOCK_MARGIN = 2.0


class Tiny64Config(BaseModel):
    """
    Generator configuration

    All fields have defaults that give an in-memory, thread-safe generator
    with the plain 42/12/10 layout.
    """

    lock_path: Path | None = Field(
        default=None,
        description="Cross-process lock location (None = in-process only)",
    )

    lock_backend: LockBackend = Field(
        default="directory",
        description="Lock token primitive: atomic mkdir or O_EXCL file creation",
    )

    state_path: Path | None = Field(
        default=None,
        description="Shared state file (defaults to <lock_path>.state)",
    )

    lock_timeout: float = Field(
        default=LOCK_TIMEOUT,
        gt=0.0,
        description="Maximum seconds to wait for the lock",
    )

    stale_lock_after: float = Field(
        default=STALE_LOCK_AFTER,
        gt=0.0,
        description="Seconds after which a lock token is considered abandoned",
    )

    generation_timeout: float = Field(
        default=GENERATION_TIMEOUT,
        gt=0.0,
        description="Maximum seconds one generate() call may block in total",
    )

    spin_interval: float = Field(
        default=DEFAULT_SPIN_INTERVAL,
        gt=0.0,
        le=0.001,
        description="Sleep between clock reads while the sequence is exhausted",
    )

    machine_id: int = Field(
        default=0,
        ge=0,
        description="Machine id stored in the reserved bits",
    )

    machine_id_bits: int = Field(
        default=0,
        ge=0,
        le=RANDOM_BITS,
        description="Bits of the random field reserved for machine_id",
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _machine_id_fits(self) -> "Tiny64Config":
        if self.machine_id >= (1 << self.machine_id_bits):
            raise ValueError(
                f"machine_id {self.machine_id} does not fit in "
                f"{self.machine_id_bits} bits"
            )
        return self

    @model_validator(mode="after")
    def _stale_lock_outlives_holder(self) -> "Tiny64Config":
        # A live holder keeps the lock for at most generation_timeout
        if self.stale_lock_after < STALE_LOCK_MARGIN * self.generation_timeout:
            raise ValueError(
                f"stale_lock_after ({self.stale_lock_after}s) must be at least "
                f"{STALE_LOCK_MARGIN:g}x generation_timeout ({self.generation_timeout}s)"
            )
        return self

    @property
    def layout(self) -> BitLayout:
        return BitLayout(machine_id_bits=self.machine_id_bits)

    @property
    def shared(self) -> bool:
        """True when state is shared across processes"""
        return self.lock_path is not None

    @property
    def resolved_state_path(self) -> Path | None:
        if self.lock_path is None:
            return None
        return self.state_path or self.lock_path.with_name(self.lock_path.name + ".state")

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: object) -> "Tiny64Config":
        """
        Build a config from TINY64_* environment variables

        Recognized: TINY64_LOCK_PATH, TINY64_LOCK_BACKEND, TINY64_STATE_PATH,
        TINY64_LOCK_TIMEOUT, TINY64_STALE_LOCK_AFTER, TINY64_GENERATION_TIMEOUT,
        TINY64_SPIN_INTERVAL, TINY64_MACHINE_ID, TINY64_MACHINE_ID_BITS.
        Keyword overrides win over the environment; None overrides are ignored.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = env.get(ENV_PREFIX + name.upper())
            if raw not in (None, ""):
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
