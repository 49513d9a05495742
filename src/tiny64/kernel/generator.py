"""
Tiny64 generator - ties clock, sequence state, exclusion, entropy and codec

One generate() call:

1. acquire the exclusion (thread mutex, plus the filesystem lock in
   cross-process mode) within the caller's deadline
2. load state, advance it through the sequence state machine, save it
3. release the exclusion on every exit path
4. draw entropy, pack the fields, encode

Each generator owns its state; two generators in one process never share a
counter unless they point at the same lock path.
"""

import time
from collections.abc import Callable

from tiny64.kernel.codec import encode
from tiny64.kernel.config import Tiny64Config
from tiny64.kernel.entropy import EntropySource, SystemEntropy
from tiny64.kernel.locking import CompositeLock, Lock, ThreadLock, held, make_lock
from tiny64.kernel.metrics import ids_generated_total
from tiny64.kernel.sequence import GeneratorState, SequenceStateMachine
from tiny64.kernel.state_store import FileStateStore, MemoryStateStore, StateStore
from tiny64.kernel.time import ClockSource, SystemClock
from tiny64.kernel.timeout import Deadline, resolve_deadline


class Tiny64Generator:
    """
    Thread-safe (and optionally process-safe) identifier generator

    Example:
        >>> generator = Tiny64Generator()
        >>> token = generator.generate()
        >>> len(token)
        11
    """

    def __init__(
        self,
        config: Tiny64Config | None = None,
        clock: ClockSource | None = None,
        entropy: EntropySource | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Args:
            config: Generator configuration (in-memory defaults if None)
            clock: Clock source (system clock if None)
            entropy: Entropy source (OS randomness if None)
            sleep: Sleep function used while the sequence is exhausted
        """
        self.config = config or Tiny64Config()
        self.clock = clock or SystemClock()
        self.entropy = entropy or SystemEntropy()
        self.layout = self.config.layout
        self.machine = SequenceStateMachine(
            self.clock, sleep=sleep, spin_interval=self.config.spin_interval
        )

        self.lock: Lock
        self.store: StateStore
        if self.config.shared:
            self.config.lock_path.parent.mkdir(parents=True, exist_ok=True)
            self.lock = CompositeLock(
                ThreadLock(),
                make_lock(
                    self.config.lock_backend,
                    self.config.lock_path,
                    self.config.stale_lock_after,
                ),
            )
            self.store = FileStateStore(self.config.resolved_state_path)
        else:
            self.lock = ThreadLock()
            self.store = MemoryStateStore()

    @property
    def mode(self) -> str:
        """'memory' or 'shared'"""
        return self.store.mode

    def next_pair(self, timeout: float | None = None) -> tuple[int, int]:
        """
        Reserve the next (timestamp_ms, sequence) pair

        Args:
            timeout: Seconds this call may block (config default if None)

        Raises:
            LockTimeout: If the exclusion is not acquired in time
            GenerationTimeout: If the sequence stall outlives the deadline
            ClockUnavailable: If the clock source fails
        """
        deadline = resolve_deadline(timeout, self.config.generation_timeout)
        lock_deadline = deadline.earliest(Deadline.after(self.config.lock_timeout))

        with held(self.lock, lock_deadline):
            # The lock is never held longer than generation_timeout, which
            # the config keeps well below stale_lock_after
            hold_deadline = deadline.earliest(
                Deadline.after(self.config.generation_timeout)
            )
            state = self.store.load()
            pair = self.machine.advance(state, hold_deadline)
            self.store.save(state)
        return pair

    def generate_int(self, timeout: float | None = None) -> int:
        """Generate one identifier as its 64-bit integer value"""
        timestamp_ms, sequence = self.next_pair(timeout)
        random = self.entropy.random_bits(self.layout.random_bits)
        value = self.layout.pack(timestamp_ms, sequence, random, self.config.machine_id)
        ids_generated_total.labels(mode=self.mode).inc()
        return value

    def generate(self, timeout: float | None = None) -> str:
        """Generate one identifier in its 11-character text form"""
        return encode(self.generate_int(timeout))

    def snapshot(self, timeout: float | None = None) -> GeneratorState:
        """Copy of the current state, read under the exclusion"""
        deadline = resolve_deadline(timeout, self.config.lock_timeout)
        with held(self.lock, deadline):
            return self.store.load().model_copy()
