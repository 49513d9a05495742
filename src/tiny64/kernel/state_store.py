"""
Where generator state lives between requests

MemoryStateStore keeps state in the generator's own memory. FileStateStore
keeps it in a small JSON file next to the cross-process lock, so every
process holding the lock continues one logical sequence counter:

    {"last_time_ms": 1718000000123, "sequence": 7}

Callers must hold the generator's exclusion between load() and save().
"""

import os
import secrets
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from tiny64.kernel.errors import StateFileCorrupted
from tiny64.kernel.logging import get_logger
from tiny64.kernel.retry import retry_on_transient_error
from tiny64.kernel.sequence import GeneratorState

logger = get_logger(__name__)


class StateStore(Protocol):
    """Protocol for generator state persistence"""

    mode: str

    def load(self) -> GeneratorState:
        """Return the current state (fresh state if none stored yet)"""
        ...

    def save(self, state: GeneratorState) -> None:
        """Persist the state returned by load() after it was advanced"""
        ...


class MemoryStateStore:
    """State owned by a single generator instance"""

    mode = "memory"

    def __init__(self, state: GeneratorState | None = None) -> None:
        self.state = state or GeneratorState()

    def load(self) -> GeneratorState:
        return self.state

    def save(self, state: GeneratorState) -> None:
        self.state = state


class FileStateStore:
    """State shared by all processes that use the same lock"""

    mode = "shared"

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> GeneratorState:
        try:
            # Bytes, so invalid UTF-8 fails validation like any other bad JSON
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return GeneratorState()
        except IsADirectoryError as e:
            raise StateFileCorrupted(str(self.path), "path is a directory") from e

        try:
            return GeneratorState.model_validate_json(raw)
        except ValidationError as e:
            logger.error(
                "Generator state file is corrupted",
                state_path=str(self.path),
                errors=e.error_count(),
            )
            raise StateFileCorrupted(str(self.path), str(e)) from e

    def save(self, state: GeneratorState) -> None:
        tmp = self.path.with_name(f"{self.path.name}.{secrets.token_hex(6)}.tmp")
        try:
            with open(tmp, "w") as f:
                f.write(state.model_dump_json())
                f.flush()
                os.fsync(f.fileno())
            self._replace(tmp)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

    @retry_on_transient_error(exceptions=(PermissionError,))
    def _replace(self, tmp: Path) -> None:
        # Atomic on POSIX; on Windows a concurrent reader can briefly block it
        os.replace(tmp, self.path)
