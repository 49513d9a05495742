"""
Cross-process coordinator - mutual exclusion around generator state

Backends share one contract, `acquire(deadline)` / `release()`:

- ThreadLock: in-process mutex, enough when state lives in memory
- DirectoryLock: `mkdir` of a lock directory, atomic on every local filesystem
- ExclusiveFileLock: `open(O_CREAT | O_EXCL)` of a lock file

Filesystem backends write an owner token into the lock object. A token older
than `stale_after` seconds belongs to a crashed holder and is reclaimed by
renaming it to a unique tombstone. The age check and the rename run under
a reclaim guard file, so only one contender reclaims at a time.
Release removes the lock only if it still carries our token.

A filesystem lock instance has at most one holder at a time. Threads sharing
an instance go through a ThreadLock first (see CompositeLock).
"""

import os
import secrets
import shutil
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Literal, Protocol, TypeVar

from tiny64.kernel.errors import LockTimeout
from tiny64.kernel.logging import get_logger
from tiny64.kernel.metrics import (
    lock_acquire_seconds,
    lock_timeouts_total,
    stale_locks_reclaimed_total,
)
from tiny64.kernel.retry import lock_retrying
from tiny64.kernel.timeout import STALE_LOCK_AFTER, Deadline

logger = get_logger(__name__)

T = TypeVar("T")

LockBackend = Literal["directory", "file"]

OWNER_FILE = "owner"
RECLAIM_GUARD_SUFFIX = ".reclaim"


class Lock(Protocol):
    """Protocol for exclusion backends"""

    backend: str

    def acquire(self, deadline: Deadline) -> None:
        """Block until held or raise LockTimeout once the deadline passes"""
        ...

    def release(self) -> None:
        """Release a held lock"""
        ...


class LockContended(Exception):
    """Signals that the lock token already exists (retried internally)"""

    pass


def _new_token() -> str:
    return f"{os.getpid()}:{secrets.token_hex(8)}"


# ============================================================================
# In-process
# ============================================================================


class ThreadLock:
    """Mutex for threads of a single process"""

    backend = "thread"

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def acquire(self, deadline: Deadline) -> None:
        started = time.perf_counter()
        timeout = min(deadline.remaining(), threading.TIMEOUT_MAX)
        if not self._lock.acquire(timeout=timeout):
            waited = time.perf_counter() - started
            lock_timeouts_total.labels(backend=self.backend).inc()
            raise LockTimeout("<in-process>", waited)
        lock_acquire_seconds.labels(backend=self.backend).observe(
            time.perf_counter() - started
        )

    def release(self) -> None:
        self._lock.release()


# ============================================================================
# Filesystem
# ============================================================================


class _TokenLock:
    """Shared acquire/reclaim/release logic for filesystem lock tokens"""

    backend = "filesystem"

    def __init__(
        self,
        path: str | Path,
        stale_after: float = STALE_LOCK_AFTER,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        """
        Args:
            path: Location of the lock token
            stale_after: Age in seconds after which a token is abandoned
            sleep: Optional sleep function used between retries
        """
        self.path = Path(path)
        self.stale_after = stale_after
        self._sleep = sleep
        self._token: str | None = None

    @property
    def held(self) -> bool:
        return self._token is not None

    def acquire(self, deadline: Deadline) -> None:
        started = time.perf_counter()
        retrying = lock_retrying(deadline, LockContended, sleep=self._sleep)

        try:
            for attempt in retrying:
                with attempt:
                    self._try_acquire()
        except LockContended:
            waited = time.perf_counter() - started
            attempts = retrying.statistics.get("attempt_number", 0)
            lock_timeouts_total.labels(backend=self.backend).inc()
            logger.error(
                "Lock acquisition timed out",
                lock_path=str(self.path),
                backend=self.backend,
                waited_ms=round(waited * 1000, 3),
                attempts=attempts,
            )
            raise LockTimeout(str(self.path), waited, attempts) from None

        lock_acquire_seconds.labels(backend=self.backend).observe(
            time.perf_counter() - started
        )

    def release(self) -> None:
        if self._token is None:
            raise RuntimeError(f"Lock {self.path} released but not held")

        token, self._token = self._token, None
        if self._read_token() != token:
            # Someone reclaimed our token as stale; it is theirs now
            logger.warning(
                "Lock token replaced while held, leaving it in place",
                lock_path=str(self.path),
                backend=self.backend,
            )
            return
        self._remove_token(self.path)

    def _try_acquire(self) -> None:
        token = _new_token()
        try:
            self._create_token(token)
        except FileExistsError:
            if not self._reclaim_if_stale():
                raise LockContended(str(self.path)) from None
            try:
                self._create_token(token)
            except FileExistsError:
                raise LockContended(str(self.path)) from None
        self._token = token

    def _token_age(self, path: Path) -> float | None:
        """Seconds since path was last modified, None if it is gone"""
        try:
            return time.time() - path.stat().st_mtime
        except FileNotFoundError:
            return None

    def _take_reclaim_guard(self, guard: Path) -> bool:
        try:
            fd = os.open(guard, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            age = self._token_age(guard)
            if age is not None and age >= self.stale_after:
                # The guard is held for microseconds; an old one was abandoned
                logger.warning("Removing abandoned reclaim guard", guard_path=str(guard))
                guard.unlink(missing_ok=True)
            return False
        os.close(fd)
        return True

    def _reclaim_if_stale(self) -> bool:
        """Rename an abandoned token out of the way. True if the path is free."""
        age = self._token_age(self.path)
        if age is None:
            return True
        if age < self.stale_after:
            return False

        # Age check and rename must not interleave with another reclaimer,
        # or a token created after our check would be renamed away
        guard = self.path.with_name(self.path.name + RECLAIM_GUARD_SUFFIX)
        if not self._take_reclaim_guard(guard):
            return False
        try:
            return self._reclaim_guarded()
        finally:
            guard.unlink(missing_ok=True)

    def _reclaim_guarded(self) -> bool:
        age = self._token_age(self.path)
        if age is None:
            return True
        if age < self.stale_after:
            return False

        tombstone = self.path.with_name(f"{self.path.name}.stale-{secrets.token_hex(6)}")
        try:
            os.rename(self.path, tombstone)
        except FileNotFoundError:
            # Another contender won the rename
            return True
        except PermissionError:
            return False

        stale_locks_reclaimed_total.labels(backend=self.backend).inc()
        logger.warning(
            "Reclaimed stale lock",
            lock_path=str(self.path),
            backend=self.backend,
            age_seconds=round(age, 3),
        )
        self._remove_token(tombstone)
        return True

    def _create_token(self, token: str) -> None:
        raise NotImplementedError

    def _read_token(self) -> str | None:
        raise NotImplementedError

    def _remove_token(self, path: Path) -> None:
        raise NotImplementedError


class DirectoryLock(_TokenLock):
    """Lock token is a directory created with mkdir, owner written inside"""

    backend = "directory"

    def _create_token(self, token: str) -> None:
        os.mkdir(self.path)
        try:
            (self.path / OWNER_FILE).write_text(token)
        except OSError:
            shutil.rmtree(self.path, ignore_errors=True)
            raise

    def _read_token(self) -> str | None:
        try:
            return (self.path / OWNER_FILE).read_text()
        except (FileNotFoundError, NotADirectoryError):
            return None

    def _remove_token(self, path: Path) -> None:
        shutil.rmtree(path, ignore_errors=True)


class ExclusiveFileLock(_TokenLock):
    """Lock token is a file created with O_CREAT | O_EXCL"""

    backend = "file"

    def _create_token(self, token: str) -> None:
        fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        with os.fdopen(fd, "w") as f:
            f.write(token)

    def _read_token(self) -> str | None:
        try:
            return self.path.read_text()
        except FileNotFoundError:
            return None

    def _remove_token(self, path: Path) -> None:
        path.unlink(missing_ok=True)


# ============================================================================
# Composition
# ============================================================================


class CompositeLock:
    """Acquires several locks in order and releases them in reverse"""

    def __init__(self, *locks: Lock) -> None:
        self.locks = locks
        self.backend = "+".join(lock.backend for lock in locks)

    def acquire(self, deadline: Deadline) -> None:
        acquired: list[Lock] = []
        try:
            for lock in self.locks:
                lock.acquire(deadline)
                acquired.append(lock)
        except BaseException:
            for lock in reversed(acquired):
                lock.release()
            raise

    def release(self) -> None:
        for lock in reversed(self.locks):
            lock.release()


def make_lock(
    backend: LockBackend,
    path: str | Path,
    stale_after: float = STALE_LOCK_AFTER,
) -> _TokenLock:
    """Build a filesystem lock for the configured backend"""
    if backend == "directory":
        return DirectoryLock(path, stale_after)
    if backend == "file":
        return ExclusiveFileLock(path, stale_after)
    raise ValueError(f"Unknown lock backend: {backend}")


@contextmanager
def held(lock: Lock, deadline: Deadline) -> Iterator[None]:
    """Hold `lock` for the duration of a with-block, releasing on every exit"""
    lock.acquire(deadline)
    try:
        yield
    finally:
        lock.release()


def with_lock(lock: Lock, critical_section: Callable[[], T], deadline: Deadline) -> T:
    """
    Run `critical_section` while holding `lock`

    Raises:
        LockTimeout: If the lock is not acquired before the deadline
    """
    with held(lock, deadline):
        return critical_section()
