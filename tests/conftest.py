"""
Pytest configuration and shared fixtures

Fun fact: files named conftest.py are discovered automatically and their
fixtures are available to every test in the same directory and below.
"""

from pathlib import Path

import pytest

from tiny64.kernel.config import Tiny64Config
from tiny64.kernel.entropy import FixedEntropy
from tiny64.kernel.generator import Tiny64Generator
from tiny64.kernel.time import TestClock
from tiny64.kernel.timeout import Deadline

# 2023-11-14T22:13:20Z
BASE_TIME_MS = 1_700_000_000_000


@pytest.fixture
def test_clock() -> TestClock:
    """Controllable clock frozen at BASE_TIME_MS"""
    return TestClock(BASE_TIME_MS)


@pytest.fixture
def fixed_entropy() -> FixedEntropy:
    """Entropy source that always yields 0"""
    return FixedEntropy(0)


@pytest.fixture
def deadline() -> Deadline:
    """Generous deadline for operations that are not expected to block"""
    return Deadline.after(5.0)


@pytest.fixture
def lock_path(tmp_path: Path) -> Path:
    """Lock location inside a per-test temporary directory"""
    return tmp_path / "locks" / "tiny64.lock"


@pytest.fixture
def advancing_sleep(test_clock: TestClock):
    """Sleep replacement that moves the test clock forward one millisecond"""
    calls: list[float] = []

    def sleep(seconds: float) -> None:
        calls.append(seconds)
        test_clock.advance(1)

    sleep.calls = calls  # type: ignore[attr-defined]
    return sleep


@pytest.fixture
def memory_generator(
    test_clock: TestClock, fixed_entropy: FixedEntropy, advancing_sleep
) -> Tiny64Generator:
    """In-memory generator on the test clock"""
    return Tiny64Generator(
        Tiny64Config(), clock=test_clock, entropy=fixed_entropy, sleep=advancing_sleep
    )
