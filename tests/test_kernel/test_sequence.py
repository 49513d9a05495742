"""
Tests for the sequence state machine

Verifies:
- reset on a new millisecond, increment within one
- at most 4096 pairs per millisecond, wrap only with a timestamp advance
- backward clock jumps keep issuing against the last timestamp
- the exhaustion stall sleeps between reads and honours its deadline
"""

import pytest
from pydantic import ValidationError

from tiny64.kernel.errors import ClockUnavailable, GenerationTimeout, TimestampOverflow
from tiny64.kernel.layout import MAX_TIMESTAMP_MS
from tiny64.kernel.metrics import (
    clock_regressions_total,
    sequence_exhausted_total,
)
from tiny64.kernel.sequence import GeneratorState, SequenceStateMachine
from tiny64.kernel.time import FailingClock, TestClock
from tiny64.kernel.timeout import Deadline


def _no_sleep(seconds: float) -> None:
    pass


def test_initial_state() -> None:
    state = GeneratorState()
    assert state.last_time_ms == 0
    assert state.sequence == 0


def test_same_millisecond_increments(deadline: Deadline) -> None:
    """Fixed now_ms=1000 gives sequences 0, 1, 2"""
    machine = SequenceStateMachine(TestClock(1000))
    state = GeneratorState()

    pairs = [machine.advance(state, deadline) for _ in range(3)]

    assert pairs == [(1000, 0), (1000, 1), (1000, 2)]
    assert state.last_time_ms == 1000
    assert state.sequence == 2


def test_new_millisecond_resets_sequence(deadline: Deadline) -> None:
    clock = TestClock(1000)
    machine = SequenceStateMachine(clock)
    state = GeneratorState()

    machine.advance(state, deadline)
    machine.advance(state, deadline)
    clock.advance(5)

    assert machine.advance(state, deadline) == (1005, 0)


def test_backward_clock_keeps_last_timestamp(deadline: Deadline) -> None:
    """Readings 1000, 1000, 999, 999, 1001 stay non-decreasing"""
    clock = TestClock(readings=[1000, 1000, 999, 999, 1001])
    machine = SequenceStateMachine(clock)
    state = GeneratorState()

    pairs = [machine.advance(state, deadline) for _ in range(5)]

    assert pairs == [(1000, 0), (1000, 1), (1000, 2), (1000, 3), (1001, 0)]
    assert pairs == sorted(pairs)


def test_backward_clock_counts_one_regression_per_episode(deadline: Deadline) -> None:
    clock = TestClock(readings=[2000, 1990, 1991, 1992, 2001, 1500])
    machine = SequenceStateMachine(clock)
    state = GeneratorState()
    before = clock_regressions_total._value.get()

    for _ in range(6):
        machine.advance(state, deadline)

    # 1990..1992 is one episode, 1500 is a second one
    assert clock_regressions_total._value.get() == before + 2
    assert (state.last_time_ms, state.sequence) == (2001, 1)


def test_exhaustion_waits_for_next_millisecond(test_clock: TestClock, advancing_sleep, deadline: Deadline) -> None:
    machine = SequenceStateMachine(test_clock, sleep=advancing_sleep)
    now = test_clock.now_ms()
    state = GeneratorState(last_time_ms=now, sequence=4095)
    before = sequence_exhausted_total._value.get()

    pair = machine.advance(state, deadline)

    assert pair == (now + 1, 0)
    assert state.sequence == 0
    assert len(advancing_sleep.calls) == 1
    assert sequence_exhausted_total._value.get() == before + 1


def test_exhaustion_sleeps_a_fraction_of_a_millisecond(test_clock: TestClock, advancing_sleep, deadline: Deadline) -> None:
    machine = SequenceStateMachine(test_clock, sleep=advancing_sleep, spin_interval=0.0002)
    state = GeneratorState(last_time_ms=test_clock.now_ms(), sequence=4095)

    machine.advance(state, deadline)

    assert advancing_sleep.calls == [0.0002]


def test_at_most_4096_per_millisecond(test_clock: TestClock, advancing_sleep, deadline: Deadline) -> None:
    machine = SequenceStateMachine(test_clock, sleep=advancing_sleep)
    state = GeneratorState()
    start = test_clock.now_ms()

    pairs = [machine.advance(state, deadline) for _ in range(4097)]

    first_ms = [p for p in pairs if p[0] == start]
    assert len(first_ms) == 4096
    assert [s for _, s in first_ms] == list(range(4096))
    assert pairs[-1] == (start + 1, 0)
    assert len(set(pairs)) == len(pairs)


def test_exhaustion_during_regression_waits_past_last_timestamp(deadline: Deadline) -> None:
    """A wrap while the clock is behind waits until real time passes last_time_ms"""
    clock = TestClock(readings=[998, 999, 1000, 1001])
    machine = SequenceStateMachine(clock, sleep=_no_sleep)
    state = GeneratorState(last_time_ms=1000, sequence=4095)

    assert machine.advance(state, deadline) == (1001, 0)
    assert clock.calls == 4


def test_exhaustion_deadline_raises_and_leaves_state(test_clock: TestClock) -> None:
    machine = SequenceStateMachine(test_clock, sleep=_no_sleep)
    now = test_clock.now_ms()
    state = GeneratorState(last_time_ms=now, sequence=4095)

    with pytest.raises(GenerationTimeout) as exc_info:
        machine.advance(state, Deadline.after(0.0))

    assert exc_info.value.last_time_ms == now
    assert (state.last_time_ms, state.sequence) == (now, 4095)


def test_clock_failure_propagates(deadline: Deadline) -> None:
    machine = SequenceStateMachine(FailingClock())
    with pytest.raises(ClockUnavailable):
        machine.advance(GeneratorState(), deadline)


def test_clock_beyond_42_bits_is_rejected(deadline: Deadline) -> None:
    machine = SequenceStateMachine(TestClock(MAX_TIMESTAMP_MS + 1))
    state = GeneratorState()

    with pytest.raises(TimestampOverflow):
        machine.advance(state, deadline)
    assert state.last_time_ms == 0


def test_state_rejects_out_of_range_sequence() -> None:
    with pytest.raises(ValidationError):
        GeneratorState(last_time_ms=0, sequence=4096)
