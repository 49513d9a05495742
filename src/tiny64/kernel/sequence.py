"""
Sequence state machine - per-millisecond sequence management

Owns the (last_time_ms, sequence) pair and decides, for every request,
whether to reset, increment or stall:

- clock ahead of last_time_ms: reset sequence to 0 at the new millisecond
- clock equal to last_time_ms: increment; on wrap (4096 issued) wait until
  the clock passes last_time_ms, then reset to 0 at the new millisecond
- clock behind last_time_ms: keep issuing against last_time_ms as if the
  clock were equal, until real time catches up

The last rule trades wall-clock fidelity for monotonicity: after an NTP step
backwards, timestamps stay pinned at the last issued millisecond instead of
going back in time.
"""

import time
from collections.abc import Callable

from pydantic import BaseModel, Field

from tiny64.kernel.errors import GenerationTimeout, TimestampOverflow
from tiny64.kernel.layout import MAX_SEQUENCE, MAX_TIMESTAMP_MS
from tiny64.kernel.logging import get_logger
from tiny64.kernel.metrics import (
    clock_regressions_total,
    sequence_exhausted_total,
    sequence_stall_seconds,
)
from tiny64.kernel.time import ClockSource
from tiny64.kernel.timeout import Deadline

logger = get_logger(__name__)

DEFAULT_SPIN_INTERVAL = 0.0001  # seconds, a tenth of a millisecond


class GeneratorState(BaseModel):
    """
    Mutable generation state

    One instance per generation authority: a generator's memory, or the
    shared state file in cross-process mode. Only mutated under the active
    exclusion.
    """

    last_time_ms: int = Field(
        default=0,
        ge=0,
        le=MAX_TIMESTAMP_MS,
        description="Timestamp of the last issued identifier",
    )
    sequence: int = Field(
        default=0,
        ge=0,
        le=MAX_SEQUENCE,
        description="Sequence of the last issued identifier",
    )


class SequenceStateMachine:
    """
    Advances GeneratorState for one generation request

    The machine is stateless apart from its collaborators; the state it
    mutates is passed in, so the same machine works for in-memory and
    file-backed state.
    """

    def __init__(
        self,
        clock: ClockSource,
        sleep: Callable[[float], None] = time.sleep,
        spin_interval: float = DEFAULT_SPIN_INTERVAL,
    ) -> None:
        """
        Args:
            clock: Source of epoch milliseconds
            sleep: Called between clock reads while stalled
            spin_interval: Seconds to sleep between stalled clock reads
        """
        self.clock = clock
        self._sleep = sleep
        self.spin_interval = spin_interval
        self._regressing = False

    def advance(self, state: GeneratorState, deadline: Deadline) -> tuple[int, int]:
        """
        Compute the next (timestamp_ms, sequence) pair and store it in state

        Args:
            state: State to advance (caller holds the exclusion)
            deadline: Bounds the exhaustion stall

        Returns:
            The (timestamp_ms, sequence) pair to pack

        Raises:
            GenerationTimeout: If the clock does not move past a full
                millisecond before the deadline (state is left unchanged)
            TimestampOverflow: If the clock is beyond the 42-bit range
            ClockUnavailable: Propagated from the clock source
        """
        now_ms = self._read_clock()

        if now_ms > state.last_time_ms:
            if self._regressing:
                self._regressing = False
                logger.info("Clock caught up with last issued timestamp", now_ms=now_ms)
            state.last_time_ms = now_ms
            state.sequence = 0
            return now_ms, 0

        if now_ms < state.last_time_ms:
            self._note_regression(now_ms, state.last_time_ms)

        sequence = (state.sequence + 1) & MAX_SEQUENCE
        if sequence != 0:
            state.sequence = sequence
            return state.last_time_ms, sequence

        # 4096 identifiers issued at last_time_ms - move to a later millisecond
        now_ms = self._wait_past(state.last_time_ms, deadline)
        state.last_time_ms = now_ms
        state.sequence = 0
        return now_ms, 0

    def _read_clock(self) -> int:
        now_ms = self.clock.now_ms()
        if now_ms > MAX_TIMESTAMP_MS:
            raise TimestampOverflow(now_ms, MAX_TIMESTAMP_MS)
        return now_ms

    def _note_regression(self, now_ms: int, last_time_ms: int) -> None:
        if self._regressing:
            return
        self._regressing = True
        clock_regressions_total.inc()
        logger.warning(
            "Clock moved backwards, holding last issued timestamp",
            now_ms=now_ms,
            last_time_ms=last_time_ms,
            drift_ms=last_time_ms - now_ms,
        )

    def _wait_past(self, last_time_ms: int, deadline: Deadline) -> int:
        """Sleep-and-poll until the clock reads later than last_time_ms"""
        sequence_exhausted_total.inc()
        started = time.perf_counter()

        while True:
            self._sleep(self.spin_interval)
            now_ms = self._read_clock()
            if now_ms > last_time_ms:
                break
            if deadline.expired():
                waited = time.perf_counter() - started
                logger.error(
                    "Sequence exhausted and clock did not advance before deadline",
                    last_time_ms=last_time_ms,
                    waited_ms=round(waited * 1000, 3),
                )
                raise GenerationTimeout(last_time_ms, waited)

        waited = time.perf_counter() - started
        sequence_stall_seconds.observe(waited)
        if self._regressing:
            self._regressing = False
        logger.warning(
            "Sequence exhausted, stalled until next millisecond",
            last_time_ms=last_time_ms,
            now_ms=now_ms,
            waited_ms=round(waited * 1000, 3),
        )
        return now_ms
