"""Phase-scoped progress mapping.

Each phase owns a sub-range of the overall 0-100 scale. Internal progress
(0-100 within the phase) is mapped into that range, rounded, and only
forwarded when it moves forward, so the sink never sees duplicates or
regressions.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from clipcaption.schemas.job import PipelinePhase

logger = logging.getLogger(__name__)


@dataclass
class ProgressState:
    """Last overall percent forwarded for the current phase."""

    last_emitted: Optional[int] = None


def map_and_dedupe(
    state: ProgressState,
    internal_percent: float,
    range_start: int,
    range_end: int,
) -> Optional[int]:
    """Map internal 0-100 progress into [range_start, range_end].

    Returns the overall percent to emit, or None when it would not advance
    past the last emitted value.
    """
    internal = max(0.0, min(float(internal_percent), 100.0))
    mapped = round(range_start + internal / 100 * (range_end - range_start))
    mapped = max(0, min(mapped, 100))

    if state.last_emitted is not None and mapped <= state.last_emitted:
        return None
    state.last_emitted = mapped
    return mapped


class PhaseProgressReporter:
    """Forwards mapped progress to a JobStatusSink without blocking the caller.

    ``report`` is synchronous so it can be handed directly to the render
    driver as its progress callback. Each sink call is chained onto the
    previous one, so updates reach the sink one at a time and in emission
    order; ``drain`` waits for the chain before a terminal status is written.
    """

    def __init__(self, sink, job_id: str):
        self.sink = sink
        self.job_id = job_id
        self.phase: Optional[PipelinePhase] = None
        self._range = (0, 100)
        self._state = ProgressState()
        self._tail: Optional[asyncio.Task] = None

    def begin_phase(self, phase: PipelinePhase, range_start: int, range_end: int) -> None:
        self.phase = phase
        self._range = (range_start, range_end)
        self._state = ProgressState()
        logger.info(f"[PROGRESS] Job {self.job_id}: {phase.value} ({range_start}-{range_end}%)")
        self.report(0)

    def report(self, internal_percent: float) -> None:
        if self.phase is None:
            return
        percent = map_and_dedupe(self._state, internal_percent, *self._range)
        if percent is None:
            return
        self._tail = asyncio.ensure_future(self._send(self._tail, self.phase, percent))

    async def _send(
        self,
        previous: Optional[asyncio.Task],
        phase: PipelinePhase,
        percent: int,
    ) -> None:
        if previous is not None:
            await asyncio.wait({previous})
        try:
            result = self.sink.update_progress(self.job_id, phase, percent)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.warning(f"[PROGRESS] Sink update failed for job {self.job_id}: {e}")

    async def drain(self) -> None:
        """Wait for queued sink updates; their failures are already logged."""
        if self._tail is not None:
            await asyncio.wait({self._tail})
