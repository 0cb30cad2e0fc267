"""Tests for phase-scoped progress mapping."""

import asyncio

import pytest

from clipcaption.render.progress import PhaseProgressReporter, ProgressState, map_and_dedupe
from clipcaption.schemas.job import PipelinePhase
from clipcaption.services.job_status import InMemoryJobStatusSink


class TestMapAndDedupe:
    """Tests for the pure mapping function."""

    def test_zero_maps_to_range_start(self):
        assert map_and_dedupe(ProgressState(), 0, 20, 40) == 20

    def test_hundred_maps_to_range_end(self):
        assert map_and_dedupe(ProgressState(), 100, 20, 40) == 40

    def test_midpoint_is_rounded(self):
        assert map_and_dedupe(ProgressState(), 33, 0, 20) == 7

    def test_duplicates_suppressed(self):
        state = ProgressState()
        emitted = [map_and_dedupe(state, p, 80, 100) for p in range(0, 101)]
        values = [v for v in emitted if v is not None]

        assert values == list(range(80, 101))
        assert state.last_emitted == 100

    def test_regressions_suppressed(self):
        state = ProgressState()
        assert map_and_dedupe(state, 50, 0, 100) == 50
        assert map_and_dedupe(state, 40, 0, 100) is None
        assert state.last_emitted == 50

    def test_out_of_range_input_is_clamped(self):
        assert map_and_dedupe(ProgressState(), 150, 0, 20) == 20
        assert map_and_dedupe(ProgressState(), -10, 40, 80) == 40


class FailingSink:
    async def update_progress(self, job_id, phase, percent):
        raise RuntimeError("status store down")


class TestPhaseProgressReporter:
    """Tests for forwarding progress to a sink."""

    @pytest.mark.asyncio
    async def test_forwards_mapped_values(self):
        sink = InMemoryJobStatusSink()
        reporter = PhaseProgressReporter(sink, "job-1")

        reporter.begin_phase(PipelinePhase.COMPOSING, 40, 80)
        reporter.report(50)
        reporter.report(50.4)
        reporter.report(100)
        await reporter.drain()

        assert sink.progress_history == [
            ("job-1", PipelinePhase.COMPOSING, 40),
            ("job-1", PipelinePhase.COMPOSING, 60),
            ("job-1", PipelinePhase.COMPOSING, 80),
        ]

    @pytest.mark.asyncio
    async def test_new_phase_resets_dedupe(self):
        sink = InMemoryJobStatusSink()
        reporter = PhaseProgressReporter(sink, "job-1")

        reporter.begin_phase(PipelinePhase.DOWNLOADING, 0, 20)
        reporter.report(100)
        reporter.begin_phase(PipelinePhase.COMPOSING, 20, 80)
        await reporter.drain()

        assert sink.progress_history[-1] == ("job-1", PipelinePhase.COMPOSING, 20)

    @pytest.mark.asyncio
    async def test_sink_failures_do_not_raise(self, caplog):
        reporter = PhaseProgressReporter(FailingSink(), "job-1")

        reporter.begin_phase(PipelinePhase.UPLOADING, 80, 100)
        reporter.report(100)
        await reporter.drain()

        assert "status store down" in caplog.text

    def test_report_before_phase_is_ignored(self):
        sink = InMemoryJobStatusSink()
        reporter = PhaseProgressReporter(sink, "job-1")

        reporter.report(50)

        assert sink.progress_history == []

    @pytest.mark.asyncio
    async def test_slow_update_does_not_overtake_later_ones(self):
        """A sink write that is slower than the next one still lands first."""

        class VariableLatencySink:
            def __init__(self):
                self.applied: list[tuple[PipelinePhase, int]] = []

            async def update_progress(self, job_id, phase, percent):
                if percent in (0, 20):
                    await asyncio.sleep(0.05)
                self.applied.append((phase, percent))

        sink = VariableLatencySink()
        reporter = PhaseProgressReporter(sink, "job-1")

        reporter.begin_phase(PipelinePhase.DOWNLOADING, 0, 20)
        reporter.report(50)
        reporter.report(100)
        reporter.begin_phase(PipelinePhase.COMPOSING, 20, 80)
        reporter.report(50)
        await reporter.drain()

        assert sink.applied == [
            (PipelinePhase.DOWNLOADING, 0),
            (PipelinePhase.DOWNLOADING, 10),
            (PipelinePhase.DOWNLOADING, 20),
            (PipelinePhase.COMPOSING, 20),
            (PipelinePhase.COMPOSING, 50),
        ]
