"""Job lifecycle enums shared by the pipeline and status sinks."""

from enum import Enum


class PipelinePhase(Enum):
    """Composition pipeline phase."""

    DOWNLOADING = "downloading"
    CONVERTING = "converting"
    COMPOSING = "composing"
    UPLOADING = "uploading"


class JobStatus(Enum):
    """Terminal and non-terminal job status."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Overall percent range reserved for each phase
PHASE_RANGES: dict[PipelinePhase, tuple[int, int]] = {
    PipelinePhase.DOWNLOADING: (0, 20),
    PipelinePhase.CONVERTING: (20, 40),
    PipelinePhase.COMPOSING: (40, 80),
    PipelinePhase.UPLOADING: (80, 100),
}

# Composing starts where downloading ends when no separate conversion runs
COMPOSING_RANGE_WITHOUT_CONVERSION = (20, 80)
