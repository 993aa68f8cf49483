"""Pipeline state definition for the guided analysis."""

from datetime import datetime
from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict, Field

from threat_modeler.models import AnalysisInputs, Threat


class PipelineStage(IntEnum):
    """Analysis steps, strictly ordered."""

    INPUT = 0
    REVIEW_DESCRIPTION = 1
    REVIEW_DFD = 2
    RESULTS = 3

    @property
    def label(self) -> str:
        return STAGE_LABELS[self]


STAGE_LABELS = {
    PipelineStage.INPUT: "Input",
    PipelineStage.REVIEW_DESCRIPTION: "Review description",
    PipelineStage.REVIEW_DFD: "Review DFD",
    PipelineStage.RESULTS: "Results",
}


class StageErrorKind(str, Enum):
    """Classes of user-visible pipeline errors."""

    TRANSPORT = "transport"
    CAPACITY = "capacity"
    MALFORMED = "malformed"
    VALIDATION = "validation"
    CANCELLED = "cancelled"
    STORAGE = "storage"


class StageError(BaseModel):
    """The last error raised by a pipeline action, held until dismissed."""

    model_config = ConfigDict(frozen=True)

    kind: StageErrorKind
    stage: PipelineStage
    message: str
    excerpt: str | None = None


class PipelineState(BaseModel):
    """Immutable snapshot of a guided analysis.

    Controller operations never mutate a state; they return a new one.
    """

    model_config = ConfigDict(frozen=True)

    stage: PipelineStage = PipelineStage.INPUT
    inputs: AnalysisInputs = Field(default_factory=AnalysisInputs)

    # Stage outputs, kept across backward navigation
    ai_description: str = ""
    dfd_description: str = ""
    threats: tuple[Threat, ...] = ()

    error: StageError | None = None
    busy: bool = False

    # Persistence
    record_id: str | None = None
    created_at: datetime | None = None
    image_ref: str | None = None
    image_url: str | None = None
    saved: bool = False

    @property
    def can_retreat(self) -> bool:
        return self.stage in (PipelineStage.REVIEW_DESCRIPTION, PipelineStage.REVIEW_DFD)


def create_initial_state(inputs: AnalysisInputs | None = None) -> PipelineState:
    """Create the state for a fresh analysis.

    Args:
        inputs: Optional pre-filled inputs.

    Returns:
        PipelineState positioned at INPUT.
    """
    return PipelineState(inputs=inputs or AnalysisInputs())
