"""Models for analysis inputs and persisted analysis records."""

import base64
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .enums import ApplicationType, DataClassification, ThreatStatus
from .threat import Threat


class ImagePayload(BaseModel):
    """An image prepared for the model: mime type plus base64 data."""

    model_config = ConfigDict(frozen=True)

    mime_type: str = Field(..., description="Mime type, e.g. image/jpeg")
    base64_data: str = Field(..., description="Base64-encoded image bytes")
    filename: str | None = Field(None, description="Original file name, used as storage key suffix")

    @property
    def data(self) -> bytes:
        """Decoded image bytes."""
        return base64.b64decode(self.base64_data)

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64_data}"


class AnalysisInputs(BaseModel):
    """User-supplied inputs collected before the first stage."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    title: str = ""
    description: str = ""
    app_type: ApplicationType = ApplicationType.WEB
    data_classification: DataClassification = DataClassification.CONFIDENTIAL
    image: ImagePayload | None = None

    def missing_fields(self) -> list[str]:
        """List the problems that prevent the first stage from running."""
        problems = []
        if not self.title.strip():
            problems.append("a title is required")
        if not self.description.strip() and self.image is None:
            problems.append("an architecture description or diagram is required")
        return problems


class AnalysisRecord(BaseModel):
    """A completed analysis, as persisted by the record store."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Record identifier assigned by the store")
    title: str = Field(..., description="Analysis title")
    app_type: ApplicationType = Field(..., description="Application type")
    data_classification: DataClassification = Field(..., description="Data classification")
    description: str = Field(default="", description="User-provided architecture description")
    image_ref: str | None = Field(None, description="Storage key of the architecture diagram")
    image_url: str | None = Field(None, description="Fetchable URL, resolved on read")
    ai_description: str = Field(default="", description="AI-generated architecture description")
    dfd_description: str = Field(default="", description="AI-generated data-flow description")
    threats: list[Threat] = Field(default_factory=list, description="Threats in model order")
    created_at: datetime = Field(..., description="When the analysis was created")

    @model_validator(mode="after")
    def _threat_ids_unique(self) -> "AnalysisRecord":
        ids = [t.threat_id for t in self.threats]
        if len(ids) != len(set(ids)):
            raise ValueError("threat ids must be unique within a record")
        return self

    def threat_counts(self) -> dict[ThreatStatus, int]:
        """Count threats per review status."""
        counts = {status: 0 for status in ThreatStatus}
        for threat in self.threats:
            counts[threat.status] += 1
        return counts


class RecordSummary(BaseModel):
    """Dashboard listing entry for a stored record."""

    id: str
    title: str
    created_at: datetime
    app_type: ApplicationType
    threat_count: int = Field(default=0, ge=0)
    image_url: str | None = None
