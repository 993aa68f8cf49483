"""Models for identified threats and the threat-enumeration result."""

import uuid

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import StrideCategory, ThreatStatus

logger = structlog.get_logger(__name__)

# Only review decisions on pending threats are exposed.
ALLOWED_STATUS_TRANSITIONS: dict[ThreatStatus, frozenset[ThreatStatus]] = {
    ThreatStatus.PENDING: frozenset({ThreatStatus.ACCEPTED, ThreatStatus.REJECTED}),
    ThreatStatus.ACCEPTED: frozenset(),
    ThreatStatus.REJECTED: frozenset(),
}


class InvalidThreatTransition(ValueError):
    """Raised when a threat status change is not allowed."""

    pass


def new_threat_id() -> str:
    """Generate a fresh threat identifier."""
    return str(uuid.uuid4())


class Threat(BaseModel):
    """A single STRIDE threat identified for the analysed system."""

    model_config = ConfigDict(frozen=True)

    threat_id: str = Field(default_factory=new_threat_id, description="Unique within the record")
    threat_name: str = Field(..., description="Short descriptive name")
    stride_category: StrideCategory = Field(
        default=StrideCategory.UNKNOWN, description="STRIDE category"
    )
    description: str = Field(default="", description="Detailed description of the threat")
    mitigation: str = Field(default="", description="Concrete mitigation strategy")
    status: ThreatStatus = Field(default=ThreatStatus.PENDING, description="Review status")

    @field_validator("threat_id", mode="before")
    @classmethod
    def _coerce_threat_id(cls, value: object) -> str:
        if value is None or not str(value).strip():
            return new_threat_id()
        return str(value).strip()

    @field_validator("stride_category", mode="before")
    @classmethod
    def _normalize_category(cls, value: object) -> StrideCategory:
        return StrideCategory.parse(value)

    @property
    def is_pending(self) -> bool:
        return self.status == ThreatStatus.PENDING

    def with_status(self, status: ThreatStatus) -> "Threat":
        """Return a copy of this threat with a new review status.

        Raises:
            InvalidThreatTransition: If the transition is not allowed.
        """
        status = ThreatStatus(status)
        if status not in ALLOWED_STATUS_TRANSITIONS[self.status]:
            raise InvalidThreatTransition(
                f"Cannot change threat {self.threat_id} from {self.status.value} to {status.value}"
            )
        return self.model_copy(update={"status": status})


class ThreatModelResult(BaseModel):
    """Output of the threat-enumeration stage."""

    threats: list[Threat] = Field(..., description="Identified threats, possibly empty")

    @classmethod
    def from_model_output(cls, payload: dict) -> "ThreatModelResult":
        """Build a result from the structured model reply.

        Every threat starts pending, whatever the model claims, and missing or
        duplicate ids are replaced so ids stay unique within the result.

        Raises:
            pydantic.ValidationError: If the payload does not match the schema.
        """
        parsed = cls.model_validate(payload)

        seen: set[str] = set()
        threats: list[Threat] = []
        for threat in parsed.threats:
            update: dict = {"status": ThreatStatus.PENDING}
            if threat.threat_id in seen:
                replacement = new_threat_id()
                logger.warning(
                    "duplicate_threat_id_replaced",
                    original_id=threat.threat_id,
                    replacement_id=replacement,
                )
                update["threat_id"] = replacement
            seen.add(update.get("threat_id", threat.threat_id))
            threats.append(threat.model_copy(update=update))

        return cls(threats=threats)
