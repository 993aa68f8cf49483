"""Enumeration types for the analysis models."""

from enum import Enum


class StrideCategory(str, Enum):
    """STRIDE threat categories, with a fallback for unrecognised labels."""

    SPOOFING = "Spoofing"
    TAMPERING = "Tampering"
    REPUDIATION = "Repudiation"
    INFORMATION_DISCLOSURE = "Information Disclosure"
    DENIAL_OF_SERVICE = "Denial of Service"
    ELEVATION_OF_PRIVILEGE = "Elevation of Privilege"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: object) -> "StrideCategory":
        """Map a free-form category label onto a member.

        Matching ignores case, surrounding whitespace and underscores, so the
        model's "Information_Disclosure" resolves to INFORMATION_DISCLOSURE.
        """
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.UNKNOWN

        normalized = " ".join(str(value).replace("_", " ").split()).lower()
        for member in cls:
            if member.value.lower() == normalized or member.name.lower() == normalized.replace(" ", "_"):
                return member
        return cls.UNKNOWN


class ThreatStatus(str, Enum):
    """Review status of an identified threat."""

    PENDING = "Pending"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"


class ApplicationType(str, Enum):
    """Kind of system under analysis."""

    LOGICAL_APP = "Logical Application"
    LOGICAL_SUB = "Logical Application Subcomponent"
    BASH = "Bash"
    ANDROID = "Android App"
    WEB = "Web"
    API = "API"


class DataClassification(str, Enum):
    """Sensitivity of the data handled by the system."""

    PUBLIC = "Public"
    INTERNAL = "Internal"
    CONFIDENTIAL = "Confidential"
    RESTRICTED = "Restricted"
    PCI_DSS = "PCI-DSS"
