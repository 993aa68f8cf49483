"""Pydantic data models for the analysis."""

from .enums import ApplicationType, DataClassification, StrideCategory, ThreatStatus
from .threat import InvalidThreatTransition, Threat, ThreatModelResult
from .analysis import AnalysisInputs, AnalysisRecord, ImagePayload, RecordSummary

__all__ = [
    # Enums
    "ApplicationType",
    "DataClassification",
    "StrideCategory",
    "ThreatStatus",
    # Threats
    "InvalidThreatTransition",
    "Threat",
    "ThreatModelResult",
    # Analysis
    "AnalysisInputs",
    "AnalysisRecord",
    "ImagePayload",
    "RecordSummary",
]
