"""Pairwise conflict detection."""

from docselect.conflicts.detector import ConflictDetector
from docselect.conflicts.models import (
    Conflict,
    ConflictAnalysisResult,
    ConflictDetectionOptions,
    ConflictType,
    ResolutionAction,
)

__all__ = [
    "Conflict",
    "ConflictAnalysisResult",
    "ConflictDetectionOptions",
    "ConflictDetector",
    "ConflictType",
    "ResolutionAction",
]
