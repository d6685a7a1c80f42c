"""Pydantic schemas for analysis results and responses"""
from tyrecheck.schemas.analysis import (
    NOT_AVAILABLE,
    AnalysisErrorResponse,
    AnalysisResult,
    Explanations,
    MediaKind,
    SafetyInfo,
    TyreSize,
    ViewType,
)

__all__ = [
    "NOT_AVAILABLE",
    "AnalysisErrorResponse",
    "AnalysisResult",
    "Explanations",
    "MediaKind",
    "SafetyInfo",
    "TyreSize",
    "ViewType",
]
