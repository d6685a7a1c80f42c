"""Pydantic schemas for tyre analysis results"""
import math
import re
from enum import Enum
from typing import Annotated, Any, Dict, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, StrictBool, StrictStr

# Placeholder the backend uses instead of null for an unreadable measurement
NOT_AVAILABLE = "not available"

_NUMERIC_RE = re.compile(r"[0-9]+(?:\.[0-9]+)?")


class ViewType(str, Enum):
    """Which side of the tyre is being analyzed"""
    TREAD = "treadView"
    SIDEWALL = "sidewallView"


class MediaKind(str, Enum):
    """Declared kind of a captured media asset"""
    IMAGE = "image"
    VIDEO = "video"


def format_measurement(number: float) -> str:
    """Render a measurement without a trailing '.0' (215.0 -> '215')."""
    if float(number).is_integer():
        return str(int(number))
    return repr(float(number))


def _normalize_measurement(value: Any) -> str:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        raise ValueError("expected a number or 'not available', got a boolean")
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            raise ValueError("measurement must be a positive number") from None
    elif isinstance(value, str):
        text = value.strip()
        if text.lower() == NOT_AVAILABLE:
            return NOT_AVAILABLE
        if not _NUMERIC_RE.fullmatch(text):
            raise ValueError(f"expected a number or 'not available', got {value!r}")
        number = float(text)
    else:
        raise ValueError(f"expected a number or 'not available', got {type(value).__name__}")

    if not math.isfinite(number) or number <= 0:
        raise ValueError("measurement must be a positive number")
    return format_measurement(number)


def _normalize_full_size(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"expected a string, got {type(value).__name__}")
    text = value.strip()
    if not text:
        raise ValueError("must not be empty")
    if text.lower() == NOT_AVAILABLE:
        return NOT_AVAILABLE
    return text


def _require_text(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be empty")
    return value


Measurement = Annotated[str, BeforeValidator(_normalize_measurement)]
FullSize = Annotated[str, BeforeValidator(_normalize_full_size)]
NonEmptyText = Annotated[StrictStr, AfterValidator(_require_text)]


class TyreSize(BaseModel):
    """Sidewall size marking, e.g. 215/55R17"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    width: Measurement = Field(description="Section width in mm, or 'not available'")
    aspect_ratio: Measurement = Field(alias="aspectRatio", description="Aspect ratio, or 'not available'")
    wheel_diameter: Measurement = Field(alias="wheelDiameter", description="Rim diameter in inches, or 'not available'")
    full_size: FullSize = Field(alias="fullSize", description="Composed size marking, or 'not available'")
    is_image_clear: StrictBool = Field(alias="isImageClear", description="Whether the marking was fully legible")

    @property
    def measurements(self) -> tuple:
        return (self.width, self.aspect_ratio, self.wheel_diameter)

    @property
    def is_complete(self) -> bool:
        """True when every measurement is concrete"""
        return all(value != NOT_AVAILABLE for value in self.measurements)


class SafetyInfo(BaseModel):
    """Tread condition verdicts"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    is_safe_to_drive: StrictBool = Field(alias="isSafeToDrive")
    visible_damage: StrictBool = Field(alias="visibleDamage")
    sufficient_tread: StrictBool = Field(alias="sufficientTread")
    uneven_wear: StrictBool = Field(alias="unevenWear")
    needs_replacement: StrictBool = Field(alias="needsReplacement")


class Explanations(BaseModel):
    """Free-text rationale behind each safety verdict"""
    model_config = ConfigDict(extra="ignore", frozen=True)

    safety: NonEmptyText
    damage: NonEmptyText
    tread: NonEmptyText
    wear: NonEmptyText
    replacement: NonEmptyText


class AnalysisResult(BaseModel):
    """Validated result for one view; populated fields depend on the view type"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    tyre_size: Optional[TyreSize] = Field(default=None, alias="tyreSize")
    safety: Optional[SafetyInfo] = None
    explanations: Optional[Explanations] = None

    def to_payload(self) -> Dict[str, Any]:
        """Wire representation (camelCase keys, absent sections omitted)"""
        return self.model_dump(by_alias=True, exclude_none=True)


# Expected backend reply shapes, one per view type


class SidewallResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    tyre_size: TyreSize = Field(alias="tyreSize")


class TreadResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    safety: SafetyInfo
    explanations: Explanations


class LegacySidewallResponse(BaseModel):
    """Older flat sidewall reply: the four size fields at the top level, no isImageClear"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    width: Measurement
    aspect_ratio: Measurement = Field(alias="aspectRatio")
    wheel_diameter: Measurement = Field(alias="wheelDiameter")
    full_size: FullSize = Field(alias="fullSize")


class AnalysisErrorResponse(BaseModel):
    """Response body when no view could be committed"""
    error: str = Field(description="Message of the first error encountered")
    errorType: str = Field(description="Error classification, e.g. 'timeout' or 'schema'")

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Analysis backend did not respond within 25 seconds",
                "errorType": "timeout",
            }
        }
