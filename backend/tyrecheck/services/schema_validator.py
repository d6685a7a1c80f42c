"""
Validates extracted backend replies against the shape expected for a view.

Two sidewall profiles exist and are never merged:
- CURRENT: {"tyreSize": {width, aspectRatio, wheelDiameter, fullSize, isImageClear}}
- LEGACY: {width, aspectRatio, wheelDiameter, fullSize} at the top level,
  with isImageClear derived from whether all three measurements are concrete

Tread replies are validated identically under both profiles.
"""
import logging
from enum import Enum
from typing import Any

from pydantic import ValidationError

from tyrecheck.core.exceptions import SchemaError
from tyrecheck.schemas.analysis import (
    NOT_AVAILABLE,
    AnalysisResult,
    LegacySidewallResponse,
    SidewallResponse,
    TreadResponse,
    TyreSize,
    ViewType,
)

logger = logging.getLogger(__name__)


class SchemaProfile(str, Enum):
    CURRENT = "current"
    LEGACY = "legacy"


def _schema_error(error: ValidationError) -> SchemaError:
    """First pydantic error as a SchemaError with a dotted field path"""
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "<root>"
    reason = first.get("msg", "invalid value")
    if first.get("type") == "missing":
        reason = "field required"
    return SchemaError(field, reason)


def validate_response(
    view_type: ViewType,
    obj: Any,
    profile: SchemaProfile = SchemaProfile.CURRENT
) -> AnalysisResult:
    """
    Validate a parsed reply and build the typed result for one view.

    Args:
        view_type: View the reply belongs to
        obj: Parsed JSON object
        profile: Sidewall schema profile

    Returns:
        AnalysisResult with tyre_size (sidewall) or safety + explanations (tread)

    Raises:
        SchemaError: Naming the first missing or mistyped field
    """
    if not isinstance(obj, dict):
        raise SchemaError("<root>", f"expected a JSON object, got {type(obj).__name__}")

    view_type = ViewType(view_type)
    try:
        if view_type == ViewType.TREAD:
            tread = TreadResponse.model_validate(obj)
            result = AnalysisResult(safety=tread.safety, explanations=tread.explanations)

        elif profile == SchemaProfile.LEGACY:
            result = AnalysisResult(tyre_size=_from_legacy(LegacySidewallResponse.model_validate(obj)))

        else:
            result = AnalysisResult(tyre_size=SidewallResponse.model_validate(obj).tyre_size)

    except ValidationError as e:
        schema_error = _schema_error(e)
        logger.warning(
            f"Analysis response failed validation: {schema_error.message}",
            extra={
                "event_type": "response_schema_error",
                "view_type": view_type.value,
                "profile": SchemaProfile(profile).value,
                "field": schema_error.field,
                "error_count": e.error_count(),
            }
        )
        raise schema_error from e

    return result


def _from_legacy(legacy: LegacySidewallResponse) -> TyreSize:
    measurements = (legacy.width, legacy.aspect_ratio, legacy.wheel_diameter)
    return TyreSize(
        width=legacy.width,
        aspect_ratio=legacy.aspect_ratio,
        wheel_diameter=legacy.wheel_diameter,
        full_size=legacy.full_size,
        is_image_clear=all(value != NOT_AVAILABLE for value in measurements),
    )
