"""
Cross-field consistency rules for validated analysis results.

A tyre size is either fully read or not read at all: fullSize is concrete
if and only if width, aspectRatio and wheelDiameter are all concrete. A
partial reading collapses every field to "not available" and marks the
image as unclear, whatever the backend claimed.
"""
import logging

from tyrecheck.schemas.analysis import NOT_AVAILABLE, AnalysisResult, TyreSize

logger = logging.getLogger(__name__)


def compose_full_size(tyre_size: TyreSize) -> str:
    """e.g. 215/55R17"""
    return f"{tyre_size.width}/{tyre_size.aspect_ratio}R{tyre_size.wheel_diameter}"


def enforce_tyre_size(tyre_size: TyreSize) -> TyreSize:
    """
    Apply the all-or-nothing size rule. Idempotent.

    - any measurement unavailable: all four fields -> "not available",
      isImageClear -> False
    - all measurements concrete but fullSize unavailable: fullSize is composed
      from the measurements
    """
    if not tyre_size.is_complete:
        collapsed = TyreSize(
            width=NOT_AVAILABLE,
            aspect_ratio=NOT_AVAILABLE,
            wheel_diameter=NOT_AVAILABLE,
            full_size=NOT_AVAILABLE,
            is_image_clear=False,
        )
        if collapsed != tyre_size:
            logger.info(
                "Partial tyre size reading collapsed to 'not available'",
                extra={
                    "event_type": "tyre_size_collapsed",
                    "width": tyre_size.width,
                    "aspect_ratio": tyre_size.aspect_ratio,
                    "wheel_diameter": tyre_size.wheel_diameter,
                    "reported_clear": tyre_size.is_image_clear,
                }
            )
        return collapsed

    if tyre_size.full_size == NOT_AVAILABLE:
        composed = compose_full_size(tyre_size)
        logger.debug(
            f"Composed missing fullSize as {composed}",
            extra={"event_type": "tyre_size_composed", "full_size": composed}
        )
        return tyre_size.model_copy(update={"full_size": composed})

    return tyre_size


def enforce_result(result: AnalysisResult) -> AnalysisResult:
    """Apply consistency rules to every populated section of a result"""
    if result.tyre_size is None:
        return result
    return result.model_copy(update={"tyre_size": enforce_tyre_size(result.tyre_size)})
