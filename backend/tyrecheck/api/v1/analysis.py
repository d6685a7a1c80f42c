"""
Tyre analysis API endpoints

Provides:
- POST /analysis - Analyse tread and/or sidewall media in one invocation
- POST /analysis/{view_type} - Analyse a single view
"""
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import JSONResponse

from tyrecheck.core.exceptions import (
    AnalysisTimeoutError,
    DecodeError,
    EmptyVideoError,
    InputError,
    NoJsonFoundError,
    PayloadTooLargeError,
    SchemaError,
    UpstreamError,
)
from tyrecheck.schemas.analysis import AnalysisErrorResponse, MediaKind, ViewType
from tyrecheck.services.analysis_pipeline import AnalysisPipeline, PipelineOutcome, PipelineStatus, ViewRequest
from tyrecheck.services.media import MediaAsset

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analysis", tags=["analysis"])

# HTTP status when no view could be committed, keyed by error classification
STATUS_BY_CLASSIFICATION: Dict[str, int] = {
    InputError.classification: 400,
    PayloadTooLargeError.classification: 413,
    EmptyVideoError.classification: 422,
    DecodeError.classification: 422,
    UpstreamError.classification: 502,
    NoJsonFoundError.classification: 502,
    SchemaError.classification: 502,
    AnalysisTimeoutError.classification: 504,
}

ERROR_RESPONSES = {
    code: {"model": AnalysisErrorResponse}
    for code in sorted(set(STATUS_BY_CLASSIFICATION.values()))
}


# Global instance (created on first request)
_pipeline: Optional[AnalysisPipeline] = None


def get_pipeline() -> AnalysisPipeline:
    """
    Get the global AnalysisPipeline instance

    The pipeline holds no per-invocation state, so one instance serves all
    requests.
    """
    global _pipeline

    if _pipeline is None:
        _pipeline = AnalysisPipeline()

    return _pipeline


def status_code_for(outcome: PipelineOutcome) -> int:
    """200 when anything was committed, otherwise the status for the error class"""
    if outcome.status != PipelineStatus.FAILED:
        return status.HTTP_200_OK
    return STATUS_BY_CLASSIFICATION.get(outcome.error.classification, status.HTTP_500_INTERNAL_SERVER_ERROR)


async def _read_view(view_type: ViewType, upload: UploadFile, is_video: Optional[bool]) -> ViewRequest:
    """Read an upload into a MediaAsset; isVideo defaults to the part's content type"""
    content_type = upload.content_type or ""
    video = is_video if is_video is not None else content_type.startswith("video/")
    try:
        data = await upload.read()
    finally:
        await upload.close()

    asset = MediaAsset(
        data,
        MediaKind.VIDEO if video else MediaKind.IMAGE,
        filename=upload.filename,
        content_type=upload.content_type,
    )
    return ViewRequest(view_type=view_type, media=asset, is_video=video)


async def _respond(pipeline: AnalysisPipeline, requests: List[ViewRequest]) -> JSONResponse:
    outcome = await pipeline.run(requests)
    status_code = status_code_for(outcome)

    if outcome.error is not None:
        logger.info(
            f"Analysis finished with {outcome.status.value}",
            extra={
                "event_type": "analysis_response",
                "status": outcome.status.value,
                "status_code": status_code,
                "error_type": outcome.error.classification,
                "failed_view": outcome.failed_view.value if outcome.failed_view else None,
            }
        )

    return JSONResponse(status_code=status_code, content=outcome.to_response())


@router.post("", responses=ERROR_RESPONSES)
async def analyze_tyre(
    treadView: Optional[UploadFile] = File(None),
    sidewallView: Optional[UploadFile] = File(None),
    treadViewIsVideo: Optional[bool] = Form(None),
    sidewallViewIsVideo: Optional[bool] = Form(None),
    pipeline: AnalysisPipeline = Depends(get_pipeline)
):
    """
    Analyse tread and/or sidewall media.

    **Request:**
    - Content-Type: multipart/form-data
    - Field: treadView (image or video, optional)
    - Field: sidewallView (image or video, optional)
    - Field: treadViewIsVideo / sidewallViewIsVideo (boolean, defaults to
      whether the part's content type starts with video/)

    Views are analysed tread first, then sidewall. The first failure stops
    the run; views analysed before it are still returned.

    **Response:**
    ```json
    {
        "sidewallView": {
            "tyreSize": {
                "width": "215",
                "aspectRatio": "55",
                "wheelDiameter": "17",
                "fullSize": "215/55R17",
                "isImageClear": true
            }
        }
    }
    ```

    **Status Codes:**
    - 200: Every view analysed, or some analysed before an error (body has error and errorType)
    - 400: No media, or media that does not match its declared kind
    - 413: Media over its size ceiling
    - 422: Video too short or undecodable
    - 502: Backend failure or unusable backend reply
    - 504: Backend deadline exceeded
    """
    requests = []
    if treadView is not None:
        requests.append(await _read_view(ViewType.TREAD, treadView, treadViewIsVideo))
    if sidewallView is not None:
        requests.append(await _read_view(ViewType.SIDEWALL, sidewallView, sidewallViewIsVideo))

    return await _respond(pipeline, requests)


@router.post("/{view_type}", responses=ERROR_RESPONSES)
async def analyze_view(
    view_type: ViewType,
    file: UploadFile = File(...),
    isVideo: Optional[bool] = Form(None),
    pipeline: AnalysisPipeline = Depends(get_pipeline)
):
    """
    Analyse a single view (treadView or sidewallView).

    **Request:**
    - Content-Type: multipart/form-data
    - Field: file (image or video)
    - Field: isVideo (boolean, defaults to whether the content type starts with video/)

    Status codes are the same as for POST /analysis.
    """
    request = await _read_view(view_type, file, isVideo)
    return await _respond(pipeline, [request])
