"""
Pipeline controller for tyre media analysis.

Runs the requested views strictly in order. For each view:

    [video: sample frames -> quality gate] -> build payload -> dispatch
        -> extract JSON -> validate -> enforce consistency -> commit

The first failure stops the remaining views. Results already committed to
the AnalysisState are kept and returned alongside that error. Every media
asset in the invocation is released when the run ends, on every path.
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Sequence

from tyrecheck.core.config import settings
from tyrecheck.core.exceptions import AnalysisError, InputError
from tyrecheck.core.logging_config import clear_view_type, set_view_type
from tyrecheck.schemas.analysis import AnalysisResult, ViewType
from tyrecheck.services.analysis_backend import BackendDispatcher
from tyrecheck.services.consistency import enforce_result
from tyrecheck.services.frame_sampler import FrameSampler
from tyrecheck.services.media import MediaAsset
from tyrecheck.services.payload_builder import AnalysisPayload, PayloadBuilder
from tyrecheck.services.quality_gate import QualityGate
from tyrecheck.services.response_extractor import extract_json
from tyrecheck.services.schema_validator import SchemaProfile, validate_response

logger = logging.getLogger(__name__)


@dataclass
class ViewRequest:
    """One view to analyse: which side of the tyre, its media, and whether it is a video"""
    view_type: ViewType
    media: Optional[MediaAsset]
    is_video: bool = False


class AnalysisState:
    """
    Per-invocation mapping of ViewType -> AnalysisResult (or None until committed).

    Only the pipeline commits into it, one view at a time; commits are never
    rolled back when a later view fails.
    """

    def __init__(self, views: Iterable[ViewType] = ()):
        self._results: Dict[ViewType, Optional[AnalysisResult]] = {ViewType(v): None for v in views}

    def expect(self, view_type: ViewType) -> None:
        """Record a requested view as pending without touching an existing result"""
        self._results.setdefault(ViewType(view_type), None)

    def commit(self, view_type: ViewType, result: AnalysisResult) -> None:
        self._results[ViewType(view_type)] = result

    def get(self, view_type: ViewType) -> Optional[AnalysisResult]:
        return self._results.get(ViewType(view_type))

    @property
    def committed(self) -> Dict[ViewType, AnalysisResult]:
        return {view: result for view, result in self._results.items() if result is not None}

    def __contains__(self, view_type: Any) -> bool:
        return self.get(view_type) is not None

    def to_payload(self) -> Dict[str, Any]:
        """Committed results keyed by view type value"""
        return {view.value: result.to_payload() for view, result in self.committed.items()}


class PipelineStatus(str, Enum):
    ALL_COMMITTED = "all_committed"
    PARTIALLY_COMMITTED = "partially_committed"
    FAILED = "failed"


@dataclass
class PipelineOutcome:
    """Terminal state of one invocation"""
    state: AnalysisState
    error: Optional[AnalysisError] = None
    failed_view: Optional[ViewType] = None

    @property
    def status(self) -> PipelineStatus:
        if self.error is None:
            return PipelineStatus.ALL_COMMITTED
        if self.state.committed:
            return PipelineStatus.PARTIALLY_COMMITTED
        return PipelineStatus.FAILED

    def to_response(self) -> Dict[str, Any]:
        """Committed views, plus error and errorType when the run stopped early"""
        body = self.state.to_payload()
        if self.error is not None:
            body["error"] = self.error.message
            body["errorType"] = self.error.classification
        return body


class AnalysisPipeline:
    """
    Orchestrates one analysis invocation over one or two views.

    Collaborators are injectable so tests can substitute a seeded sampler or
    a mocked dispatcher; defaults come from settings.
    """

    def __init__(
        self,
        sampler: Optional[FrameSampler] = None,
        gate: Optional[QualityGate] = None,
        builder: Optional[PayloadBuilder] = None,
        dispatcher: Optional[BackendDispatcher] = None,
        profile: SchemaProfile = SchemaProfile.CURRENT
    ):
        self.sampler = sampler or FrameSampler()
        self.gate = gate or QualityGate(strict=settings.QUALITY_GATE_STRICT)
        self.builder = builder or PayloadBuilder()
        self.dispatcher = dispatcher or BackendDispatcher()
        self.profile = profile

    async def run(
        self,
        requests: Sequence[ViewRequest],
        state: Optional[AnalysisState] = None,
        seed: Optional[int] = None
    ) -> PipelineOutcome:
        """
        Analyse each requested view in order.

        Args:
            requests: Views to analyse, in processing order
            state: Existing state to commit into; a fresh one is created if omitted
            seed: Optional seed for reproducible frame sampling

        Returns:
            PipelineOutcome holding the state and the first error, if any
        """
        if state is None:
            state = AnalysisState()
        start_time = time.time()

        try:
            try:
                self.validate_requests(requests)
            except InputError as e:
                logger.warning(
                    f"Analysis request rejected: {e.message}",
                    extra={"event_type": "analysis_request_rejected", "error_type": e.classification}
                )
                return PipelineOutcome(state=state, error=e)

            for request in requests:
                state.expect(request.view_type)

            for request in requests:
                view_type = ViewType(request.view_type)
                token = set_view_type(view_type.value)
                try:
                    result = await self.analyze_view(request, seed=seed)
                except AnalysisError as e:
                    logger.error(
                        f"Analysis failed for {view_type.value}: {e.message}",
                        extra={
                            "event_type": "analysis_view_failed",
                            "error_type": e.classification,
                            "committed_views": [view.value for view in state.committed],
                        }
                    )
                    return PipelineOutcome(state=state, error=e, failed_view=view_type)
                finally:
                    clear_view_type(token)

                state.commit(view_type, result)

            logger.info(
                f"Analysis complete for {len(requests)} view(s)",
                extra={
                    "event_type": "analysis_complete",
                    "views": [ViewType(request.view_type).value for request in requests],
                    "elapsed_ms": round((time.time() - start_time) * 1000, 2),
                }
            )
            return PipelineOutcome(state=state)

        finally:
            for request in requests:
                if request.media is not None:
                    request.media.release()

    def validate_requests(self, requests: Sequence[ViewRequest]) -> None:
        """
        Reject ill-formed requests before any decode or network work.

        Raises:
            InputError: No views, duplicate views, missing media, or a kind mismatch
            PayloadTooLargeError: If a raw asset exceeds its size ceiling
        """
        if not requests:
            raise InputError("No media supplied: at least one view is required")

        seen = set()
        for request in requests:
            try:
                view_type = ViewType(request.view_type)
            except ValueError:
                raise InputError(f"Unknown view type: {request.view_type!r}") from None

            if view_type in seen:
                raise InputError(f"View '{view_type.value}' was requested more than once")
            seen.add(view_type)

            if request.media is None:
                raise InputError(f"No media supplied for {view_type.value}")

            if request.media.is_video != bool(request.is_video):
                expected = "video" if request.is_video else "image"
                raise InputError(
                    f"Media for {view_type.value} is declared as {request.media.kind.value} "
                    f"but the request expects {expected}"
                )

            self.builder.check_asset(request.media)

    async def analyze_view(self, request: ViewRequest, seed: Optional[int] = None) -> AnalysisResult:
        """Run one view through every stage and return its enforced result"""
        view_type = ViewType(request.view_type)
        payload = await self._build_payload(view_type, request, seed)

        response = await self.dispatcher.dispatch(payload)
        parsed = extract_json(response.text)
        result = validate_response(view_type, parsed, self.profile)
        return enforce_result(result)

    async def _build_payload(
        self,
        view_type: ViewType,
        request: ViewRequest,
        seed: Optional[int]
    ) -> AnalysisPayload:
        if not request.is_video:
            return self.builder.build_image_payload(view_type, request.media)

        frame_set = await self.sampler.sample(request.media, seed=seed)
        self.gate.review(frame_set)
        return self.builder.build_video_payload(view_type, frame_set)
