"""
Unit tests for AnalysisPipeline

Tests cover:
- Two-view success and per-view commit
- First-failure-stops with partial results preserved
- Request validation before any dispatch (empty, duplicate, missing, mismatched, oversize)
- Video path: sampling, quality gate, seed forwarding
- Error classification surfaced in the outcome
- Media release on every path
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from tyrecheck.core.config import MIB
from tyrecheck.core.exceptions import (
    AnalysisTimeoutError,
    EmptyVideoError,
    InputError,
    NoJsonFoundError,
    PayloadTooLargeError,
    SchemaError,
)
from tyrecheck.schemas.analysis import NOT_AVAILABLE, MediaKind, ViewType
from tyrecheck.services.analysis_pipeline import (
    AnalysisPipeline,
    AnalysisState,
    PipelineStatus,
    ViewRequest,
)
from tyrecheck.services.frame_sampler import FrameSampler
from tyrecheck.services.media import Frame, FrameSet, MediaAsset
from tyrecheck.services.quality_gate import QualityGate
from tests.mocks.ai_mocks import make_mock_dispatcher, sidewall_reply_dict, tread_reply_dict, wrap_in_prose
from tests.mocks.media_mocks import make_jpeg


def make_frame_set(count: int = 3) -> FrameSet:
    frames = [Frame(timestamp=float(i + 1), data=make_jpeg(seed=i), width=64, height=48) for i in range(count)]
    return FrameSet(frames=frames, duration=float(count + 1), source_width=256, source_height=192)


def make_mock_sampler(frame_set=None, error=None) -> MagicMock:
    sampler = MagicMock(spec=FrameSampler)
    if error is not None:
        sampler.sample = AsyncMock(side_effect=error)
    else:
        sampler.sample = AsyncMock(return_value=frame_set or make_frame_set())
    return sampler


def make_pipeline(*replies, sampler=None, gate=None) -> AnalysisPipeline:
    return AnalysisPipeline(
        sampler=sampler or make_mock_sampler(),
        gate=gate or QualityGate(strict=False),
        dispatcher=make_mock_dispatcher(*replies),
    )


@pytest.fixture
def tread_image(jpeg_bytes):
    return MediaAsset(jpeg_bytes, MediaKind.IMAGE, filename="tread.jpg", content_type="image/jpeg")


@pytest.fixture
def sidewall_image(jpeg_bytes):
    return MediaAsset(jpeg_bytes, MediaKind.IMAGE, filename="sidewall.jpg", content_type="image/jpeg")


class TestAnalysisState:
    """Test AnalysisState commit semantics"""

    def test_expected_views_start_uncommitted(self):
        state = AnalysisState([ViewType.TREAD, "sidewallView"])

        assert state.get(ViewType.TREAD) is None
        assert ViewType.SIDEWALL not in state
        assert state.committed == {}
        assert state.to_payload() == {}

    def test_expect_does_not_reset_commit(self):
        result = MagicMock()
        state = AnalysisState()
        state.commit(ViewType.TREAD, result)

        state.expect(ViewType.TREAD)

        assert state.get(ViewType.TREAD) is result

    def test_unknown_view_rejected(self):
        with pytest.raises(ValueError):
            AnalysisState(["frontView"])


class TestPipelineSuccess:
    """Test successful runs"""

    @pytest.mark.asyncio
    async def test_both_views_committed(self, tread_image, sidewall_image, tread_reply, sidewall_reply):
        pipeline = make_pipeline(tread_reply, sidewall_reply)
        requests = [
            ViewRequest(ViewType.TREAD, tread_image),
            ViewRequest(ViewType.SIDEWALL, sidewall_image),
        ]

        outcome = await pipeline.run(requests)

        assert outcome.status == PipelineStatus.ALL_COMMITTED
        assert outcome.error is None
        response = outcome.to_response()
        assert set(response) == {"treadView", "sidewallView"}
        assert response["sidewallView"]["tyreSize"]["fullSize"] == "215/55R17"
        assert response["treadView"]["safety"]["isSafeToDrive"] is True
        assert pipeline.dispatcher.dispatch.await_count == 2

    @pytest.mark.asyncio
    async def test_views_dispatched_in_request_order(self, tread_image, sidewall_image, tread_reply, sidewall_reply):
        pipeline = make_pipeline(tread_reply, sidewall_reply)

        await pipeline.run([
            ViewRequest(ViewType.TREAD, tread_image),
            ViewRequest(ViewType.SIDEWALL, sidewall_image),
        ])

        payloads = [call.args[0] for call in pipeline.dispatcher.dispatch.await_args_list]
        assert [p.view_type for p in payloads] == [ViewType.TREAD, ViewType.SIDEWALL]

    @pytest.mark.asyncio
    async def test_media_released_after_success(self, sidewall_image, sidewall_reply):
        await make_pipeline(sidewall_reply).run([ViewRequest(ViewType.SIDEWALL, sidewall_image)])

        assert sidewall_image.released is True

    @pytest.mark.asyncio
    async def test_partial_size_reading_collapsed(self, sidewall_image):
        reply = wrap_in_prose(sidewall_reply_dict(
            wheel_diameter="not available", full_size="215/55R?", is_image_clear=True
        ))

        outcome = await make_pipeline(reply).run([ViewRequest(ViewType.SIDEWALL, sidewall_image)])

        assert outcome.to_response()["sidewallView"] == {
            "tyreSize": {
                "width": NOT_AVAILABLE,
                "aspectRatio": NOT_AVAILABLE,
                "wheelDiameter": NOT_AVAILABLE,
                "fullSize": NOT_AVAILABLE,
                "isImageClear": False,
            }
        }

    @pytest.mark.asyncio
    async def test_commits_into_supplied_state(self, sidewall_image, sidewall_reply):
        state = AnalysisState()

        outcome = await make_pipeline(sidewall_reply).run([ViewRequest(ViewType.SIDEWALL, sidewall_image)], state=state)

        assert outcome.state is state
        assert ViewType.SIDEWALL in state


class TestPipelineFailure:
    """Test failure handling and partial results"""

    @pytest.mark.asyncio
    async def test_second_view_timeout_keeps_first(self, tread_image, sidewall_image, tread_reply):
        pipeline = make_pipeline(tread_reply, AnalysisTimeoutError(25))

        outcome = await pipeline.run([
            ViewRequest(ViewType.TREAD, tread_image),
            ViewRequest(ViewType.SIDEWALL, sidewall_image),
        ])

        assert outcome.status == PipelineStatus.PARTIALLY_COMMITTED
        assert isinstance(outcome.error, TimeoutError)
        assert outcome.failed_view == ViewType.SIDEWALL
        response = outcome.to_response()
        assert "treadView" in response
        assert "sidewallView" not in response
        assert response["errorType"] == "timeout"
        assert "25 seconds" in response["error"]

    @pytest.mark.asyncio
    async def test_first_failure_skips_second_view(self, tread_image, sidewall_image, sidewall_reply):
        pipeline = make_pipeline("I could not see the tyre clearly.", sidewall_reply)

        outcome = await pipeline.run([
            ViewRequest(ViewType.TREAD, tread_image),
            ViewRequest(ViewType.SIDEWALL, sidewall_image),
        ])

        assert outcome.status == PipelineStatus.FAILED
        assert isinstance(outcome.error, NoJsonFoundError)
        assert outcome.to_response() == {"error": outcome.error.message, "errorType": "no_json"}
        assert pipeline.dispatcher.dispatch.await_count == 1
        assert tread_image.released is True
        assert sidewall_image.released is True

    @pytest.mark.asyncio
    async def test_schema_error_reported(self, tread_image):
        reply = wrap_in_prose(tread_reply_dict(is_safe_to_drive="true"))

        outcome = await make_pipeline(reply).run([ViewRequest(ViewType.TREAD, tread_image)])

        assert isinstance(outcome.error, SchemaError)
        assert outcome.error.field == "safety.isSafeToDrive"
        assert outcome.to_response()["errorType"] == "schema"

    @pytest.mark.asyncio
    async def test_oversized_measurement_keeps_first_view(self, tread_image, sidewall_image, tread_reply):
        sidewall_reply = wrap_in_prose(sidewall_reply_dict(width=int("9" * 400)))
        pipeline = make_pipeline(tread_reply, sidewall_reply)

        outcome = await pipeline.run([
            ViewRequest(ViewType.TREAD, tread_image),
            ViewRequest(ViewType.SIDEWALL, sidewall_image),
        ])

        assert outcome.status == PipelineStatus.PARTIALLY_COMMITTED
        assert isinstance(outcome.error, SchemaError)
        assert outcome.failed_view == ViewType.SIDEWALL
        response = outcome.to_response()
        assert "treadView" in response
        assert response["errorType"] == "schema"

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates_after_release(self, sidewall_image):
        pipeline = make_pipeline(RuntimeError("bug"))

        with pytest.raises(RuntimeError):
            await pipeline.run([ViewRequest(ViewType.SIDEWALL, sidewall_image)])

        assert sidewall_image.released is True


class TestRequestValidation:
    """Test rejection of ill-formed requests before dispatch"""

    @pytest.mark.asyncio
    async def test_no_views(self):
        pipeline = make_pipeline()

        outcome = await pipeline.run([])

        assert isinstance(outcome.error, InputError)
        assert outcome.status == PipelineStatus.FAILED
        assert outcome.to_response()["errorType"] == "input"
        pipeline.dispatcher.dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_duplicate_view(self, tread_image, jpeg_bytes):
        other = MediaAsset(jpeg_bytes, MediaKind.IMAGE)
        pipeline = make_pipeline()

        outcome = await pipeline.run([
            ViewRequest(ViewType.TREAD, tread_image),
            ViewRequest(ViewType.TREAD, other),
        ])

        assert "more than once" in outcome.error.message
        pipeline.dispatcher.dispatch.assert_not_called()
        assert tread_image.released is True
        assert other.released is True

    @pytest.mark.asyncio
    async def test_missing_media(self):
        outcome = await make_pipeline().run([ViewRequest(ViewType.SIDEWALL, None)])

        assert outcome.error.message == "No media supplied for sidewallView"

    @pytest.mark.asyncio
    async def test_unknown_view(self, tread_image):
        outcome = await make_pipeline().run([ViewRequest("frontView", tread_image)])

        assert isinstance(outcome.error, InputError)
        assert "frontView" in outcome.error.message

    @pytest.mark.asyncio
    async def test_kind_mismatch(self, tread_image):
        outcome = await make_pipeline().run([ViewRequest(ViewType.TREAD, tread_image, is_video=True)])

        assert isinstance(outcome.error, InputError)
        assert "expects video" in outcome.error.message

    @pytest.mark.asyncio
    async def test_oversize_image_never_dispatched(self, tread_image):
        oversize = MediaAsset(b"\xff\xd8\xff" + b"\x00" * (5 * MIB), MediaKind.IMAGE)
        pipeline = make_pipeline()

        outcome = await pipeline.run([
            ViewRequest(ViewType.TREAD, tread_image),
            ViewRequest(ViewType.SIDEWALL, oversize),
        ])

        assert isinstance(outcome.error, PayloadTooLargeError)
        assert outcome.to_response() == {"error": outcome.error.message, "errorType": "payload_too_large"}
        pipeline.dispatcher.dispatch.assert_not_called()
        assert oversize.released is True


class TestVideoPath:
    """Test video views: sampling, gating and payload building"""

    @pytest.mark.asyncio
    async def test_video_view_sampled_and_dispatched(self, video_asset, tread_reply):
        frame_set = make_frame_set(4)
        sampler = make_mock_sampler(frame_set)
        pipeline = make_pipeline(tread_reply, sampler=sampler)

        outcome = await pipeline.run([ViewRequest(ViewType.TREAD, video_asset, is_video=True)], seed=7)

        assert outcome.status == PipelineStatus.ALL_COMMITTED
        sampler.sample.assert_awaited_once_with(video_asset, seed=7)
        payload = pipeline.dispatcher.dispatch.await_args.args[0]
        assert payload.is_video is True
        assert [image.data for image in payload.images] == [frame.data for frame in frame_set]
        assert video_asset.released is True

    @pytest.mark.asyncio
    async def test_short_video_reports_empty_video(self, video_asset):
        sampler = make_mock_sampler(error=EmptyVideoError("Video is too short to sample (0.50s, need at least 1s)"))
        pipeline = make_pipeline(sampler=sampler)

        outcome = await pipeline.run([ViewRequest(ViewType.TREAD, video_asset, is_video=True)])

        assert outcome.to_response()["errorType"] == "empty_video"
        pipeline.dispatcher.dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_strict_gate_fails_view(self, video_asset, tread_reply):
        pipeline = make_pipeline(tread_reply, gate=QualityGate(strict=True))

        outcome = await pipeline.run([ViewRequest(ViewType.TREAD, video_asset, is_video=True)])

        assert isinstance(outcome.error, InputError)
        assert "failed quality check" in outcome.error.message
        pipeline.dispatcher.dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_advisory_gate_still_dispatches(self, video_asset, tread_reply):
        pipeline = make_pipeline(tread_reply, gate=QualityGate(strict=False))

        outcome = await pipeline.run([ViewRequest(ViewType.TREAD, video_asset, is_video=True)])

        assert outcome.status == PipelineStatus.ALL_COMMITTED
        pipeline.dispatcher.dispatch.assert_awaited_once()
