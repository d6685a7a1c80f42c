"""
Payload builder for analysis backend requests.

Assembles the per-view instructions and the image data for one backend call
and enforces size ceilings before anything is sent:
- still image: MAX_IMAGE_BYTES (4 MiB)
- raw video asset: MAX_VIDEO_BYTES (50 MiB)
- sampled frame set: MAX_FRAMESET_BYTES (9 MiB)
"""
import base64
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from tyrecheck.core.config import settings
from tyrecheck.core.exceptions import InputError, PayloadTooLargeError
from tyrecheck.schemas.analysis import MediaKind, ViewType
from tyrecheck.services.media import FrameSet, MediaAsset
from tyrecheck.services.prompts import MULTI_FRAME_SUFFIX, VIEW_INSTRUCTIONS, ViewInstructions

logger = logging.getLogger(__name__)

# Magic bytes for the image formats vision backends accept
IMAGE_SIGNATURES = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def detect_image_media_type(data: bytes) -> Optional[str]:
    """Identify the image MIME type from magic bytes, or None if unrecognised"""
    for signature, media_type in IMAGE_SIGNATURES:
        if data.startswith(signature):
            return media_type
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


@dataclass(frozen=True)
class PayloadImage:
    """One image attached to a backend request"""
    data: bytes
    media_type: str

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_uri(self) -> str:
        return f"data:{self.media_type};base64,{self.to_base64()}"


@dataclass(frozen=True)
class AnalysisPayload:
    """Everything the dispatcher needs for one backend call"""
    view_type: ViewType
    media_kind: MediaKind
    images: Tuple[PayloadImage, ...]
    system_prompt: str
    user_prompt: str

    @property
    def is_video(self) -> bool:
        return self.media_kind == MediaKind.VIDEO

    @property
    def total_bytes(self) -> int:
        return sum(len(image.data) for image in self.images)

    def user_text(self) -> str:
        """User instructions, with the multi-frame suffix for video frames"""
        if self.is_video:
            return f"{self.user_prompt}\n\n{MULTI_FRAME_SUFFIX}"
        return self.user_prompt

    def instruction_text(self) -> str:
        """System and user instructions combined into one text block"""
        return f"{self.system_prompt}\n\n{self.user_text()}"


class PayloadBuilder:
    """
    Builds AnalysisPayloads and enforces size ceilings by media kind.

    All checks run before any network call; an oversized payload is never
    partially uploaded.
    """

    def __init__(
        self,
        max_image_bytes: Optional[int] = None,
        max_video_bytes: Optional[int] = None,
        max_frameset_bytes: Optional[int] = None,
        instructions: Optional[Dict[ViewType, ViewInstructions]] = None
    ):
        self.max_image_bytes = max_image_bytes or settings.MAX_IMAGE_BYTES
        self.max_video_bytes = max_video_bytes or settings.MAX_VIDEO_BYTES
        self.max_frameset_bytes = max_frameset_bytes or settings.MAX_FRAMESET_BYTES
        self.instructions = instructions or VIEW_INSTRUCTIONS

    def check_asset(self, asset: MediaAsset) -> None:
        """
        Check a raw asset against the ceiling for its kind.

        Raises:
            InputError: If the asset is empty
            PayloadTooLargeError: If the asset exceeds its ceiling
        """
        if asset.size == 0:
            raise InputError(f"Uploaded {asset.kind.value} is empty")

        limit = self.max_video_bytes if asset.is_video else self.max_image_bytes
        if asset.size > limit:
            logger.warning(
                "Media asset exceeds size ceiling",
                extra={
                    "event_type": "payload_too_large",
                    "media_kind": asset.kind.value,
                    "size_bytes": asset.size,
                    "limit_bytes": limit,
                }
            )
            raise PayloadTooLargeError(asset.kind.value, asset.size, limit)

    def build_image_payload(self, view_type: ViewType, asset: MediaAsset) -> AnalysisPayload:
        """
        Build a payload for a single still image.

        Raises:
            InputError: If the asset is not an image or its format is unrecognised
            PayloadTooLargeError: If the image exceeds MAX_IMAGE_BYTES
        """
        if asset.is_video:
            raise InputError("Expected an image asset, got a video")
        self.check_asset(asset)

        media_type = detect_image_media_type(asset.data)
        if media_type is None:
            raise InputError(
                f"Unsupported image format{f' ({asset.content_type})' if asset.content_type else ''}; "
                "expected JPEG, PNG, GIF or WebP"
            )

        return self._build(view_type, MediaKind.IMAGE, (PayloadImage(asset.data, media_type),))

    def build_video_payload(self, view_type: ViewType, frame_set: FrameSet) -> AnalysisPayload:
        """
        Build a payload from frames sampled out of a video.

        Raises:
            InputError: If the frame set is empty
            PayloadTooLargeError: If the frames exceed MAX_FRAMESET_BYTES
        """
        if len(frame_set) == 0:
            raise InputError("No frames were sampled from the video")

        if frame_set.total_bytes > self.max_frameset_bytes:
            logger.warning(
                "Sampled frames exceed size ceiling",
                extra={
                    "event_type": "payload_too_large",
                    "media_kind": MediaKind.VIDEO.value,
                    "frame_count": len(frame_set),
                    "size_bytes": frame_set.total_bytes,
                    "limit_bytes": self.max_frameset_bytes,
                }
            )
            raise PayloadTooLargeError("video frames", frame_set.total_bytes, self.max_frameset_bytes)

        images = tuple(PayloadImage(frame.data, "image/jpeg") for frame in frame_set)
        return self._build(view_type, MediaKind.VIDEO, images)

    def _build(
        self,
        view_type: ViewType,
        media_kind: MediaKind,
        images: Tuple[PayloadImage, ...]
    ) -> AnalysisPayload:
        instructions = self.instructions[ViewType(view_type)]
        payload = AnalysisPayload(
            view_type=ViewType(view_type),
            media_kind=media_kind,
            images=images,
            system_prompt=instructions.system,
            user_prompt=instructions.user,
        )
        logger.debug(
            "Analysis payload built",
            extra={
                "event_type": "payload_built",
                "media_kind": media_kind.value,
                "image_count": len(images),
                "total_bytes": payload.total_bytes,
            }
        )
        return payload
