"""
Quality gate for sampled video frames.

Screens encoded frames before they are spent on a backend call:
- Structurally invalid payloads (too short, or no JPEG/PNG signature)
- Frames whose data-URI rendering is below the minimum viable size

The gate is advisory by default: rejected frames are logged and still
dispatched. With strict mode enabled the first rejected frame fails the view.
Each verdict also carries a Laplacian-variance sharpness score, which is
logged for diagnostics but never used to reject.
"""
import base64
import io
import logging
from dataclasses import dataclass
from typing import List, Optional

import cv2
import numpy as np
from PIL import Image

from tyrecheck.core.exceptions import InputError
from tyrecheck.services.media import FrameSet

logger = logging.getLogger(__name__)

FRAME_MIN_DATA_URI_LENGTH = 50  # Shorter than this cannot be a real image
FRAME_QUALITY_THRESHOLD = 500_000  # Minimum data-URI length in characters

JPEG_SIGNATURE = b"\xff\xd8\xff"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

REASON_INVALID = "invalid_payload"
REASON_TOO_SMALL = "below_size_threshold"


@dataclass(frozen=True)
class QualityVerdict:
    """Outcome of screening one frame"""
    accepted: bool
    reason: Optional[str]
    data_uri_length: int
    sharpness: Optional[float] = None


def data_uri_length(frame_data: bytes, media_type: str = "image/jpeg") -> int:
    """Length of the frame rendered as a base64 data URI"""
    prefix = f"data:{media_type};base64,"
    return len(prefix) + len(base64.b64encode(frame_data))


class QualityGate:
    """
    Accept/reject screening for encoded frames.

    Attributes:
        min_data_uri_length: Structural minimum (default 50 characters)
        quality_threshold: Minimum viable data-URI length (default 500,000)
        strict: Raise InputError on the first rejected frame instead of logging
    """

    def __init__(
        self,
        min_data_uri_length: int = FRAME_MIN_DATA_URI_LENGTH,
        quality_threshold: int = FRAME_QUALITY_THRESHOLD,
        strict: bool = False
    ):
        self.min_data_uri_length = min_data_uri_length
        self.quality_threshold = quality_threshold
        self.strict = strict

    def evaluate(self, frame_data: bytes, media_type: str = "image/jpeg") -> QualityVerdict:
        """Screen one encoded frame."""
        length = data_uri_length(frame_data, media_type)

        if length < self.min_data_uri_length:
            return QualityVerdict(False, REASON_INVALID, length)

        if not (frame_data.startswith(JPEG_SIGNATURE) or frame_data.startswith(PNG_SIGNATURE)):
            return QualityVerdict(False, REASON_INVALID, length)

        sharpness = self._sharpness(frame_data)

        if length < self.quality_threshold:
            return QualityVerdict(False, REASON_TOO_SMALL, length, sharpness)

        return QualityVerdict(True, None, length, sharpness)

    def check(self, frame_data: bytes) -> bool:
        """Boolean form of evaluate()"""
        return self.evaluate(frame_data).accepted

    def review(self, frame_set: FrameSet) -> List[QualityVerdict]:
        """
        Screen every frame of a set, logging rejections.

        Raises:
            InputError: In strict mode, for the first rejected frame
        """
        verdicts = []
        for position, frame in enumerate(frame_set, start=1):
            verdict = self.evaluate(frame.data)
            verdicts.append(verdict)

            if verdict.accepted:
                continue

            logger.info(
                f"Frame {position} rejected by quality gate: {verdict.reason}",
                extra={
                    "event_type": "frame_quality_rejected",
                    "frame_number": position,
                    "timestamp": round(frame.timestamp, 3),
                    "reason": verdict.reason,
                    "data_uri_length": verdict.data_uri_length,
                    "threshold": self.quality_threshold,
                    "sharpness": verdict.sharpness,
                    "strict": self.strict,
                }
            )
            if self.strict:
                raise InputError(
                    f"Frame {position} at {frame.timestamp:.2f}s failed quality check ({verdict.reason})"
                )

        accepted = sum(1 for verdict in verdicts if verdict.accepted)
        logger.debug(
            f"Quality gate reviewed {len(verdicts)} frames, {accepted} accepted",
            extra={
                "event_type": "frame_quality_review",
                "frame_count": len(verdicts),
                "accepted_count": accepted,
            }
        )
        return verdicts

    def _sharpness(self, frame_data: bytes) -> Optional[float]:
        """Laplacian variance of the decoded frame (higher = sharper); None if undecodable"""
        try:
            with Image.open(io.BytesIO(frame_data)) as img:
                gray = np.asarray(img.convert("L"))
        except (OSError, ValueError) as e:
            logger.debug(
                f"Could not decode frame for sharpness scoring: {e}",
                extra={"event_type": "frame_sharpness_decode_failed", "error_type": type(e).__name__}
            )
            return None
        return float(cv2.Laplacian(gray, cv2.CV_64F).var())
