"""
FrameSampler for extracting still frames from short tyre videos.

Provides functionality to:
- Choose a bounded, randomized-but-evenly-distributed set of timestamps
- Decode the frame nearest each timestamp with PyAV
- Downscale frames to a fixed fraction of native resolution
- Re-encode frames as reduced-quality JPEG to bound payload size

Sampling:
    n = min(max_frames, floor(duration)) frames are kept. Candidate timestamps
    are duration * (i + 1) / (floor(duration) + 1) for i in [0, floor(duration)),
    shuffled with the injected random source; the first n are kept and
    presented in ascending order.
"""
import asyncio
import io
import logging
import math
import random
import time
from typing import List, Optional, Tuple

import av
import numpy as np
from PIL import Image

from tyrecheck.core.config import settings
from tyrecheck.core.exceptions import AnalysisError, DecodeError, EmptyVideoError, InputError
from tyrecheck.services.media import Frame, FrameSet, MediaAsset

logger = logging.getLogger(__name__)


def select_timestamps(duration: float, max_frames: int, rng: random.Random) -> List[float]:
    """
    Choose the timestamps to sample from a video.

    Args:
        duration: Video duration in seconds
        max_frames: Upper bound on the number of frames
        rng: Random source used to permute the candidates

    Returns:
        Distinct timestamps in [0, duration), ascending

    Raises:
        EmptyVideoError: If the video is shorter than one second

    Example:
        duration=10.0, max_frames=5 -> 5 of the 10 candidates
        [0.909, 1.818, ..., 9.091], chosen by rng
    """
    whole_seconds = math.floor(duration)
    count = min(max_frames, whole_seconds)
    if count <= 0:
        raise EmptyVideoError(f"Video is too short to sample ({duration:.2f}s, need at least 1s)")

    candidates = [duration * (i + 1) / (whole_seconds + 1) for i in range(whole_seconds)]
    shuffled = rng.sample(candidates, len(candidates))
    return sorted(shuffled[:count])


class FrameSampler:
    """
    Service for sampling frames from a video MediaAsset.

    Attributes:
        max_frames: Maximum number of frames per video (default 5)
        scale: Fraction of native resolution to keep (default 0.25)
        jpeg_quality: JPEG re-encode quality 1-95 (default 50)
        rng: Random source for timestamp selection; inject a seeded
             random.Random for reproducible sampling
    """

    def __init__(
        self,
        max_frames: Optional[int] = None,
        scale: Optional[float] = None,
        jpeg_quality: Optional[int] = None,
        rng: Optional[random.Random] = None
    ):
        self.max_frames = max_frames if max_frames is not None else settings.MAX_FRAMES
        self.scale = scale if scale is not None else settings.FRAME_SCALE
        self.jpeg_quality = jpeg_quality if jpeg_quality is not None else settings.FRAME_JPEG_QUALITY
        self.rng = rng or random.Random()

    async def sample(self, asset: MediaAsset, seed: Optional[int] = None) -> FrameSet:
        """
        Sample frames from a video asset.

        Decoding runs in a worker thread so the event loop stays responsive.

        Args:
            asset: Video media asset
            seed: Optional seed overriding the sampler's random source for this call

        Returns:
            FrameSet ordered by timestamp

        Raises:
            InputError: If the asset is not a video
            EmptyVideoError: If the video is shorter than one second
            DecodeError: If the asset cannot be opened or decoded as video
        """
        if not asset.is_video:
            raise InputError("Frame sampling requires a video asset")

        rng = random.Random(seed) if seed is not None else self.rng
        return await asyncio.to_thread(self._sample_blocking, asset, rng)

    def _sample_blocking(self, asset: MediaAsset, rng: random.Random) -> FrameSet:
        start_time = time.time()

        logger.info(
            "Starting frame sampling",
            extra={
                "event_type": "frame_sampling_start",
                "size_bytes": asset.size,
                "max_frames": self.max_frames,
                "scale": self.scale,
            }
        )

        try:
            with asset.open() as buffer, av.open(buffer, mode="r") as container:
                if not container.streams.video:
                    raise DecodeError("No video stream found in media")

                stream = container.streams.video[0]
                duration = self._get_duration(container, stream)
                timestamps = select_timestamps(duration, self.max_frames, rng)

                logger.debug(
                    f"Sampling {len(timestamps)} frames from {duration:.2f}s video",
                    extra={
                        "event_type": "frame_sampling_timestamps",
                        "duration_seconds": duration,
                        "timestamps": [round(t, 3) for t in timestamps],
                    }
                )

                picked = self._decode_nearest(container, stream, timestamps)

        except AnalysisError:
            raise

        except (av.FFmpegError, OSError) as e:
            logger.error(
                f"PyAV error opening video: {e}",
                extra={
                    "event_type": "frame_sampling_av_error",
                    "error": str(e),
                    "error_type": type(e).__name__
                }
            )
            raise DecodeError(f"Could not decode video: {e}") from e

        frames = []
        source_width = source_height = 0
        for timestamp, rgb in picked:
            source_height, source_width = rgb.shape[:2]
            data, width, height = self._encode_frame(rgb)
            frames.append(Frame(timestamp=timestamp, data=data, width=width, height=height))

        frame_set = FrameSet(
            frames=frames,
            duration=duration,
            source_width=source_width,
            source_height=source_height,
        )

        logger.info(
            f"Frame sampling complete: {len(frame_set)} frames",
            extra={
                "event_type": "frame_sampling_success",
                "frames_sampled": len(frame_set),
                "total_bytes": frame_set.total_bytes,
                "duration_seconds": round(duration, 3),
                "elapsed_ms": round((time.time() - start_time) * 1000, 2),
            }
        )
        return frame_set

    def _get_duration(self, container, stream) -> float:
        """Duration in seconds from the container, falling back to the stream"""
        duration = None
        if container.duration:
            duration = container.duration / 1_000_000.0
        elif stream.duration and stream.time_base:
            duration = float(stream.duration * stream.time_base)

        if duration is None or not math.isfinite(duration) or duration < 0:
            raise DecodeError("Cannot determine video duration")
        return duration

    def _start_offset(self, stream) -> float:
        """Presentation time of the first frame; sampled timestamps are relative to it"""
        if stream.start_time is None or not stream.time_base:
            return 0.0
        return float(stream.start_time * stream.time_base)

    def _frame_time(self, frame, stream, index: int) -> float:
        if frame.time is not None:
            return float(frame.time)
        if frame.pts is not None and stream.time_base:
            return float(frame.pts * stream.time_base)
        # No timing information at all: assume constant frame rate
        rate = float(stream.average_rate) if stream.average_rate else 1.0
        return index / rate

    def _decode_nearest(self, container, stream, timestamps: List[float]) -> List[Tuple[float, np.ndarray]]:
        """
        Decode sequentially and pick the frame nearest each timestamp.

        Sequential decoding is more reliable than seeking for many phone
        codecs. If the stream ends before a timestamp is reached, the last
        decoded frame is used.
        """
        pending = list(timestamps)
        offset = self._start_offset(stream)
        picked: List[Tuple[float, np.ndarray]] = []
        previous = None
        previous_time = 0.0

        for index, frame in enumerate(container.decode(stream)):
            frame_time = self._frame_time(frame, stream, index) - offset

            while pending and frame_time >= pending[0]:
                target = pending.pop(0)
                if previous is not None and abs(previous_time - target) <= abs(frame_time - target):
                    chosen = previous
                else:
                    chosen = frame
                picked.append((target, chosen.to_ndarray(format="rgb24")))

            if not pending:
                break

            previous, previous_time = frame, frame_time

        if pending and previous is not None:
            logger.debug(
                f"Stream ended before {len(pending)} timestamps, using last frame",
                extra={
                    "event_type": "frame_sampling_short_stream",
                    "last_frame_time": previous_time,
                    "pending": [round(t, 3) for t in pending],
                }
            )
            last = previous.to_ndarray(format="rgb24")
            picked.extend((target, last) for target in pending)

        if not picked:
            raise DecodeError("No frames could be decoded from video")

        return picked

    def _encode_frame(self, frame: np.ndarray) -> Tuple[bytes, int, int]:
        """
        Downscale an RGB frame and encode it as JPEG.

        Args:
            frame: RGB numpy array (H, W, 3)

        Returns:
            Tuple of (jpeg_bytes, width, height)
        """
        img = Image.fromarray(frame)
        new_size = (
            max(1, int(img.width * self.scale)),
            max(1, int(img.height * self.scale)),
        )
        if new_size != img.size:
            img = img.resize(new_size, Image.LANCZOS)

        buffer = io.BytesIO()
        img.save(buffer, format='JPEG', quality=self.jpeg_quality)
        return buffer.getvalue(), img.width, img.height
