"""
Media containers passed through the analysis pipeline.

MediaAsset wraps one uploaded blob. It is consumed by exactly one pipeline
invocation and released when that invocation finishes or fails; the buffer
handed out by open() is closed when its block exits.

FrameSet is the ordered, bounded set of stills sampled from a video asset.
"""
import io
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from tyrecheck.core.exceptions import InputError
from tyrecheck.schemas.analysis import MediaKind

logger = logging.getLogger(__name__)


class MediaAsset:
    """
    An uploaded image or video blob.

    Attributes:
        kind: Declared media kind (image or video)
        filename: Original filename, if the capture collaborator supplied one
        content_type: Declared MIME type, if any
    """

    def __init__(
        self,
        data: bytes,
        kind: MediaKind,
        filename: Optional[str] = None,
        content_type: Optional[str] = None
    ):
        self._data: Optional[bytes] = bytes(data)
        self._size = len(self._data)
        self.kind = MediaKind(kind)
        self.filename = filename
        self.content_type = content_type

    @property
    def size(self) -> int:
        """Byte size at capture time (still valid after release)"""
        return self._size

    @property
    def is_video(self) -> bool:
        return self.kind == MediaKind.VIDEO

    @property
    def released(self) -> bool:
        return self._data is None

    @property
    def data(self) -> bytes:
        if self._data is None:
            raise InputError(f"Media asset '{self.filename or self.kind.value}' has already been released")
        return self._data

    @contextmanager
    def open(self) -> Iterator[io.BytesIO]:
        """Yield a readable buffer over the asset; the buffer is closed on exit."""
        buffer = io.BytesIO(self.data)
        try:
            yield buffer
        finally:
            buffer.close()

    def release(self) -> None:
        """Drop the underlying blob. Safe to call more than once."""
        if self._data is not None:
            self._data = None
            logger.debug(
                "Media asset released",
                extra={
                    "event_type": "media_asset_released",
                    "media_kind": self.kind.value,
                    "size_bytes": self._size,
                }
            )

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"MediaAsset(kind={self.kind.value!r}, size={self._size}, filename={self.filename!r}, {state})"


@dataclass(frozen=True)
class Frame:
    """One JPEG-encoded still sampled from a video"""
    timestamp: float  # Sampled source timestamp in seconds
    data: bytes
    width: int
    height: int

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class FrameSet:
    """Ordered frames sampled from one video, ascending by timestamp"""
    frames: List[Frame] = field(default_factory=list)
    duration: float = 0.0
    source_width: int = 0
    source_height: int = 0

    def __len__(self) -> int:
        return len(self.frames)

    def __iter__(self) -> Iterator[Frame]:
        return iter(self.frames)

    @property
    def timestamps(self) -> List[float]:
        return [frame.timestamp for frame in self.frames]

    @property
    def total_bytes(self) -> int:
        return sum(frame.size for frame in self.frames)
