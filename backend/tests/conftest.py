"""Pytest fixtures and configuration for test suite

This module provides:
1. Media asset fixtures (still images and video blobs)
2. Seeded random sources for reproducible frame sampling
3. Canned backend replies for each view type
"""
import random
import pytest

from tyrecheck.schemas.analysis import MediaKind
from tyrecheck.services.media import MediaAsset
from tests.mocks.ai_mocks import sidewall_reply_dict, tread_reply_dict, wrap_in_prose
from tests.mocks.media_mocks import make_jpeg, make_png


@pytest.fixture
def jpeg_bytes():
    """Small JPEG still image"""
    return make_jpeg()


@pytest.fixture
def png_bytes():
    """Small PNG still image"""
    return make_png()


@pytest.fixture
def image_asset(jpeg_bytes):
    """Image MediaAsset wrapping a small JPEG"""
    return MediaAsset(jpeg_bytes, MediaKind.IMAGE, filename="sidewall.jpg", content_type="image/jpeg")


@pytest.fixture
def video_asset():
    """Video MediaAsset; contents are opaque because av.open is patched in tests"""
    return MediaAsset(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 1024, MediaKind.VIDEO,
                      filename="tread.mp4", content_type="video/mp4")


@pytest.fixture
def seeded_rng():
    """Deterministic random source for frame sampling"""
    return random.Random(42)


@pytest.fixture
def sidewall_reply():
    """Backend reply text for a clearly legible sidewall"""
    return wrap_in_prose(sidewall_reply_dict())


@pytest.fixture
def tread_reply():
    """Backend reply text for a healthy tread"""
    return wrap_in_prose(tread_reply_dict())
