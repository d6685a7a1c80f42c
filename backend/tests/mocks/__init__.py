"""
Mock Factories Package

Factory functions for analysis backend replies, SDK response objects,
encoded test images and PyAV containers.
"""
from tests.mocks.ai_mocks import (
    create_anthropic_message,
    create_openai_completion,
    make_backend_response,
    make_mock_dispatcher,
    sidewall_reply_dict,
    tread_reply_dict,
    wrap_in_prose,
)
from tests.mocks.media_mocks import (
    create_mock_container,
    make_jpeg,
    make_png,
)

__all__ = [
    # AI Mocks
    "create_anthropic_message",
    "create_openai_completion",
    "make_backend_response",
    "make_mock_dispatcher",
    "sidewall_reply_dict",
    "tread_reply_dict",
    "wrap_in_prose",
    # Media Mocks
    "create_mock_container",
    "make_jpeg",
    "make_png",
]
