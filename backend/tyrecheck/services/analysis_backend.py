"""
Analysis backend providers and the dispatcher that calls them.

Providers:
- Claude (default): single user message holding the instruction text and images
- OpenAI: system message plus a user message of text and data-URI image parts

The dispatcher sends exactly one request per payload under a deadline.
There are no retries and no provider fallback: a failed call fails the view.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import anthropic
import openai

from tyrecheck.core.config import settings
from tyrecheck.core.exceptions import AnalysisError, AnalysisTimeoutError, UpstreamError
from tyrecheck.schemas.analysis import MediaKind
from tyrecheck.services.payload_builder import AnalysisPayload

logger = logging.getLogger(__name__)

# (max_tokens, temperature) per media kind; frame sets get a longer, cooler reply
GENERATION_PARAMS: Dict[MediaKind, Tuple[int, float]] = {
    MediaKind.VIDEO: (1500, 0.3),
    MediaKind.IMAGE: (1000, 0.4),
}


class AnalysisProvider(Enum):
    """Supported analysis backends"""
    CLAUDE = "claude"
    OPENAI = "openai"


@dataclass
class BackendResponse:
    """Raw reply from one backend call"""
    text: str
    provider: str
    model: str
    input_tokens: int
    output_tokens: int
    response_time_ms: int

    @property
    def tokens_used(self) -> int:
        return self.input_tokens + self.output_tokens


class AnalysisBackendBase(ABC):
    """Base class for vision-capable analysis backends"""

    provider: AnalysisProvider

    def __init__(self, api_key: Optional[str], model: str, client: Any = None):
        self.api_key = api_key
        self.model = model
        self._client = client

    @property
    def client(self) -> Any:
        """SDK client, created on first use so a missing key only fails at dispatch"""
        if self._client is None:
            self._client = self._create_client(self._require_api_key())
        return self._client

    def _require_api_key(self) -> str:
        if not self.api_key:
            raise UpstreamError(
                f"No API key configured for analysis provider '{self.provider.value}'",
                provider=self.provider.value
            )
        return self.api_key

    @abstractmethod
    def _create_client(self, api_key: str) -> Any:
        """Build the SDK client with its built-in retries disabled (max_retries=0)"""
        pass

    @abstractmethod
    async def analyze(self, payload: AnalysisPayload) -> BackendResponse:
        """
        Submit one payload and return the backend's raw text reply.

        Raises:
            UpstreamError: If the reply envelope carries no text
        """
        pass

    def _log_success(self, payload: AnalysisPayload, response: BackendResponse) -> None:
        logger.info(
            "Analysis backend call successful",
            extra={
                "event_type": "analysis_backend_success",
                "provider": response.provider,
                "model": response.model,
                "media_kind": payload.media_kind.value,
                "num_images": len(payload.images),
                "response_time_ms": response.response_time_ms,
                "input_tokens": response.input_tokens,
                "output_tokens": response.output_tokens,
            }
        )


class ClaudeBackend(AnalysisBackendBase):
    """Anthropic Claude vision backend"""

    provider = AnalysisProvider.CLAUDE

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client: Any = None):
        super().__init__(api_key, model or settings.CLAUDE_MODEL, client)

    def _create_client(self, api_key: str) -> anthropic.AsyncAnthropic:
        return anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)

    def build_content(self, payload: AnalysisPayload) -> List[Dict[str, Any]]:
        """Instruction text block followed by one image block per image"""
        content: List[Dict[str, Any]] = [{"type": "text", "text": payload.instruction_text()}]
        for image in payload.images:
            content.append({
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": image.media_type,
                    "data": image.to_base64()
                }
            })
        return content

    async def analyze(self, payload: AnalysisPayload) -> BackendResponse:
        start_time = time.time()
        max_tokens, temperature = GENERATION_PARAMS[payload.media_kind]

        response = await self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[{"role": "user", "content": self.build_content(payload)}]
        )

        elapsed_ms = int((time.time() - start_time) * 1000)
        text = next(
            (block.text for block in (response.content or [])
             if getattr(block, "type", None) == "text" and getattr(block, "text", None)),
            None
        )
        if text is None:
            raise UpstreamError("Analysis backend reply contained no text content", provider=self.provider.value)

        usage = getattr(response, "usage", None)
        result = BackendResponse(
            text=text,
            provider=self.provider.value,
            model=self.model,
            input_tokens=usage.input_tokens if usage else 0,
            output_tokens=usage.output_tokens if usage else 0,
            response_time_ms=elapsed_ms,
        )
        self._log_success(payload, result)
        return result


class OpenAIBackend(AnalysisBackendBase):
    """OpenAI GPT-4o vision backend"""

    provider = AnalysisProvider.OPENAI

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client: Any = None):
        super().__init__(api_key, model or settings.OPENAI_MODEL, client)

    def _create_client(self, api_key: str) -> openai.AsyncOpenAI:
        return openai.AsyncOpenAI(api_key=api_key, max_retries=0)

    def build_messages(self, payload: AnalysisPayload) -> List[Dict[str, Any]]:
        content: List[Dict[str, Any]] = [{"type": "text", "text": payload.user_text()}]
        for image in payload.images:
            content.append({"type": "image_url", "image_url": {"url": image.to_data_uri()}})

        return [
            {"role": "system", "content": payload.system_prompt},
            {"role": "user", "content": content},
        ]

    async def analyze(self, payload: AnalysisPayload) -> BackendResponse:
        start_time = time.time()
        max_tokens, temperature = GENERATION_PARAMS[payload.media_kind]

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=self.build_messages(payload),
            max_tokens=max_tokens,
            temperature=temperature
        )

        elapsed_ms = int((time.time() - start_time) * 1000)
        choices = getattr(response, "choices", None) or []
        text = choices[0].message.content if choices and choices[0].message else None
        if not text:
            raise UpstreamError("Analysis backend reply contained no text content", provider=self.provider.value)

        usage = getattr(response, "usage", None)
        result = BackendResponse(
            text=text,
            provider=self.provider.value,
            model=self.model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            response_time_ms=elapsed_ms,
        )
        self._log_success(payload, result)
        return result


def get_backend(provider: Optional[str] = None) -> AnalysisBackendBase:
    """Create the backend selected by ANALYSIS_PROVIDER (or the given provider name)"""
    selected = AnalysisProvider((provider or settings.ANALYSIS_PROVIDER).lower())
    if selected == AnalysisProvider.OPENAI:
        return OpenAIBackend(api_key=settings.OPENAI_API_KEY)
    return ClaudeBackend(api_key=settings.ANTHROPIC_API_KEY)


class BackendDispatcher:
    """
    Sends one payload to the analysis backend under a deadline.

    Failures are normalised to the pipeline's error taxonomy:
    - deadline expired (the in-flight call is cancelled) -> AnalysisTimeoutError
    - SDK, transport or envelope errors -> UpstreamError
    """

    def __init__(self, backend: Optional[AnalysisBackendBase] = None, timeout_seconds: Optional[float] = None):
        self.backend = backend or get_backend()
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.DISPATCH_TIMEOUT_SECONDS

    async def dispatch(self, payload: AnalysisPayload) -> BackendResponse:
        provider = self.backend.provider.value
        start_time = time.time()

        try:
            response = await asyncio.wait_for(self.backend.analyze(payload), timeout=self.timeout_seconds)

        except AnalysisError:
            raise

        except asyncio.TimeoutError:
            logger.warning(
                f"Analysis backend timed out after {self.timeout_seconds}s",
                extra={
                    "event_type": "analysis_backend_timeout",
                    "provider": provider,
                    "timeout_seconds": self.timeout_seconds,
                }
            )
            raise AnalysisTimeoutError(self.timeout_seconds) from None

        except Exception as e:
            # SDK API errors, network errors, unexpected envelope shapes
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.error(
                "Analysis backend call failed",
                extra={
                    "event_type": "analysis_backend_error",
                    "provider": provider,
                    "response_time_ms": elapsed_ms,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
            )
            raise UpstreamError(str(e) or type(e).__name__, provider=provider) from e

        if not response.text or not response.text.strip():
            raise UpstreamError("Analysis backend returned an empty reply", provider=provider)

        return response
