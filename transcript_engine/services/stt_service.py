"""
Speech-to-Text Provider Adapters
Every backend is wrapped in a TranscriptionProvider so the orchestrator can
treat them uniformly. Backend-specific failures are normalized to ProviderError.
"""

import time
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any

import httpx
import openai
from openai import AsyncOpenAI, DefaultAsyncHttpxClient

from transcript_engine.core.errors import ProviderError, TranscriptionError
from transcript_engine.core.logging import get_logger, audit_logger
from transcript_engine.models.requests import TranscriptionOptions
from transcript_engine.models.responses import ProviderResult

logger = get_logger(__name__)

NO_TRANSCRIPTION_TEXT = "No transcription received"


class TranscriptionProvider(ABC):
    """Capability shared by all speech-to-text backends."""

    name: str = "unknown"
    display_name: str = "Unknown"

    @abstractmethod
    async def transcribe(
        self,
        audio: bytes,
        options: TranscriptionOptions,
        content_type: str = "application/octet-stream",
        filename: Optional[str] = None,
    ) -> ProviderResult:
        """Transcribe the audio or raise ProviderError."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class OpenAICompatibleProvider(TranscriptionProvider):
    """
    Synchronous request/response adapter for OpenAI-compatible
    /audio/transcriptions endpoints (Groq, LiteLLM proxy).
    One round trip, plain text and no utterance-level detail.
    """

    def __init__(
        self,
        name: str,
        display_name: str,
        api_key: str,
        base_url: str,
        default_model: str,
        model_prefix: str = "",
        timeout: float = 60.0,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError(f"{display_name} API key is not configured.")
        if not base_url:
            raise ValueError(f"{display_name} base URL is not configured.")
        self.name = name
        self.display_name = display_name
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self.model_prefix = model_prefix
        self.timeout = timeout
        self.max_retries = max_retries
        self._transport = transport

    def _client(self) -> AsyncOpenAI:
        http_client = DefaultAsyncHttpxClient(transport=self._transport) if self._transport else None
        return AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=self.max_retries,
            http_client=http_client,
        )

    async def transcribe(
        self,
        audio: bytes,
        options: TranscriptionOptions,
        content_type: str = "application/octet-stream",
        filename: Optional[str] = None,
    ) -> ProviderResult:
        model = options.model or self.default_model
        params: Dict[str, Any] = {
            "file": (filename or "audio", audio, content_type),
            "model": model,
            "response_format": options.response_format,
            "temperature": options.temperature,
        }
        if options.prompt:
            params["prompt"] = options.prompt

        logger.info(f"Making {self.display_name} transcription call with model {model}")
        start = time.monotonic()
        try:
            async with self._client() as client:
                transcription = await client.audio.transcriptions.create(**params)
        except openai.APIStatusError as e:
            logger.error(f"{self.display_name} API error: {e.status_code} - {e.message}")
            raise ProviderError(
                f"{self.display_name} API error: {e.status_code} - {e.message}",
                status_code=e.status_code,
                provider=self.name,
            ) from e
        except openai.APITimeoutError as e:
            raise ProviderError(f"{self.display_name} request timed out", status_code=504, provider=self.name) from e
        except openai.APIConnectionError as e:
            raise ProviderError(f"{self.display_name} is unreachable: {e}", status_code=503, provider=self.name) from e
        except TranscriptionError:
            raise
        except Exception as e:
            raise ProviderError(
                f"{self.display_name} transcription failed: {e}", status_code=500, provider=self.name
            ) from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        audit_logger.log_external_api_call(
            service=self.name,
            endpoint=f"{self.base_url}/audio/transcriptions",
            response_status=200,
            response_time_ms=elapsed_ms,
        )

        if isinstance(transcription, str):
            text, duration = transcription, None
        else:
            text, duration = transcription.text, getattr(transcription, "duration", None)

        logger.info(f"{self.display_name} transcription successful: {len(text or '')} characters")
        return ProviderResult(
            text=(text or "").strip() or NO_TRANSCRIPTION_TEXT,
            utterances=None,
            confidence=None,
            duration=float(duration) if duration is not None else None,
            provider=self.name,
            model=f"{self.model_prefix}{model}",
        )
