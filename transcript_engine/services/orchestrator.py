"""
Transcription Orchestrator
Tries an explicit, ordered list of providers one after another and turns the
first successful result into a formatted TranscriptReport.
"""

import time
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from transcript_engine.config import Settings, STTProvider
from transcript_engine.core.errors import (
    AllProvidersExhausted, InternalTranscriptionError, ProviderError, TranscriptionError, ValidationError,
)
from transcript_engine.core.logging import get_logger, audit_logger
from transcript_engine.models.requests import TranscriptionRequest
from transcript_engine.models.responses import ProviderResult, TranscriptReport
from transcript_engine.services.audio_processor import AudioProcessor
from transcript_engine.services.formatter import TranscriptFormatter
from transcript_engine.services.polling import AssemblyAIProvider, PollingJobDriver
from transcript_engine.services.speaker_roles import SpeakerScorer, classify_speakers, keyword_scorer
from transcript_engine.services.stt_service import OpenAICompatibleProvider, TranscriptionProvider

logger = get_logger(__name__)

ProviderName = Union[STTProvider, str]


def build_providers(settings: Settings) -> Dict[str, TranscriptionProvider]:
    """
    Constructs the active provider set from configuration.
    Providers without credentials are left out.
    """
    providers: Dict[str, TranscriptionProvider] = {}

    if settings.groq_api_key:
        providers[STTProvider.GROQ.value] = OpenAICompatibleProvider(
            name=STTProvider.GROQ.value,
            display_name="Groq",
            api_key=settings.groq_api_key,
            base_url=settings.groq_base_url,
            default_model=settings.groq_model,
            model_prefix="groq/",
            timeout=settings.stt_timeout,
            max_retries=settings.max_retries,
        )
    else:
        logger.warning("Groq provider not configured (GROQ_API_KEY missing)")

    if settings.litellm_api_key and settings.litellm_base_url:
        providers[STTProvider.LITELLM.value] = OpenAICompatibleProvider(
            name=STTProvider.LITELLM.value,
            display_name="LiteLLM",
            api_key=settings.litellm_api_key,
            base_url=f"{settings.litellm_base_url.rstrip('/')}/v1",
            default_model=settings.litellm_model,
            timeout=settings.stt_timeout,
            max_retries=settings.max_retries,
        )
    else:
        logger.warning("LiteLLM provider not configured (LITELLM_API_KEY or LITELLM_BASE_URL missing)")

    if settings.assemblyai_api_key:
        providers[STTProvider.ASSEMBLYAI.value] = AssemblyAIProvider(
            PollingJobDriver(
                api_key=settings.assemblyai_api_key,
                base_url=settings.assemblyai_base_url,
                speech_model=settings.assemblyai_speech_model,
                poll_interval=settings.poll_interval,
                job_timeout=settings.job_timeout,
                request_timeout=settings.stt_timeout,
                max_retries=settings.max_retries,
            )
        )
    else:
        logger.warning("AssemblyAI provider not configured (ASSEMBLYAI_API_KEY missing)")

    return providers


def _provider_key(provider: ProviderName) -> str:
    return provider.value if isinstance(provider, STTProvider) else str(provider)


class TranscriptionOrchestrator:
    """Sequential provider fallback plus speaker classification and formatting."""

    def __init__(
        self,
        providers: Dict[str, TranscriptionProvider],
        audio_processor: Optional[AudioProcessor] = None,
        formatter: Optional[TranscriptFormatter] = None,
        scorer: SpeakerScorer = keyword_scorer,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.providers = dict(providers)
        self.audio_processor = audio_processor or AudioProcessor()
        self.formatter = formatter or TranscriptFormatter()
        self.scorer = scorer
        self.clock = clock

    def available_providers(self) -> List[str]:
        return list(self.providers)

    async def transcribe(
        self,
        request: TranscriptionRequest,
        provider_order: Sequence[ProviderName],
        request_id: str = "-",
    ) -> TranscriptReport:
        """
        Validates the request, then tries each provider in order until one succeeds.

        Raises ValidationError before any provider call, or AllProvidersExhausted
        when every provider in the order failed.
        """
        order = [_provider_key(p) for p in provider_order]
        if not order:
            raise ValidationError("No transcription provider requested", status_code=400)
        self.audio_processor.validate(request)

        start = time.monotonic()
        primary = order[0]
        provider, result = await self._first_success(request, order, request_id)
        fallback = provider != primary

        try:
            report = self._build_report(request, result, fallback)
        except TranscriptionError:
            raise
        except Exception as e:
            logger.error(f"[{request_id}] Failed to build transcript report: {e}", exc_info=True)
            raise InternalTranscriptionError("Internal error while formatting the transcript") from e

        audit_logger.log_transcription_complete(
            request_id=request_id,
            provider=provider,
            fallback=fallback,
            audio_duration=report.metadata.duration_seconds,
            word_count=report.metadata.word_count,
            speaker_count=report.metadata.speaker_count,
            processing_time_ms=int((time.monotonic() - start) * 1000),
        )
        return report

    async def _first_success(
        self,
        request: TranscriptionRequest,
        order: List[str],
        request_id: str,
    ) -> Tuple[str, ProviderResult]:
        failures: List[Tuple[str, TranscriptionError]] = []

        for attempt, name in enumerate(order, start=1):
            service = self.providers.get(name)
            if service is None:
                logger.warning(f"[{request_id}] Service for provider {name} not available")
                failures.append((name, ProviderError(f"Provider {name} is not configured", status_code=503, provider=name)))
                continue

            audit_logger.log_transcription_attempt(
                request_id=request_id,
                provider=name,
                attempt=attempt,
                audio_size_bytes=request.size,
            )
            try:
                logger.info(f"[{request_id}] Attempting transcription with {name}...")
                result = await service.transcribe(
                    request.audio,
                    request.options,
                    content_type=request.content_type,
                    filename=request.filename,
                )
            except TranscriptionError as e:
                error = e
            except Exception as e:
                error = ProviderError(f"{name} transcription failed: {e}", status_code=500, provider=name)
                logger.error(f"[{request_id}] Unexpected error from {name}", exc_info=True)
            else:
                logger.info(f"[{request_id}] Transcription successful with {name}")
                return name, result

            logger.error(f"[{request_id}] Transcription failed with {name}: {error.message}")
            audit_logger.log_provider_failure(
                request_id=request_id,
                provider=name,
                error_type=type(error).__name__,
                error_message=error.message,
                status_code=error.status_code,
            )
            failures.append((name, error))

        raise AllProvidersExhausted(failures=failures)

    def _build_report(self, request: TranscriptionRequest, result: ProviderResult, fallback: bool) -> TranscriptReport:
        if not result.duration:
            probed = self.audio_processor.probe_duration(request.audio)
            if probed > 0:
                result = result.model_copy(update={"duration": probed})

        profiles = []
        if len(result.speaker_tags) > 1:
            profiles = classify_speakers(result.utterances, scorer=self.scorer)

        return self.formatter.format(result, profiles, generated_at=self.clock(), fallback=fallback)
