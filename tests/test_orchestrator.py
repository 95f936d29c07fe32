"""
Tests for the provider fallback orchestrator.
"""

import asyncio

import httpx
import pytest

from transcript_engine.config import STTProvider
from transcript_engine.core.errors import (
    AllProvidersExhausted, JobTimeout, ProviderError, ValidationError,
)
from transcript_engine.models.requests import TranscriptionRequest
from transcript_engine.services.orchestrator import TranscriptionOrchestrator
from transcript_engine.services.polling import AssemblyAIProvider, PollingJobDriver


MAX_BYTES = 25 * 1024 * 1024


@pytest.fixture
def make_orchestrator(session_time):
    def make(*providers):
        return TranscriptionOrchestrator(
            {p.name: p for p in providers},
            clock=lambda: session_time,
        )
    return make


class TestValidation:

    @pytest.mark.asyncio
    async def test_oversized_audio_never_reaches_a_provider(self, make_orchestrator, fake_provider, plain_result):
        groq = fake_provider("groq", result=plain_result)
        orchestrator = make_orchestrator(groq)
        request = TranscriptionRequest(audio=b"\x00" * (MAX_BYTES + 1), content_type="audio/wav")

        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.transcribe(request, ["groq"])

        assert exc_info.value.status_code == 413
        assert "25MB" in exc_info.value.message
        assert groq.calls == 0

    @pytest.mark.asyncio
    async def test_audio_at_limit_is_accepted(self, make_orchestrator, fake_provider, plain_result):
        groq = fake_provider("groq", result=plain_result)
        orchestrator = make_orchestrator(groq)
        request = TranscriptionRequest(audio=b"\x00" * MAX_BYTES, content_type="audio/wav")

        report = await orchestrator.transcribe(request, ["groq"])

        assert report.provider == "groq"
        assert groq.calls == 1

    @pytest.mark.asyncio
    async def test_empty_audio_rejected(self, make_orchestrator, fake_provider, plain_result):
        groq = fake_provider("groq", result=plain_result)
        orchestrator = make_orchestrator(groq)

        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.transcribe(TranscriptionRequest(audio=b""), ["groq"])

        assert exc_info.value.status_code == 400
        assert groq.calls == 0

    @pytest.mark.asyncio
    async def test_empty_provider_order_rejected(self, make_orchestrator, fake_provider, plain_result, transcription_request):
        orchestrator = make_orchestrator(fake_provider("groq", result=plain_result))

        with pytest.raises(ValidationError):
            await orchestrator.transcribe(transcription_request, [])


class TestFallback:

    @pytest.mark.asyncio
    async def test_primary_success_skips_fallbacks(self, make_orchestrator, fake_provider, plain_result, diarized_result, transcription_request):
        groq = fake_provider("groq", result=plain_result)
        assemblyai = fake_provider("assemblyai", result=diarized_result)
        orchestrator = make_orchestrator(groq, assemblyai)

        report = await orchestrator.transcribe(transcription_request, [STTProvider.GROQ, STTProvider.ASSEMBLYAI])

        assert report.provider == "groq"
        assert report.fallback is False
        assert groq.calls == 1
        assert assemblyai.calls == 0

    @pytest.mark.asyncio
    async def test_falls_back_to_next_provider(
        self, make_orchestrator, failing_provider_factory, fake_provider, diarized_result, transcription_request
    ):
        groq = failing_provider_factory("groq")
        assemblyai = fake_provider("assemblyai", result=diarized_result)
        orchestrator = make_orchestrator(groq, assemblyai)

        report = await orchestrator.transcribe(transcription_request, ["groq", "assemblyai"])

        assert groq.calls == 1
        assert assemblyai.calls == 1
        assert report.fallback is True
        assert report.provider == "assemblyai"
        assert report.roles == {"A": "HEALTHCARE PROVIDER", "B": "PATIENT"}
        assert "[00:05] PATIENT (MED):" in report.text

    @pytest.mark.asyncio
    async def test_all_providers_fail(self, make_orchestrator, failing_provider_factory, transcription_request):
        litellm = failing_provider_factory("litellm", status_code=401)
        groq = failing_provider_factory("groq")
        assemblyai = failing_provider_factory("assemblyai", status_code=408)
        orchestrator = make_orchestrator(litellm, groq, assemblyai)

        with pytest.raises(AllProvidersExhausted) as exc_info:
            await orchestrator.transcribe(transcription_request, ["litellm", "groq", "assemblyai"])

        error = exc_info.value
        assert error.status_code == 503
        assert error.provider == "all"
        assert error.message == "All transcription services failed"
        assert [name for name, _ in error.failures] == ["litellm", "groq", "assemblyai"]
        assert [e.status_code for _, e in error.failures] == [401, 500, 408]
        assert (litellm.calls, groq.calls, assemblyai.calls) == (1, 1, 1)

    @pytest.mark.asyncio
    async def test_unconfigured_provider_counts_as_failure(
        self, make_orchestrator, fake_provider, diarized_result, transcription_request
    ):
        assemblyai = fake_provider("assemblyai", result=diarized_result)
        orchestrator = make_orchestrator(assemblyai)

        report = await orchestrator.transcribe(transcription_request, ["groq", "assemblyai"])

        assert report.provider == "assemblyai"
        assert report.fallback is True

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_wrapped(self, make_orchestrator, fake_provider, transcription_request):
        broken = fake_provider("groq", error=RuntimeError("socket exploded"))
        orchestrator = make_orchestrator(broken)

        with pytest.raises(AllProvidersExhausted) as exc_info:
            await orchestrator.transcribe(transcription_request, ["groq"])

        name, error = exc_info.value.failures[0]
        assert name == "groq"
        assert isinstance(error, ProviderError)
        assert error.status_code == 500
        assert "socket exploded" in error.message

    @pytest.mark.asyncio
    async def test_job_timeout_falls_back(self, make_orchestrator, fake_provider, plain_result, transcription_request):
        assemblyai = fake_provider("assemblyai", error=JobTimeout("job did not finish", provider="assemblyai"))
        groq = fake_provider("groq", result=plain_result)
        orchestrator = make_orchestrator(assemblyai, groq)

        report = await orchestrator.transcribe(transcription_request, ["assemblyai", "groq"])

        assert report.provider == "groq"
        assert report.fallback is True


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancel_mid_poll_stops_the_job(self, make_orchestrator, fake_provider, plain_result, transcription_request):
        polls = []

        def api(request):
            if request.url.path.endswith("/upload"):
                return httpx.Response(200, json={"upload_url": "https://cdn.assemblyai.test/upload/abc"})
            if request.method == "POST":
                return httpx.Response(200, json={"id": "tx_1", "status": "queued"})
            polls.append(request)
            return httpx.Response(200, json={"id": "tx_1", "status": "processing"})

        driver = PollingJobDriver(
            api_key="test-key",
            base_url="https://api.assemblyai.test/v2",
            poll_interval=0.01,
            job_timeout=60,
            max_retries=1,
            transport=httpx.MockTransport(api),
        )
        groq = fake_provider("groq", result=plain_result)
        orchestrator = make_orchestrator(AssemblyAIProvider(driver), groq)

        task = asyncio.create_task(orchestrator.transcribe(transcription_request, ["assemblyai", "groq"]))
        while len(polls) < 2:
            await asyncio.sleep(0.005)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        polls_at_cancel = len(polls)
        await asyncio.sleep(0.05)
        assert len(polls) == polls_at_cancel
        # cancellation is not a provider failure, so no fallback runs
        assert groq.calls == 0


class TestReport:

    @pytest.mark.asyncio
    async def test_single_speaker_is_not_classified(self, make_orchestrator, fake_provider, diarized_result, transcription_request):
        solo = diarized_result.model_copy(
            update={"utterances": [u.model_copy(update={"speaker": "A"}) for u in diarized_result.utterances]}
        )
        orchestrator = make_orchestrator(fake_provider("assemblyai", result=solo))

        report = await orchestrator.transcribe(transcription_request, ["assemblyai"])

        assert report.roles == {"A": "SPEAKER A"}
        assert "HEALTHCARE PROVIDER" not in report.text

    @pytest.mark.asyncio
    async def test_custom_scorer_is_used(self, fake_provider, diarized_result, transcription_request, session_time):
        orchestrator = TranscriptionOrchestrator(
            {"assemblyai": fake_provider("assemblyai", result=diarized_result)},
            scorer=lambda text: (1, 0) if "dizzy" in text else (0, 0),
            clock=lambda: session_time,
        )

        report = await orchestrator.transcribe(transcription_request, ["assemblyai"])

        assert report.roles["B"] == "HEALTHCARE PROVIDER"
        assert report.roles["A"] == "PARTICIPANT 1"

    @pytest.mark.asyncio
    async def test_generated_at_comes_from_clock(self, make_orchestrator, fake_provider, plain_result, transcription_request, session_time):
        orchestrator = make_orchestrator(fake_provider("groq", result=plain_result))

        report = await orchestrator.transcribe(transcription_request, ["groq"])

        assert report.generated_at == session_time
        assert "Generated: 03/14/2026, 09:30:00 AM | groq/whisper-large-v3" in report.text

    def test_available_providers(self, make_orchestrator, fake_provider):
        orchestrator = make_orchestrator(fake_provider("groq"), fake_provider("assemblyai"))

        assert orchestrator.available_providers() == ["groq", "assemblyai"]
