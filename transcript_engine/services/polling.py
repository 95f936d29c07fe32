"""
Polling Job Driver for asynchronous speech-to-text backends (AssemblyAI v2 REST API).

A run moves through UPLOADING -> SUBMITTED -> POLLING -> COMPLETED | FAILED.
Polls are strictly sequential and the wait is bounded by ``job_timeout``.
Cancelling the awaiting task stops the run at its next suspension point and
closes the HTTP client; nothing keeps polling in the background.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from transcript_engine.core.errors import JobFailed, JobTimeout, ProviderError, TranscriptionError
from transcript_engine.core.logging import get_logger, audit_logger
from transcript_engine.models.requests import TranscriptionOptions
from transcript_engine.models.responses import ProviderResult, Utterance
from transcript_engine.services.stt_service import TranscriptionProvider, NO_TRANSCRIPTION_TEXT

logger = get_logger(__name__)

# Network issues are retried per call; HTTP error responses are not
RETRYABLE_EXCEPTIONS = (httpx.TimeoutException, httpx.NetworkError)
# Upload and submit create server-side state; only retry when the request never went out
UNSENT_EXCEPTIONS = (httpx.ConnectError, httpx.ConnectTimeout)


class JobState(str, Enum):
    UPLOADING = "uploading"
    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = {JobState.COMPLETED, JobState.FAILED}


class PollingJob:
    """State of one driver run."""

    def __init__(self):
        self.state: Optional[JobState] = None
        self.transitions: List[JobState] = []
        self.job_id: Optional[str] = None
        self.upload_url: Optional[str] = None
        self.polls = 0
        self.payload: Optional[Dict[str, Any]] = None

    def advance(self, state: JobState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Job already finished in state {self.state.value}")
        logger.info(f"Transcription job {self.job_id or '-'}: {self.state.value if self.state else 'new'} -> {state.value}")
        self.state = state
        self.transitions.append(state)


class PollingJobDriver:
    """Upload, submit and poll a transcription job. Holds configuration only."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        provider: str = "assemblyai",
        speech_model: str = "universal",
        poll_interval: float = 3.0,
        job_timeout: float = 180.0,
        request_timeout: float = 60.0,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("AssemblyAI API key is not configured.")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.provider = provider
        self.speech_model = speech_model
        self.poll_interval = poll_interval
        self.job_timeout = job_timeout
        self.request_timeout = request_timeout
        self.max_retries = max(1, max_retries)
        self._transport = transport

    async def run(self, audio: bytes, options: TranscriptionOptions) -> PollingJob:
        job = PollingJob()
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers={"authorization": self.api_key},
            timeout=self.request_timeout,
            transport=self._transport,
        ) as client:
            try:
                job.advance(JobState.UPLOADING)
                job.upload_url = await self._upload(client, audio)

                job.job_id = await self._submit(client, job.upload_url, options)
                job.advance(JobState.SUBMITTED)

                job.advance(JobState.POLLING)
                job.payload = await self._wait_for_completion(client, job)
                job.advance(JobState.COMPLETED)
                return job
            except asyncio.CancelledError:
                logger.warning(
                    f"Transcription job {job.job_id or '-'} cancelled in state "
                    f"{job.state.value if job.state else 'new'}; stopping without further requests"
                )
                raise
            except TranscriptionError:
                job.advance(JobState.FAILED)
                raise
            except httpx.HTTPError as e:
                job.advance(JobState.FAILED)
                raise ProviderError(f"AssemblyAI request failed: {e}", status_code=502, provider=self.provider) from e

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        retry_on=RETRYABLE_EXCEPTIONS,
        **kwargs
    ) -> httpx.Response:
        """One HTTP call, retried on the given transient network errors."""
        async for attempt in AsyncRetrying(
            wait=wait_exponential(multiplier=1, min=2, max=10),
            stop=stop_after_attempt(self.max_retries),
            retry=retry_if_exception_type(retry_on),
            before_sleep=lambda retry_state: logger.warning(
                f"Retrying {self.provider} {method} {url}, attempt {retry_state.attempt_number}..."
            ),
            reraise=True,
        ):
            with attempt:
                start = time.monotonic()
                response = await client.request(method, url, **kwargs)
                audit_logger.log_external_api_call(
                    service=self.provider,
                    endpoint=url,
                    response_status=response.status_code,
                    response_time_ms=int((time.monotonic() - start) * 1000),
                )
        return response

    async def _upload(self, client: httpx.AsyncClient, audio: bytes) -> str:
        try:
            response = await self._send(client, "POST", "/upload", retry_on=UNSENT_EXCEPTIONS, content=audio)
        except RETRYABLE_EXCEPTIONS as e:
            raise ProviderError(f"Failed to upload audio to AssemblyAI: {e}", status_code=503, provider=self.provider) from e

        if response.is_error:
            raise ProviderError("Failed to upload audio to AssemblyAI", status_code=response.status_code, provider=self.provider)

        upload_url = self._json(response).get("upload_url")
        if not upload_url:
            raise ProviderError("AssemblyAI upload returned no upload_url", status_code=502, provider=self.provider)
        return upload_url

    async def _submit(self, client: httpx.AsyncClient, upload_url: str, options: TranscriptionOptions) -> str:
        body: Dict[str, Any] = {
            "audio_url": upload_url,
            "speech_model": self.speech_model,
            "speaker_labels": options.diarization,
        }
        if options.diarization:
            body["speakers_expected"] = options.speakers_expected
        if options.prompt:
            # Boost medical terminology named in the prompt
            body["boost_param"] = "high"
            body["word_boost"] = _boost_terms(options.prompt)

        try:
            response = await self._send(client, "POST", "/transcript", retry_on=UNSENT_EXCEPTIONS, json=body)
        except RETRYABLE_EXCEPTIONS as e:
            raise ProviderError(f"Failed to create transcription request: {e}", status_code=503, provider=self.provider) from e

        if response.is_error:
            raise ProviderError("Failed to create transcription request", status_code=response.status_code, provider=self.provider)

        job_id = self._json(response).get("id")
        if not job_id:
            raise ProviderError("AssemblyAI returned no transcript id", status_code=502, provider=self.provider)
        logger.info(f"AssemblyAI transcript created with ID: {job_id}")
        return job_id

    async def _wait_for_completion(self, client: httpx.AsyncClient, job: PollingJob) -> Dict[str, Any]:
        """Polls until a terminal status; ``job_timeout`` also bounds a hanging status request."""
        try:
            return await asyncio.wait_for(self._poll(client, job), timeout=self.job_timeout)
        except asyncio.TimeoutError:
            raise self._timeout_error(job) from None

    def _timeout_error(self, job: PollingJob) -> JobTimeout:
        return JobTimeout(
            f"Transcription polling timeout after {job.polls} polls ({self.job_timeout:g}s)",
            provider=self.provider,
        )

    async def _poll(self, client: httpx.AsyncClient, job: PollingJob) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.job_timeout

        while True:
            try:
                response = await self._send(client, "GET", f"/transcript/{job.job_id}")
            except RETRYABLE_EXCEPTIONS as e:
                raise ProviderError(f"Failed to poll transcription status: {e}", status_code=503, provider=self.provider) from e
            job.polls += 1

            if response.is_error:
                raise ProviderError("Failed to poll transcription status", status_code=response.status_code, provider=self.provider)

            payload = self._json(response)
            status = payload.get("status")

            if status == "completed":
                return payload
            if status == "error":
                logger.error(f"AssemblyAI transcription {job.job_id} failed: {payload.get('error')}")
                raise JobFailed(
                    f"AssemblyAI transcription failed: {payload.get('error') or 'unknown error'}",
                    provider=self.provider,
                )

            if loop.time() + self.poll_interval > deadline:
                raise self._timeout_error(job)
            logger.debug(f"Transcript {job.job_id} status '{status}', polling again in {self.poll_interval}s")
            await asyncio.sleep(self.poll_interval)

    def _json(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError("AssemblyAI returned malformed JSON", status_code=502, provider=self.provider) from e
        if not isinstance(data, dict):
            raise ProviderError("AssemblyAI returned an unexpected payload", status_code=502, provider=self.provider)
        return data


def _boost_terms(prompt: str) -> List[str]:
    """Upper-case tokens and capitalised medical terms from the prompt, e.g. 'GCS', 'ICP'."""
    terms = []
    for raw in prompt.replace(",", " ").split():
        word = raw.strip(".;:()")
        if len(word) >= 2 and word.isupper() and word not in terms:
            terms.append(word)
    return terms


class AssemblyAIProvider(TranscriptionProvider):
    """Asynchronous job-based adapter; diarized utterances, confidence and duration."""

    name = "assemblyai"
    display_name = "AssemblyAI"

    def __init__(self, driver: PollingJobDriver):
        self.driver = driver

    async def transcribe(
        self,
        audio: bytes,
        options: TranscriptionOptions,
        content_type: str = "application/octet-stream",
        filename: Optional[str] = None,
    ) -> ProviderResult:
        logger.info(f"Starting transcription with AssemblyAI ({len(audio)} bytes)")
        job = await self.driver.run(audio, options)
        return self.create_provider_result(job.payload, job.job_id)

    def create_provider_result(self, payload: Dict[str, Any], job_id: Optional[str] = None) -> ProviderResult:
        """Converts a completed AssemblyAI transcript payload into a ProviderResult."""
        try:
            utterances = [
                Utterance(
                    speaker=str(utt.get("speaker") or "?"),
                    text=(utt.get("text") or "").strip(),
                    start=int(utt.get("start") or 0),
                    end=int(utt.get("end") or 0),
                    confidence=float(utt.get("confidence") or 0.0),
                )
                for utt in payload.get("utterances") or []
            ]
            duration = payload.get("audio_duration")
            confidence = payload.get("confidence")
            return ProviderResult(
                text=(payload.get("text") or "").strip() or NO_TRANSCRIPTION_TEXT,
                utterances=utterances or None,
                confidence=float(confidence) if confidence is not None else None,
                duration=float(duration) if duration is not None else None,
                provider=self.name,
                model=f"AssemblyAI {self.driver.speech_model}",
                provider_transcript_id=payload.get("id") or job_id,
            )
        except (TypeError, ValueError) as e:
            raise ProviderError(f"AssemblyAI returned an unreadable transcript: {e}", status_code=502, provider=self.name) from e
