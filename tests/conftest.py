"""
Pytest configuration and shared fixtures
"""

import os

# Settings are read at import time; keep tests independent of the host environment
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "development"
os.environ["AUDIT_LOG_ENABLED"] = "false"
for key in ("GROQ_API_KEY", "LITELLM_API_KEY", "LITELLM_BASE_URL", "ASSEMBLYAI_API_KEY"):
    os.environ.pop(key, None)

from datetime import datetime
from typing import List, Optional

import pytest

from transcript_engine.core.errors import ProviderError
from transcript_engine.models.requests import TranscriptionOptions, TranscriptionRequest
from transcript_engine.models.responses import ProviderResult, Utterance
from transcript_engine.services.stt_service import TranscriptionProvider


class FakeProvider(TranscriptionProvider):
    """Provider double that returns a canned result or raises a canned error."""

    def __init__(self, name: str, result: Optional[ProviderResult] = None, error: Optional[Exception] = None):
        self.name = name
        self.display_name = name.title()
        self.result = result
        self.error = error
        self.calls = 0

    async def transcribe(self, audio, options, content_type="application/octet-stream", filename=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def session_time() -> datetime:
    return datetime(2026, 3, 14, 9, 30, 0)


@pytest.fixture
def consultation_utterances() -> List[Utterance]:
    """Two-speaker consultation: clinician asks, patient answers."""
    return [
        Utterance(speaker="A", text="Good morning. How are you feeling today?", start=0, end=4000, confidence=0.95),
        Utterance(speaker="B", text="I feel dizzy and my pain is worse at night.", start=5000, end=9000, confidence=0.82),
        Utterance(speaker="A", text="Have you taken your medication? We will repeat the MRI.", start=10000, end=15000, confidence=0.91),
    ]


@pytest.fixture
def diarized_result(consultation_utterances) -> ProviderResult:
    return ProviderResult(
        text=" ".join(u.text for u in consultation_utterances),
        utterances=consultation_utterances,
        confidence=0.9,
        duration=20.0,
        provider="assemblyai",
        model="AssemblyAI universal",
        provider_transcript_id="tx_123",
    )


@pytest.fixture
def plain_result() -> ProviderResult:
    return ProviderResult(
        text="Patient alert, g c s 15, b p stable.",
        provider="groq",
        model="groq/whisper-large-v3",
    )


@pytest.fixture
def transcription_request() -> TranscriptionRequest:
    return TranscriptionRequest(
        audio=b"fake consultation audio " * 64,
        content_type="audio/wav",
        filename="consult.wav",
        options=TranscriptionOptions(prompt="Neurosurgical consult with GCS and ICP"),
    )


@pytest.fixture
def failing_provider_factory():
    def make(name: str, status_code: int = 500) -> FakeProvider:
        return FakeProvider(name, error=ProviderError(f"{name} is down", status_code=status_code, provider=name))
    return make


@pytest.fixture
def fake_provider():
    def make(name: str, result: Optional[ProviderResult] = None, error: Optional[Exception] = None) -> FakeProvider:
        return FakeProvider(name, result=result, error=error)
    return make
