"""
Pydantic Models for Transcription Requests
"""

from typing import Optional
from pydantic import BaseModel, Field


class TranscriptionOptions(BaseModel):
    """Provider-selection options passed through to every adapter."""
    model: Optional[str] = Field(default=None, description="Backend model override; adapters fall back to their configured model")
    temperature: float = Field(default=0.0, ge=0.0, le=1.0)
    response_format: str = Field(default="json", description="Response format for OpenAI-compatible backends")
    prompt: Optional[str] = Field(default=None, description="Domain context prompt (e.g. medical terminology)")
    speakers_expected: int = Field(default=2, ge=1, description="Expected number of speakers for diarization")
    diarization: bool = Field(default=True, description="Request speaker labels from backends that support them")


class TranscriptionRequest(BaseModel):
    """Audio payload plus options for one transcription."""
    audio: bytes = Field(description="Raw audio bytes")
    content_type: str = Field(default="application/octet-stream", description="Declared MIME type")
    filename: Optional[str] = Field(default=None)
    options: TranscriptionOptions = Field(default_factory=TranscriptionOptions)

    @property
    def size(self) -> int:
        return len(self.audio)
