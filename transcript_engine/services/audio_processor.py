"""
Audio Intake und Validierung
"""

import io
import os
from typing import Optional
from mutagen import File as MutagenFile, MutagenError
from transcript_engine.config import settings
from transcript_engine.core.errors import ValidationError
from transcript_engine.core.logging import get_logger
from transcript_engine.models.requests import TranscriptionRequest

logger = get_logger(__name__)


class AudioProcessor:
    """Audio-Validierung und Metadaten"""

    def __init__(self, max_file_size_bytes: Optional[int] = None):
        self.max_file_size_bytes = max_file_size_bytes or settings.max_file_size_bytes

    def validate(self, request: TranscriptionRequest) -> None:
        """
        Checks the payload invariants before any provider is contacted.
        Raises ValidationError for an empty or oversized payload.
        """
        if not request.audio:
            logger.warning("Rejected transcription request: empty audio payload")
            raise ValidationError("No audio file provided", status_code=400)

        if request.size > self.max_file_size_bytes:
            limit_mb = self.max_file_size_bytes // (1024 * 1024)
            logger.warning(f"Rejected transcription request: {request.size} bytes exceeds {limit_mb}MB")
            raise ValidationError(
                f"Audio file too large. Maximum size is {limit_mb}MB.",
                status_code=413,
            )

    def is_supported(self, content_type: Optional[str]) -> bool:
        return bool(content_type) and content_type in settings.supported_audio_formats

    def probe_duration(self, audio_data: bytes) -> float:
        """Reads the container duration in seconds with mutagen; 0.0 when unreadable."""
        try:
            audio = MutagenFile(io.BytesIO(audio_data))
        except (MutagenError, ValueError, OSError) as e:
            logger.warning(f"Could not extract duration using mutagen: {e}")
            return 0.0
        if audio is None or not hasattr(audio.info, "length"):
            logger.info("Audio container not recognised by mutagen, duration unknown")
            return 0.0
        return float(audio.info.length)

    @staticmethod
    def detect_content_type(audio_data: bytes, filename: Optional[str] = None) -> str:
        """Detects Content-Type based on file signature or filename."""
        # MP4/M4A carries 'ftyp' a few bytes in
        if b'ftyp' in audio_data[4:12]:
            return "audio/mp4"

        signatures = {
            b'ID3': "audio/mpeg",       # MP3 with ID3 Tag
            b'\xff\xfb': "audio/mpeg",  # MP3 frame
            b'\xff\xf3': "audio/mpeg",  # MP3 frame
            b'\xff\xf2': "audio/mpeg",  # MP3 frame
            b'RIFF': "audio/wav",       # WAV
            b'OggS': "audio/ogg",       # OGG
            b'fLaC': "audio/flac",      # FLAC
            b'\x1a\x45\xdf\xa3': "audio/webm",  # Matroska/WebM
        }

        for signature, detected_type in signatures.items():
            if audio_data.startswith(signature):
                return detected_type

        if filename:
            ext_map = {
                '.mp3': 'audio/mpeg',
                '.wav': 'audio/wav',
                '.m4a': 'audio/mp4',
                '.mp4': 'audio/mp4',
                '.ogg': 'audio/ogg',
                '.webm': 'audio/webm',
                '.flac': 'audio/flac',
            }
            _, ext = os.path.splitext(filename)
            if ext.lower() in ext_map:
                return ext_map[ext.lower()]

        logger.warning("Could not detect specific audio type. Falling back to 'application/octet-stream'.")
        return "application/octet-stream"
