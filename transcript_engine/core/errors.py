"""
Error types shared by the transcription pipeline
"""

from typing import Optional, Sequence, Tuple


class TranscriptionError(Exception):
    """Base error for everything that can go wrong while producing a transcript.

    ``message``, ``status_code`` and ``provider`` are fixed at construction.
    """

    default_status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, provider: Optional[str] = None):
        super().__init__(message)
        self._message = message
        self._status_code = status_code if status_code is not None else self.default_status_code
        self._provider = provider

    @property
    def message(self) -> str:
        return self._message

    @property
    def status_code(self) -> int:
        return self._status_code

    @property
    def provider(self) -> Optional[str]:
        return self._provider

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message={self._message!r}, "
            f"status_code={self._status_code}, provider={self._provider!r})"
        )


class ValidationError(TranscriptionError):
    """Missing, empty or oversized input. Raised before any provider is contacted."""

    default_status_code = 400


class ProviderError(TranscriptionError):
    """A single backend failed. Recovered by the orchestrator through fallback."""

    default_status_code = 502


class JobFailed(ProviderError):
    """An asynchronous job reached the backend's ``error`` state."""

    default_status_code = 500


class JobTimeout(ProviderError):
    """An asynchronous job did not complete within the configured wait."""

    default_status_code = 408


class AllProvidersExhausted(TranscriptionError):
    """Every configured provider failed."""

    default_status_code = 503

    def __init__(
        self,
        message: str = "All transcription services failed",
        failures: Sequence[Tuple[str, TranscriptionError]] = (),
    ):
        super().__init__(message, provider="all")
        # (provider, error) pairs for diagnostics only, never sent to callers
        self.failures = tuple(failures)


class InternalTranscriptionError(TranscriptionError):
    """Unclassified failure, surfaced without backend detail."""

    default_status_code = 500
