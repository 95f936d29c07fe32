"""
Strukturiertes Logging Setup für die Clinical Transcript Engine
"""

import logging
import structlog
from datetime import datetime, timezone
from typing import Optional
from transcript_engine.config import settings, Environment


def setup_logging():
    """Konfiguriert strukturiertes Logging.

    Request-gebundene Felder (z.B. ``request_id``) kommen über structlog
    contextvars in jede Zeile, siehe ``bind_request_context``.
    """
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="ISO", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.environment == Environment.DEVELOPMENT:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.extend([
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ])

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None):
    """Erstellt einen konfigurierten Logger"""
    return structlog.get_logger(name or __name__)


def bind_request_context(request_id: str) -> None:
    """Bindet die Request-ID an alle Log-Zeilen des aktuellen Tasks"""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)


class AuditLogger:
    """Spezieller Logger für Audit-Events.

    Audio-Inhalte und Transkripttexte werden hier nie geloggt, nur Metadaten.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.logger = get_logger("audit")

    def _emit(self, level: str, event: str, **fields):
        if not self.enabled:
            return
        getattr(self.logger, level)(event, timestamp=datetime.now(timezone.utc).isoformat(), **fields)

    def log_api_request(
        self,
        request_id: str,
        endpoint: str,
        method: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        **kwargs
    ):
        """Loggt API-Anfragen für Audit-Zwecke"""
        self._emit(
            "info", "api_request",
            request_id=request_id, endpoint=endpoint, method=method,
            user_agent=user_agent, ip_address=ip_address, **kwargs
        )

    def log_transcription_attempt(self, request_id: str, provider: str, attempt: int, audio_size_bytes: int, **kwargs):
        """Loggt einen Transkriptionsversuch bei einem Provider"""
        self._emit(
            "info", "transcription_attempt",
            request_id=request_id, provider=provider, attempt=attempt,
            audio_size_bytes=audio_size_bytes, **kwargs
        )

    def log_provider_failure(
        self,
        request_id: str,
        provider: str,
        error_type: str,
        error_message: str,
        status_code: int,
        **kwargs
    ):
        """Loggt das Scheitern eines einzelnen Providers (Fallback folgt ggf.)"""
        self._emit(
            "warning", "provider_failure",
            request_id=request_id, provider=provider, error_type=error_type,
            error_message=error_message, status_code=status_code, **kwargs
        )

    def log_transcription_complete(
        self,
        request_id: str,
        provider: str,
        fallback: bool,
        audio_duration: float,
        word_count: int,
        speaker_count: int,
        processing_time_ms: int,
        **kwargs
    ):
        """Loggt eine erfolgreich abgeschlossene Transkription"""
        self._emit(
            "info", "transcription_complete",
            request_id=request_id, provider=provider, fallback=fallback,
            audio_duration=audio_duration, word_count=word_count,
            speaker_count=speaker_count, processing_time_ms=processing_time_ms, **kwargs
        )

    def log_external_api_call(self, service: str, endpoint: str, response_status: int, response_time_ms: int, **kwargs):
        """Loggt Calls zu externen APIs (ohne Payload)"""
        self._emit(
            "info", "external_api_call",
            service=service, endpoint=endpoint, response_status=response_status,
            response_time_ms=response_time_ms, **kwargs
        )

    def log_error(
        self,
        request_id: str,
        error_type: str,
        error_message: str,
        stack_trace: Optional[str] = None,
        **kwargs
    ):
        """Loggt Fehler-Events"""
        self._emit(
            "error", "error_event",
            request_id=request_id, error_type=error_type,
            error_message=error_message, stack_trace=stack_trace, **kwargs
        )


# Global audit logger instance
audit_logger = AuditLogger(enabled=settings.audit_log_enabled)
