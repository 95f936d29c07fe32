"""
Tests for audit logging.
"""

from structlog.testing import capture_logs

from transcript_engine.core.logging import AuditLogger


def test_audit_event_carries_metadata_only():
    with capture_logs() as logs:
        AuditLogger(enabled=True).log_provider_failure(
            request_id="req-1",
            provider="groq",
            error_type="ProviderError",
            error_message="Groq API error: 500",
            status_code=500,
        )

    assert len(logs) == 1
    event = logs[0]
    assert event["event"] == "provider_failure"
    assert event["log_level"] == "warning"
    assert event["provider"] == "groq"
    assert event["status_code"] == 500
    assert "timestamp" in event


def test_disabled_audit_logger_is_silent():
    with capture_logs() as logs:
        AuditLogger(enabled=False).log_transcription_attempt(
            request_id="req-1", provider="groq", attempt=1, audio_size_bytes=1024
        )

    assert logs == []
