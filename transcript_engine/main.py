"""
Clinical Transcript Engine - FastAPI Main Application
"""

import asyncio
import secrets
import time
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, Depends, Query, status, UploadFile, File
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from transcript_engine.config import settings, STTProvider
from transcript_engine.core.errors import AllProvidersExhausted, TranscriptionError
from transcript_engine.core.logging import setup_logging, get_logger, audit_logger, bind_request_context
from transcript_engine.models.requests import TranscriptionOptions, TranscriptionRequest
from transcript_engine.models.responses import (
    TranscriptionResponse, HealthCheckResponse, ErrorResponse, RateLimitResponse, ProvidersResponse,
)
from transcript_engine.services.audio_processor import AudioProcessor
from transcript_engine.services.orchestrator import TranscriptionOrchestrator, build_providers

# Initialize logging
setup_logging()
logger = get_logger(__name__)

# Prometheus metrics
request_count = Counter('http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
request_duration = Histogram('http_request_duration_seconds', 'HTTP request duration')
transcription_count = Counter('transcriptions_total', 'Transcription outcomes', ['provider', 'outcome', 'fallback'])
transcription_duration = Histogram('transcription_duration_seconds', 'End-to-end transcription duration')

# Rate limiter
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)

audio_processor = AudioProcessor()
started_at = time.time()

RETRY_LATER_MESSAGE = "Transcription service temporarily unavailable. Please try again later."


@lru_cache()
def get_orchestrator() -> TranscriptionOrchestrator:
    """Provider set is built once from settings and shared; it holds no request state."""
    return TranscriptionOrchestrator(build_providers(settings), audio_processor=audio_processor)


def generate_request_id() -> str:
    return secrets.token_urlsafe(16)


def _error_response(
    status_code: int,
    error: str,
    message: str,
    request_id: Optional[str],
    provider: Optional[str] = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        message=message,
        provider=provider,
        request_id=request_id,
        timestamp=datetime.now(timezone.utc),
    )
    headers = {"X-Request-ID": request_id} if request_id else None
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("🚀 Clinical Transcript Engine starting...")
    logger.info(f"Environment: {settings.environment.value}")
    logger.info(f"Configured providers: {', '.join(get_orchestrator().available_providers()) or 'none'}")

    yield

    logger.info("🛑 Clinical Transcript Engine shutting down...")


# Create FastAPI app
app = FastAPI(
    title=settings.api_title,
    description=settings.api_description,
    version=settings.api_version,
    lifespan=lifespan,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url="/redoc" if settings.environment == "development" else None,
    debug=settings.debug,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Rate limiting
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


# Middleware for security headers
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Add security headers to all responses."""
    response = await call_next(request)
    if "X-Content-Type-Options" not in response.headers:
        response.headers["X-Content-Type-Options"] = "nosniff"
    if "X-Frame-Options" not in response.headers:
        response.headers["X-Frame-Options"] = "DENY"
    return response


# Middleware for request tracking and metrics
@app.middleware("http")
async def track_requests(request: Request, call_next):
    """Request tracking and Prometheus metrics"""

    start_time = time.time()
    request_id = generate_request_id()

    request.state.request_id = request_id
    bind_request_context(request_id)
    request.state.start_time = start_time

    audit_logger.log_api_request(
        request_id=request_id,
        endpoint=request.url.path,
        method=request.method,
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )

    try:
        response = await call_next(request)

        duration = time.time() - start_time
        request_count.labels(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code
        ).inc()
        request_duration.observe(duration)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Processing-Time"] = f"{duration:.3f}s"

        return response

    except Exception as e:
        request_count.labels(
            method=request.method,
            endpoint=request.url.path,
            status=500
        ).inc()

        logger.error(f"Request {request_id} failed: {e}")
        return _error_response(500, "internal_server_error", "An internal error occurred", request_id)


# Health check endpoint
@app.get("/health", response_model=HealthCheckResponse)
async def health_check():
    """Service health check"""

    return HealthCheckResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=settings.api_version,
        uptime_seconds=int(time.time() - started_at)
    )


@app.get("/ready")
async def readiness_check(orchestrator: TranscriptionOrchestrator = Depends(get_orchestrator)):
    """
    Ready when at least one speech-to-text provider is configured.
    Returns 200 OK, otherwise 503 Service Unavailable.
    """
    available = orchestrator.available_providers()
    response_data = {
        "status": "ready" if available else "unavailable",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.api_version,
        "details": {
            provider.value: {"status": "ok" if provider.value in available else "not_configured"}
            for provider in STTProvider
        },
    }

    if available:
        return JSONResponse(status_code=status.HTTP_200_OK, content=response_data)
    logger.warning("Readiness check failed: no transcription provider configured")
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=response_data)


# Prometheus metrics endpoint
@app.get(settings.metrics_path)
async def metrics():
    """Prometheus metrics"""
    if not settings.enable_metrics:
        raise HTTPException(status_code=404, detail="Metrics disabled")

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/v1/providers", response_model=ProvidersResponse)
async def list_providers(orchestrator: TranscriptionOrchestrator = Depends(get_orchestrator)):
    """Configured providers and the default attempt order."""
    return ProvidersResponse(
        available=orchestrator.available_providers(),
        default_order=[p.value for p in settings.provider_order()],
    )


async def _run_until_disconnected(request: Request, coro):
    """
    Runs the transcription as its own task and cancels it when the client goes
    away, so no provider call or poll continues for an abandoned request.
    """
    task = asyncio.create_task(coro)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=settings.disconnect_poll_interval)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info(f"Client disconnected, cancelling transcription {request.state.request_id}")
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
                return None
    finally:
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)


# Main endpoint for audio transcription
@app.post(
    "/v1/transcribe",
    response_model=TranscriptionResponse,
    responses={
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        415: {"model": ErrorResponse},
        429: {"model": RateLimitResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    }
)
@limiter.limit(f"{settings.rate_limit_requests}/{settings.rate_limit_window} seconds")
async def transcribe_audio(
    request: Request,
    audio_file: Optional[UploadFile] = File(None, alias="audio"),
    provider: Optional[STTProvider] = Query(None, description="Primary provider; fallbacks follow the configured chain"),
    orchestrator: TranscriptionOrchestrator = Depends(get_orchestrator),
):
    """
    Transcribes an uploaded clinical recording with the primary provider and
    falls back along the configured chain. Returns the formatted transcript.
    """
    request_id = request.state.request_id

    if audio_file is None:
        return _error_response(status.HTTP_400_BAD_REQUEST, "validation_error", "No audio file provided", request_id)

    audio_data = await audio_file.read()
    content_type = audio_file.content_type
    if not audio_processor.is_supported(content_type):
        content_type = audio_processor.detect_content_type(audio_data, audio_file.filename)

    transcription_request = TranscriptionRequest(
        audio=audio_data,
        content_type=content_type,
        filename=audio_file.filename,
        options=TranscriptionOptions(
            temperature=settings.transcription_temperature,
            prompt=settings.medical_prompt,
            speakers_expected=settings.speakers_expected,
        ),
    )
    provider_order = settings.provider_order(provider)

    start = time.monotonic()
    try:
        report = await _run_until_disconnected(
            request,
            orchestrator.transcribe(transcription_request, provider_order, request_id=request_id),
        )
    except AllProvidersExhausted as e:
        transcription_count.labels(provider="all", outcome="exhausted", fallback="false").inc()
        logger.error(f"[{request_id}] All providers failed: {[name for name, _ in e.failures]}")
        return _error_response(e.status_code, "service_unavailable", RETRY_LATER_MESSAGE, request_id, provider=e.provider)
    except TranscriptionError as e:
        transcription_count.labels(provider=e.provider or "none", outcome="rejected", fallback="false").inc()
        return _error_response(e.status_code, type(e).__name__, e.message, request_id, provider=e.provider)

    if report is None:
        # Client is gone; nobody reads this response
        return Response(status_code=499)

    transcription_duration.observe(time.monotonic() - start)
    transcription_count.labels(provider=report.provider, outcome="success", fallback=str(report.fallback).lower()).inc()

    return TranscriptionResponse(
        request_id=request_id,
        text=report.text,
        model=report.model,
        provider=report.provider,
        fallback=report.fallback,
        speakers=[u.speaker for u in report.utterances],
        roles=report.roles,
        raw_utterances=report.utterances,
        metadata=report.metadata,
        processing_time_ms=int((time.time() - request.state.start_time) * 1000),
    )


# Override rate limit handler
@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Custom rate limit error handler"""

    retry_after = settings.rate_limit_window
    response = RateLimitResponse(
        message="Too many requests. Please try again later.",
        retry_after=retry_after,
        limit=settings.rate_limit_requests,
        window=settings.rate_limit_window,
        timestamp=datetime.now(timezone.utc)
    )

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=response.model_dump(mode="json"),
        headers={"Retry-After": str(retry_after)}
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors"""

    request_id = getattr(request.state, 'request_id', 'unknown')

    logger.error(f"Unhandled error in request {request_id}: {exc}")
    audit_logger.log_error(
        request_id=request_id,
        error_type=type(exc).__name__,
        error_message=str(exc),
        stack_trace=traceback.format_exc(),
    )

    return _error_response(500, "internal_server_error", "An unexpected error occurred", request_id)


def run():
    import uvicorn
    uvicorn.run(
        "transcript_engine.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == "development"
    )


if __name__ == "__main__":
    run()
