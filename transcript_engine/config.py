"""
Central configuration for the Clinical Transcript Engine
"""

from typing import Dict, List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from enum import Enum


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class STTProvider(str, Enum):
    GROQ = "groq"
    LITELLM = "litellm"
    ASSEMBLYAI = "assemblyai"


DEFAULT_MEDICAL_PROMPT = (
    "Medical consultation with neurosurgical terminology including GCS, ICP, "
    "craniotomy, hydrocephalus, patient assessment, and clinical observations."
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Environment
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # API Configuration
    api_title: str = Field(default="Clinical Transcript Engine")
    api_description: str = Field(default="Clinical audio transcription with provider fallback and speaker roles")
    api_version: str = Field(default="1.0.0")
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=3001)

    # Speech-to-Text Providers
    groq_api_key: Optional[str] = Field(default=None)
    groq_base_url: str = Field(default="https://api.groq.com/openai/v1")
    groq_model: str = Field(default="whisper-large-v3")

    litellm_api_key: Optional[str] = Field(default=None)
    litellm_base_url: Optional[str] = Field(default=None)
    litellm_model: str = Field(default="groq/whisper-large-v3")

    assemblyai_api_key: Optional[str] = Field(default=None)
    assemblyai_base_url: str = Field(default="https://api.assemblyai.com/v2")
    assemblyai_speech_model: str = Field(default="universal")

    # Provider Order
    primary_provider: STTProvider = Field(default=STTProvider.GROQ)
    fallback_providers: Dict[STTProvider, List[STTProvider]] = Field(
        default={
            STTProvider.GROQ: [STTProvider.ASSEMBLYAI],
            STTProvider.LITELLM: [STTProvider.GROQ, STTProvider.ASSEMBLYAI],
            STTProvider.ASSEMBLYAI: [STTProvider.GROQ],
        }
    )

    # Audio Limits
    max_file_size_mb: int = Field(default=25)
    supported_audio_formats: List[str] = Field(
        default=[
            "audio/mpeg", "audio/mp3", "audio/wav", "audio/x-wav", "audio/mp4",
            "audio/m4a", "audio/x-m4a", "audio/ogg", "audio/webm", "audio/flac",
        ]
    )

    # Timeouts, Retries and Polling
    stt_timeout: int = Field(default=60)
    max_retries: int = Field(default=3)
    poll_interval: float = Field(default=3.0)  # seconds between job status polls
    job_timeout: float = Field(default=180.0)  # seconds before a queued job is abandoned
    disconnect_poll_interval: float = Field(default=1.0)

    # Transcription Defaults
    speakers_expected: int = Field(default=2)
    transcription_temperature: float = Field(default=0.0)
    medical_prompt: str = Field(default=DEFAULT_MEDICAL_PROMPT)

    # Rate Limiting
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_requests: int = Field(default=10)
    rate_limit_window: int = Field(default=60)  # seconds

    # CORS Configuration
    cors_origins: List[str] = Field(default=["http://localhost:3000", "http://localhost:8080"])
    cors_allow_credentials: bool = Field(default=True)
    cors_allow_methods: List[str] = Field(default=["GET", "POST"])
    cors_allow_headers: List[str] = Field(default=["*"])

    # Monitoring
    enable_metrics: bool = Field(default=True)
    metrics_path: str = Field(default="/metrics")

    # Audit Logging
    audit_log_enabled: bool = Field(default=True)

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    def provider_order(self, primary: Optional[STTProvider] = None) -> List[STTProvider]:
        """Primary provider followed by its configured fallbacks, without duplicates."""
        primary = primary or self.primary_provider
        order = [primary]
        for provider in self.fallback_providers.get(primary, []):
            if provider not in order:
                order.append(provider)
        return order


# Global settings instance
settings = Settings()
