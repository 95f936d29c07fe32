"""
Pydantic Models für Transkriptionsergebnisse und API Responses
"""

from typing import Optional, Dict, List
from datetime import datetime
from pydantic import BaseModel, Field


class Utterance(BaseModel):
    """Zusammenhängendes Sprachsegment eines Sprechers"""
    speaker: str = Field(description="Sprecher-Tag des Backends (z.B. 'A')")
    text: str = Field(description="Transkribierter Text")
    start: int = Field(description="Startzeit in Millisekunden")
    end: int = Field(description="Endzeit in Millisekunden")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0, description="Konfidenz-Score (0.0-1.0)")

    @property
    def duration_ms(self) -> int:
        return max(0, self.end - self.start)


class ProviderResult(BaseModel):
    """Rohes Ergebnis eines STT-Providers"""
    text: str = Field(description="Vollständiger transkribierter Text")
    utterances: Optional[List[Utterance]] = Field(default=None, description="Sprecher-Segmente (nur bei Diarisierung)")
    confidence: Optional[float] = Field(default=None, description="Gesamtkonfidenz")
    duration: Optional[float] = Field(default=None, description="Audio-Dauer in Sekunden")
    provider: str = Field(description="Provider-Kennung (z.B. 'assemblyai')")
    model: str = Field(description="Verwendetes STT-Modell")
    provider_transcript_id: Optional[str] = Field(default=None, description="ID des Transkripts beim Provider")

    @property
    def speaker_tags(self) -> List[str]:
        """Eindeutige Sprecher-Tags in Reihenfolge des ersten Auftretens"""
        return list(dict.fromkeys(u.speaker for u in self.utterances or []))


class SpeakerProfile(BaseModel):
    """Abgeleitetes Sprecherprofil, nur für die Dauer eines Requests"""
    speaker: str
    professional_score: int = 0
    patient_score: int = 0
    utterance_count: int = 0
    first_index: int = Field(default=0, description="Position des ersten Auftretens")
    role: Optional[str] = None


class SpeakerStats(BaseModel):
    """Sprechanteil eines Teilnehmers"""
    speaker: str
    role: str
    duration_seconds: int
    word_count: int
    percentage: int = Field(description="Anteil an der Gesamtdauer in Prozent")


class TranscriptMetadata(BaseModel):
    """Zusammenfassende Kennzahlen eines Transkripts"""
    duration_seconds: float = 0.0
    duration_minutes: int = 0
    word_count: int = 0
    average_confidence: Optional[int] = Field(default=None, description="Gerundete Konfidenz in Prozent (None, wenn vom Provider nicht geliefert)")
    speaker_count: int = 0
    session_type: str
    speakers: List[SpeakerStats] = Field(default_factory=list)


class TranscriptReport(BaseModel):
    """Formatierter Transkriptbericht, das einzige Artefakt für externe Abnehmer"""
    text: str
    provider: str
    model: str
    fallback: bool = False
    roles: Dict[str, str] = Field(default_factory=dict, description="Sprecher-Tag -> Rolle")
    utterances: List[Utterance] = Field(default_factory=list)
    metadata: TranscriptMetadata
    generated_at: datetime


class TranscriptionResponse(BaseModel):
    """Hauptantwort des Transkriptions-Endpoints"""
    request_id: str = Field(description="Eindeutige Request-ID")
    text: str = Field(description="Formatierter Transkriptbericht")
    model: str = Field(description="Verwendetes STT-Modell")
    provider: str = Field(description="Verwendeter Provider")
    fallback: bool = Field(description="True, wenn nicht der primäre Provider geantwortet hat")
    speakers: List[str] = Field(default_factory=list, description="Sprecher-Tags je Utterance")
    roles: Dict[str, str] = Field(default_factory=dict)
    raw_utterances: List[Utterance] = Field(default_factory=list)
    metadata: TranscriptMetadata
    processing_time_ms: int = Field(description="Verarbeitungszeit in Millisekunden")


class ProvidersResponse(BaseModel):
    """Verfügbare Provider und Standard-Reihenfolge"""
    available: List[str]
    default_order: List[str]


class HealthCheckResponse(BaseModel):
    """Health Check Response"""
    status: str = Field(description="Service Status (healthy/unhealthy)")
    timestamp: datetime = Field(description="Check-Zeitpunkt")
    version: str = Field(description="Service-Version")
    uptime_seconds: int = Field(description="Uptime in Sekunden")


class ErrorResponse(BaseModel):
    """Standardisierte Fehlerantwort"""
    error: str = Field(description="Fehlertyp")
    message: str = Field(description="Fehlerbeschreibung")
    provider: Optional[str] = Field(default=None, description="Betroffener Provider oder 'all'")
    request_id: Optional[str] = Field(default=None, description="Request-ID für Debugging")
    timestamp: datetime = Field(description="Fehlerzeitpunkt")


class RateLimitResponse(BaseModel):
    """Rate Limit Exceeded Response"""
    error: str = Field(default="rate_limit_exceeded")
    message: str = Field(description="Rate Limit Fehlermeldung")
    retry_after: int = Field(description="Sekunden bis zum nächsten Versuch")
    limit: int = Field(description="Request-Limit")
    window: int = Field(description="Zeitfenster in Sekunden")
    timestamp: datetime = Field(description="Fehlerzeitpunkt")
