"""
Clinical transcript rendering.

Turns a ProviderResult and the speaker profiles into the report text and the
summary metadata. Rendering depends only on its inputs; the session timestamp
is passed in by the caller.
"""

import math
import re
import textwrap
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from transcript_engine.models.responses import (
    ProviderResult, SpeakerProfile, SpeakerStats, TranscriptMetadata, TranscriptReport, Utterance,
)
from transcript_engine.services.speaker_roles import role_map, single_speaker_label

EXTENDED_SESSION_SECONDS = 600
EXTENDED_SESSION = "Extended Clinical Interview"
STANDARD_SESSION = "Standard Patient Consultation"

RULE_WIDTH = 70
CENTER_WIDTH = 65
WRAP_WIDTH = 66
INDENT = "    "

MEDICAL_ABBREVIATIONS = ("GCS", "ICP", "EVD", "MRI", "CT", "BP", "HR")


def _spoken_forms(abbreviation: str) -> str:
    # "g.c.s." / "g c s" / "gcs"
    letters = abbreviation.lower()
    dotted = r"\.\s?".join(letters) + r"\.?"
    spaced = r"\s".join(letters)
    return rf"(?:{dotted}|{spaced}|{letters})"


def _abbreviation_pattern() -> "re.Pattern[str]":
    alternatives = []
    for abbreviation in MEDICAL_ABBREVIATIONS:
        body = _spoken_forms(abbreviation)
        if abbreviation == "GCS":
            # a score may follow directly: "gcs8", "g.c.s.8"
            body += r"(?:\s*(?P<GCS_score>\d+)|(?!\w))"
        else:
            body += r"(?!\w)"
        alternatives.append(rf"(?P<{abbreviation}>{body})")
    return re.compile(r"\b(?:" + "|".join(alternatives) + ")", re.IGNORECASE)


ABBREVIATION_PATTERN = _abbreviation_pattern()


def _expand_abbreviation(match: "re.Match[str]") -> str:
    for abbreviation in MEDICAL_ABBREVIATIONS:
        if match.group(abbreviation) is not None:
            if abbreviation == "GCS" and match.group("GCS_score"):
                return f"GCS {match.group('GCS_score')}"
            return abbreviation
    return match.group(0)


def normalize_medical_text(text: str) -> str:
    """Single left-to-right pass replacing spoken abbreviations, e.g. 'g c s 8' -> 'GCS 8'."""
    return ABBREVIATION_PATTERN.sub(_expand_abbreviation, text.strip())


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_timestamp(milliseconds: int) -> str:
    total_seconds = max(0, milliseconds) // 1000
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


def confidence_bucket(confidence: float) -> str:
    percent = round_half_up(confidence * 100)
    if percent >= 90:
        return "HIGH"
    if percent >= 75:
        return "MED"
    return "LOW"


def session_type(duration_seconds: float) -> str:
    return EXTENDED_SESSION if duration_seconds > EXTENDED_SESSION_SECONDS else STANDARD_SESSION


def word_count(text: str) -> int:
    return len(text.split())


def wrap_text(text: str) -> List[str]:
    return textwrap.wrap(
        text,
        width=WRAP_WIDTH,
        initial_indent=INDENT,
        subsequent_indent=INDENT,
        break_long_words=False,
        break_on_hyphens=False,
    )


def center_text(text: str, width: int = CENTER_WIDTH) -> str:
    return " " * max(0, (width - len(text)) // 2) + text


class TranscriptFormatter:
    """Renders TranscriptReports. Stateless."""

    def format(
        self,
        result: ProviderResult,
        profiles: Sequence[SpeakerProfile],
        *,
        generated_at: datetime,
        fallback: bool = False,
    ) -> TranscriptReport:
        utterances = list(result.utterances or [])
        duration = self._session_duration(result)
        roles = self._roles(utterances, profiles)
        average_confidence = self._average_confidence(result)
        speakers = self._speaking_stats(utterances, roles, duration)

        metadata = TranscriptMetadata(
            duration_seconds=duration,
            duration_minutes=math.ceil(duration / 60),
            word_count=sum(word_count(u.text) for u in utterances) if utterances else word_count(result.text),
            average_confidence=average_confidence,
            speaker_count=len(roles),
            session_type=session_type(duration),
            speakers=speakers,
        )

        lines = self._header(result, roles, metadata, generated_at)
        if utterances:
            lines.extend(self._utterance_lines(utterances, roles))
        else:
            lines.extend([
                "NOTE: This transcription does not include speaker identification.",
                "",
            ])
            lines.extend(wrap_text(normalize_medical_text(result.text)))
            lines.append("")
        lines.extend(self._summary(result, metadata, generated_at))

        return TranscriptReport(
            text="\n".join(lines),
            provider=result.provider,
            model=result.model,
            fallback=fallback,
            roles=roles,
            utterances=utterances,
            metadata=metadata,
            generated_at=generated_at,
        )

    def _session_duration(self, result: ProviderResult) -> float:
        if result.duration:
            return float(result.duration)
        if result.utterances:
            return max(u.end for u in result.utterances) / 1000.0
        return 0.0

    def _roles(self, utterances: List[Utterance], profiles: Sequence[SpeakerProfile]) -> Dict[str, str]:
        roles = role_map(profiles)
        for utterance in utterances:
            roles.setdefault(utterance.speaker, single_speaker_label(utterance.speaker))
        return roles

    def _average_confidence(self, result: ProviderResult) -> Optional[int]:
        if result.confidence is not None:
            return round_half_up(result.confidence * 100)
        if result.utterances:
            mean = sum(u.confidence for u in result.utterances) / len(result.utterances)
            return round_half_up(mean * 100)
        return None

    def _speaking_stats(self, utterances: List[Utterance], roles: Dict[str, str], duration: float) -> List[SpeakerStats]:
        stats = []
        for speaker in dict.fromkeys(u.speaker for u in utterances):
            own = [u for u in utterances if u.speaker == speaker]
            spoken_ms = sum(u.duration_ms for u in own)
            percentage = round_half_up(spoken_ms / (duration * 1000) * 100) if duration > 0 else 0
            stats.append(SpeakerStats(
                speaker=speaker,
                role=roles[speaker],
                duration_seconds=round_half_up(spoken_ms / 1000),
                word_count=sum(word_count(u.text) for u in own),
                percentage=percentage,
            ))
        return stats

    def _header(
        self,
        result: ProviderResult,
        roles: Dict[str, str],
        metadata: TranscriptMetadata,
        generated_at: datetime,
    ) -> List[str]:
        accuracy = (
            f"{metadata.average_confidence}%" if metadata.average_confidence is not None else "not reported"
        )
        lines = [
            "=" * RULE_WIDTH,
            center_text("MEDICAL CONSULTATION TRANSCRIPT"),
            "=" * RULE_WIDTH,
            "",
            f"Session Date: {generated_at:%A, %B} {generated_at.day}, {generated_at.year}",
            f"Start Time: {generated_at:%I:%M %p}",
            f"Consultation Type: {metadata.session_type}",
        ]
        if roles:
            lines.append(f"Participants: {', '.join(roles.values())}")
        lines.extend([
            f"Transcription Accuracy: {accuracy} ({result.model})",
            "",
            "-" * RULE_WIDTH,
            center_text("CONVERSATION TRANSCRIPT"),
            "-" * RULE_WIDTH,
            "",
        ])
        return lines

    def _utterance_lines(self, utterances: List[Utterance], roles: Dict[str, str]) -> List[str]:
        lines = []
        previous_speaker = None
        for utterance in utterances:
            if previous_speaker is not None and previous_speaker != utterance.speaker:
                lines.append("")
            lines.append(
                f"[{format_timestamp(utterance.start)}] {roles[utterance.speaker]} "
                f"({confidence_bucket(utterance.confidence)}):"
            )
            lines.extend(wrap_text(normalize_medical_text(utterance.text)))
            lines.append("")
            previous_speaker = utterance.speaker
        return lines

    def _summary(self, result: ProviderResult, metadata: TranscriptMetadata, generated_at: datetime) -> List[str]:
        confidence = metadata.average_confidence
        lines = [
            "-" * RULE_WIDTH,
            center_text("CONSULTATION SUMMARY"),
            "-" * RULE_WIDTH,
            "",
            "SESSION METRICS:",
            f"  Duration: {metadata.duration_minutes} minutes ({int(metadata.duration_seconds)}s)",
            f"  Total Words: {metadata.word_count}",
            f"  Average Confidence: {f'{confidence}%' if confidence is not None else 'not reported'}",
            f"  Participants: {metadata.speaker_count}",
            "",
        ]
        if metadata.speakers:
            lines.append("SPEAKING DISTRIBUTION:")
            lines.extend(
                f"  {stat.role}: {stat.percentage}% ({stat.word_count} words)" for stat in metadata.speakers
            )
            lines.append("")

        if confidence is None:
            quality = "Unrated"
        elif confidence > 90:
            quality = "High accuracy"
        elif confidence > 75:
            quality = "Good accuracy"
        else:
            quality = "Moderate accuracy"
        lines.extend([
            "CONSULTATION DETAILS:",
            f"  Type: {metadata.session_type}",
            "  Specialty: Healthcare/Medical",
            f"  Quality: {quality}",
            "",
            "=" * RULE_WIDTH,
            f"Generated: {generated_at:%m/%d/%Y, %I:%M:%S %p} | {result.model}",
            "=" * RULE_WIDTH,
        ])
        return lines
