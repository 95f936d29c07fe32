"""
Speaker role heuristics.

Infers which diarized speaker tag is the clinician and which is the patient
from keyword cues in what each speaker says. This is a best-effort guess meant
as advisory metadata on the transcript, not a clinical identification: with
no keyword signal every speaker stays a generic participant.
"""

from typing import Callable, Dict, List, Sequence, Tuple

from transcript_engine.core.logging import get_logger
from transcript_engine.models.responses import SpeakerProfile, Utterance

logger = get_logger(__name__)

HEALTHCARE_PROVIDER = "HEALTHCARE PROVIDER"
PATIENT = "PATIENT"
PARTICIPANT = "PARTICIPANT"

PROFESSIONAL_INDICATORS = (
    "medication", "condition", "feeling", "symptoms", "treatment",
    "prescription", "diagnosis", "how are you", "what's the",
    "have you taken", "do you", "examination", "test",
)

PATIENT_INDICATORS = (
    "i feel", "i'm feeling", "i don't", "i can't", "i have",
    "my pain", "it hurts", "i'm not", "please help", "i need",
)

# (combined lowercased text) -> (professional score, patient score)
SpeakerScorer = Callable[[str], Tuple[int, int]]


def keyword_scorer(text: str) -> Tuple[int, int]:
    """Counts indicator phrases present as substrings; each phrase counts once."""
    professional = sum(1 for indicator in PROFESSIONAL_INDICATORS if indicator in text)
    patient = sum(1 for indicator in PATIENT_INDICATORS if indicator in text)
    return professional, patient


def classify_speakers(utterances: Sequence[Utterance], scorer: SpeakerScorer = keyword_scorer) -> List[SpeakerProfile]:
    """
    Scores every speaker tag and assigns a role label.

    Returns the profiles in rank order (professional score descending, ties
    in order of first appearance).
    """
    groups: Dict[str, List[str]] = {}
    first_seen: Dict[str, int] = {}
    for index, utterance in enumerate(utterances):
        if utterance.speaker not in groups:
            groups[utterance.speaker] = []
            first_seen[utterance.speaker] = index
        groups[utterance.speaker].append(utterance.text.lower())

    profiles = []
    for speaker, texts in groups.items():
        professional, patient = scorer(" ".join(texts))
        profiles.append(SpeakerProfile(
            speaker=speaker,
            professional_score=professional,
            patient_score=patient,
            utterance_count=len(texts),
            first_index=first_seen[speaker],
        ))

    # sorted() is stable, so equal scores keep encounter order
    ranked = sorted(profiles, key=lambda p: -p.professional_score)
    _assign_roles(ranked)

    logger.info(
        "Speaker roles assigned",
        roles={p.speaker: p.role for p in ranked},
        scores={p.speaker: (p.professional_score, p.patient_score) for p in ranked},
    )
    return ranked


def _assign_roles(ranked: List[SpeakerProfile]) -> None:
    remaining = list(ranked)
    if remaining and remaining[0].professional_score > 0:
        remaining.pop(0).role = HEALTHCARE_PROVIDER

    patient_assigned = False
    participant = 0
    for profile in remaining:
        if not patient_assigned and profile.patient_score > profile.professional_score:
            profile.role = PATIENT
            patient_assigned = True
        else:
            participant += 1
            profile.role = f"{PARTICIPANT} {participant}"


def single_speaker_label(speaker: str) -> str:
    return f"SPEAKER {speaker}"


def role_map(profiles: Sequence[SpeakerProfile]) -> Dict[str, str]:
    """Speaker tag -> role label."""
    return {p.speaker: p.role or single_speaker_label(p.speaker) for p in profiles}
