"""
Canonical transcript normalisation.

Every transcript that reaches the scoring model passes through
normalise_transcript(). Validation is all-or-nothing: the first violation
raises ValidationError naming the offending field and index.
"""
import re
from typing import Any, Dict, List

from utils.error_handler import InputValidator, ValidationError
from utils.models import CanonicalTranscript, Utterance

MAX_SUMMARY_CHARS = 5000
MAX_UTTERANCE_CHARS = 10000
MAX_UTTERANCES = 10000
MAX_SPEAKER_CHARS = 50

TIMESTAMP_PATTERN = re.compile(r'^\d{2,3}:[0-5]\d\.\d{3}$')
SPEAKER_STRIP = re.compile(r'[^A-Za-z0-9_-]')


def ms_to_timestamp(millis: Any) -> str:
    """Convert an offset in milliseconds to MM:SS.mmm"""
    total = int(round(float(millis)))
    if total < 0:
        raise ValueError(f"negative offset: {millis}")
    minutes, rem = divmod(total, 60000)
    seconds, ms = divmod(rem, 1000)
    return f"{minutes:02d}:{seconds:02d}.{ms:03d}"


def analytics_to_raw(analytics: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert Transcribe Call Analytics output into the raw {summary, transcript}
    shape accepted by normalise_transcript().

    Utterances keep the engine's ParticipantRole (AGENT / CUSTOMER) as speaker.
    """
    summary = (
        analytics.get("ConversationCharacteristics", {})
        .get("ContactSummary", {})
        .get("AutoGenerated", {})
        .get("OverallSummary", {})
        .get("Content", "")
    ) or ""

    utterances = []
    for seg in analytics.get("Transcript", []) or []:
        utterances.append({
            "speaker": seg.get("ParticipantRole", ""),
            "text": seg.get("Content", ""),
            "beginTime": ms_to_timestamp(seg.get("BeginOffsetMillis", 0)),
            "endTime": ms_to_timestamp(seg.get("EndOffsetMillis", 0)),
        })

    return {"summary": summary, "transcript": utterances}


def _check_text(value: Any, field: str, max_chars: int) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    if len(value) > max_chars:
        raise ValidationError(f"{field} exceeds {max_chars} characters", field=field)
    if InputValidator.contains_injection(value):
        raise ValidationError(f"{field} contains disallowed markup", field=field)
    return value


def _check_timestamp(value: Any, field: str) -> str:
    if not isinstance(value, str) or not TIMESTAMP_PATTERN.match(value):
        raise ValidationError(f"{field} must be MM:SS.mmm, got {str(value)[:20]!r}", field=field)
    return value


def normalise_transcript(raw: Any) -> CanonicalTranscript:
    """Validate and sanitise a raw transcript into a CanonicalTranscript"""
    if not isinstance(raw, dict):
        raise ValidationError("transcript document must be an object", field="transcript")

    summary = _check_text(raw.get("summary", ""), "summary", MAX_SUMMARY_CHARS)

    entries = raw.get("transcript")
    if not isinstance(entries, list):
        raise ValidationError("transcript must be a list", field="transcript")
    if not entries:
        raise ValidationError("transcript must contain at least one utterance", field="transcript")
    if len(entries) > MAX_UTTERANCES:
        raise ValidationError(
            f"transcript has {len(entries)} utterances (max {MAX_UTTERANCES})",
            field="transcript"
        )

    utterances: List[Utterance] = []
    for i, entry in enumerate(entries):
        prefix = f"transcript[{i}]"
        if not isinstance(entry, dict):
            raise ValidationError(f"{prefix} must be an object", field=prefix)

        speaker_raw = entry.get("speaker")
        if not isinstance(speaker_raw, str):
            raise ValidationError(f"{prefix}.speaker must be a string", field=f"{prefix}.speaker")
        speaker = SPEAKER_STRIP.sub("", speaker_raw)[:MAX_SPEAKER_CHARS]
        if not speaker:
            raise ValidationError(f"{prefix}.speaker is empty after sanitising", field=f"{prefix}.speaker")

        utterances.append(Utterance(
            speaker=speaker,
            text=_check_text(entry.get("text"), f"{prefix}.text", MAX_UTTERANCE_CHARS),
            beginTime=_check_timestamp(entry.get("beginTime"), f"{prefix}.beginTime"),
            endTime=_check_timestamp(entry.get("endTime"), f"{prefix}.endTime"),
        ))

    return CanonicalTranscript(summary=summary, transcript=tuple(utterances))
