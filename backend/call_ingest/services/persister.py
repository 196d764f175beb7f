from datetime import datetime
from typing import Any, Dict, Optional, Tuple
import logging
import math

from ..errors import PersistenceWarning
from ..schemas.pydantic_schemas import CallEvent, CallOutcome, CallType, Resolution
from .classifier import log_call_type, provider_for
from .criteria import score_criteria

logger = logging.getLogger(__name__)

DISTRESS_FLAGS = ("flag_lonely", "flag_confused", "flag_fall_risk", "flag_low_appetite")
HEALTH_FLAGS = ("flag_fall_risk", "flag_low_appetite", "flag_confused")


def coerce_mood_score(value: Any) -> Optional[int]:
    """Round half-up to an int in 1..5; anything else becomes None, never clamped."""
    if value is None or isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(n):
        return None
    r = math.floor(n + 0.5)
    return r if 1 <= r <= 5 else None


def mood_label(score: Optional[int], event: CallEvent) -> Optional[str]:
    if score is not None:
        if score >= 4:
            return "positive"
        if score >= 3:
            return "neutral"
        return "concerning"
    if any(event.collected(flag) for flag in DISTRESS_FLAGS):
        return "concerning"
    return None


def build_call_log_row(event: CallEvent, resolution: Resolution, call_type: CallType, outcome: CallOutcome, now: datetime) -> Dict[str, Any]:
    identity = resolution.identity
    return {
        "provider": provider_for(call_type),
        "provider_call_id": event.provider_call_id,
        "user_id": identity.relative_id,
        "household_id": identity.household_id,
        "relative_id": identity.relative_id,
        "call_type": log_call_type(call_type),
        "call_outcome": outcome.value,
        "call_duration": event.duration_seconds,
        "emergency_flag": bool(event.collected("emergency_flag")),
        "health_concerns_detected": any(bool(event.collected(f)) for f in HEALTH_FLAGS),
        "audio_recording_url": event.audio_url,
        "audio_base64": event.audio_base64,
        "session_id": event.session_id if call_type == CallType.IN_APP else None,
        "timestamp": (event.started_at or now).isoformat(),
    }


def build_call_summary_row(event: CallEvent, resolution: Resolution, call_type: CallType, call_log_id: Optional[str]) -> Dict[str, Any]:
    raw_score = event.collected("mood_score")
    score = coerce_mood_score(raw_score)
    if score is None and raw_score is not None:
        logger.info(f"mood_score {raw_score!r} out of range or not numeric; stored as null")
    criteria = score_criteria(event.evaluation)
    mood = mood_label(score, event)
    logger.info(f"Summary for {event.provider_call_id}: mood={mood} score={score} criteria={criteria.quality_rating}")

    identity = resolution.identity
    return {
        "provider": provider_for(call_type),
        "provider_call_id": event.provider_call_id,
        "call_log_id": call_log_id,
        "household_id": identity.household_id,
        "relative_id": identity.relative_id,
        "mood": mood,
        "mood_score": score,
        "key_points": {
            "call_type": log_call_type(call_type),
            "agent_id": event.agent_id,
            "session_id": event.session_id if call_type == CallType.IN_APP else None,
            "resolution_strategy": resolution.strategy,
            "low_confidence": resolution.low_confidence,
            "data_collection": event.data_collection,
            "evaluation": event.evaluation,
            "criteria_evaluation": criteria.as_dict(),
            "notes": event.collected("notes"),
            "highlight": event.collected("highlight_one_line"),
            "detailed_summary": event.summary,
            "call_successful": event.call_successful,
            "audio_url": event.audio_url,
            "audio_base64": event.audio_base64,
        },
        "transcript_url": event.transcript_url,
        "tl_dr": event.transcript_summary or event.summary,
        "full_audio_base64": event.audio_base64,
    }


def persist_call(db: Any, event: CallEvent, resolution: Resolution, call_type: CallType, outcome: CallOutcome, now: datetime) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """Upsert the call log and its summary.

    The two writes are independent; a failed log upsert still lets the summary
    through (without a call_log_id). Any failure is re-raised afterwards as
    PersistenceWarning so the caller can report it.
    """
    failure: Optional[PersistenceWarning] = None
    log: Optional[Dict[str, Any]] = None
    summary: Optional[Dict[str, Any]] = None

    try:
        log = db.upsert_call_log(build_call_log_row(event, resolution, call_type, outcome, now))
    except Exception as e:
        logger.error(f"call_logs upsert failed for {event.provider_call_id}: {e}")
        failure = PersistenceWarning("call_logs upsert", e)

    try:
        summary = db.upsert_call_summary(build_call_summary_row(event, resolution, call_type, (log or {}).get("id")))
    except Exception as e:
        logger.error(f"call_summaries upsert failed for {event.provider_call_id}: {e}")
        failure = failure or PersistenceWarning("call_summaries upsert", e)

    if failure is not None:
        raise failure
    return log, summary
