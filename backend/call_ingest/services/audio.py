from typing import Any, Optional, Dict
import logging

from ..schemas.pydantic_schemas import CallEvent

logger = logging.getLogger(__name__)


def attach_recorded_audio(db: Any, event: CallEvent) -> Optional[Dict[str, Any]]:
    """Attach audio from an audio-only delivery to the call it belongs to.

    Returns the existing call log when audio was attached, or None when no
    call log exists yet. An orphaned recording never creates a call log.
    """
    existing = db.find_call_log(event.provider_call_id)
    if not existing:
        logger.warning(f"Audio-only delivery for {event.provider_call_id} but no call log exists; ignoring")
        return None
    if event.audio_base64 or event.audio_url:
        db.attach_audio(existing["id"], event.provider_call_id, event.audio_base64, event.audio_url)
        logger.info(f"Attached recorded audio to call log {existing['id']} ({event.provider_call_id})")
    return existing
