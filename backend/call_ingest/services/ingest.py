"""Authenticated delivery in, acknowledgement text out.

Only a signature failure escapes as an exception. Everything after that is
acknowledged with 200 so the provider does not retry events we can never
resolve; the webhook_events row is what gets reconciled later.
"""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional
import json
import logging

from ..config import Settings
from ..errors import AmbiguousIdentityError, MalformedPayloadError, PersistenceWarning, UnresolvedIdentityError
from ..schemas.pydantic_schemas import CallEvent
from .audio import attach_recorded_audio
from .audit import AuditTrail
from .classifier import classify_call_type, provider_for
from .identity import ResolutionContext, resolve_identity
from .persister import persist_call
from .redaction import loggable_keys, mask_phone
from .signature import verify_signature
from .status import normalize_outcome

logger = logging.getLogger(__name__)


class IngestOutcome(str, Enum):
    OK = "ok"
    MISSING_IDENTIFIERS = "missing-identifiers"
    AMBIGUOUS_IDENTIFIERS = "ambiguous-identifiers"
    MISSING_CALL_ID = "missing-call-id"
    AUDIO_ATTACHED = "ok-audio-only"
    AUDIO_ORPHAN = "audio-orphan"
    MALFORMED_PAYLOAD = "malformed-payload"
    PERSISTENCE_WARNING = "ok-persistence-warning"


def ingest_delivery(raw_body: bytes, signature: Optional[str], db: Any, settings: Settings, now: Optional[datetime] = None) -> IngestOutcome:
    """Authenticate, then process one webhook delivery.

    Raises AuthenticationError before anything is written. Never raises after.
    """
    current = now or datetime.now(timezone.utc)
    verify_signature(raw_body, signature, settings.webhook_secret, settings.webhook_tolerance_seconds, now=current.timestamp())

    audit = AuditTrail(signature, current)
    try:
        return _process(raw_body, db, settings, current, audit)
    except Exception:
        logger.exception("Unexpected error while processing webhook delivery")
        return IngestOutcome.OK
    finally:
        audit.write(db)


def _parse(raw_body: bytes, audit: AuditTrail) -> CallEvent:
    try:
        payload = json.loads(raw_body)
    except ValueError as e:
        audit.update(payload={"raw": raw_body.decode("utf-8", errors="replace")})
        raise MalformedPayloadError(f"body is not JSON: {e}") from e
    audit.update(payload=payload)
    return CallEvent.from_payload(payload)


def _process(raw_body: bytes, db: Any, settings: Settings, now: datetime, audit: AuditTrail) -> IngestOutcome:
    try:
        event = _parse(raw_body, audit)
    except MalformedPayloadError as e:
        logger.error(f"Malformed webhook payload: {e}")
        audit.update(resolution_status="malformed")
        return IngestOutcome.MALFORMED_PAYLOAD

    call_type = classify_call_type(event.agent_id, settings.batch_agent_id, settings.in_app_agent_id)
    audit.update(provider=provider_for(call_type), provider_call_id=event.provider_call_id)
    logger.info(
        f"Webhook routing: call={event.provider_call_id} agent={event.agent_id} type={call_type.value} "
        f"batch={event.batch_id} phone={mask_phone(event.callee_phone)} dyn_keys={loggable_keys(event.dynamic_variables)}"
    )

    if event.is_audio_only and event.provider_call_id:
        return _process_audio_only(db, event, audit)

    if not event.provider_call_id:
        logger.warning("No conversation_id in delivery; audit only")
        audit.update(resolution_status="missing_call_id")
        return IngestOutcome.MISSING_CALL_ID

    outcome = normalize_outcome(event.raw_status)
    logger.info(f"Status raw->normalized: {event.raw_status} -> {outcome.value}")

    ctx = ResolutionContext(
        db,
        call_type,
        outcome,
        now,
        session_window=timedelta(minutes=settings.in_app_session_window_minutes),
        mapping_window=timedelta(minutes=settings.batch_mapping_window_minutes),
    )
    try:
        resolution = resolve_identity(event, ctx)
    except AmbiguousIdentityError as e:
        audit.update(resolution_status="ambiguous")
        logger.error(f"Ambiguous identity for {event.provider_call_id}: households={e.households}; flagged for manual review")
        return IngestOutcome.AMBIGUOUS_IDENTIFIERS
    except UnresolvedIdentityError:
        audit.update(resolution_status="unresolved")
        logger.error(f"Missing household/relative for {event.provider_call_id}; call data not stored")
        return IngestOutcome.MISSING_IDENTIFIERS

    audit.resolved(resolution)
    audit.write(db)

    warned = False
    if resolution.batch_mapping_key:
        key = resolution.batch_mapping_key
        try:
            stamped = db.stamp_batch_mapping(key["batch_id"], key["phone_number"], event.provider_call_id, now)
            if not stamped:
                logger.info(f"Batch mapping {key['batch_id']} already stamped; leaving it")
        except Exception as e:
            logger.error(f"batch_call_mappings stamp failed for {event.provider_call_id}: {e}")
            warned = True

    try:
        persist_call(db, event, resolution, call_type, outcome, now)
    except PersistenceWarning as e:
        logger.error(f"Persistence warning for {event.provider_call_id}: {e}")
        warned = True

    return IngestOutcome.PERSISTENCE_WARNING if warned else IngestOutcome.OK


def _process_audio_only(db: Any, event: CallEvent, audit: AuditTrail) -> IngestOutcome:
    logger.info(f"Audio-only delivery for {event.provider_call_id}")
    try:
        existing = attach_recorded_audio(db, event)
    except Exception as e:
        logger.error(f"Attaching audio failed for {event.provider_call_id}: {e}")
        audit.update(resolution_status="audio_only")
        return IngestOutcome.PERSISTENCE_WARNING
    if existing is None:
        audit.update(resolution_status="audio_orphan")
        return IngestOutcome.AUDIO_ORPHAN
    audit.update(resolution_status="audio_only", household_id=existing.get("household_id"))
    return IngestOutcome.AUDIO_ATTACHED
