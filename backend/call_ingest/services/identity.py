"""Work out which household and relative a call event belongs to.

Each strategy takes the event plus a ResolutionContext and returns a
Resolution or None. The resolver walks the chain for the event's call type
and stops at the first hit. Nothing here guesses: when the only evidence is a
phone number shared between households and nothing corroborates a pick,
AmbiguousIdentityError is raised and the caller keeps the event audit-only.
"""
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
import logging

from ..errors import AmbiguousIdentityError, UnresolvedIdentityError
from ..schemas.pydantic_schemas import CallEvent, CallOutcome, CallType, Identity, Resolution
from .redaction import mask_phone

logger = logging.getLogger(__name__)

HOUSEHOLD_KEYS = ("secret__household_id", "secret__family_id")
RELATIVE_KEYS = ("secret__relative_id", "secret__elder_id")


class ResolutionContext:
    def __init__(self, db: Any, call_type: CallType, outcome: CallOutcome, now: datetime, session_window: timedelta = timedelta(minutes=10), mapping_window: timedelta = timedelta(hours=2)) -> None:
        self.db = db
        self.call_type = call_type
        self.outcome = outcome
        self.now = now
        self.session_window = session_window
        self.mapping_window = mapping_window


Strategy = Callable[[CallEvent, ResolutionContext], Optional[Resolution]]


def _identity(row: Optional[Dict[str, Any]], household_key: str = "household_id", relative_key: str = "relative_id") -> Optional[Identity]:
    if not row or not row.get(household_key) or not row.get(relative_key):
        return None
    return Identity(household_id=str(row[household_key]), relative_id=str(row[relative_key]))


def _first_var(dyn: Dict[str, Any], keys) -> Optional[Any]:
    for k in keys:
        if dyn.get(k):
            return dyn[k]
    return None


# Shared strategies

def from_dynamic_variables(event: CallEvent, ctx: ResolutionContext) -> Optional[Resolution]:
    """Identifiers we embedded ourselves when the call was initiated. Trusted outright."""
    household = _first_var(event.dynamic_variables, HOUSEHOLD_KEYS)
    relative = _first_var(event.dynamic_variables, RELATIVE_KEYS)
    if not household or not relative:
        return None
    return Resolution(identity=Identity(household_id=str(household), relative_id=str(relative)), strategy="dynamic_variables")


def from_prior_resolution(event: CallEvent, ctx: ResolutionContext) -> Optional[Resolution]:
    """Reuse what an earlier delivery of the same call already resolved to."""
    if not event.provider_call_id:
        return None
    identity = _identity(ctx.db.find_resolved_call_log(event.provider_call_id))
    if identity is None:
        return None
    logger.info(f"Duplicate protection: reusing resolution for {event.provider_call_id}")
    return Resolution(identity=identity, strategy="prior_resolution")


# In-app strategies

def from_in_app_call_log(event: CallEvent, ctx: ResolutionContext) -> Optional[Resolution]:
    """The device-call flow writes a call log keyed by conversation id when the session starts."""
    if not event.provider_call_id:
        return None
    identity = _identity(ctx.db.find_in_app_call_log(event.provider_call_id))
    if identity is None:
        logger.warning(f"In-app: no call log for conversation {event.provider_call_id}")
        return None
    return Resolution(identity=identity, strategy="in_app_call_log")


def extract_session_id(event: CallEvent) -> Optional[str]:
    if event.session_id:
        return str(event.session_id)
    pcid = event.provider_call_id or ""
    if "session_" in pcid:
        return pcid.split("session_", 1)[1].split("_")[0] or None
    return None


def from_call_session(event: CallEvent, ctx: ResolutionContext) -> Optional[Resolution]:
    session_id = extract_session_id(event)
    if not session_id:
        return None
    identity = _identity(ctx.db.get_call_session(session_id))
    if identity is None:
        logger.warning(f"In-app: no session {session_id} for conversation {event.provider_call_id}")
        return None
    return Resolution(identity=identity, strategy="call_session")


def from_recent_in_app_session(event: CallEvent, ctx: ResolutionContext) -> Optional[Resolution]:
    """Most recent in-app session in the trailing window.

    Low confidence: two sessions started inside the window are
    indistinguishable. Skipped when the event names a session we could not
    find, since that is contradicting evidence rather than missing evidence.
    """
    if extract_session_id(event):
        return None
    sessions = ctx.db.find_recent_in_app_sessions(ctx.now - ctx.session_window, limit=1)
    identity = _identity(sessions[0] if sessions else None)
    if identity is None:
        return None
    logger.warning(f"In-app fallback: attributing {event.provider_call_id} to recent session {sessions[0].get('id')} (low confidence)")
    return Resolution(identity=identity, strategy="recent_in_app_session", low_confidence=True)


# Batch strategies

def from_batch_mapping(event: CallEvent, ctx: ResolutionContext) -> Optional[Resolution]:
    if not event.batch_id or not event.callee_phone:
        return None
    mapping = ctx.db.find_batch_mapping(event.batch_id, event.callee_phone)
    identity = _identity(mapping)
    if identity is None:
        logger.warning(f"No batch mapping for batch {event.batch_id} phone {mask_phone(event.callee_phone)}")
        return None
    return Resolution(
        identity=identity,
        strategy="batch_mapping",
        batch_mapping_key={"batch_id": event.batch_id, "phone_number": event.callee_phone},
    )


def from_pending_batch_mapping(event: CallEvent, ctx: ResolutionContext) -> Optional[Resolution]:
    """Newest un-stamped mapping for this phone inside the trailing window. Low confidence."""
    if not event.provider_call_id or not event.callee_phone:
        return None
    pending = ctx.db.find_pending_batch_mappings(event.callee_phone, ctx.now - ctx.mapping_window)
    if not pending:
        logger.warning(f"No pending batch mappings for phone {mask_phone(event.callee_phone)}")
        return None
    mapping = pending[0]
    identity = _identity(mapping)
    if identity is None:
        return None
    return Resolution(
        identity=identity,
        strategy="pending_batch_mapping",
        low_confidence=True,
        batch_mapping_key={"batch_id": mapping["batch_id"], "phone_number": event.callee_phone},
    )


def from_relative_phone(event: CallEvent, ctx: ResolutionContext) -> Optional[Resolution]:
    if not event.callee_phone:
        return None
    matches = [r for r in ctx.db.find_relatives_by_phone(event.callee_phone) if _identity(r, relative_key="id")]
    if not matches:
        logger.error(f"Could not resolve phone {mask_phone(event.callee_phone)} to any relative")
        return None
    if len(matches) == 1:
        return Resolution(identity=_identity(matches[0], relative_key="id"), strategy="relative_phone")

    households = sorted({str(r["household_id"]) for r in matches})
    # A batch id or an answered call is taken as corroboration that this was a scheduled call.
    if event.batch_id or ctx.outcome == CallOutcome.ANSWERED:
        logger.warning(
            f"Phone {mask_phone(event.callee_phone)} matches {len(matches)} relatives in {len(households)} households; "
            f"using first match ({'batch_call' if event.batch_id else 'answered_call'})"
        )
        return Resolution(identity=_identity(matches[0], relative_key="id"), strategy="relative_phone_ambiguous", low_confidence=True)
    logger.error(f"Ambiguous phone {mask_phone(event.callee_phone)} across {len(households)} households; audit only")
    raise AmbiguousIdentityError(event.provider_call_id, households)


COMMON_CHAIN: List[Strategy] = [from_dynamic_variables, from_prior_resolution]
IN_APP_CHAIN: List[Strategy] = [from_in_app_call_log, from_call_session, from_recent_in_app_session]
BATCH_CHAIN: List[Strategy] = [from_batch_mapping, from_pending_batch_mapping, from_relative_phone]


def chain_for(call_type: CallType) -> List[Strategy]:
    if call_type == CallType.IN_APP:
        return COMMON_CHAIN + IN_APP_CHAIN
    if call_type == CallType.BATCH:
        return COMMON_CHAIN + BATCH_CHAIN
    return list(COMMON_CHAIN)


def resolve_identity(event: CallEvent, ctx: ResolutionContext) -> Resolution:
    """First strategy to return a Resolution wins.

    Raises UnresolvedIdentityError when the chain is exhausted and
    AmbiguousIdentityError when the phone lookup abstains.
    """
    for strategy in chain_for(ctx.call_type):
        resolution = strategy(event, ctx)
        if resolution is not None:
            logger.info(f"Resolved {event.provider_call_id} via {resolution.strategy} (low_confidence={resolution.low_confidence})")
            return resolution
    raise UnresolvedIdentityError(event.provider_call_id)
