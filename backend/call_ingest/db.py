from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4
from datetime import datetime, timezone
import threading

# Lightweight adapter over Supabase client. Keeps an in-memory fallback when SUPABASE_URL is missing.
from supabase import create_client, Client

from .config import get_settings
from .models.db_models import (
    BATCH_CALL_MAPPINGS,
    CALL_LOG_CONFLICT,
    CALL_LOGS,
    CALL_SESSIONS,
    CALL_SUMMARIES,
    CALL_SUMMARY_CONFLICT,
    SUMMARY_DERIVED_FIELDS,
    CALL_TYPE_IN_APP,
    PROVIDER_IN_APP,
    RELATIVES,
    WEBHOOK_EVENTS,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> str:
    return (value or _utcnow()).isoformat()


def _parse(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _without_nulls(row: Dict[str, Any], keep: Tuple[str, ...] = ()) -> Dict[str, Any]:
    # Newer deliveries never erase a stored value with a missing one, except for `keep` fields.
    return {k: v for k, v in row.items() if v is not None or k in keep}


class InMemoryDB:
    def __init__(self) -> None:
        self.webhook_events: List[Dict[str, Any]] = []
        # (batch_id, phone_number) -> mapping
        self.batch_call_mappings: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.call_sessions: Dict[str, Dict[str, Any]] = {}
        # (provider, provider_call_id) -> log
        self.call_logs: Dict[Tuple[str, str], Dict[str, Any]] = {}
        # provider_call_id -> summary
        self.call_summaries: Dict[str, Dict[str, Any]] = {}
        self.relatives: Dict[str, Dict[str, Any]] = {}
        # Stands in for the unique-key conflict handling a real database does.
        self._lock = threading.Lock()

    def _snapshot(self, table: Dict[Any, Dict[str, Any]]) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(row) for row in table.values()]

    # Audit log
    def insert_webhook_event(self, row: Dict[str, Any]) -> Dict[str, Any]:
        obj = {"id": str(uuid4()), "received_at": _iso(None), **row}
        with self._lock:
            self.webhook_events.append(obj)
        return obj

    # Batch call mappings
    def create_batch_mapping(self, batch_id: str, phone_number: str, household_id: str, relative_id: str, created_at: Optional[datetime] = None) -> Dict[str, Any]:
        obj = {
            "id": str(uuid4()),
            "batch_id": batch_id,
            "phone_number": phone_number,
            "household_id": household_id,
            "relative_id": relative_id,
            "provider_call_id": None,
            "resolved_at": None,
            "created_at": _iso(created_at),
        }
        with self._lock:
            self.batch_call_mappings[(batch_id, phone_number)] = obj
        return obj

    def find_batch_mapping(self, batch_id: str, phone_number: str) -> Optional[Dict[str, Any]]:
        found = self.batch_call_mappings.get((batch_id, phone_number))
        return dict(found) if found else None

    def find_pending_batch_mappings(self, phone_number: str, since: datetime, limit: int = 5) -> List[Dict[str, Any]]:
        items = [
            dict(m) for m in self._snapshot(self.batch_call_mappings)
            if m["phone_number"] == phone_number
            and m["provider_call_id"] is None
            and _parse(m["created_at"]) >= since
        ]
        items.sort(key=lambda m: m["created_at"], reverse=True)
        return items[:limit]

    def stamp_batch_mapping(self, batch_id: str, phone_number: str, provider_call_id: str, resolved_at: datetime) -> bool:
        with self._lock:
            mapping = self.batch_call_mappings.get((batch_id, phone_number))
            if not mapping or mapping["provider_call_id"] is not None:
                return False
            mapping["provider_call_id"] = provider_call_id
            mapping["resolved_at"] = _iso(resolved_at)
            return True

    # Call sessions
    def create_call_session(self, household_id: str, relative_id: str, session_id: Optional[str] = None, created_at: Optional[datetime] = None, provider: str = PROVIDER_IN_APP, call_type: str = CALL_TYPE_IN_APP) -> Dict[str, Any]:
        sid = session_id or str(uuid4())
        obj = {
            "id": sid,
            "household_id": household_id,
            "relative_id": relative_id,
            "provider": provider,
            "call_type": call_type,
            "created_at": _iso(created_at),
        }
        with self._lock:
            self.call_sessions[sid] = obj
        return obj

    def get_call_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        found = self.call_sessions.get(str(session_id))
        return dict(found) if found else None

    def find_recent_in_app_sessions(self, since: datetime, limit: int = 1) -> List[Dict[str, Any]]:
        items = [
            dict(s) for s in self._snapshot(self.call_sessions)
            if s["provider"] == PROVIDER_IN_APP
            and s["call_type"] == CALL_TYPE_IN_APP
            and _parse(s["created_at"]) >= since
        ]
        items.sort(key=lambda s: s["created_at"], reverse=True)
        return items[:limit]

    # Call logs
    def find_call_log(self, provider_call_id: str) -> Optional[Dict[str, Any]]:
        for log in self._snapshot(self.call_logs):
            pcid = log.get("provider_call_id")
            if pcid == provider_call_id:
                return dict(log)
        return None

    def find_resolved_call_log(self, provider_call_id: str) -> Optional[Dict[str, Any]]:
        for log in self._snapshot(self.call_logs):
            pcid = log.get("provider_call_id")
            if pcid == provider_call_id and log.get("household_id") and log.get("relative_id"):
                return dict(log)
        return None

    def find_in_app_call_log(self, provider_call_id: str) -> Optional[Dict[str, Any]]:
        log = self.call_logs.get((PROVIDER_IN_APP, provider_call_id))
        if log and log.get("call_type") == CALL_TYPE_IN_APP:
            return dict(log)
        return None

    def upsert_call_log(self, row: Dict[str, Any]) -> Dict[str, Any]:
        key = (row["provider"], row["provider_call_id"])
        with self._lock:
            existing = self.call_logs.get(key)
            if existing is None:
                existing = {"id": str(uuid4())}
                self.call_logs[key] = existing
            existing.update(_without_nulls(row))
            return dict(existing)

    def upsert_call_summary(self, row: Dict[str, Any]) -> Dict[str, Any]:
        key = row["provider_call_id"]
        with self._lock:
            existing = self.call_summaries.get(key)
            if existing is None:
                existing = {"id": str(uuid4()), "created_at": _iso(None)}
                self.call_summaries[key] = existing
            existing.update(_without_nulls(row, keep=SUMMARY_DERIVED_FIELDS))
            return dict(existing)

    def attach_audio(self, call_log_id: str, provider_call_id: str, audio_base64: Optional[str], audio_url: Optional[str]) -> None:
        with self._lock:
            for log in self.call_logs.values():
                if log["id"] == call_log_id:
                    if audio_base64:
                        log["audio_base64"] = audio_base64
                    if audio_url:
                        log["audio_recording_url"] = audio_url
            summary = self.call_summaries.get(provider_call_id)
            if summary is not None and audio_base64:
                summary["full_audio_base64"] = audio_base64

    # Care-recipient directory
    def create_relative(self, household_id: str, phone_e164: str, first_name: str = "", last_name: str = "", relative_id: Optional[str] = None) -> Dict[str, Any]:
        rid = relative_id or str(uuid4())
        obj = {
            "id": rid,
            "household_id": household_id,
            "first_name": first_name,
            "last_name": last_name,
            "phone_e164": phone_e164,
        }
        with self._lock:
            self.relatives[rid] = obj
        return obj

    def find_relatives_by_phone(self, phone_e164: str) -> List[Dict[str, Any]]:
        return [dict(r) for r in self._snapshot(self.relatives) if r["phone_e164"] == phone_e164]


class SupabaseDB:
    def __init__(self, client: Client) -> None:
        self.client = client

    # Audit log
    def insert_webhook_event(self, row: Dict[str, Any]) -> Dict[str, Any]:
        res = self.client.table(WEBHOOK_EVENTS).insert(row).execute()
        return (res.data or [row])[0]

    # Batch call mappings
    def create_batch_mapping(self, batch_id: str, phone_number: str, household_id: str, relative_id: str, created_at: Optional[datetime] = None) -> Dict[str, Any]:
        row = {
            "batch_id": batch_id,
            "phone_number": phone_number,
            "household_id": household_id,
            "relative_id": relative_id,
            "created_at": _iso(created_at),
        }
        res = self.client.table(BATCH_CALL_MAPPINGS).insert(row).execute()
        return (res.data or [])[0]

    def find_batch_mapping(self, batch_id: str, phone_number: str) -> Optional[Dict[str, Any]]:
        res = (
            self.client.table(BATCH_CALL_MAPPINGS)
            .select("batch_id, household_id, relative_id, phone_number, provider_call_id")
            .eq("batch_id", batch_id)
            .eq("phone_number", phone_number)
            .limit(1)
            .execute()
        )
        return (res.data or [None])[0]

    def find_pending_batch_mappings(self, phone_number: str, since: datetime, limit: int = 5) -> List[Dict[str, Any]]:
        res = (
            self.client.table(BATCH_CALL_MAPPINGS)
            .select("batch_id, household_id, relative_id, phone_number, created_at")
            .eq("phone_number", phone_number)
            .is_("provider_call_id", "null")
            .gte("created_at", since.isoformat())
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return res.data or []

    def stamp_batch_mapping(self, batch_id: str, phone_number: str, provider_call_id: str, resolved_at: datetime) -> bool:
        # Conditional update: only the first delivery to reach an un-stamped row wins.
        res = (
            self.client.table(BATCH_CALL_MAPPINGS)
            .update({"provider_call_id": provider_call_id, "resolved_at": resolved_at.isoformat()})
            .eq("batch_id", batch_id)
            .eq("phone_number", phone_number)
            .is_("provider_call_id", "null")
            .execute()
        )
        return bool(res.data)

    # Call sessions
    def create_call_session(self, household_id: str, relative_id: str, session_id: Optional[str] = None, created_at: Optional[datetime] = None, provider: str = PROVIDER_IN_APP, call_type: str = CALL_TYPE_IN_APP) -> Dict[str, Any]:
        row = {
            "household_id": household_id,
            "relative_id": relative_id,
            "provider": provider,
            "call_type": call_type,
            "created_at": _iso(created_at),
        }
        if session_id:
            row["id"] = session_id
        res = self.client.table(CALL_SESSIONS).insert(row).execute()
        return (res.data or [])[0]

    def get_call_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        res = self.client.table(CALL_SESSIONS).select("id, household_id, relative_id").eq("id", str(session_id)).limit(1).execute()
        return (res.data or [None])[0]

    def find_recent_in_app_sessions(self, since: datetime, limit: int = 1) -> List[Dict[str, Any]]:
        res = (
            self.client.table(CALL_SESSIONS)
            .select("id, household_id, relative_id, created_at")
            .eq("provider", PROVIDER_IN_APP)
            .eq("call_type", CALL_TYPE_IN_APP)
            .gte("created_at", since.isoformat())
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return res.data or []

    # Call logs
    def find_call_log(self, provider_call_id: str) -> Optional[Dict[str, Any]]:
        res = self.client.table(CALL_LOGS).select("id, provider, household_id, relative_id").eq("provider_call_id", provider_call_id).limit(1).execute()
        return (res.data or [None])[0]

    def find_resolved_call_log(self, provider_call_id: str) -> Optional[Dict[str, Any]]:
        res = (
            self.client.table(CALL_LOGS)
            .select("id, household_id, relative_id")
            .eq("provider_call_id", provider_call_id)
            .not_.is_("household_id", "null")
            .not_.is_("relative_id", "null")
            .limit(1)
            .execute()
        )
        return (res.data or [None])[0]

    def find_in_app_call_log(self, provider_call_id: str) -> Optional[Dict[str, Any]]:
        res = (
            self.client.table(CALL_LOGS)
            .select("household_id, relative_id, session_id")
            .eq("provider_call_id", provider_call_id)
            .eq("provider", PROVIDER_IN_APP)
            .eq("call_type", CALL_TYPE_IN_APP)
            .limit(1)
            .execute()
        )
        return (res.data or [None])[0]

    def upsert_call_log(self, row: Dict[str, Any]) -> Dict[str, Any]:
        res = self.client.table(CALL_LOGS).upsert(_without_nulls(row), on_conflict=CALL_LOG_CONFLICT).execute()
        return (res.data or [row])[0]

    def upsert_call_summary(self, row: Dict[str, Any]) -> Dict[str, Any]:
        res = self.client.table(CALL_SUMMARIES).upsert(_without_nulls(row, keep=SUMMARY_DERIVED_FIELDS), on_conflict=CALL_SUMMARY_CONFLICT).execute()
        return (res.data or [row])[0]

    def attach_audio(self, call_log_id: str, provider_call_id: str, audio_base64: Optional[str], audio_url: Optional[str]) -> None:
        log_update = _without_nulls({"audio_base64": audio_base64 or None, "audio_recording_url": audio_url or None})
        if log_update:
            self.client.table(CALL_LOGS).update(log_update).eq("id", call_log_id).execute()
        if audio_base64:
            self.client.table(CALL_SUMMARIES).update({"full_audio_base64": audio_base64}).eq("provider_call_id", provider_call_id).execute()

    # Care-recipient directory
    def create_relative(self, household_id: str, phone_e164: str, first_name: str = "", last_name: str = "", relative_id: Optional[str] = None) -> Dict[str, Any]:
        row = {"household_id": household_id, "phone_e164": phone_e164, "first_name": first_name, "last_name": last_name}
        if relative_id:
            row["id"] = relative_id
        res = self.client.table(RELATIVES).insert(row).execute()
        return (res.data or [])[0]

    def find_relatives_by_phone(self, phone_e164: str) -> List[Dict[str, Any]]:
        res = self.client.table(RELATIVES).select("id, household_id, first_name, last_name").eq("phone_e164", phone_e164).execute()
        return res.data or []


_client: Optional[Client] = None
_db_instance: Optional[Any] = None


def get_db():
    global _client, _db_instance

    settings = get_settings()
    if settings.use_supabase:
        if _client is None:
            _client = create_client(settings.supabase_url, settings.supabase_service_role_key)
        if _db_instance is None or not isinstance(_db_instance, SupabaseDB):
            _db_instance = SupabaseDB(_client)
        return _db_instance
    if _db_instance is None or not isinstance(_db_instance, InMemoryDB):
        _db_instance = InMemoryDB()
    return _db_instance
