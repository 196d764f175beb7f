from enum import Enum
from datetime import datetime, timezone
from pydantic import BaseModel, Field, ValidationError, field_validator
from typing import Optional, Dict, Any, Iterable, Sequence

from ..errors import MalformedPayloadError


class CallOutcome(str, Enum):
    ANSWERED = "answered"
    FAILED = "failed"
    MISSED = "missed"
    BUSY = "busy"


class CallType(str, Enum):
    BATCH = "batch"
    IN_APP = "in_app"
    UNKNOWN = "unknown"


def deep_get(d: Any, path: Sequence[str], default: Any = None) -> Any:
    cur = d
    for key in path:
        if isinstance(cur, dict) and key in cur:
            cur = cur[key]
        else:
            return default
    return cur


def first_present(values: Iterable[Any]) -> Any:
    for v in values:
        if v is not None and v != "":
            return v
    return None


class CallEvent(BaseModel):
    provider_call_id: Optional[str] = None
    agent_id: Optional[str] = None
    raw_status: Optional[str] = None
    duration_seconds: Optional[int] = None
    started_at: Optional[datetime] = None
    callee_phone: Optional[str] = None
    batch_id: Optional[str] = None
    session_id: Optional[str] = None
    dynamic_variables: Dict[str, Any] = Field(default_factory=dict)
    data_collection: Dict[str, Any] = Field(default_factory=dict)
    evaluation: Dict[str, Any] = Field(default_factory=dict)
    summary: Optional[str] = None
    transcript_summary: Optional[str] = None
    call_successful: Optional[Any] = None
    transcript_url: Optional[str] = None
    audio_url: Optional[str] = None
    audio_base64: Optional[str] = None
    is_audio_only: bool = False

    @field_validator(
        "provider_call_id", "agent_id", "raw_status", "callee_phone", "batch_id", "session_id",
        "summary", "transcript_summary", "transcript_url", "audio_url", "audio_base64",
        mode="before",
    )
    @classmethod
    def _scalar_to_str(cls, v: Any) -> Any:
        # Ids and phone numbers sometimes arrive as JSON numbers.
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @classmethod
    def from_payload(cls, payload: Any) -> "CallEvent":
        """Pull the fields the webhook cares about out of a provider envelope.

        The provider is inconsistent about where it puts the callee phone and
        batch id, so several locations are tried in order.
        """
        if not isinstance(payload, dict):
            raise MalformedPayloadError("payload is not a JSON object")
        data = payload.get("data") or {}
        meta = deep_get(data, ["metadata"]) or {}
        analysis = deep_get(data, ["analysis"]) or {}
        init = deep_get(data, ["conversation_initiation_client_data"]) or {}
        dyn = deep_get(init, ["dynamic_variables"]) or {}
        for name, section in (("data", data), ("metadata", meta), ("analysis", analysis), ("conversation_initiation_client_data", init), ("dynamic_variables", dyn)):
            if not isinstance(section, dict):
                raise MalformedPayloadError(f"{name} is not an object")

        try:
            return cls._build(data, meta, analysis, init, dyn)
        except ValidationError as e:
            raise MalformedPayloadError(str(e)) from e

    @classmethod
    def _build(cls, data, meta, analysis, init, dyn) -> "CallEvent":
        started = meta.get("start_time_unix_secs")
        duration = meta.get("call_duration_secs")
        return cls(
            provider_call_id=data.get("conversation_id"),
            agent_id=data.get("agent_id"),
            raw_status=data.get("status"),
            duration_seconds=int(duration) if isinstance(duration, (int, float)) else None,
            started_at=datetime.fromtimestamp(started, tz=timezone.utc) if isinstance(started, (int, float)) else None,
            callee_phone=first_present([
                meta.get("called_number"),
                meta.get("callee_phone"),
                dyn.get("system__called_number"),
                data.get("phone_number"),
                deep_get(data, ["recipient", "phone_number"]),
            ]),
            batch_id=first_present([data.get("batch_id"), meta.get("batch_id"), init.get("batch_id")]),
            session_id=dyn.get("session_id"),
            dynamic_variables=dyn,
            data_collection=analysis.get("data_collection_results") or {},
            evaluation=analysis.get("evaluation_criteria_results") or {},
            summary=first_present([data.get("summary"), analysis.get("summary")]),
            transcript_summary=analysis.get("transcript_summary"),
            call_successful=analysis.get("call_successful"),
            transcript_url=meta.get("transcript_url"),
            audio_url=first_present([data.get("audio_url"), meta.get("audio_url")]),
            audio_base64=first_present([data.get("audio_base64"), data.get("full_audio")]),
            # Recorded audio arrives as its own delivery with no status or metadata.
            is_audio_only=bool(data.get("full_audio")) and not meta and not data.get("status"),
        )

    def collected(self, name: str) -> Any:
        """Data-collection value, unwrapping the provider's {"value": ...} form."""
        v = self.data_collection.get(name)
        if isinstance(v, dict) and "value" in v:
            return v["value"]
        return v


class Identity(BaseModel):
    household_id: str
    relative_id: str


class Resolution(BaseModel):
    identity: Identity
    strategy: str
    low_confidence: bool = False
    # Set when a batch mapping matched and should be stamped with the call id.
    batch_mapping_key: Optional[Dict[str, str]] = None


class CriteriaEvaluation(BaseModel):
    score: int = 0
    total: int = 0
    passed_criteria: list = Field(default_factory=list)
    failed_criteria: list = Field(default_factory=list)

    @property
    def quality_rating(self) -> str:
        return f"{self.score}/{self.total}" if self.total > 0 else "N/A"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "total": self.total,
            "passed_criteria": list(self.passed_criteria),
            "failed_criteria": list(self.failed_criteria),
            "quality_rating": self.quality_rating,
        }
