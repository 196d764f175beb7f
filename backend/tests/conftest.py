"""
Test configuration and fixtures.
Uses the in-memory store adapter; no Supabase or network access.
"""
import json
from datetime import datetime, timezone

import pytest

from call_ingest.config import Settings
from call_ingest.db import InMemoryDB
from call_ingest.services.signature import sign

SECRET = "whsec_test_secret"
BATCH_AGENT = "agent_batch_123"
IN_APP_AGENT = "agent_in_app_456"
NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)

HOUSEHOLD_A = "11111111-1111-1111-1111-111111111111"
HOUSEHOLD_B = "22222222-2222-2222-2222-222222222222"
RELATIVE_A = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"
RELATIVE_B = "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb"
PHONE = "+447700900123"


@pytest.fixture
def settings():
    return Settings(webhook_secret=SECRET, batch_agent_id=BATCH_AGENT, in_app_agent_id=IN_APP_AGENT)


@pytest.fixture
def db():
    return InMemoryDB()


@pytest.fixture
def make_payload():
    """Build a provider post-call envelope; keyword args override the defaults."""

    def _make(
        conversation_id="conv_001",
        agent_id=BATCH_AGENT,
        status="done",
        phone=PHONE,
        batch_id=None,
        dynamic_variables=None,
        data_collection=None,
        evaluation=None,
        **data_extra,
    ):
        metadata = {"call_duration_secs": 187, "start_time_unix_secs": int(NOW.timestamp()) - 300}
        if phone:
            metadata["called_number"] = phone
        data = {
            "conversation_id": conversation_id,
            "agent_id": agent_id,
            "status": status,
            "metadata": metadata,
            "analysis": {
                "data_collection_results": data_collection if data_collection is not None else {"mood_score": 4, "notes": "Chatted about the garden"},
                "evaluation_criteria_results": evaluation if evaluation is not None else {
                    "greeted_by_name": {"result": "success"},
                    "asked_about_medication": {"result": "failure"},
                },
                "transcript_summary": "Mum was cheerful and had lunch.",
                "call_successful": "success",
            },
            "conversation_initiation_client_data": {"dynamic_variables": dynamic_variables or {}},
        }
        if batch_id:
            data["batch_id"] = batch_id
        data.update(data_extra)
        return {"type": "post_call_transcription", "data": data}

    return _make


@pytest.fixture
def make_audio_payload():
    def _make(conversation_id="conv_001", agent_id=BATCH_AGENT, audio="UklGRiQAAABXQVZF"):
        return {"type": "post_call_audio", "data": {"conversation_id": conversation_id, "agent_id": agent_id, "full_audio": audio}}

    return _make


@pytest.fixture
def signed():
    """Serialize a payload and sign it at NOW (or a given unix timestamp)."""

    def _signed(payload, timestamp=None, secret=SECRET):
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        ts = int(NOW.timestamp()) if timestamp is None else timestamp
        return body, sign(body, secret, ts)

    return _signed
