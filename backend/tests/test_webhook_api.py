"""
Tests for the HTTP surface - POST /api/elevenlabs/webhook and GET /.
"""
import json
import time

import pytest
from fastapi.testclient import TestClient

from call_ingest.config import get_settings
from call_ingest.db import get_db
from call_ingest.main import app
from call_ingest.services.signature import sign

from conftest import HOUSEHOLD_A, RELATIVE_A, SECRET

URL = "/api/elevenlabs/webhook"


@pytest.fixture
def client(db, settings):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def _post(client, payload, secret=SECRET, ts=None, header=None):
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    if header is None:
        header = sign(body, secret, ts if ts is not None else int(time.time()))
    return client.post(URL, content=body, headers={"elevenlabs-signature": header, "content-type": "application/json"})


class TestWebhookEndpoint:
    def test_root(self, client):
        assert client.get("/").json() == {"status": "ok"}

    def test_missing_signature_is_401(self, client, db, make_payload):
        resp = client.post(URL, content=json.dumps(make_payload()).encode())
        assert resp.status_code == 401
        assert resp.text == "unauthorized"
        assert db.webhook_events == []

    def test_wrong_secret_is_401(self, client, db, make_payload):
        resp = _post(client, make_payload(), secret="not-the-secret")
        assert resp.status_code == 401
        assert db.webhook_events == []

    def test_stale_signature_is_401(self, client, make_payload):
        resp = _post(client, make_payload(), ts=int(time.time()) - 3600)
        assert resp.status_code == 401

    def test_accepted(self, client, db, make_payload):
        payload = make_payload(dynamic_variables={"secret__household_id": HOUSEHOLD_A, "secret__relative_id": RELATIVE_A})
        resp = _post(client, payload)
        assert resp.status_code == 200
        assert resp.text == "ok"
        assert len(db.call_logs) == 1

    def test_unresolved_is_still_200(self, client, db, make_payload):
        resp = _post(client, make_payload())
        assert resp.status_code == 200
        assert resp.text == "missing-identifiers"
        assert db.call_logs == {}
        assert len(db.webhook_events) == 1

    def test_orphan_audio_is_still_200(self, client, make_audio_payload):
        resp = _post(client, make_audio_payload())
        assert resp.status_code == 200
        assert resp.text == "audio-orphan"

    def test_malformed_is_still_200(self, client):
        resp = _post(client, b"not-json")
        assert resp.status_code == 200
        assert resp.text == "malformed-payload"
