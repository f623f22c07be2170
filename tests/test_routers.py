"""HTTP surface tests: Z-API webhook, payments webhook, admin API."""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.routers import admin, payments, webhook
from app.state.session import Stage
from app.voice.stt import MockSTT

from conftest import make_premium, make_record

PHONE = "244923000111"


@pytest.fixture
def stt():
    return MockSTT(transcript="sou a Ana")


@pytest.fixture
def client(orchestrator, store, stt, monkeypatch):
    # No `with` block: the lifespan (database, real collaborators) never runs
    app.dependency_overrides[webhook.orchestrator_dep] = lambda: orchestrator
    app.dependency_overrides[webhook.stt_dep] = lambda: stt
    app.dependency_overrides[payments.store_dep] = lambda: store
    app.dependency_overrides[admin.store_dep] = lambda: store
    monkeypatch.setattr(admin, "ADMIN_TOKEN", "admin-secret")
    monkeypatch.setattr(payments, "PAYMENT_WEBHOOK_SECRET", "pay-secret")
    yield TestClient(app)
    app.dependency_overrides.clear()


def _callback(text="sou a Ana", message_id="m1", **overrides):
    body = {
        "type": "ReceivedCallback",
        "messageId": message_id,
        "phone": PHONE,
        "momment": 1741608000000,
        "fromMe": False,
        "senderName": "Ana Paula",
        "text": {"message": text},
    }
    body.update(overrides)
    return body


# ─── Health ──────────────────────────────────────────────────────────────────

class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok", "version": "2.0.0"}
        assert client.get("/healthz").status_code == 200
        assert client.get("/ping").json()["status"] == "awake"


# ─── Z-API webhook ───────────────────────────────────────────────────────────

class TestZApiWebhook:
    def test_unparseable_body(self, client):
        r = client.post("/zapi-webhook", content=b"not json", headers={"Content-Type": "application/json"})
        assert r.status_code == 200
        assert r.json() == {"status": "invalid_payload"}

    def test_non_object_body(self, client):
        assert client.post("/zapi-webhook", json=[1, 2]).json()["status"] == "invalid_payload"

    def test_status_callbacks_ignored(self, client, transport):
        r = client.post("/zapi-webhook", json=_callback(type="MessageStatusCallback"))
        assert r.json()["status"] == "ignored_non_received"
        assert transport.sent == []

    def test_own_messages_ignored(self, client):
        assert client.post("/zapi-webhook", json=_callback(fromMe=True)).json()["status"] == "ignored_from_me"

    def test_no_text_or_audio(self, client):
        body = _callback()
        del body["text"]
        assert client.post("/zapi-webhook", json=body).json()["status"] == "no_text_or_audio"

    def test_blank_text(self, client):
        assert client.post("/zapi-webhook", json=_callback(text="   ")).json()["status"] == "no_text_or_audio"

    def test_free_student_hits_paywall(self, client, transport):
        assert client.post("/zapi-webhook", json=_callback(text="oi")).json()["status"] == "paywall"
        assert len(transport.texts_to(PHONE)) == 1

    def test_premium_student_ok(self, client, durable, transport):
        durable.upsert(PHONE, make_premium(phone=PHONE, days=3650).to_fields())
        assert client.post("/zapi-webhook", json=_callback()).json()["status"] == "ok"
        assert durable.get(PHONE)["name"] == "Ana"
        assert len(transport.sent) == 1

    def test_redelivery_ignored(self, client, durable, transport):
        durable.upsert(PHONE, make_premium(phone=PHONE, days=3650).to_fields())
        client.post("/zapi-webhook", json=_callback())
        r = client.post("/zapi-webhook", json=_callback())
        assert r.json()["status"] == "duplicate_ignored"
        assert len(transport.sent) == 1

    def test_voice_note_transcribed(self, client, durable, stt):
        durable.upsert(PHONE, make_premium(phone=PHONE, days=3650).to_fields())
        body = _callback(audio={"audioUrl": "https://cdn.z-api.io/voice/abc.ogg"})
        del body["text"]
        assert client.post("/zapi-webhook", json=body).json()["status"] == "ok_audio"
        assert stt.urls == ["https://cdn.z-api.io/voice/abc.ogg"]
        assert durable.get(PHONE)["name"] == "Ana"

    def test_voice_note_transcription_fails(self, client, stt, transport, durable):
        stt.transcript = None
        body = _callback(audioUrl="https://cdn.z-api.io/voice/abc.ogg")
        del body["text"]
        assert client.post("/zapi-webhook", json=body).json()["status"] == "audio_transcription_failed"
        assert "áudio" in transport.texts_to(PHONE)[0]
        assert durable.get(PHONE) is None

    def test_voice_note_without_stt(self, client, transport):
        app.dependency_overrides[webhook.stt_dep] = lambda: None
        body = _callback(voice={"url": "https://cdn.z-api.io/voice/abc.ogg"})
        del body["text"]
        assert client.post("/zapi-webhook", json=body).json()["status"] == "audio_transcription_failed"

    def test_processing_error_still_200(self, client, orchestrator):
        orchestrator.process = AsyncMock(side_effect=RuntimeError("boom"))
        r = client.post("/zapi-webhook", json=_callback())
        assert r.status_code == 200
        assert r.json() == {"status": "error"}


# ─── Payments ────────────────────────────────────────────────────────────────

def _checkout(reference=PHONE, metadata=None, event_type="checkout.session.completed"):
    return {
        "type": event_type,
        "data": {"object": {"client_reference_id": reference, "metadata": metadata or {}}},
    }


class TestPaymentsWebhook:
    def test_missing_secret_rejected(self, client, durable):
        r = client.post("/payments/webhook", json=_checkout())
        assert r.status_code == 401
        assert durable.get(PHONE) is None

    def test_wrong_secret_rejected(self, client):
        r = client.post("/payments/webhook", json=_checkout(), headers={"X-Webhook-Secret": "nope"})
        assert r.status_code == 401

    def test_completed_checkout_grants_premium(self, client, durable):
        r = client.post(
            "/payments/webhook",
            json=_checkout(reference="+244 923-000-111"),
            headers={"X-Webhook-Secret": "pay-secret"},
        )
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "premium_granted"
        assert body["phone"] == PHONE
        assert body["premium_until"]
        row = durable.get(PHONE)
        assert row["plan"] == "premium"
        assert row["payment_provider"] == "stripe"

    def test_metadata_phone_and_days(self, client, durable):
        body = {"type": "payment.succeeded", "metadata": {"phone": PHONE, "days": 7}}
        r = client.post("/payments/webhook", json=body, headers={"X-Webhook-Secret": "pay-secret"})
        assert r.json()["status"] == "premium_granted"
        until = durable.get(PHONE)["premium_until"]
        assert timedelta(days=6) < until - datetime.now(timezone.utc) <= timedelta(days=7)

    def test_other_events_ignored(self, client, durable):
        r = client.post(
            "/payments/webhook",
            json=_checkout(event_type="invoice.created"),
            headers={"X-Webhook-Secret": "pay-secret"},
        )
        assert r.json()["status"] == "ignored"
        assert durable.get(PHONE) is None

    def test_no_reference(self, client):
        r = client.post("/payments/webhook", json=_checkout(reference=None), headers={"X-Webhook-Secret": "pay-secret"})
        assert r.json()["status"] == "no_reference"

    def test_unconfigured_secret_skips_check(self, client, monkeypatch):
        monkeypatch.setattr(payments, "PAYMENT_WEBHOOK_SECRET", "")
        assert client.post("/payments/webhook", json=_checkout()).json()["status"] == "premium_granted"


# ─── Admin ───────────────────────────────────────────────────────────────────

AUTH = {"X-Admin-Token": "admin-secret"}


class TestAdminAuth:
    def test_missing_token(self, client):
        assert client.get("/admin/stats").status_code == 401

    def test_wrong_token(self, client):
        assert client.get("/admin/stats", headers={"X-Admin-Token": "guess"}).status_code == 401

    def test_query_token(self, client):
        assert client.get("/admin/stats?token=admin-secret").status_code == 200

    def test_unconfigured_token_rejects_everything(self, client, monkeypatch):
        monkeypatch.setattr(admin, "ADMIN_TOKEN", "")
        assert client.get("/admin/stats", headers={"X-Admin-Token": ""}).status_code == 401
        assert client.get("/admin/stats", headers=AUTH).status_code == 401


class TestAdminEntitlement:
    def test_grant_and_status(self, client):
        r = client.post(f"/admin/students/{PHONE}/premium?days=15", headers=AUTH)
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "premium"
        assert body["plan"] == "premium"
        assert body["payment_provider"] == "admin"

        status = client.get(f"/admin/students/{PHONE}/premium", headers=AUTH).json()
        assert status["premium_until"] == body["premium_until"]

    def test_grant_rejects_non_positive_days(self, client):
        assert client.post(f"/admin/students/{PHONE}/premium?days=0", headers=AUTH).status_code == 400

    def test_invalid_phone(self, client):
        assert client.get("/admin/students/abc/premium", headers=AUTH).status_code == 400

    def test_revoke(self, client, durable):
        client.post(f"/admin/students/{PHONE}/premium", headers=AUTH)
        r = client.delete(f"/admin/students/{PHONE}/premium", headers=AUTH)
        assert r.status_code == 200
        assert r.json()["status"] == "expired"
        assert r.json()["plan"] == "free"
        assert durable.get(PHONE)["plan"] == "free"

    def test_revoke_unknown(self, client):
        assert client.delete(f"/admin/students/{PHONE}/premium", headers=AUTH).status_code == 404

    def test_status_unknown(self, client):
        assert client.get(f"/admin/students/{PHONE}/premium", headers=AUTH).status_code == 404


class TestAdminStats:
    def test_stats(self, client, durable):
        now = datetime.now(timezone.utc)
        durable.upsert("1", make_record(
            phone="1", stage=Stage.LEARNING, target_language="en", last_message_at=now - timedelta(hours=1),
            premium_until=now + timedelta(days=5),
        ).to_fields())
        durable.upsert("2", make_record(phone="2", last_message_at=now - timedelta(days=3)).to_fields())

        body = client.get("/admin/stats", headers=AUTH).json()
        assert body["total"] == 2
        assert body["by_language"] == {"en": 1, "none": 1}
        assert body["by_stage"] == {"learning": 1, "ask_name": 1}
        assert body["premium_active"] == 1
        assert body["active_24h"] == 1
        assert body["persist_failures"] == 0
        assert [s["phone"] for s in body["students"]] == ["1", "2"]
        assert body["students"][0]["entitlement"] == "premium"


class TestAdminDashboard:
    def test_requires_token(self, client):
        assert client.get("/admin/dashboard").status_code == 401

    def test_renders_student_list(self, client, durable):
        now = datetime.now(timezone.utc)
        durable.upsert("1", make_record(
            phone="1", stage=Stage.LEARNING, target_language="fr", name="<b>Ana</b>",
            lesson_index=1, part_index=2, last_message_at=now - timedelta(hours=1),
        ).to_fields())
        durable.upsert("2", make_record(phone="2", last_message_at=now - timedelta(days=3)).to_fields())

        r = client.get("/admin/dashboard?token=admin-secret")
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/html")
        page = r.text
        assert "Total de alunos" in page
        assert "<td>&lt;b&gt;Ana&lt;/b&gt;</td>" in page
        assert "<b>Ana</b>" not in page
        assert "<td>2.3</td>" in page
        assert "fr: 1" in page
        assert page.count("<tr><td>") == 2
