"""HTTP tests for /api/quotations and /api/auth through the Flask test client."""
from datetime import date, timedelta

import pytest

from app.services import quotation_lifecycle
from app.services.sequence import financial_year_code
from app.utils.exceptions import SequenceBusyError

BASE = "/api/quotations"
FY = financial_year_code(date.today())


@pytest.fixture()
def today_payload(payload):
    def _make(**overrides):
        overrides.setdefault("quotation_date", date.today().isoformat())
        return payload(**overrides)
    return _make


@pytest.fixture()
def headers(auth_headers, salesperson):
    return auth_headers(salesperson)


@pytest.fixture()
def created(client, headers, today_payload):
    res = client.post(BASE, json=today_payload(), headers=headers)
    assert res.status_code == 201
    return res.get_json()["data"]


# ── Auth ─────────────────────────────────────────────────────────────────


def test_health(client):
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "healthy"


def test_login_and_me(client, salesperson):
    res = client.post("/api/auth/login", json={"email": "ANITA@example.com", "password": "Secret123!"})
    assert res.status_code == 200
    token = res.get_json()["data"]["access_token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    body = me.get_json()["data"]
    assert body["email"] == "anita@example.com"
    assert "password_hash" not in body


def test_login_rejects_bad_password(client, salesperson):
    res = client.post("/api/auth/login", json={"email": "anita@example.com", "password": "nope"})
    assert res.status_code == 401
    assert res.get_json()["code"] == "invalid_credentials"


def test_token_required(client):
    res = client.get(BASE)
    assert res.status_code == 401
    assert res.get_json()["success"] is False


# ── Create / read ────────────────────────────────────────────────────────


def test_create_returns_number(created):
    assert created["quotation_no"] == f"QT/{FY}/AB/001"
    assert set(created) == {"id", "quotation_no"}


def test_detail_includes_validity(client, headers, created):
    res = client.get(f"{BASE}/{created['id']}", headers=headers)
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["status"] == "draft"
    assert data["validity"]["remaining_days"] == 30
    assert data["validity"]["validity_state"] == "valid"
    assert data["total_value"] == 2714.0
    assert data["salesperson_name"] == "Anita Bhat"
    assert data["can_decide"] is True

    validity = client.get(f"{BASE}/{created['id']}/validity", headers=headers).get_json()["data"]
    assert validity["valid_until"] == (date.today() + timedelta(days=30)).isoformat()


def test_list(client, headers, created):
    res = client.get(BASE, headers=headers)
    assert res.status_code == 200
    assert [q["id"] for q in res.get_json()["data"]] == [created["id"]]
    assert client.get(f"{BASE}?status=won", headers=headers).get_json()["data"] == []


def test_validation_error_shape(client, headers, today_payload):
    res = client.post(BASE, json=today_payload(customer_id=None), headers=headers)
    assert res.status_code == 400
    body = res.get_json()
    assert body["success"] is False
    assert body["code"] == "customer_id_required"
    assert body["errors"] == {"customer_id": "required"}


def test_non_object_body_reads_as_empty(client, headers, created):
    res = client.post(BASE, json=[1], headers=headers)
    assert res.status_code == 400
    assert res.get_json()["code"] == "customer_id_required"

    res = client.post(f"{BASE}/{created['id']}/decision", json=["won"], headers=headers)
    assert res.status_code == 400
    assert res.get_json()["code"] == "invalid_decision"


def test_preview_next(client, headers, created):
    res = client.get(f"{BASE}/next", headers=headers)
    assert res.status_code == 200
    assert res.get_json()["data"]["quotation_no"] == f"QT/{FY}/AB/002"


def test_not_found_and_forbidden(client, auth_headers, other_salesperson, created, headers):
    assert client.get(f"{BASE}/9999", headers=headers).status_code == 404
    res = client.get(f"{BASE}/{created['id']}", headers=auth_headers(other_salesperson))
    assert res.status_code == 403
    assert res.get_json()["code"] == "forbidden"


# ── Transitions ──────────────────────────────────────────────────────────


def test_submit_and_decide(client, headers, created):
    qid = created["id"]
    res = client.post(f"{BASE}/{qid}/submit", headers=headers)
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "pending"

    res = client.post(f"{BASE}/{qid}/lost", json={}, headers=headers)
    assert res.status_code == 400
    assert res.get_json()["code"] == "comment_required"

    res = client.post(f"{BASE}/{qid}/won", json={"comment": "PO 4411"}, headers=headers)
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "won"

    res = client.post(f"{BASE}/{qid}/decision", json={"decision": "lost", "comment": "late"}, headers=headers)
    assert res.status_code == 409
    assert res.get_json()["code"] == "already_decided"

    latest = client.get(f"{BASE}/{qid}/decisions", headers=headers).get_json()["data"]["decision"]
    assert latest["decision"] == "won"
    assert latest["comment"] == "PO 4411"


def test_submit_twice(client, headers, created):
    client.post(f"{BASE}/{created['id']}/submit", headers=headers)
    res = client.post(f"{BASE}/{created['id']}/submit", headers=headers)
    assert res.status_code == 409
    assert res.get_json()["code"] == "invalid_transition"


def test_reissue(client, headers, today_payload):
    old_date = (date.today() - timedelta(days=45)).isoformat()
    source = client.post(BASE, json=today_payload(quotation_date=old_date), headers=headers).get_json()["data"]

    res = client.post(f"{BASE}/{source['id']}/reissue", json={"validity_days": 15}, headers=headers)
    assert res.status_code == 201
    new = res.get_json()["data"]
    assert new["reissued_from_id"] == source["id"]
    assert new["quotation_no"].startswith(f"QT/{FY}/AB/")

    detail = client.get(f"{BASE}/{new['id']}", headers=headers).get_json()["data"]
    assert detail["status"] == "pending"
    assert detail["version"] == "1.0"
    assert detail["quotation_date"] == date.today().isoformat()
    assert detail["validity_days"] == 15

    again = client.post(f"{BASE}/{source['id']}/reissue", json={}, headers=headers)
    assert again.status_code == 409
    assert again.get_json()["code"] == "already_reissued"


def test_reissue_requires_expiry(client, headers, created):
    res = client.post(f"{BASE}/{created['id']}/reissue", json={"validity_days": 30}, headers=headers)
    assert res.status_code == 409
    assert res.get_json()["code"] == "not_expired"


def test_edit_and_versions(client, headers, created):
    qid = created["id"]
    res = client.put(f"{BASE}/{qid}", json={"notes": "Updated freight", "validity_days": 45}, headers=headers)
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["version"] == "0.2"
    assert data["validity_days"] == 45

    versions = client.get(f"{BASE}/{qid}/versions", headers=headers).get_json()["data"]
    assert [v["version"] for v in versions] == ["0.2", "0.1"]


def test_delete(client, headers, created):
    res = client.delete(f"{BASE}/{created['id']}", headers=headers)
    assert res.status_code == 200
    assert client.get(f"{BASE}/{created['id']}", headers=headers).status_code == 404


# ── Error mapping ────────────────────────────────────────────────────────


def test_sequence_busy_is_retryable(client, headers, today_payload, monkeypatch):
    def _busy(initials, on_date=None):
        raise SequenceBusyError()

    monkeypatch.setattr(quotation_lifecycle, "next_quotation_number", _busy)
    res = client.post(BASE, json=today_payload(), headers=headers)
    assert res.status_code == 503
    assert res.headers["Retry-After"] == "1"
    assert res.get_json()["code"] == "sequence_busy"


def test_unexpected_error_is_generic(client, headers, today_payload, monkeypatch):
    def _boom(initials, on_date=None):
        raise RuntimeError("database exploded")

    monkeypatch.setattr(quotation_lifecycle, "next_quotation_number", _boom)
    res = client.post(BASE, json=today_payload(), headers=headers)
    assert res.status_code == 500
    body = res.get_json()
    assert body["code"] == "server_error"
    assert "exploded" not in body["error"]
