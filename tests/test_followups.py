"""Follow-ups on pending quotations."""
from datetime import date

import pytest

from app.models import QuotationFollowup
from app.services import followup_service
from app.services import quotation_lifecycle as lifecycle
from app.utils.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError


@pytest.fixture()
def draft(payload, salesperson):
    return lifecycle.create_quotation(payload(quotation_date=date.today().isoformat()), salesperson)


@pytest.fixture()
def pending(draft, salesperson):
    lifecycle.submit_quotation(draft["id"], salesperson)
    return draft


def test_add_and_list(pending, salesperson):
    followup_service.add_followup(pending["id"], {
        "followup_date": "2025-05-01", "note": "Called purchase", "followup_type": "call",
    }, salesperson)
    latest = followup_service.add_followup(pending["id"], {
        "followup_date": "2025-05-03", "note": "Sent revised drawing", "followup_type": "EMAIL",
        "next_followup_date": "2025-05-08",
    }, salesperson)
    assert latest["followup_type"] == "email"
    assert latest["next_followup_date"] == "2025-05-08"

    listed = followup_service.list_followups(pending["id"], salesperson)
    assert [f["note"] for f in listed] == ["Sent revised drawing", "Called purchase"]


def test_only_pending(draft, salesperson):
    with pytest.raises(ConflictError) as exc:
        followup_service.add_followup(draft["id"], {"followup_date": "2025-05-01", "note": "x"}, salesperson)
    assert exc.value.code == "not_pending"


@pytest.mark.parametrize("data, code", [
    ({"note": "no date"}, "followup_date_required"),
    ({"followup_date": "2025-05-01", "note": "   "}, "note_required"),
    ({"followup_date": "2025-05-01", "note": "hi", "followup_type": "fax"}, "invalid_followup_type"),
])
def test_validation(pending, salesperson, data, code):
    with pytest.raises(ValidationError) as exc:
        followup_service.add_followup(pending["id"], data, salesperson)
    assert exc.value.code == code
    assert QuotationFollowup.query.count() == 0


def test_complete_clears_next_date(pending, salesperson):
    followup = followup_service.add_followup(pending["id"], {
        "followup_date": "2025-05-01", "note": "Meeting at site", "followup_type": "site_visit",
        "next_followup_date": "2025-05-10",
    }, salesperson)

    done = followup_service.complete_followup(followup["id"], salesperson)
    assert done["is_completed"] is True
    assert done["completed_at"] is not None
    assert done["next_followup_date"] is None


def test_complete_access(pending, salesperson, other_salesperson):
    followup = followup_service.add_followup(pending["id"], {"followup_date": "2025-05-01", "note": "x"}, salesperson)
    with pytest.raises(ForbiddenError):
        followup_service.complete_followup(followup["id"], other_salesperson)
    with pytest.raises(NotFoundError):
        followup_service.complete_followup(9999, salesperson)


def test_api_round_trip(client, auth_headers, salesperson, pending):
    headers = auth_headers(salesperson)
    res = client.post(f"/api/quotations/{pending['id']}/followups",
                      json={"followup_date": "2025-05-01", "note": "WhatsApp reminder", "followup_type": "whatsapp"},
                      headers=headers)
    assert res.status_code == 201
    followup_id = res.get_json()["data"]["id"]

    res = client.put(f"/api/quotations/followups/{followup_id}/complete", headers=headers)
    assert res.status_code == 200
    assert res.get_json()["data"]["is_completed"] is True

    listed = client.get(f"/api/quotations/{pending['id']}/followups", headers=headers).get_json()["data"]
    assert len(listed) == 1
