import re

import pytest

import app as webapp
from api_client import ApiConnectionError, ApiError
from booking import format_date, group_appointments, slot_label

LINK = "/candidate/book-slot?name=Asha+Rao&email=asha%40example.com&position=Student&candidateId=s1"


@pytest.fixture
def confirmations(monkeypatch):
    sent = []
    monkeypatch.setattr(
        webapp, "send_booking_confirmation", lambda appointment, label: sent.append((appointment, label)) or True
    )
    return sent


def submit_button(body):
    return re.search(r'<button[^>]*id="confirm-slot"[^>]*>', body).group(0)


def test_form_is_prefilled_from_link_and_phone_lookup(client, api):
    body = client.get(LINK).get_data(as_text=True)
    assert 'value="Asha Rao"' in body
    assert 'value="asha@example.com"' in body
    assert "readonly" in body
    assert 'value="9000000001"' in body
    assert "Booking closes at 11:00 AM" in body
    assert "Booking closes at 12:00 PM" in body
    assert api.called("get_student") == [("get_student", "s1")]


def test_submit_disabled_until_date_chosen(client, api):
    body = client.get(LINK).get_data(as_text=True)
    assert "disabled" in submit_button(body)
    for day in api.dates:
        assert f'value="{day}"' in body


def test_phone_lookup_failure_is_swallowed(client, api):
    api.fail("get_student", ApiConnectionError("refused"))
    resp = client.get(LINK)
    assert resp.status_code == 200
    assert 'value="9000000001"' not in resp.get_data(as_text=True)


def test_successful_booking_redirects_to_confirmation(client, api, confirmations):
    resp = client.post(LINK, data={
        "candidate_id": "s1",
        "position": "Student",
        "name": "Asha R.",
        "email": "someone-else@example.com",
        "phone": "9000000009",
        "date": "2026-10-21",
        "slot": "3-4",
    })
    assert resp.status_code == 303
    assert resp.headers["Location"].endswith("/candidate/book-slot/confirmed")

    (call,) = api.called("create_appointment")
    assert call[1] == {
        "candidateId": "s1",
        "name": "Asha R.",
        "email": "asha@example.com",
        "phone": "9000000009",
        "position": "Student",
        "date": "2026-10-21",
        "slot": "3-4",
    }
    assert confirmations[0][1] == slot_label("3-4")

    confirmed = client.get(resp.headers["Location"]).get_data(as_text=True)
    assert 'http-equiv="refresh"' in confirmed
    assert "/thank-you" in confirmed
    assert "Confirmation mail sent to asha@example.com" in confirmed


def test_booking_without_date_is_not_submitted(client, api, confirmations):
    resp = client.post(LINK, data={"candidate_id": "s1", "name": "Asha", "date": "", "slot": "2-3"})
    assert resp.status_code == 200
    assert api.called("create_appointment") == []
    assert confirmations == []


def test_booking_failure_shows_server_message(client, api, confirmations):
    api.fail("create_appointment", ApiError("Booking for this slot has closed", status_code=400))
    resp = client.post(LINK, data={"candidate_id": "s1", "name": "Asha", "date": "2026-10-21", "slot": "2-3"})
    body = resp.get_data(as_text=True)
    assert resp.status_code == 200
    assert "Booking Failed: Booking for this slot has closed" in body
    assert confirmations == []
    assert len(api.called("create_appointment")) == 1


def test_confirmation_email_failure_does_not_block_booking(client, api, monkeypatch):
    monkeypatch.setattr(webapp, "send_booking_confirmation", lambda appointment, label: False)
    resp = client.post(LINK, data={"candidate_id": "s1", "name": "Asha", "date": "2026-10-21", "slot": "2-3"})
    assert resp.status_code == 303
    confirmed = client.get(resp.headers["Location"]).get_data(as_text=True)
    assert "Slot Confirmed: your booking is saved." in confirmed
    assert "Confirmation mail sent" not in confirmed


def test_thank_you_page(client):
    assert client.get("/thank-you").status_code == 200


def test_group_appointments_sorts_dates_and_keeps_both_slots():
    grouped = group_appointments([
        {"id": "a1", "date": "2026-10-22", "slot": "3-4"},
        {"id": "a2", "date": "2026-10-21", "slot": "2-3"},
        {"id": "a3", "date": "2026-10-22", "slot": "3-4"},
    ])
    assert list(grouped) == ["2026-10-21", "2026-10-22"]
    assert list(grouped["2026-10-21"]) == ["2-3", "3-4"]
    assert grouped["2026-10-21"]["3-4"] == []
    assert [a["id"] for a in grouped["2026-10-22"]["3-4"]] == ["a1", "a3"]


def test_format_date():
    assert format_date("2026-10-21") == "Wed, Oct 21"
    assert format_date("2026-10-21T00:00:00.000Z", long=True) == "Wednesday, October 21, 2026"
    assert format_date("soon") == "soon"
