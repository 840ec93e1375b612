import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["ADMIN_PASSWORD"] = "letmein"
os.environ["MAIL_SUPPRESS_SEND"] = "true"

import pytest

import app as webapp
from api_client import ApiError
from models import db


class FakeApi:
    """In-memory stand-in for HiringApiClient that records every call."""

    def __init__(self):
        self.calls = []
        self.errors = {}
        self.offer = {
            "status": "pending",
            "sentAt": "2026-10-18T09:00:00Z",
            "expiresAt": "2026-10-19T09:00:00Z",
        }
        self.students = [
            {"_id": "s1", "fullName": "Asha Rao", "email": "asha@example.com",
             "mobile": "9000000001", "collegeName": "IIT Madras"},
            {"_id": "s2", "fullName": "Vikram Shah", "email": "vikram@example.com",
             "mobile": "9000000002", "collegeName": "NIT Trichy"},
        ]
        self.offer_statuses = {}
        self.offers = []
        self.appointments = []
        self.dates = ["2026-10-21", "2026-10-22"]
        self.availability = {"2-3": 2, "3-4": 0}

    def fail(self, name, error):
        self.errors[name] = error

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.errors:
            raise self.errors[name]

    def called(self, name):
        return [c for c in self.calls if c[0] == name]

    def list_students(self, page=1, limit=10):
        self._call("list_students", page, limit)
        return list(self.students), len(self.students)

    def get_student(self, student_id):
        self._call("get_student", student_id)
        for student in self.students:
            if student["_id"] == student_id:
                return dict(student)
        raise ApiError("Student not found", status_code=404)

    def list_offers(self):
        self._call("list_offers")
        return list(self.offers)

    def get_offer_status(self, candidate_id):
        self._call("get_offer_status", candidate_id)
        return self.offer_statuses.get(candidate_id)

    def create_offer_record(self, candidate_id, email, status="pending"):
        self._call("create_offer_record", candidate_id, email, status)
        self.offer_statuses[candidate_id] = status
        return {"offer": {"candidateId": candidate_id, "email": email, "status": status}}

    def check_offer_status(self, email):
        self._call("check_offer_status", email)
        return dict(self.offer)

    def respond_to_offer(self, email, action):
        self._call("respond_to_offer", email, action)
        return {"message": "ok"}

    def list_appointments(self):
        self._call("list_appointments")
        return list(self.appointments)

    def create_appointment(self, payload):
        self._call("create_appointment", payload)
        appointment = dict(payload, id=f"a{len(self.appointments) + 1}", letterCollected=False)
        self.appointments.append(appointment)
        return {"appointment": appointment}

    def mark_letter_collected(self, appointment_id):
        self._call("mark_letter_collected", appointment_id)
        return {}

    def list_slot_dates(self):
        self._call("list_slot_dates")
        return list(self.dates)

    def get_slot_availability(self, date):
        self._call("get_slot_availability", date)
        return dict(self.availability)


@pytest.fixture
def flask_app():
    webapp.app.config.update(
        TESTING=True,
        WTF_CSRF_ENABLED=False,
        SITE_URL="https://offers.example.com",
        EMAILJS_SERVICE_ID="service_test",
        EMAILJS_OFFER_TEMPLATE_ID="template_offer",
        EMAILJS_BOOKING_TEMPLATE_ID="template_booking",
        EMAILJS_PUBLIC_KEY="public_test",
        EMAILJS_PRIVATE_KEY=None,
    )
    with webapp.app.app_context():
        db.drop_all()
        db.create_all()
        yield webapp.app
        db.session.remove()


@pytest.fixture
def api(monkeypatch):
    fake = FakeApi()
    monkeypatch.setattr(webapp, "get_api", lambda: fake)
    return fake


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture
def admin_client(client):
    with client.session_transaction() as sess:
        sess["is_admin"] = True
    return client
