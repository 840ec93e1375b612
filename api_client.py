import logging

import requests

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Raised when the record API answers with a non-success status."""

    def __init__(self, message=None, status_code=None, code=None, payload=None):
        super().__init__(message or "Request failed")
        self.message = message
        self.status_code = status_code
        self.code = code
        self.payload = payload or {}


class ApiConnectionError(ApiError):
    """Raised when the record API could not be reached at all."""


class HiringApiClient:
    """
    Client for the hiring record API (students, offers, appointments, slots).

    Every call returns the decoded JSON body on a 2xx response and raises
    ApiError otherwise. Transport failures raise ApiConnectionError.
    """

    def __init__(self, base_url, timeout=15, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    def _url(self, path):
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(self, method, path, **kwargs):
        url = self._url(path)
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"{method} {url} failed: {e}")
            raise ApiConnectionError(str(e)) from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {"data": data}

        if not response.ok:
            logger.warning(f"{method} {url} returned {response.status_code}: {data.get('message')}")
            raise ApiError(
                data.get("message"),
                status_code=response.status_code,
                code=data.get("code"),
                payload=data,
            )
        return data

    # ---------------- students ---------------- #
    def list_students(self, page=1, limit=10):
        """
        Fetch one page of the candidate roster.

        Returns:
            (students, total) where total comes from the pagination block
        """
        data = self._request("GET", "students", params={"page": page, "limit": limit})
        total = (data.get("pagination") or {}).get("total") or 0
        return data.get("data") or [], total

    def get_student(self, student_id):
        data = self._request("GET", f"students/{student_id}")
        return data.get("student") or {}

    # ---------------- offers ---------------- #
    def list_offers(self):
        return self._request("GET", "offers").get("offers") or []

    def get_offer_status(self, candidate_id):
        """Return the offer status for a candidate, or None when no offer exists."""
        try:
            data = self._request("GET", f"offers/{candidate_id}/status")
        except ApiError as e:
            if e.status_code == 404:
                return None
            raise
        return data.get("status")

    def create_offer_record(self, candidate_id, email, status="pending"):
        return self._request(
            "POST",
            "offers/create-record",
            json={"candidateId": candidate_id, "email": email, "status": status},
        )

    def check_offer_status(self, email):
        data = self._request("GET", "offers/check-status", params={"email": email})
        return data.get("offer") or {}

    def respond_to_offer(self, email, action):
        return self._request("POST", "offers/respond", json={"email": email, "status": action})

    # ---------------- appointments ---------------- #
    def list_appointments(self):
        return self._request("GET", "appointments").get("appointments") or []

    def create_appointment(self, payload):
        return self._request("POST", "appointments", json=payload)

    def mark_letter_collected(self, appointment_id):
        return self._request("PATCH", f"appointments/{appointment_id}/collected")

    # ---------------- slots ---------------- #
    def list_slot_dates(self):
        return self._request("GET", "slots/dates").get("dates") or []

    def get_slot_availability(self, date):
        data = self._request("GET", "slots", params={"date": date})
        return {slot: data.get(slot, 0) for slot in ("2-3", "3-4")}
