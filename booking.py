import logging
from collections import OrderedDict
from datetime import date

from api_client import ApiConnectionError, ApiError

logger = logging.getLogger(__name__)

# Cutoffs are shown to the candidate only; the backend enforces them.
SLOTS = OrderedDict([
    ("2-3", {"window": "2:00 PM – 3:00 PM", "closes": "11:00 AM"}),
    ("3-4", {"window": "3:00 PM – 4:00 PM", "closes": "12:00 PM"}),
])

PAYLOAD_FIELDS = ("candidateId", "name", "email", "phone", "position", "date", "slot")


def slot_label(slot):
    info = SLOTS[slot]
    return f"{info['window']} (Booking closes at {info['closes']})"


def slot_window(slot):
    info = SLOTS.get(slot)
    return info["window"] if info else slot


def slot_choices():
    return [(slot, slot_label(slot)) for slot in SLOTS]


def format_date(value, long=False):
    """Render an API date (YYYY-MM-DD, optionally with a time part) for display."""
    try:
        day = date.fromisoformat(str(value)[:10])
    except ValueError:
        return value
    if long:
        return f"{day:%A, %B} {day.day}, {day.year}"
    return f"{day:%a, %b} {day.day}"


def prefill_from_link(args):
    """Pull the booking details carried by the invite link."""
    return {
        "candidateId": args.get("candidateId", ""),
        "name": args.get("name", ""),
        "email": args.get("email", ""),
        "position": args.get("position", ""),
    }


def lookup_phone(api, candidate_id):
    """Stored mobile number for the candidate, or "" when it cannot be fetched."""
    if not candidate_id:
        return ""
    try:
        student = api.get_student(candidate_id)
    except ApiError as e:
        logger.warning(f"Phone lookup for candidate {candidate_id} failed: {e}")
        return ""
    return student.get("mobile") or ""


def bookable_dates(api):
    try:
        return api.list_slot_dates()
    except ApiError as e:
        logger.error(f"Could not load bookable dates: {e}")
        return []


def build_payload(**fields):
    return {name: (fields.get(name) or "").strip() for name in PAYLOAD_FIELDS}


def submit_booking(api, payload):
    """
    Create the appointment.

    Returns (appointment, error_message); exactly one of them is set.
    """
    try:
        data = api.create_appointment(payload)
    except ApiConnectionError:
        return None, "Server error"
    except ApiError as e:
        return None, e.message or "Failed to book appointment"
    logger.info(f"Appointment booked for {payload['email']} on {payload['date']} ({payload['slot']})")
    return data.get("appointment") or payload, None


def group_appointments(appointments):
    """
    Group appointments by date, then by slot.

    Dates come out sorted; every date carries both slots even when one is
    empty.
    """
    grouped = {}
    for appointment in appointments:
        day = appointment.get("date")
        slots = grouped.setdefault(day, OrderedDict((slot, []) for slot in SLOTS))
        slots.setdefault(appointment.get("slot"), []).append(appointment)
    return OrderedDict((day, grouped[day]) for day in sorted(grouped, key=str))
