import logging
import math

from api_client import ApiError
from offers import ACCEPTED, OFFER_STATUSES

logger = logging.getLogger(__name__)

PAGE_SIZES = (10, 20, 50, 100)

ROSTER_FILTERS = ("sent", "not-sent")
OFFER_FILTERS = ("all",) + OFFER_STATUSES + ("sent",)


def page_args(args, default_size=10):
    """Read ``page`` and ``limit`` from a query string, falling back to sane values."""
    try:
        page = max(1, int(args.get("page", 1)))
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(args.get("limit", default_size))
    except (TypeError, ValueError):
        limit = default_size
    if limit not in PAGE_SIZES:
        limit = default_size
    return page, limit


def fetch_offer_statuses(api, students):
    """Backend offer status per candidate id; None when unknown or missing."""
    statuses = {}
    for student in students:
        candidate_id = str(student.get("_id"))
        try:
            statuses[candidate_id] = api.get_offer_status(candidate_id)
        except ApiError as e:
            logger.error(f"Error fetching offer status for {candidate_id}: {e}")
            statuses[candidate_id] = None
    return statuses


def _contains(value, needle):
    return bool(value) and needle in str(value).lower()


def filter_students(students, search="", status_filter=None, statuses=None):
    statuses = statuses or {}
    needle = (search or "").strip().lower()
    result = []
    for student in students:
        if needle and not (
            _contains(student.get("fullName"), needle)
            or _contains(student.get("email"), needle)
            or _contains(student.get("collegeName"), needle)
        ):
            continue
        has_offer = bool(statuses.get(str(student.get("_id"))))
        if status_filter == "sent" and not has_offer:
            continue
        if status_filter == "not-sent" and has_offer:
            continue
        result.append(student)
    return result


def offer_candidate(offer):
    candidate = offer.get("candidateId")
    return candidate if isinstance(candidate, dict) else {"_id": candidate}


def filter_offers(offers, search="", status_filter="all", invited=()):
    needle = (search or "").strip().lower()
    result = []
    for offer in offers:
        candidate = offer_candidate(offer)
        if needle and not (
            _contains(candidate.get("fullName"), needle)
            or _contains(offer.get("email"), needle)
            or needle in str(candidate.get("mobile") or "")
        ):
            continue
        if status_filter == "sent":
            if str(offer.get("_id")) not in invited:
                continue
        elif status_filter in OFFER_STATUSES and offer.get("status") != status_filter:
            continue
        result.append(offer)
    return result


def offer_stats(offers, invited=()):
    return {
        "total": len(offers),
        "with_email": sum(1 for o in offers if o.get("email")),
        "accepted": sum(1 for o in offers if o.get("status") == ACCEPTED),
        "invited": sum(1 for o in offers if str(o.get("_id")) in invited),
    }


class Page:
    """A slice of an already-filtered list."""

    def __init__(self, items, page, per_page):
        self.total = len(items)
        self.per_page = per_page
        self.pages = max(1, math.ceil(self.total / per_page))
        self.page = min(max(1, page), self.pages)
        start = (self.page - 1) * per_page
        self.items = items[start:start + per_page]
        self.first = start + 1 if self.items else 0
        self.last = start + len(self.items)

    @property
    def has_prev(self):
        return self.page > 1

    @property
    def has_next(self):
        return self.page < self.pages
