"""
Offer response resolution.

A candidate reaches /respond from the links in the offer email. The backend
owns the offer and decides whether a decision is still allowed; this module
reads the current status, submits the decision when it is still pending and
maps every outcome onto one of the page states below.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from api_client import ApiConnectionError, ApiError

logger = logging.getLogger(__name__)

PENDING = "pending"
ACCEPTED = "accepted"
DECLINED = "declined"
EXPIRED = "expired"
OFFER_STATUSES = (PENDING, ACCEPTED, DECLINED, EXPIRED)

ACCEPT = "accept"
DECLINE = "decline"
ACTIONS = (ACCEPT, DECLINE)

# page states
CHECKING = "checking"
SUCCESS = "success"
ALREADY_PROCESSED = "already_processed"
ERROR = "error"
STATE_EXPIRED = "expired"
TERMINAL_STATES = (SUCCESS, ALREADY_PROCESSED, STATE_EXPIRED, ERROR)

# error codes the backend may put in the response body
CODE_ALREADY_PROCESSED = "OFFER_ALREADY_PROCESSED"
CODE_EXPIRED = "OFFER_EXPIRED"

MSG_INVALID_LINK = "Invalid response link. Please check your email for the correct link."
MSG_CHECK_UNREACHABLE = "Unable to connect to the server. Please try again."
MSG_CHECK_FAILED = "Unable to verify offer status. Please contact support."
MSG_SUBMIT_UNREACHABLE = "Unable to process your response. Please try again."
MSG_SUBMIT_FAILED = "An error occurred. Please try again."
MSG_AWAITING = "Please click Accept or Decline to respond to this offer."
MSG_EXPIRED = "This offer has expired. The 24-hour response period has passed."
MSG_PROCESSED = "This offer has already been processed."

ALREADY_PROCESSED_MESSAGES = {
    ACCEPTED: "You have already accepted this offer. Welcome to Sandevex! Our team will contact you soon.",
    DECLINED: "You have already declined this offer. Thank you for your response.",
}

SUCCESS_MESSAGES = {
    ACCEPT: (
        "🎉 Congratulations! Your acceptance has been recorded. Welcome to Sandevex!\n\n"
        "Our team will reach out to you shortly with further instructions regarding the onboarding process."
    ),
    DECLINE: (
        "Thank you for letting us know. We appreciate your response and wish you "
        "the best in your future endeavors."
    ),
}

TITLES = {
    ERROR: "Something Went Wrong",
    ALREADY_PROCESSED: "Already Responded",
    STATE_EXPIRED: "Offer Expired",
    CHECKING: "Respond to Your Offer",
}


def parse_timestamp(value):
    """Parse an ISO-8601 timestamp from the API (a trailing Z is accepted)."""
    if not value:
        return None
    if isinstance(value, dict):
        value = value.get("$date")
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class OfferResponse:
    state: str
    message: str
    action: Optional[str] = None
    offer: dict = field(default_factory=dict)
    submitted: bool = False

    @property
    def is_terminal(self):
        return self.state in TERMINAL_STATES

    @property
    def offer_status(self):
        return self.offer.get("status")

    @property
    def shows_choices(self):
        return self.state == CHECKING and self.offer_status == PENDING

    @property
    def shows_contact(self):
        return self.state in (ERROR, STATE_EXPIRED)

    @property
    def title(self):
        if self.state == SUCCESS:
            return "Welcome to Sandevex! 🎉" if self.action == ACCEPT else "Response Recorded"
        return TITLES.get(self.state, "Processing...")

    @property
    def sent_at(self):
        return parse_timestamp(self.offer.get("sentAt"))

    @property
    def expires_at(self):
        return parse_timestamp(self.offer.get("expiresAt"))

    def hours_left(self, now=None):
        expires_at = self.expires_at
        if expires_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        return max(0, round((expires_at - now).total_seconds() / 3600))

    def to_session(self):
        return {
            "state": self.state,
            "message": self.message,
            "action": self.action,
            "offer": self.offer,
            "submitted": self.submitted,
        }

    @classmethod
    def from_session(cls, data):
        return cls(**data)


def normalize_action(action):
    if not action:
        return None
    action = action.strip().lower()
    if action not in ACTIONS:
        logger.warning(f"Ignoring unknown offer action {action!r}")
        return None
    return action


def classify_rejection(error):
    """
    Map a refused submission onto a page state.

    A structured ``code`` wins; older backends only put the reason in the
    message text.
    """
    if error.code == CODE_ALREADY_PROCESSED:
        return ALREADY_PROCESSED
    if error.code == CODE_EXPIRED:
        return STATE_EXPIRED
    message = error.message or ""
    if "already been processed" in message:
        return ALREADY_PROCESSED
    if "expired" in message:
        return STATE_EXPIRED
    return ERROR


def submit_response(api, email, action, offer=None):
    offer = offer or {}
    try:
        api.respond_to_offer(email, action)
    except ApiConnectionError:
        return OfferResponse(ERROR, MSG_SUBMIT_UNREACHABLE, action, offer)
    except ApiError as e:
        state = classify_rejection(e)
        if state == ALREADY_PROCESSED:
            return OfferResponse(state, MSG_PROCESSED, action, offer)
        if state == STATE_EXPIRED:
            return OfferResponse(state, MSG_EXPIRED, action, offer)
        return OfferResponse(ERROR, e.message or MSG_SUBMIT_FAILED, action, offer)

    logger.info(f"Offer for {email} answered with {action}")
    return OfferResponse(SUCCESS, SUCCESS_MESSAGES[action], action, offer, submitted=True)


def resolve_offer_response(api, email, action=None):
    """
    Work out what the /respond page shows for ``email``.

    The status is always re-read first; a decision is only submitted while the
    offer is pending. The backend may still refuse it (it expired or was
    answered in the meantime) and that answer wins over the pre-check.
    """
    action = normalize_action(action)
    if not email:
        return OfferResponse(ERROR, MSG_INVALID_LINK, action)

    try:
        offer = api.check_offer_status(email)
    except ApiConnectionError:
        return OfferResponse(ERROR, MSG_CHECK_UNREACHABLE, action)
    except ApiError as e:
        return OfferResponse(ERROR, e.message or MSG_CHECK_FAILED, action)

    status = (offer or {}).get("status")
    if not status:
        logger.error(f"Offer status check for {email} returned no offer status")
        return OfferResponse(ERROR, MSG_CHECK_FAILED, action)
    if status != PENDING:
        if status == EXPIRED:
            return OfferResponse(STATE_EXPIRED, MSG_EXPIRED, action, offer)
        message = ALREADY_PROCESSED_MESSAGES.get(status, MSG_PROCESSED)
        return OfferResponse(ALREADY_PROCESSED, message, action, offer)

    if action:
        return submit_response(api, email, action, offer)

    return OfferResponse(CHECKING, MSG_AWAITING, None, offer)
