"""
Sending offers from the candidate roster.

Sending is two calls that cannot be made atomic: the email goes out through
EmailJS, then the offer record is created on the backend. Each send is
tracked in an OfferDispatch row so that

* only one send per candidate can be in flight (the unique candidate_id makes
  the claim atomic across requests and workers),
* an email that went out without a stored record is remembered as
  ``notified`` and reconciled on the next roster fetch.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError

from api_client import ApiError
from models import FAILED, NOTIFIED, RECORDED, SENDING, OfferDispatch, db
from notifications import NotificationError, describe_send_error, send_offer_email

logger = logging.getLogger(__name__)

SENT = "sent"
PARTIAL = "partial"
BUSY = "busy"
FAILED_OUTCOME = "failed"


@dataclass
class DispatchResult:
    outcome: str
    message: str
    dispatch: OfferDispatch = None

    @property
    def marks_sent(self):
        return self.outcome in (SENT, PARTIAL)

    @property
    def category(self):
        # flash category
        if self.outcome == SENT:
            return "success"
        if self.outcome in (PARTIAL, BUSY):
            return "warning"
        return "danger"


def _now():
    return datetime.utcnow()


def claim(student, stale_after):
    """
    Take the send slot for ``student``.

    Returns the claimed OfferDispatch, or None when another send is running
    or the offer already went out.
    """
    candidate_id = str(student["_id"])
    dispatch = OfferDispatch(
        candidate_id=candidate_id,
        email=student.get("email") or "",
        full_name=student.get("fullName"),
        state=SENDING,
    )
    db.session.add(dispatch)
    try:
        db.session.commit()
        return dispatch
    except IntegrityError:
        db.session.rollback()

    stale_before = _now() - timedelta(seconds=stale_after)
    reclaimable = or_(
        OfferDispatch.state == FAILED,
        and_(OfferDispatch.state == SENDING, OfferDispatch.updated_at < stale_before),
    )
    updated = (
        OfferDispatch.query
        .filter(OfferDispatch.candidate_id == candidate_id, reclaimable)
        .update(
            {
                "state": SENDING,
                "email": student.get("email") or "",
                "full_name": student.get("fullName"),
                "last_error": None,
                "updated_at": _now(),
            },
            synchronize_session=False,
        )
    )
    db.session.commit()
    if updated != 1:
        return None
    return OfferDispatch.query.filter_by(candidate_id=candidate_id).one()


def _set_state(dispatch, state, error=None):
    dispatch.state = state
    dispatch.last_error = error[:500] if error else None
    db.session.commit()


def dispatch_offer(api, student, stale_after=300):
    """Send the offer email to ``student`` and create the pending offer record."""
    name = student.get("fullName") or student.get("email")
    dispatch = claim(student, stale_after)
    if dispatch is None:
        existing = OfferDispatch.query.filter_by(candidate_id=str(student["_id"])).first()
        if existing is not None and existing.shows_as_sent:
            return DispatchResult(BUSY, f"An offer has already been sent to {name}.", existing)
        return DispatchResult(BUSY, f"An offer to {name} is already being sent.", existing)

    try:
        send_offer_email(student)
    except NotificationError as e:
        logger.error(f"Sending offer to {student.get('email')} failed: {e}")
        _set_state(dispatch, FAILED, str(e))
        return DispatchResult(FAILED_OUTCOME, describe_send_error(e), dispatch)

    _set_state(dispatch, NOTIFIED)

    try:
        api.create_offer_record(dispatch.candidate_id, dispatch.email, status="pending")
    except ApiError as e:
        logger.error(f"Offer email sent to {dispatch.email} but the record was not created: {e}")
        _set_state(dispatch, NOTIFIED, str(e))
        return DispatchResult(
            PARTIAL, "Email sent but failed to create offer record in database", dispatch
        )

    _set_state(dispatch, RECORDED)
    return DispatchResult(SENT, f"Offer sent successfully to {name}!", dispatch)


def reconcile(api, candidate_ids, statuses):
    """
    Settle ``notified`` dispatches for the given candidates.

    ``statuses`` maps candidate id to the backend offer status (None when the
    backend has no offer). Dispatches the backend already knows about become
    ``recorded``; for the others the record creation is attempted once.
    Returns the statuses updated with any record created here.
    """
    statuses = dict(statuses)
    pending = OfferDispatch.query.filter(
        OfferDispatch.candidate_id.in_([str(c) for c in candidate_ids]),
        OfferDispatch.state == NOTIFIED,
    ).all()
    for dispatch in pending:
        if statuses.get(dispatch.candidate_id):
            _set_state(dispatch, RECORDED)
            continue
        try:
            api.create_offer_record(dispatch.candidate_id, dispatch.email, status="pending")
        except ApiError as e:
            logger.warning(f"Offer record for {dispatch.candidate_id} still missing: {e}")
            _set_state(dispatch, NOTIFIED, str(e))
            continue
        logger.info(f"Offer record for {dispatch.candidate_id} created on reconcile")
        _set_state(dispatch, RECORDED)
        statuses[dispatch.candidate_id] = "pending"
    return statuses


def dispatches_for(candidate_ids):
    rows = OfferDispatch.query.filter(
        OfferDispatch.candidate_id.in_([str(c) for c in candidate_ids])
    ).all()
    return {row.candidate_id: row for row in rows}
