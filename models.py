from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()

# OfferDispatch.state values
SENDING = "sending"      # claim taken, email not yet confirmed
NOTIFIED = "notified"    # email accepted by the provider, offer record not stored yet
RECORDED = "recorded"    # offer record exists on the backend
FAILED = "failed"        # email send failed, may be claimed again


class OfferDispatch(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    candidate_id = db.Column(db.String(64), nullable=False, unique=True)
    email = db.Column(db.String(200), nullable=False)
    full_name = db.Column(db.String(200))
    state = db.Column(db.String(20), nullable=False, default=SENDING)
    last_error = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def shows_as_sent(self):
        return self.state in (NOTIFIED, RECORDED)

    def __repr__(self):
        return f"<OfferDispatch {self.candidate_id} {self.state}>"


class BookingInvite(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    offer_id = db.Column(db.String(64), nullable=False, unique=True)
    email = db.Column(db.String(200), nullable=False)
    sent_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<BookingInvite {self.offer_id} {self.email}>"
