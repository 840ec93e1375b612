"""
Outbound candidate email.

Offer and booking-invite emails go through the EmailJS REST API using stored
templates. The booking confirmation is rendered locally and sent over SMTP
with Flask-Mail.
"""
import logging
from urllib.parse import urlencode

import requests
from flask import current_app, render_template, url_for
from flask_mail import Mail, Message

logger = logging.getLogger(__name__)

mail = Mail()

EMAILJS_SEND_URL = "https://api.emailjs.com/api/v1.0/email/send"
# EmailJS answers 200 once the message is accepted for delivery
EMAILJS_ACCEPTED = 200

OFFER_DEFAULTS = {
    "position": "Software Engineer",
    "department": "Engineering",
    "mode": "In-Office",
    "internship_type": "Full-time",
    "duration": "6 months",
}

BOOKING_INVITE_POSITION = "Student"


class NotificationError(Exception):
    pass


def send_template(template_id, template_params):
    """
    Send one EmailJS template.

    Raises NotificationError unless the provider accepted the message.
    """
    cfg = current_app.config
    service_id = cfg.get("EMAILJS_SERVICE_ID")
    public_key = cfg.get("EMAILJS_PUBLIC_KEY")
    if not service_id or not template_id or not public_key:
        raise NotificationError(
            "EmailJS configuration is missing. Please check your environment variables."
        )

    payload = {
        "service_id": service_id,
        "template_id": template_id,
        "user_id": public_key,
        "template_params": template_params,
    }
    if cfg.get("EMAILJS_PRIVATE_KEY"):
        payload["accessToken"] = cfg["EMAILJS_PRIVATE_KEY"]

    try:
        resp = requests.post(EMAILJS_SEND_URL, json=payload, timeout=cfg.get("EMAILJS_TIMEOUT", 15))
    except requests.exceptions.RequestException as e:
        raise NotificationError(f"Failed to send email: {e}") from e

    if resp.status_code != EMAILJS_ACCEPTED:
        raise NotificationError(
            f"Failed to send email via EmailJS. Status: {resp.status_code} {resp.text}".strip()
        )
    logger.info(f"EmailJS accepted template {template_id} for {template_params.get('to_email')}")
    return resp.status_code


def describe_send_error(error):
    """Turn a provider failure into text an admin can act on."""
    text = str(error) or "Failed to send offer"
    if "551" in text:
        return "EmailJS service error. Please check your service ID and template ID."
    if "Missing recipient" in text:
        return "Recipient email is missing or invalid."
    return text


def offer_template_params(student):
    cfg = current_app.config
    params = {
        "to_email": student.get("email"),
        "full_name": student.get("fullName"),
        "email": student.get("email"),
        "domain": cfg["SITE_URL"].rstrip("/"),
        "reply_to": cfg["OFFER_REPLY_TO"],
    }
    params.update(OFFER_DEFAULTS)
    return params


def send_offer_email(student):
    return send_template(
        current_app.config.get("EMAILJS_OFFER_TEMPLATE_ID"), offer_template_params(student)
    )


def booking_link(offer):
    candidate = offer.get("candidateId") or {}
    query = urlencode({
        "name": candidate.get("fullName") or "Candidate",
        "email": offer.get("email"),
        "position": BOOKING_INVITE_POSITION,
        "candidateId": candidate.get("_id", ""),
    })
    return f"{current_app.config['SITE_URL'].rstrip('/')}{url_for('book_slot')}?{query}"


def send_booking_invite(offer):
    candidate = offer.get("candidateId") or {}
    full_name = candidate.get("fullName") or "Candidate"
    return send_template(
        current_app.config.get("EMAILJS_BOOKING_TEMPLATE_ID"),
        {
            "to_email": offer.get("email"),
            "email": offer.get("email"),
            "subject": "Book Your Offer Letter Collection Slot",
            "full_name": full_name,
            "position": BOOKING_INVITE_POSITION,
            "booking_url": booking_link(offer),
            "office_address": current_app.config["OFFICE_MAP_URL"],
        },
    )


def send_booking_confirmation(appointment, slot_label):
    """Best-effort confirmation mail; returns False instead of raising."""
    try:
        msg = Message(
            subject="Your Offer Letter Collection Slot is Confirmed",
            recipients=[appointment["email"]],
        )
        msg.body = render_template(
            "emails/booking_confirmation.txt",
            appointment=appointment,
            slot_label=slot_label,
            office_map_url=current_app.config["OFFICE_MAP_URL"],
        )
        mail.send(msg)
        logger.info(f"Booking confirmation sent to {appointment['email']}")
        return True
    except Exception:
        logger.warning(f"Booking confirmation to {appointment.get('email')} failed", exc_info=True)
        return False
