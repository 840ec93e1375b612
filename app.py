import os
import logging
from functools import wraps

from dotenv import load_dotenv
from flask import Flask, render_template, redirect, url_for, flash, request, session, abort, g
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from api_client import ApiError, HiringApiClient
from booking import (
    bookable_dates, build_payload, format_date, group_appointments, lookup_phone,
    prefill_from_link, slot_label, slot_window, submit_booking, SLOTS,
)
from dispatch import dispatch_offer, dispatches_for, reconcile
from forms import ActionForm, AdminBookingForm, AdminLoginForm, BookingForm
from models import db, BookingInvite, SENDING
from notifications import mail, NotificationError, describe_send_error, send_booking_confirmation, send_booking_invite
from offers import OfferResponse, parse_timestamp, resolve_offer_response
from roster import (
    OFFER_FILTERS, PAGE_SIZES, ROSTER_FILTERS, Page, fetch_offer_statuses, filter_offers,
    filter_students, offer_candidate, offer_stats, page_args,
)

load_dotenv()


def _env_bool(name, default):
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


# ---------------- CONFIG ---------------- #
class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///offerdesk.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:5000/api")
    API_TIMEOUT = float(os.getenv("API_TIMEOUT", "15"))

    EMAILJS_SERVICE_ID = os.getenv("EMAILJS_SERVICE_ID")
    EMAILJS_OFFER_TEMPLATE_ID = os.getenv("EMAILJS_OFFER_TEMPLATE_ID")
    EMAILJS_BOOKING_TEMPLATE_ID = os.getenv("EMAILJS_BOOKING_TEMPLATE_ID")
    EMAILJS_PUBLIC_KEY = os.getenv("EMAILJS_PUBLIC_KEY")
    EMAILJS_PRIVATE_KEY = os.getenv("EMAILJS_PRIVATE_KEY")
    EMAILJS_TIMEOUT = float(os.getenv("EMAILJS_TIMEOUT", "15"))

    MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp-relay.brevo.com")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", True)
    MAIL_USE_SSL = _env_bool("MAIL_USE_SSL", False)
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = (
        os.getenv("MAIL_SENDER_NAME", "Sandevex Hiring"),
        os.getenv("MAIL_SENDER", "hiring@sandevex.com"),
    )
    MAIL_SUPPRESS_SEND = _env_bool("MAIL_SUPPRESS_SEND", False)

    SITE_URL = os.getenv("SITE_URL", "http://localhost:8000")
    OFFER_REPLY_TO = os.getenv("OFFER_REPLY_TO", "noreply@sandevex.com")
    HIRING_CONTACT_EMAIL = os.getenv("HIRING_CONTACT_EMAIL", "hiring@sandevex.com")
    OFFICE_MAP_URL = os.getenv("OFFICE_MAP_URL", "https://maps.app.goo.gl/J251RV3LQo9CwUnr9")

    ADMIN_PASSWORD_HASH = os.getenv("ADMIN_PASSWORD_HASH")
    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

    OFFER_DISPATCH_STALE_SECONDS = int(os.getenv("OFFER_DISPATCH_STALE_SECONDS", "300"))
    BOOKING_REDIRECT_DELAY = float(os.getenv("BOOKING_REDIRECT_DELAY", "2.5"))
    ROSTER_PAGE_SIZE = int(os.getenv("ROSTER_PAGE_SIZE", "10"))
    OFFERS_PAGE_SIZE = 10

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ---------------- APP INIT ---------------- #
app = Flask(__name__)
app.config.from_object(Config)

logging.basicConfig(
    level=app.config["LOG_LEVEL"],
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
app.logger.setLevel(app.config["LOG_LEVEL"])

db.init_app(app)
mail.init_app(app)

# Only the hash is kept around
if not app.config["ADMIN_PASSWORD_HASH"] and app.config["ADMIN_PASSWORD"]:
    app.config["ADMIN_PASSWORD_HASH"] = generate_password_hash(app.config["ADMIN_PASSWORD"])
app.config.pop("ADMIN_PASSWORD", None)
if not app.config["ADMIN_PASSWORD_HASH"]:
    app.logger.warning("No admin password configured; admin pages are locked")

# ---------------- DB INIT ---------------- #
with app.app_context():
    db.create_all()

# ---------------- TEMPLATE HELPERS ---------------- #
@app.template_filter("display_date")
def display_date_filter(value, long=False):
    return format_date(value, long=long) if value else ""


@app.template_filter("timestamp")
def timestamp_filter(value, fmt="%b %d, %Y"):
    parsed = parse_timestamp(value)
    return parsed.strftime(fmt) if parsed else ""


@app.template_filter("slot_window")
def slot_window_filter(value):
    return slot_window(value)


@app.context_processor
def inject_globals():
    return {
        "contact_email": app.config["HIRING_CONTACT_EMAIL"],
        "office_map_url": app.config["OFFICE_MAP_URL"],
        "is_admin": bool(session.get("is_admin")),
    }

# ---------------- HELPERS ---------------- #
def get_api():
    if "api" not in g:
        g.api = HiringApiClient(app.config["API_BASE_URL"], timeout=app.config["API_TIMEOUT"])
    return g.api


def admin_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not session.get("is_admin"):
            return redirect(url_for("admin_login", next=request.full_path))
        return view(*args, **kwargs)
    return wrapped


def safe_next(target, default):
    # local paths only
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return default


def flash_form_errors(form):
    for field, errors in form.errors.items():
        for error in errors:
            flash(f"{getattr(form, field).label.text}: {error}", "danger")


def date_choices(dates):
    return [("", "Choose a date")] + [(d, format_date(d)) for d in dates]

# ---------------- ROUTES ---------------- #
@app.route("/")
def index():
    return redirect(url_for("candidates"))


@app.route("/respond")
def respond():
    email = request.args.get("email")
    if not email and "offer_response" in session:
        # result of a decision submitted just before the redirect
        result = OfferResponse.from_session(session.pop("offer_response"))
    else:
        result = resolve_offer_response(get_api(), email, request.args.get("status"))
        if result.submitted:
            session["offer_response"] = result.to_session()
            return redirect(url_for("respond"), code=303)
    return render_template("respond.html", result=result, email=email)


@app.route("/candidate/book-slot", methods=["GET", "POST"])
def book_slot():
    api = get_api()
    link = prefill_from_link(request.args)
    form = BookingForm()
    dates = bookable_dates(api)
    form.date.choices = date_choices(dates)

    if request.method == "GET":
        form.candidate_id.data = link["candidateId"]
        form.name.data = link["name"]
        form.position.data = link["position"]
        form.phone.data = lookup_phone(api, link["candidateId"])
    form.email.data = link["email"]

    if form.validate_on_submit():
        if not link["email"]:
            flash("Invalid booking link. Please use the link from your email.", "danger")
        else:
            payload = build_payload(
                candidateId=form.candidate_id.data,
                name=form.name.data,
                email=link["email"],
                phone=form.phone.data,
                position=form.position.data,
                date=form.date.data,
                slot=form.slot.data,
            )
            _, error = submit_booking(api, payload)
            if error:
                flash(f"Booking Failed: {error}", "danger")
            else:
                if send_booking_confirmation(payload, slot_label(payload["slot"])):
                    flash(f"Slot Confirmed: Confirmation mail sent to {payload['email']}", "success")
                else:
                    flash("Slot Confirmed: your booking is saved.", "success")
                return redirect(url_for("booking_confirmed"), code=303)
    elif request.method == "POST":
        flash_form_errors(form)

    return render_template("book_slot.html", form=form, dates=dates)


@app.route("/candidate/book-slot/confirmed")
def booking_confirmed():
    return render_template(
        "booking_confirmed.html", delay=app.config["BOOKING_REDIRECT_DELAY"]
    )


@app.route("/thank-you")
def thank_you():
    return render_template("thank_you.html")


@app.route("/admin/login", methods=["GET", "POST"])
def admin_login():
    form = AdminLoginForm()
    next_url = safe_next(request.args.get("next"), url_for("candidates"))
    if form.validate_on_submit():
        password_hash = app.config.get("ADMIN_PASSWORD_HASH")
        if password_hash and check_password_hash(password_hash, form.password.data):
            session.clear()
            session["is_admin"] = True
            app.logger.info("Admin signed in")
            return redirect(next_url)
        app.logger.warning("Rejected admin sign-in attempt")
        flash("Incorrect password.", "danger")
    elif request.method == "POST":
        flash_form_errors(form)
    return render_template("admin/login.html", form=form)


@app.route("/admin/logout", methods=["POST"])
def admin_logout():
    session.clear()
    flash("Signed out.", "success")
    return redirect(url_for("admin_login"))


@app.route("/candidates")
@admin_required
def candidates():
    api = get_api()
    page, limit = page_args(request.args, app.config["ROSTER_PAGE_SIZE"])
    search = request.args.get("q", "")
    status_filter = request.args.get("status")
    if status_filter not in ROSTER_FILTERS:
        status_filter = None

    error = None
    try:
        students, total = api.list_students(page, limit)
    except ApiError as e:
        app.logger.error(f"Error fetching students: {e}")
        students, total = [], 0
        error = e.message or "Failed to load students"
    if not students and error is None:
        error = "No students found"

    candidate_ids = [str(s.get("_id")) for s in students]
    statuses = reconcile(api, candidate_ids, fetch_offer_statuses(api, students))
    dispatches = dispatches_for(candidate_ids)

    rows = {}
    for candidate_id in candidate_ids:
        dispatch = dispatches.get(candidate_id)
        status = statuses.get(candidate_id)
        if not status and dispatch is not None and dispatch.shows_as_sent:
            status = "pending"
        rows[candidate_id] = {
            "status": status,
            "sending": dispatch is not None and dispatch.state == SENDING,
        }

    visible = filter_students(
        students, search, status_filter, {cid: row["status"] for cid, row in rows.items()}
    )
    return render_template(
        "candidates.html",
        students=visible,
        rows=rows,
        error=error,
        page=page,
        limit=limit,
        total=total,
        pages=max(1, -(-total // limit)),
        page_sizes=PAGE_SIZES,
        search=search,
        status_filter=status_filter,
        action_form=ActionForm(),
    )


@app.route("/candidates/<candidate_id>")
@admin_required
def candidate_detail(candidate_id):
    api = get_api()
    try:
        student = api.get_student(candidate_id)
    except ApiError as e:
        if e.status_code == 404:
            abort(404)
        flash(e.message or "Failed to load candidate", "danger")
        return redirect(url_for("candidates"))

    try:
        status = api.get_offer_status(candidate_id)
    except ApiError as e:
        app.logger.error(f"Error fetching offer status for {candidate_id}: {e}")
        status = None
    dispatch = dispatches_for([candidate_id]).get(candidate_id)
    if not status and dispatch is not None and dispatch.shows_as_sent:
        status = "pending"
    return render_template(
        "candidate_detail.html",
        student=student,
        status=status,
        sending=dispatch is not None and dispatch.state == SENDING,
    )


@app.route("/candidates/<candidate_id>/send-offer", methods=["POST"])
@admin_required
def send_offer(candidate_id):
    back = safe_next(request.form.get("next"), url_for("candidates"))
    form = ActionForm()
    if not form.validate_on_submit():
        flash_form_errors(form)
        return redirect(back)

    api = get_api()
    try:
        student = api.get_student(candidate_id)
    except ApiError as e:
        flash("Student not found" if e.status_code == 404 else (e.message or "Failed to send offer"), "danger")
        return redirect(back)
    student.setdefault("_id", candidate_id)

    result = dispatch_offer(api, student, stale_after=app.config["OFFER_DISPATCH_STALE_SECONDS"])
    flash(result.message, result.category)
    return redirect(back)


@app.route("/admin/appointments", methods=["GET", "POST"])
@admin_required
def admin_appointments():
    api = get_api()
    form = AdminBookingForm()
    dates = bookable_dates(api)
    form.date.choices = date_choices(dates)

    if form.validate_on_submit():
        payload = build_payload(
            candidateId=form.candidate_id.data,
            name=form.name.data,
            email=form.email.data,
            phone=form.phone.data,
            position=form.position.data,
            date=form.date.data,
            slot=form.slot.data,
        )
        _, error = submit_booking(api, payload)
        if error:
            flash(error, "danger")
        else:
            flash("Appointment booked successfully", "success")
            return redirect(url_for("admin_appointments"))
    elif request.method == "POST":
        flash_form_errors(form)

    try:
        appointments = api.list_appointments()
    except ApiError as e:
        app.logger.error(f"Error fetching appointments: {e}")
        appointments = []
        flash("Failed to fetch appointments", "danger")

    availability = None
    selected_date = request.args.get("date")
    if selected_date:
        form.date.data = form.date.data or selected_date
        try:
            availability = api.get_slot_availability(selected_date)
        except ApiError as e:
            app.logger.warning(f"Failed to fetch slot availability for {selected_date}: {e}")

    return render_template(
        "admin/appointments.html",
        grouped=group_appointments(appointments),
        count=len(appointments),
        slots=SLOTS,
        form=form,
        availability=availability,
        action_form=ActionForm(),
        show_form=request.method == "POST" or bool(selected_date),
    )


@app.route("/admin/appointments/<appointment_id>/collected", methods=["POST"])
@admin_required
def mark_collected(appointment_id):
    form = ActionForm()
    if form.validate_on_submit():
        try:
            get_api().mark_letter_collected(appointment_id)
            flash("Letter marked as collected", "success")
        except ApiError as e:
            app.logger.error(f"Marking appointment {appointment_id} collected failed: {e}")
            flash("Failed to update appointment", "danger")
    else:
        flash_form_errors(form)
    return redirect(url_for("admin_appointments"))


@app.route("/admin/offers")
@admin_required
def admin_offers():
    try:
        offers = get_api().list_offers()
    except ApiError as e:
        app.logger.error(f"Error fetching offers: {e}")
        offers = []
        flash("Failed to fetch offers", "danger")

    # rows without an email are claims for a send still in progress
    invited = {invite.offer_id for invite in BookingInvite.query.filter(BookingInvite.email != "")}
    search = request.args.get("q", "")
    status_filter = request.args.get("status", "all")
    if status_filter not in OFFER_FILTERS:
        status_filter = "all"
    try:
        page_number = int(request.args.get("page", 1))
    except ValueError:
        page_number = 1

    page = Page(
        filter_offers(offers, search, status_filter, invited),
        page_number,
        app.config["OFFERS_PAGE_SIZE"],
    )
    return render_template(
        "admin/offers.html",
        page=page,
        stats=offer_stats(offers, invited),
        invited=invited,
        search=search,
        status_filter=status_filter,
        filters=OFFER_FILTERS,
        candidate_of=offer_candidate,
        action_form=ActionForm(),
    )


@app.route("/admin/offers/<offer_id>/booking-invite", methods=["POST"])
@admin_required
def booking_invite(offer_id):
    back = safe_next(request.form.get("next"), url_for("admin_offers"))
    form = ActionForm()
    if not form.validate_on_submit():
        flash_form_errors(form)
        return redirect(back)

    # the unique offer_id row is the claim; it is released if nothing was sent
    invite = BookingInvite(offer_id=offer_id, email="")
    db.session.add(invite)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        flash("Booking email was already sent for this offer.", "warning")
        return redirect(back)

    def release(message):
        db.session.delete(invite)
        db.session.commit()
        flash(message, "danger")
        return redirect(back)

    try:
        offers = get_api().list_offers()
    except ApiError as e:
        return release(e.message or "Failed to fetch offers")
    offer = next((o for o in offers if str(o.get("_id")) == offer_id), None)
    if offer is None or not offer.get("email"):
        return release("Offer not found or has no email address.")

    try:
        send_booking_invite(offer)
    except NotificationError as e:
        app.logger.error(f"Booking email for offer {offer_id} failed: {e}")
        return release(f"Failed to send email. {describe_send_error(e)}")

    invite.email = offer["email"]
    db.session.commit()
    name = offer_candidate(offer).get("fullName") or "Candidate"
    flash(f"Booking email sent to {name} ({offer['email']})", "success")
    return redirect(back)


if __name__ == "__main__":
    app.run(debug=True)
