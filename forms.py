from flask_wtf import FlaskForm
from wtforms import HiddenField, PasswordField, SelectField, StringField, SubmitField
from wtforms.validators import DataRequired, Email

from booking import slot_choices


class AdminLoginForm(FlaskForm):
    password = PasswordField("Password", validators=[DataRequired()])
    submit = SubmitField("Sign In")


class BookingForm(FlaskForm):
    candidate_id = HiddenField("Candidate ID")
    position = HiddenField("Position")
    name = StringField("Full Name", validators=[DataRequired()])
    # locked to the address the invite link was sent to
    email = StringField("Email", render_kw={"readonly": True})
    phone = StringField("Phone")
    # bookable dates are decided by the backend, so no choice validation here
    date = SelectField("Select Date", validators=[DataRequired()], validate_choice=False)
    slot = SelectField("Select Time", choices=slot_choices(), default="2-3")
    submit = SubmitField("Confirm Slot")


class AdminBookingForm(FlaskForm):
    candidate_id = StringField("Candidate ID", validators=[DataRequired()])
    name = StringField("Full Name", validators=[DataRequired()])
    email = StringField("Email", validators=[DataRequired(), Email()])
    phone = StringField("Phone", validators=[DataRequired()])
    position = StringField("Position", validators=[DataRequired()])
    date = SelectField("Date", validators=[DataRequired()], validate_choice=False)
    slot = SelectField("Time Slot", choices=slot_choices(), default="2-3")
    submit = SubmitField("Book Appointment")


class ActionForm(FlaskForm):
    """CSRF-only form behind the single-button actions."""
    submit = SubmitField()
