from email_validator import EmailNotValidError, validate_email
from flask import current_app as app

from main import db
from models.volunteer.application import VolunteerApplication
from models.volunteer.exc import Conflict, SignupErrorKind, ValidationFailed

from ..common import json_response, request_data
from . import volunteer


def normalise_email(address: str) -> str:
    try:
        result = validate_email(address, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationFailed(str(e)) from e
    return result.normalized.lower()


@volunteer.route("/apply", methods=["POST"])
@json_response
def apply():
    data = request_data()
    name = (data.get("name") or "").strip()
    email = (data.get("email") or "").strip()
    message = (data.get("message") or "").strip()
    if not name or not email or not message:
        raise ValidationFailed("Name, email and a message are required")

    email = normalise_email(email)
    if VolunteerApplication.get_active_for(email):
        raise Conflict("There's already an application for this email address", SignupErrorKind.ALREADY_APPLIED)

    application = VolunteerApplication(name, email, phone=(data.get("phone") or "").strip() or None, message=message)
    db.session.add(application)
    db.session.commit()

    app.logger.info("New volunteer application %s from %s", application.id, email)
    return {"application": {"id": application.id, "state": str(application.state)}}, 201
