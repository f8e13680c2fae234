import logging

from flask import current_app as app
from flask import render_template, request
from flask_login import current_user
from flask_mailman import EmailMessage
from sqlalchemy import select
from sqlalchemy.orm import Session

from main import db
from models.user import User
from models.volunteer.application import ApplicationState, VolunteerApplication
from models.volunteer.exc import NotFound

from ...common import json_response
from ...common.email import from_email
from ..signups import SessionUnitOfWork
from . import volunteer_admin

log = logging.getLogger(__name__)


def _send_decision(application: VolunteerApplication, template: str, subject: str, **context) -> bool:
    msg = EmailMessage(subject, from_email=from_email("VOLUNTEER_EMAIL"), to=[application.email])
    msg.body = render_template(template, application=application, **context)
    try:
        msg.send()
    except Exception:
        log.exception("Unable to email %s about application %s", application.email, application.id)
        return False
    return True


def _get_application(application_id) -> VolunteerApplication:
    application = db.session.get(VolunteerApplication, application_id)
    if application is None:
        raise NotFound("Application not found")
    return application


@volunteer_admin.route("/applications.json")
@json_response
def application_list():
    query = select(VolunteerApplication).order_by(VolunteerApplication.created_at.desc())
    state = request.args.get("state")
    if state in set(ApplicationState):
        query = query.where(VolunteerApplication.state == ApplicationState(state))
    return [a.to_dict() for a in db.session.scalars(query)]


@volunteer_admin.route("/application/<int:application_id>/approve", methods=["POST"])
@json_response
def application_approve(application_id):
    admin = current_user._get_current_object()

    def work(session: Session) -> tuple[VolunteerApplication, User]:
        application = _get_application(application_id)
        user = User.get_by_email(application.email)
        if user is None:
            user = User(application.email, application.name)
            user.phone = application.phone
            session.add(user)

        application.approve(admin, user)
        user.grant_permission("volunteer:user")
        return application, user

    application, user = SessionUnitOfWork().run(work)
    app.logger.info("%s approved application %s, user %s", current_user.email, application.id, user.id)

    code = user.login_code(app.config["SECRET_KEY"])
    emailed = _send_decision(
        application,
        "emails/volunteer/application_approved.txt",
        "Your volunteer application has been approved",
        code=code,
    )
    return {"application": application.to_dict(), "user": user.to_dict(), "emailed": emailed}


@volunteer_admin.route("/application/<int:application_id>/reject", methods=["POST"])
@json_response
def application_reject(application_id):
    admin = current_user._get_current_object()

    def work(session: Session) -> VolunteerApplication:
        application = _get_application(application_id)
        application.reject(admin)
        return application

    application = SessionUnitOfWork().run(work)
    app.logger.info("%s rejected application %s", current_user.email, application.id)

    emailed = _send_decision(
        application,
        "emails/volunteer/application_rejected.txt",
        "Your volunteer application",
    )
    return {"application": application.to_dict(), "emailed": emailed}
