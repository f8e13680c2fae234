from datetime import UTC, datetime

from flask import current_app as app
from flask import request
from flask_login import current_user
from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from main import db
from models.user import User
from models.volunteer.exc import NotFound
from models.volunteer.shift import Signup, SignupStatus
from models.volunteer.timing import shift_start

from ...common import json_response, request_data
from ..signups import SessionUnitOfWork, hours_to_minutes, set_worked_minutes
from . import volunteer_admin

SIGNUP_FILTERS = ("upcoming", "past", "all")


@volunteer_admin.route("/volunteers.json")
@json_response
def volunteer_list():
    users = db.session.scalars(select(User).order_by(User.created_at.desc())).unique()
    return [u.to_dict() | {"created_at": u.created_at.isoformat()} for u in users if u.has_permission("volunteer:user")]


@volunteer_admin.route("/signups.json")
@json_response
def signup_list():
    which = request.args.get("filter")
    if which not in SIGNUP_FILTERS:
        which = "upcoming"

    signups = db.session.scalars(
        select(Signup)
        .where(Signup.status == SignupStatus.CONFIRMED)
        .options(joinedload(Signup.shift), joinedload(Signup.user))
    ).all()

    now = datetime.now(UTC)
    if which == "past":
        signups = [s for s in signups if shift_start(s.shift) < now]
    elif which == "upcoming":
        signups = [s for s in signups if shift_start(s.shift) >= now]
    signups.sort(key=lambda s: shift_start(s.shift), reverse=which == "past")

    return [
        s.to_dict()
        | {
            "shift": {"id": s.shift.id, "title": s.shift.title, "start": shift_start(s.shift).isoformat()},
            "user": {"id": s.user.id, "name": s.user.name, "email": s.user.email},
        }
        for s in signups
    ]


@volunteer_admin.route("/signup/<int:signup_id>/hours", methods=["PATCH"])
@json_response
def signup_hours(signup_id):
    data = request_data()
    minutes = hours_to_minutes(data.get("hours"))
    signup = set_worked_minutes(signup_id, minutes)
    app.logger.info("%s set worked minutes on signup %s to %s", current_user.email, signup_id, minutes)
    return signup.to_dict()


def _set_blocked(user_id: int, blocked: bool, reason: str | None = None) -> User:
    def work(session: Session) -> User:
        user = session.get(User, user_id, populate_existing=True)
        if user is None:
            raise NotFound("Volunteer not found")
        if blocked:
            user.block(reason)
        else:
            user.unblock()
        return user

    return SessionUnitOfWork().run(work)


@volunteer_admin.route("/volunteer/<int:user_id>/block", methods=["POST"])
@json_response
def volunteer_block(user_id):
    data = request_data()
    user = _set_blocked(user_id, True, (data.get("reason") or "").strip() or None)
    app.logger.info("%s blocked volunteer %s", current_user.email, user.email)
    return user.to_dict()


@volunteer_admin.route("/volunteer/<int:user_id>/unblock", methods=["POST"])
@json_response
def volunteer_unblock(user_id):
    user = _set_blocked(user_id, False)
    app.logger.info("%s unblocked volunteer %s", current_user.email, user.email)
    return user.to_dict()
