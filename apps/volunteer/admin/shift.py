from datetime import date

import pendulum
from flask import current_app as app
from flask_login import current_user
from sqlalchemy.orm import Session

from main import db
from models.volunteer.exc import NotFound, ValidationFailed
from models.volunteer.shift import Shift, ShiftType
from models.volunteer.timing import parse_clock

from ...common import json_response, request_data
from ..schedule import waitlist_position
from ..signups import SessionUnitOfWork, lock_shift
from . import volunteer_admin

EDITABLE_TEXT_FIELDS = ("title", "description", "notes")


def parse_shift_date(value) -> date:
    if isinstance(value, date):
        return value
    try:
        parsed = pendulum.parse(str(value))
    except (ValueError, TypeError) as e:
        raise ValidationFailed(f"{value!r} is not a date") from e
    if not isinstance(parsed, date):
        raise ValidationFailed(f"{value!r} is not a date")
    return date(parsed.year, parsed.month, parsed.day)


def parse_shift_time(value) -> str | None:
    if value is None or value == "":
        return None
    clock = parse_clock(str(value))
    if clock is None:
        raise ValidationFailed(f"{value!r} is not a time, use HH:MM")
    return f"{clock[0]:02d}:{clock[1]:02d}"


def parse_capacity(value) -> int:
    """Anything that isn't a positive whole number means one volunteer."""
    try:
        capacity = int(value)
    except (TypeError, ValueError):
        return 1
    return capacity if capacity >= 1 else 1


def admin_shift_dict(shift: Shift):
    data = shift.to_dict()
    data["signups"] = [
        s.to_dict() | {"user": {"id": s.user.id, "name": s.user.name, "email": s.user.email}} for s in shift.signups
    ]
    data["waitlist"] = [
        e.to_dict()
        | {
            "position": waitlist_position(e),
            "user": {"id": e.user.id, "name": e.user.name, "email": e.user.email, "blocked": e.user.blocked},
        }
        for e in shift.waitlist
    ]
    return data


@volunteer_admin.route("/shifts")
@json_response
def shift_list():
    return [admin_shift_dict(s) for s in Shift.get_all()]


@volunteer_admin.route("/shifts", methods=["POST"])
@json_response
def shift_create():
    data = request_data()
    for field in ("title", "date", "start_time", "end_time", "max_volunteers"):
        if not data.get(field):
            raise ValidationFailed(f"{field} is required")

    shift = Shift(
        title=data["title"].strip(),
        date=parse_shift_date(data["date"]),
        start_time=parse_shift_time(data["start_time"]),
        end_time=parse_shift_time(data["end_time"]),
        max_volunteers=parse_capacity(data["max_volunteers"]),
        type=ShiftType.coerce(data.get("type")),
        description=data.get("description") or None,
        notes=data.get("notes") or None,
    )
    db.session.add(shift)
    db.session.commit()

    app.logger.info("%s created shift %s", current_user.email, shift.id)
    return shift.to_dict(), 201


@volunteer_admin.route("/shift/<int:shift_id>")
@json_response
def shift_detail(shift_id):
    shift = db.session.get(Shift, shift_id)
    if shift is None:
        raise NotFound("Shift not found")
    return admin_shift_dict(shift)


@volunteer_admin.route("/shift/<int:shift_id>", methods=["PATCH"])
@json_response
def shift_update(shift_id):
    data = request_data()

    # Capacity changes take effect for the next sign-up or cancellation;
    # nobody is moved off the waitlist here.
    def work(session: Session) -> Shift:
        shift = lock_shift(session, shift_id)
        if shift is None:
            raise NotFound("Shift not found")

        for field in EDITABLE_TEXT_FIELDS:
            if field in data:
                setattr(shift, field, data[field] or None)
        if "title" in data and not shift.title:
            raise ValidationFailed("title is required")
        if "date" in data:
            shift.date = parse_shift_date(data["date"])
        if "start_time" in data:
            shift.start_time = parse_shift_time(data["start_time"])
        if "end_time" in data:
            shift.end_time = parse_shift_time(data["end_time"])
        if "max_volunteers" in data:
            shift.max_volunteers = parse_capacity(data["max_volunteers"])
        if "type" in data:
            shift.type = ShiftType.coerce(data["type"])
        return shift

    shift = SessionUnitOfWork().run(work)
    app.logger.info("%s updated shift %s", current_user.email, shift_id)
    return shift.to_dict()


@volunteer_admin.route("/shift/<int:shift_id>", methods=["DELETE"])
@json_response
def shift_delete(shift_id):
    def work(session: Session):
        shift = lock_shift(session, shift_id)
        if shift is None:
            raise NotFound("Shift not found")
        session.delete(shift)

    SessionUnitOfWork().run(work)
    app.logger.info("%s deleted shift %s", current_user.email, shift_id)
    return {"deleted": shift_id}


@volunteer_admin.route("/shift/<int:shift_id>/waitlist.json")
@json_response
def shift_waitlist(shift_id):
    shift = db.session.get(Shift, shift_id)
    if shift is None:
        raise NotFound("Shift not found")
    return admin_shift_dict(shift)["waitlist"]
