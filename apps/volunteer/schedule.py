from datetime import UTC, datetime

from flask import request
from flask_login import current_user
from sqlalchemy import and_, func, or_, select

from main import db, get_or_404
from models.user import User
from models.volunteer.exc import Forbidden, NotFound, ValidationFailed
from models.volunteer.shift import Shift, Signup, SignupStatus, WaitlistEntry
from models.volunteer.timing import shift_tz

from ..common import json_response, optional_int, request_data
from . import v_user_required, volunteer
from .reports import minutes_to_hours
from .signups import (
    AdminAssignedSignup,
    SelfSignup,
    cancel_signup,
    join_waitlist,
    leave_waitlist,
    sign_up,
)


def waitlist_position(entry: WaitlistEntry) -> int:
    """1-based place in the queue, counting blocked volunteers too."""
    return db.session.scalar(
        select(func.count(WaitlistEntry.id)).where(
            WaitlistEntry.shift_id == entry.shift_id,
            or_(
                WaitlistEntry.created_at < entry.created_at,
                and_(WaitlistEntry.created_at == entry.created_at, WaitlistEntry.id <= entry.id),
            ),
        )
    )


def _my_places(shift_ids: list[int]) -> tuple[dict[int, Signup], dict[int, WaitlistEntry]]:
    signups = db.session.scalars(
        select(Signup).where(Signup.user_id == current_user.id, Signup.shift_id.in_(shift_ids))
    )
    entries = db.session.scalars(
        select(WaitlistEntry).where(WaitlistEntry.user_id == current_user.id, WaitlistEntry.shift_id.in_(shift_ids))
    )
    return {s.shift_id: s for s in signups}, {e.shift_id: e for e in entries}


def _shift_for_volunteer(shift: Shift, signup: Signup | None, entry: WaitlistEntry | None):
    data = shift.to_dict()
    data["my_signup"] = signup.to_dict() if signup else None
    data["my_waitlist_entry"] = entry.to_dict() | {"position": waitlist_position(entry)} if entry else None
    return data


@volunteer.route("/shifts.json")
@json_response
@v_user_required
def shift_list():
    if request.args.get("all"):
        shifts = Shift.get_all()
    else:
        shifts = Shift.get_upcoming(datetime.now(UTC).astimezone(shift_tz).date())

    signups, entries = _my_places([s.id for s in shifts])
    return [_shift_for_volunteer(s, signups.get(s.id), entries.get(s.id)) for s in shifts]


@volunteer.route("/shift/<int:shift_id>.json")
@json_response
@v_user_required
def shift_detail(shift_id):
    shift = get_or_404(db, Shift, shift_id)
    signups, entries = _my_places([shift.id])

    data = _shift_for_volunteer(shift, signups.get(shift.id), entries.get(shift.id))
    data["volunteers"] = [{"id": s.user.id, "name": s.user.name} for s in shift.confirmed_signups]
    return data


@volunteer.route("/shift/<int:shift_id>/sign-up", methods=["POST"])
@json_response
@v_user_required
def shift_sign_up(shift_id):
    data = request_data()
    comment = data.get("comment") or None

    target_id = optional_int(data, "user_id")
    user_email = data.get("user_email")
    if (target_id is not None or user_email) and not current_user.is_admin:
        raise Forbidden("Only volunteer admins can sign up other volunteers")

    if target_id is None and user_email:
        if not isinstance(user_email, str):
            raise ValidationFailed("user_email must be an email address")
        target = User.get_by_email(user_email.strip().lower())
        if target is None:
            raise NotFound("No volunteer with that email address")
        target_id = target.id

    if target_id is not None:
        signup_request = AdminAssignedSignup(current_user.id, target_id)
    else:
        signup_request = SelfSignup(current_user.id)

    signup = sign_up(shift_id, signup_request, comment)
    return {"signup": signup.to_dict(), "shift": signup.shift.to_dict()}, 201


@volunteer.route("/shift/<int:shift_id>/waitlist", methods=["POST"])
@json_response
@v_user_required
def shift_join_waitlist(shift_id):
    data = request_data()
    entry = join_waitlist(shift_id, current_user.id, data.get("comment") or None)
    return {"entry": entry.to_dict() | {"position": waitlist_position(entry)}}, 201


@volunteer.route("/shift/<int:shift_id>/waitlist", methods=["DELETE"])
@json_response
@v_user_required
def shift_leave_waitlist(shift_id):
    placement = leave_waitlist(current_user.id, current_user.is_admin, shift_id=shift_id)
    return {"removed": placement.to_dict()}


@volunteer.route("/waitlist/<int:entry_id>", methods=["DELETE"])
@json_response
@v_user_required
def waitlist_entry_delete(entry_id):
    placement = leave_waitlist(current_user.id, current_user.is_admin, entry_id=entry_id)
    return {"removed": placement.to_dict()}


@volunteer.route("/signup/<int:signup_id>/cancel", methods=["POST"])
@json_response
@v_user_required
def signup_cancel(signup_id):
    outcome = cancel_signup(signup_id, current_user.id, current_user.is_admin)

    promotion = None
    if outcome.promotion is not None:
        promotion = {
            "signup": outcome.promotion.signup.to_dict(),
            "promoted_from": outcome.promotion.promoted_from.to_dict(),
        }
    return {
        "signup": outcome.signup.to_dict(),
        "already_cancelled": outcome.already_cancelled,
        "promotion": promotion,
    }


@volunteer.route("/my-shifts.json")
@json_response
@v_user_required
def my_shifts():
    signups = db.session.scalars(
        select(Signup).join(Signup.shift).where(Signup.user_id == current_user.id).order_by(Shift.date, Shift.start_time)
    ).all()
    entries = db.session.scalars(
        select(WaitlistEntry)
        .join(WaitlistEntry.shift)
        .where(WaitlistEntry.user_id == current_user.id)
        .order_by(Shift.date, Shift.start_time)
    ).all()

    now = datetime.now(UTC)
    worked = sum(
        s.effective_minutes for s in signups if s.status == SignupStatus.CONFIRMED and s.shift.is_past(now)
    )
    return {
        "user": current_user.to_dict(),
        "signups": [s.to_dict() | {"shift": s.shift.to_dict()} for s in signups],
        "waitlist": [
            e.to_dict() | {"position": waitlist_position(e), "shift": e.shift.to_dict()} for e in entries
        ],
        "worked_minutes": worked,
        "worked_hours": minutes_to_hours(worked),
    }
