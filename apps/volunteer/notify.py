"""
Emails about changes to people's shifts.

These are sent after the change has been committed, so a failure to send
must not undo it. `deliver` raises; the `notify_*` helpers log the failure
and carry on.
"""

import enum
import logging

from flask import current_app as app
from flask import render_template
from flask_mailman import EmailMessage

from apps.common.email import from_email

log = logging.getLogger(__name__)


class ShiftEvent(enum.StrEnum):
    SIGNUP_CONFIRMED = "signup_confirmed"
    VOLUNTEER_ADDED = "volunteer_added"
    SIGNUP_WAITLISTED = "signup_waitlisted"
    SIGNUP_CANCELLED = "signup_cancelled"
    VOLUNTEER_PROMOTED = "volunteer_promoted"
    REMINDER_DUE = "reminder_due"


SUBJECTS = {
    ShiftEvent.SIGNUP_CONFIRMED: "Shift signup: {shift.title} on {shift.date}",
    ShiftEvent.VOLUNTEER_ADDED: "You've been added to {shift.title} on {shift.date}",
    ShiftEvent.SIGNUP_WAITLISTED: "Waitlist: {shift.title} on {shift.date}",
    ShiftEvent.SIGNUP_CANCELLED: "Shift cancelled: {shift.title} on {shift.date}",
    ShiftEvent.VOLUNTEER_PROMOTED: "You've got a place on {shift.title} on {shift.date}",
    ShiftEvent.REMINDER_DUE: "Reminder: {shift.title} on {shift.date}",
}


def deliver(event: ShiftEvent, recipient: str, *, to_admin: bool = False, **context) -> None:
    shift = context["shift"]
    msg = EmailMessage(
        SUBJECTS[event].format(shift=shift),
        from_email=from_email("VOLUNTEER_EMAIL"),
        to=[recipient],
    )
    msg.body = render_template(f"emails/volunteer/{event}.txt", to_admin=to_admin, **context)
    msg.send()


def _send_quietly(event: ShiftEvent, recipient: str, **context) -> bool:
    try:
        deliver(event, recipient, **context)
    except Exception:
        log.exception("Unable to send %s notification to %s", event, recipient)
        return False
    return True


def notify_admin(event: ShiftEvent, **context) -> bool:
    return _send_quietly(event, app.config["VOLUNTEER_ADMIN_EMAIL"], to_admin=True, **context)


def notify_volunteer(event: ShiftEvent, volunteer, **context) -> bool:
    return _send_quietly(event, volunteer.email, volunteer=volunteer, **context)
