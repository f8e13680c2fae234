import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import joinedload

from main import db
from models import naive_utcnow
from models.volunteer.shift import Shift, Signup, SignupStatus
from models.volunteer.timing import shift_start, shift_tz

from .notify import ShiftEvent, deliver

log = logging.getLogger(__name__)

DEFAULT_WINDOW_MINUTES = 24 * 60


@dataclass
class ReminderFailure:
    signup_id: int
    reason: str


@dataclass
class ReminderResult:
    sent: int = 0
    skipped: int = 0
    failures: list[ReminderFailure] = field(default_factory=list)

    def to_dict(self):
        return {
            "sent": self.sent,
            "skipped": self.skipped,
            "failures": [{"signup_id": f.signup_id, "reason": f.reason} for f in self.failures],
        }


def send_upcoming_shift_reminders(
    window_minutes: int = DEFAULT_WINDOW_MINUTES,
    now: datetime | None = None,
) -> ReminderResult:
    """Remind everyone with a confirmed place on a shift starting in the next
    `window_minutes`. Each signup is only ever reminded once."""
    if now is None:
        now = datetime.now(UTC)
    window = timedelta(minutes=max(window_minutes, 0))
    # Look a little wider than the window when narrowing by date, so shifts
    # just after midnight aren't missed.
    lookahead = max(window, timedelta(minutes=DEFAULT_WINDOW_MINUTES * 2))

    today = now.astimezone(shift_tz).date()
    last_day = (now + lookahead).astimezone(shift_tz).date()
    signups = db.session.scalars(
        select(Signup)
        .join(Signup.shift)
        .where(
            Signup.status == SignupStatus.CONFIRMED,
            Signup.reminder_sent_at.is_(None),
            Shift.date >= today,
            Shift.date <= last_day,
        )
        .options(joinedload(Signup.shift), joinedload(Signup.user))
        .order_by(Shift.date, Shift.start_time, Signup.id)
    ).all()

    log.info("Checking %s confirmed signups for reminders (window %s minutes)", len(signups), window_minutes)

    result = ReminderResult()
    for signup in signups:
        until_start = shift_start(signup.shift) - now
        if until_start < timedelta(0) or until_start > window:
            result.skipped += 1
            continue

        try:
            deliver(ShiftEvent.REMINDER_DUE, signup.user.email, volunteer=signup.user, shift=signup.shift, signup=signup)
        except Exception as e:
            log.exception("Unable to send reminder for signup %s", signup.id)
            result.failures.append(ReminderFailure(signup.id, str(e)))
            continue

        signup.reminder_sent_at = naive_utcnow()
        db.session.commit()
        result.sent += 1

    log.info("Reminders done: sent %s, skipped %s, failed %s", result.sent, result.skipped, len(result.failures))
    return result
