"""
Who gets a place on a shift.

Every operation here is a check-then-act sequence: count the confirmed
volunteers, decide, then write. Two requests doing that at once against the
same shift could both see a free slot, so each operation runs inside a
single unit of work whose first statement locks the shift row. On
PostgreSQL that's `SELECT ... FOR UPDATE`; on SQLite every transaction is
opened with `BEGIN IMMEDIATE` (see `main.serialize_sqlite_transactions`),
which serialises writers on the whole database.

Refusals are raised as `SignupError` subclasses from inside the unit of
work, which rolls back before re-raising. Notifications go out only after
the commit, and never undo it.
"""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from sqlalchemy import delete, false, func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from loggingmanager import set_shift_id
from main import db
from models.user import User
from models.volunteer.exc import (
    Conflict,
    Forbidden,
    NotFound,
    SignupErrorKind,
    ValidationFailed,
)
from models.volunteer.shift import Shift, Signup, SignupStatus, WaitlistEntry
from models.volunteer.timing import is_past, shift_start

from .notify import ShiftEvent, notify_admin, notify_volunteer

log = logging.getLogger(__name__)

# Volunteers can't drop out of a shift at less notice than this.
CANCELLATION_NOTICE = timedelta(hours=24)

# PostgreSQL serialization_failure and deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}


class UnitOfWork(Protocol):
    def run[T](self, work: Callable[[Session], T]) -> T: ...


def is_write_conflict(exc: Exception) -> bool:
    if isinstance(exc, IntegrityError):
        # Two inserts of the same (shift, volunteer) pair racing each other.
        return True
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in RETRYABLE_SQLSTATES:
        return True
    return "database is locked" in str(orig)


class SessionUnitOfWork:
    """Run `work` in one transaction on a SQLAlchemy session and commit it.

    Any exception rolls the transaction back. If the database reports a
    write conflict the whole of `work` is run again from the start, up to
    `max_attempts` times, so it must not have side effects outside the
    session.
    """

    def __init__(self, session: Session | None = None, max_attempts: int = 3):
        self.session = session
        self.max_attempts = max_attempts

    def run[T](self, work: Callable[[Session], T]) -> T:
        session = self.session if self.session is not None else db.session
        attempt = 1
        while True:
            try:
                result = work(session)
                session.commit()
                return result
            except (OperationalError, IntegrityError) as e:
                session.rollback()
                if attempt >= self.max_attempts or not is_write_conflict(e):
                    raise
                log.warning("Write conflict on attempt %s of %s, retrying: %s", attempt, self.max_attempts, e)
                attempt += 1
            except Exception:
                session.rollback()
                raise


@dataclass(frozen=True)
class Placement:
    """What an authorised sign-up request is allowed to do."""

    volunteer: User
    ignores_schedule: bool
    bypasses_capacity: bool
    assigned_by: User | None = None


def _load_volunteer(session: Session, volunteer_id: int) -> User:
    volunteer = session.get(User, volunteer_id, populate_existing=True)
    if volunteer is None:
        raise NotFound("Volunteer not found")
    if volunteer.blocked:
        raise Forbidden("This volunteer has been blocked from signing up for shifts")
    return volunteer


@dataclass(frozen=True)
class SelfSignup:
    """A volunteer taking a place for themselves. Admins can still do this
    for shifts which have already happened, but not for full ones."""

    volunteer_id: int

    def authorize(self, session: Session) -> Placement:
        volunteer = _load_volunteer(session, self.volunteer_id)
        return Placement(volunteer, ignores_schedule=volunteer.is_admin, bypasses_capacity=False)


@dataclass(frozen=True)
class AdminAssignedSignup:
    """An admin putting a volunteer on a shift. They can overfill it, as long
    as they're placing someone other than themselves."""

    requester_id: int
    target_volunteer_id: int

    def authorize(self, session: Session) -> Placement:
        requester = session.get(User, self.requester_id, populate_existing=True)
        if requester is None or not requester.is_admin:
            raise Forbidden("Only volunteer admins can sign up other volunteers")
        if requester.blocked:
            raise Forbidden("You have been blocked from signing up for shifts")
        target = _load_volunteer(session, self.target_volunteer_id)
        return Placement(
            target,
            ignores_schedule=True,
            bypasses_capacity=target.id != requester.id,
            assigned_by=requester,
        )


SignupRequest = SelfSignup | AdminAssignedSignup


@dataclass(frozen=True)
class WaitlistPlacement:
    """Where somebody was on a waitlist, kept after the entry is deleted."""

    entry_id: int
    shift_id: int
    user_id: int
    created_at: datetime
    comment: str | None

    @classmethod
    def from_entry(cls, entry: WaitlistEntry) -> "WaitlistPlacement":
        return cls(entry.id, entry.shift_id, entry.user_id, entry.created_at, entry.comment)

    def to_dict(self):
        return {
            "entry_id": self.entry_id,
            "shift_id": self.shift_id,
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat(),
            "comment": self.comment,
        }


@dataclass
class Promotion:
    signup: Signup
    promoted_from: WaitlistPlacement


@dataclass
class CancellationOutcome:
    signup: Signup
    promotion: Promotion | None = None
    already_cancelled: bool = False


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(UTC)


def lock_shift(session: Session, shift_id: int) -> Shift | None:
    stmt = (
        select(Shift)
        .where(Shift.id == shift_id)
        .with_for_update(of=Shift)
        .execution_options(populate_existing=True)
    )
    return session.scalars(stmt).one_or_none()


def count_confirmed(session: Session, shift_id: int) -> int:
    return session.scalar(
        select(func.count(Signup.id)).where(
            Signup.shift_id == shift_id,
            Signup.status == SignupStatus.CONFIRMED,
        )
    )


def _get_signup(session: Session, shift_id: int, user_id: int) -> Signup | None:
    return session.scalars(
        select(Signup)
        .where(Signup.shift_id == shift_id, Signup.user_id == user_id)
        .execution_options(populate_existing=True)
    ).one_or_none()


def _get_waitlist_entry(session: Session, shift_id: int, user_id: int) -> WaitlistEntry | None:
    return session.scalars(
        select(WaitlistEntry).where(WaitlistEntry.shift_id == shift_id, WaitlistEntry.user_id == user_id)
    ).one_or_none()


def _confirm(session: Session, shift: Shift, volunteer_id: int, comment: str | None) -> Signup:
    """Confirm the volunteer's place, reusing their row if they've been on
    this shift before."""
    signup = _get_signup(session, shift.id, volunteer_id)
    if signup is None:
        signup = Signup(shift.id, volunteer_id)
        session.add(signup)
    signup.confirm(comment)
    session.flush()
    return signup


def sign_up(
    shift_id: int,
    request: SignupRequest,
    comment: str | None = None,
    *,
    now: datetime | None = None,
    uow: UnitOfWork | None = None,
) -> Signup:
    now = _now(now)
    set_shift_id(shift_id)

    def work(session: Session) -> tuple[Signup, Placement]:
        shift = lock_shift(session, shift_id)
        placement = request.authorize(session)
        if shift is None:
            raise NotFound("Shift not found")

        if not placement.ignores_schedule and is_past(shift, now):
            raise Conflict("This shift has already happened", SignupErrorKind.SHIFT_IN_PAST)

        if not placement.bypasses_capacity and count_confirmed(session, shift.id) >= shift.max_volunteers:
            raise Conflict("This shift is full", SignupErrorKind.SHIFT_FULL)

        volunteer = placement.volunteer
        existing = _get_signup(session, shift.id, volunteer.id)
        if existing is not None and existing.is_confirmed:
            raise Conflict("Already signed up for this shift", SignupErrorKind.ALREADY_SIGNED)

        session.execute(
            delete(WaitlistEntry).where(
                WaitlistEntry.shift_id == shift.id,
                WaitlistEntry.user_id == volunteer.id,
            )
        )
        return _confirm(session, shift, volunteer.id, comment), placement

    signup, placement = (uow or SessionUnitOfWork()).run(work)

    volunteer = signup.user
    if placement.assigned_by is not None:
        log.info("%s signed %s up for shift %s", placement.assigned_by.email, volunteer.email, shift_id)
    else:
        log.info("%s signed up for shift %s", volunteer.email, shift_id)

    notify_admin(
        ShiftEvent.SIGNUP_CONFIRMED,
        signup=signup,
        shift=signup.shift,
        volunteer=volunteer,
        assigned_by=placement.assigned_by,
    )
    if placement.assigned_by is not None and placement.assigned_by.id != volunteer.id:
        notify_volunteer(
            ShiftEvent.VOLUNTEER_ADDED,
            volunteer,
            signup=signup,
            shift=signup.shift,
            assigned_by=placement.assigned_by,
        )
    return signup


def join_waitlist(
    shift_id: int,
    volunteer_id: int,
    comment: str | None = None,
    *,
    now: datetime | None = None,
    uow: UnitOfWork | None = None,
) -> WaitlistEntry:
    now = _now(now)
    set_shift_id(shift_id)

    def work(session: Session) -> WaitlistEntry:
        shift = lock_shift(session, shift_id)
        volunteer = _load_volunteer(session, volunteer_id)
        if shift is None:
            raise NotFound("Shift not found")

        if is_past(shift, now):
            raise Conflict("This shift has already happened", SignupErrorKind.SHIFT_IN_PAST)

        if count_confirmed(session, shift.id) < shift.max_volunteers:
            raise Conflict("This shift still has space, sign up instead", SignupErrorKind.SHIFT_HAS_CAPACITY)

        existing = _get_signup(session, shift.id, volunteer.id)
        if existing is not None and existing.is_confirmed:
            raise Conflict("Already signed up for this shift", SignupErrorKind.ALREADY_SIGNED)

        if _get_waitlist_entry(session, shift.id, volunteer.id) is not None:
            raise Conflict("Already on the waitlist for this shift", SignupErrorKind.ALREADY_WAITLISTED)

        entry = WaitlistEntry(shift.id, volunteer.id, comment)
        session.add(entry)
        session.flush()
        return entry

    entry = (uow or SessionUnitOfWork()).run(work)
    log.info("%s joined the waitlist for shift %s", entry.user.email, shift_id)

    notify_admin(ShiftEvent.SIGNUP_WAITLISTED, entry=entry, shift=entry.shift, volunteer=entry.user)
    return entry


def _promote_next(session: Session, shift: Shift) -> Promotion | None:
    """Move the longest-waiting volunteer who isn't blocked into a free place.
    Blocked volunteers' entries are left where they are."""
    if count_confirmed(session, shift.id) >= shift.max_volunteers:
        return None

    entry = session.scalars(
        select(WaitlistEntry)
        .join(User, WaitlistEntry.user_id == User.id)
        .where(WaitlistEntry.shift_id == shift.id, User.blocked == false())
        .order_by(WaitlistEntry.created_at, WaitlistEntry.id)
        .limit(1)
    ).first()
    if entry is None:
        return None

    promoted_from = WaitlistPlacement.from_entry(entry)
    previous = _get_signup(session, shift.id, entry.user_id)
    comment = entry.comment if entry.comment is not None else (previous.comment if previous else None)
    signup = _confirm(session, shift, entry.user_id, comment)
    session.delete(entry)
    session.flush()
    return Promotion(signup, promoted_from)


def cancel_signup(
    signup_id: int,
    acting_user_id: int,
    is_admin: bool,
    *,
    now: datetime | None = None,
    uow: UnitOfWork | None = None,
) -> CancellationOutcome:
    now = _now(now)

    def work(session: Session) -> CancellationOutcome:
        shift_id = session.scalar(select(Signup.shift_id).where(Signup.id == signup_id))
        if shift_id is None:
            raise NotFound("Signup not found")
        set_shift_id(shift_id)

        shift = lock_shift(session, shift_id)
        signup = session.get(Signup, signup_id, populate_existing=True)
        if shift is None or signup is None:
            raise NotFound("Signup not found")

        if signup.user_id != acting_user_id and not is_admin:
            raise Forbidden("You can only cancel your own shifts")

        if not is_admin and shift_start(shift) - now < CANCELLATION_NOTICE:
            raise Conflict(
                "Shifts can't be cancelled less than 24 hours before they start",
                SignupErrorKind.TOO_LATE,
            )

        if signup.status == SignupStatus.CANCELLED:
            return CancellationOutcome(signup, already_cancelled=True)

        signup.cancel()
        session.flush()
        return CancellationOutcome(signup, promotion=_promote_next(session, shift))

    outcome = (uow or SessionUnitOfWork()).run(work)
    if outcome.already_cancelled:
        return outcome

    signup = outcome.signup
    by_admin = is_admin and acting_user_id != signup.user_id
    log.info("Signup %s for shift %s cancelled by user %s", signup.id, signup.shift_id, acting_user_id)

    notify_admin(ShiftEvent.SIGNUP_CANCELLED, signup=signup, shift=signup.shift, volunteer=signup.user, by_admin=by_admin)
    notify_volunteer(ShiftEvent.SIGNUP_CANCELLED, signup.user, signup=signup, shift=signup.shift, by_admin=by_admin)

    if outcome.promotion is not None:
        promoted = outcome.promotion.signup
        log.info("Promoted %s from the waitlist for shift %s", promoted.user.email, promoted.shift_id)
        notify_admin(ShiftEvent.VOLUNTEER_PROMOTED, signup=promoted, shift=promoted.shift, volunteer=promoted.user)
        notify_volunteer(ShiftEvent.VOLUNTEER_PROMOTED, promoted.user, signup=promoted, shift=promoted.shift)

    return outcome


def leave_waitlist(
    acting_user_id: int,
    is_admin: bool,
    *,
    entry_id: int | None = None,
    shift_id: int | None = None,
    volunteer_id: int | None = None,
    uow: UnitOfWork | None = None,
) -> WaitlistPlacement:
    """Take a waitlist entry away, identified either by its id or by the
    shift (and volunteer, defaulting to whoever is asking). Nobody is
    promoted: a waitlist only exists while the shift is full."""
    if entry_id is None and shift_id is None:
        raise ValidationFailed("Either a waitlist entry or a shift is required")

    def work(session: Session) -> WaitlistPlacement:
        if entry_id is not None:
            locked_shift_id = session.scalar(select(WaitlistEntry.shift_id).where(WaitlistEntry.id == entry_id))
            if locked_shift_id is None:
                raise NotFound("Waitlist entry not found")
        else:
            locked_shift_id = shift_id
        set_shift_id(locked_shift_id)

        lock_shift(session, locked_shift_id)
        if entry_id is not None:
            entry = session.get(WaitlistEntry, entry_id, populate_existing=True)
        else:
            owner_id = volunteer_id if volunteer_id is not None else acting_user_id
            entry = _get_waitlist_entry(session, locked_shift_id, owner_id)
        if entry is None:
            raise NotFound("Waitlist entry not found")

        if entry.user_id != acting_user_id and not is_admin:
            raise Forbidden("You can only leave your own waitlist places")

        placement = WaitlistPlacement.from_entry(entry)
        session.delete(entry)
        return placement

    placement = (uow or SessionUnitOfWork()).run(work)
    log.info("Waitlist entry %s for shift %s removed by user %s", placement.entry_id, placement.shift_id, acting_user_id)
    return placement


def hours_to_minutes(hours) -> int | None:
    """Parse the hours an admin typed in. Blank means "use the schedule"."""
    if hours is None or hours == "":
        return None
    try:
        value = float(hours)
    except (TypeError, ValueError) as e:
        raise ValidationFailed(f"{hours!r} is not a number of hours") from e
    if not math.isfinite(value):
        raise ValidationFailed("Hours must be a finite number")
    minutes = round(value * 60)
    if minutes < 0:
        raise ValidationFailed("Worked time can't be negative")
    return minutes


def set_worked_minutes(signup_id: int, minutes: int | None, *, uow: UnitOfWork | None = None) -> Signup:
    """Record how long the volunteer actually worked, or clear the override
    with None so the scheduled length counts again."""
    if minutes is not None and minutes < 0:
        raise ValidationFailed("Worked time can't be negative")

    def work(session: Session) -> Signup:
        signup = session.get(Signup, signup_id, populate_existing=True)
        if signup is None:
            raise NotFound("Signup not found")
        signup.worked_minutes = minutes
        return signup

    signup = (uow or SessionUnitOfWork()).run(work)
    log.info("Worked minutes for signup %s set to %s", signup_id, minutes)
    return signup
