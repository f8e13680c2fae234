"""Worked-time reporting for volunteer admins."""

from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import UTC, date, datetime

from sqlalchemy import func, select
from sqlalchemy.orm import joinedload

from main import db
from models.volunteer.shift import Shift, Signup, SignupStatus, WaitlistEntry
from models.volunteer.timing import effective_worked_minutes, scheduled_minutes, shift_end, shift_start

# How many of the most recent shifts to look through for empty places
UNDERFILLED_SCAN_LIMIT = 200
UNDERFILLED_RESULTS = 10


def minutes_to_hours(minutes: int) -> float:
    return round(minutes / 60, 2)


@dataclass
class TimelogEntry:
    signup_id: int
    user_id: int
    volunteer_name: str
    volunteer_email: str
    shift_id: int
    shift_title: str
    shift_date: date
    shift_start: datetime
    shift_end: datetime
    scheduled_minutes: int
    worked_minutes: int | None
    effective_minutes: int

    def to_dict(self):
        return {
            "signup_id": self.signup_id,
            "user_id": self.user_id,
            "volunteer_name": self.volunteer_name,
            "volunteer_email": self.volunteer_email,
            "shift_id": self.shift_id,
            "shift_title": self.shift_title,
            "shift_date": self.shift_date.isoformat(),
            "shift_start": self.shift_start.isoformat(),
            "shift_end": self.shift_end.isoformat(),
            "scheduled_minutes": self.scheduled_minutes,
            "scheduled_hours": minutes_to_hours(self.scheduled_minutes),
            "worked_minutes": self.worked_minutes,
            "worked_hours": minutes_to_hours(self.worked_minutes) if self.worked_minutes is not None else None,
            "effective_minutes": self.effective_minutes,
            "effective_hours": minutes_to_hours(self.effective_minutes),
        }


@dataclass
class VolunteerTotal:
    user_id: int
    volunteer_name: str
    volunteer_email: str
    total_minutes: int

    def to_dict(self):
        return asdict(self) | {"total_hours": minutes_to_hours(self.total_minutes)}


@dataclass
class Timelog:
    entries: list[TimelogEntry]
    totals: list[VolunteerTotal]

    def to_dict(self):
        return {
            "entries": [e.to_dict() for e in self.entries],
            "totals": [t.to_dict() for t in self.totals],
        }


def _date_range(query, date_from: date | None, date_to: date | None):
    if date_from is not None:
        query = query.where(Shift.date >= date_from)
    if date_to is not None:
        query = query.where(Shift.date <= date_to)
    return query


def fetch_timelog(
    date_from: date | None = None,
    date_to: date | None = None,
    now: datetime | None = None,
) -> Timelog:
    """Confirmed signups for shifts which have finished, with the time each
    volunteer is credited for, and each volunteer's total."""
    if now is None:
        now = datetime.now(UTC)

    query = (
        select(Signup)
        .join(Signup.shift)
        .join(Signup.user)
        .where(Signup.status == SignupStatus.CONFIRMED)
        .options(joinedload(Signup.shift), joinedload(Signup.user))
        .order_by(Shift.date.desc(), Shift.start_time, Signup.user_id)
    )
    signups = db.session.scalars(_date_range(query, date_from, date_to)).all()

    entries = []
    for signup in signups:
        shift = signup.shift
        end = shift_end(shift)
        if end > now:
            continue
        entries.append(
            TimelogEntry(
                signup_id=signup.id,
                user_id=signup.user_id,
                volunteer_name=signup.user.name,
                volunteer_email=signup.user.email,
                shift_id=shift.id,
                shift_title=shift.title,
                shift_date=shift.date,
                shift_start=shift_start(shift),
                shift_end=end,
                scheduled_minutes=scheduled_minutes(shift.start_time, shift.end_time),
                worked_minutes=signup.worked_minutes,
                effective_minutes=effective_worked_minutes(signup, shift),
            )
        )

    totals: dict[int, VolunteerTotal] = {}
    for entry in entries:
        if entry.user_id not in totals:
            totals[entry.user_id] = VolunteerTotal(entry.user_id, entry.volunteer_name, entry.volunteer_email, 0)
        totals[entry.user_id].total_minutes += entry.effective_minutes

    return Timelog(
        entries=entries,
        totals=sorted(totals.values(), key=lambda t: t.volunteer_name.casefold()),
    )


@dataclass
class MonthlyTotal:
    month: str
    minutes: int

    def to_dict(self):
        return {"month": self.month, "minutes": self.minutes, "hours": minutes_to_hours(self.minutes)}


@dataclass
class UnderfilledShift:
    shift_id: int
    title: str
    date: date
    max_volunteers: int
    confirmed_count: int
    waitlist_count: int
    vacancy: int

    def to_dict(self):
        return asdict(self) | {"date": self.date.isoformat()}


@dataclass
class Stats:
    monthly_totals: list[MonthlyTotal]
    active_volunteers: list[VolunteerTotal]
    underfilled_shifts: list[UnderfilledShift]

    def to_dict(self):
        return {
            "monthly_totals": [m.to_dict() for m in self.monthly_totals],
            "active_volunteers": [v.to_dict() for v in self.active_volunteers],
            "underfilled_shifts": [s.to_dict() for s in self.underfilled_shifts],
        }


def compute_stats(
    min_hours: float = 4,
    date_from: date | None = None,
    date_to: date | None = None,
    now: datetime | None = None,
) -> Stats:
    timelog = fetch_timelog(date_from, date_to, now)

    monthly: dict[str, int] = defaultdict(int)
    for entry in timelog.entries:
        monthly[entry.shift_date.strftime("%Y-%m")] += entry.effective_minutes

    threshold = min_hours * 60
    active = sorted(
        (t for t in timelog.totals if t.total_minutes >= threshold),
        key=lambda t: t.total_minutes,
        reverse=True,
    )

    confirmed = (
        select(func.count(Signup.id))
        .where(Signup.shift_id == Shift.id, Signup.status == SignupStatus.CONFIRMED)
        .scalar_subquery()
    )
    waitlisted = select(func.count(WaitlistEntry.id)).where(WaitlistEntry.shift_id == Shift.id).scalar_subquery()
    query = (
        select(Shift.id, Shift.title, Shift.date, Shift.max_volunteers, confirmed, waitlisted)
        .order_by(Shift.date.desc(), Shift.id.desc())
        .limit(UNDERFILLED_SCAN_LIMIT)
    )

    underfilled = []
    for shift_id, title, shift_date, max_volunteers, confirmed_count, waitlist_count in db.session.execute(
        _date_range(query, date_from, date_to)
    ):
        vacancy = max(max_volunteers - confirmed_count, 0)
        if vacancy > 0:
            underfilled.append(
                UnderfilledShift(shift_id, title, shift_date, max_volunteers, confirmed_count, waitlist_count, vacancy)
            )
    underfilled.sort(key=lambda s: s.vacancy, reverse=True)

    return Stats(
        monthly_totals=[MonthlyTotal(month, minutes) for month, minutes in sorted(monthly.items())],
        active_volunteers=active,
        underfilled_shifts=underfilled[:UNDERFILLED_RESULTS],
    )
