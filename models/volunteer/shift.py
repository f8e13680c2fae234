import enum
from datetime import date as Date
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, UniqueConstraint, func, select
from sqlalchemy.orm import Mapped, column_property, mapped_column, relationship

from main import NaiveDT

from .. import BaseModel, naive_utcnow
from .timing import effective_worked_minutes, is_past, scheduled_minutes, shift_end, shift_start

if TYPE_CHECKING:
    from ..user import User

__all__ = [
    "ShiftType",
    "SignupStatus",
    "Signup",
    "WaitlistEntry",
    "Shift",
]


class ShiftType(enum.StrEnum):
    MORNING = "MORNING"
    EVENING = "EVENING"

    @classmethod
    def coerce(cls, value) -> "ShiftType":
        """Anything that isn't recognisably an evening shift is a morning shift."""
        if isinstance(value, str) and value.strip().upper() == cls.EVENING:
            return cls.EVENING
        return cls.MORNING


class SignupStatus(enum.StrEnum):
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class Signup(BaseModel):
    """A volunteer's place on a shift. There's only ever one row per
    (shift, volunteer): cancelling flips the status, and signing up again
    reuses the row."""

    __tablename__ = "volunteer_signup"
    __table_args__ = (UniqueConstraint("shift_id", "user_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    shift_id: Mapped[int] = mapped_column(ForeignKey("volunteer_shift.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), index=True)
    status: Mapped[SignupStatus] = mapped_column(default=SignupStatus.CONFIRMED)
    comment: Mapped[str | None]
    # Set by an admin when the volunteer worked more or less than scheduled.
    worked_minutes: Mapped[int | None]
    confirmed_at: Mapped[NaiveDT | None]
    cancelled_at: Mapped[NaiveDT | None]
    reminder_sent_at: Mapped[NaiveDT | None]
    created_at: Mapped[NaiveDT] = mapped_column(default=naive_utcnow)

    shift: Mapped["Shift"] = relationship(back_populates="signups")
    user: Mapped["User"] = relationship(back_populates="signups")

    def __init__(self, shift_id: int, user_id: int, comment: str | None = None):
        self.shift_id = shift_id
        self.user_id = user_id
        self.comment = comment

    def __repr__(self):
        return f"<Signup {self.id} shift={self.shift_id} user={self.user_id} {self.status}>"

    @property
    def is_confirmed(self) -> bool:
        return self.status == SignupStatus.CONFIRMED

    def confirm(self, comment: str | None = None):
        self.status = SignupStatus.CONFIRMED
        self.comment = comment
        self.confirmed_at = naive_utcnow()
        self.cancelled_at = None

    def cancel(self):
        self.status = SignupStatus.CANCELLED
        self.cancelled_at = naive_utcnow()

    @property
    def effective_minutes(self) -> int:
        return effective_worked_minutes(self, self.shift)

    def to_dict(self):
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "user_id": self.user_id,
            "status": str(self.status),
            "comment": self.comment,
            "worked_minutes": self.worked_minutes,
            "effective_minutes": self.effective_minutes,
            "confirmed_at": _isoformat(self.confirmed_at),
            "cancelled_at": _isoformat(self.cancelled_at),
            "created_at": _isoformat(self.created_at),
        }


class WaitlistEntry(BaseModel):
    __tablename__ = "volunteer_waitlist_entry"
    __table_args__ = (UniqueConstraint("shift_id", "user_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    shift_id: Mapped[int] = mapped_column(ForeignKey("volunteer_shift.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), index=True)
    comment: Mapped[str | None]
    created_at: Mapped[NaiveDT] = mapped_column(default=naive_utcnow, index=True)

    shift: Mapped["Shift"] = relationship(back_populates="waitlist")
    user: Mapped["User"] = relationship(back_populates="waitlist_entries")

    def __init__(self, shift_id: int, user_id: int, comment: str | None = None):
        self.shift_id = shift_id
        self.user_id = user_id
        self.comment = comment

    def __repr__(self):
        return f"<WaitlistEntry {self.id} shift={self.shift_id} user={self.user_id}>"

    def to_dict(self):
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "user_id": self.user_id,
            "comment": self.comment,
            "created_at": _isoformat(self.created_at),
        }


class Shift(BaseModel):
    __tablename__ = "volunteer_shift"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str]
    description: Mapped[str | None]
    notes: Mapped[str | None]
    # The calendar day at the venue; combined with the times in shift_tz.
    date: Mapped[Date] = mapped_column(index=True)
    start_time: Mapped[str | None]
    end_time: Mapped[str | None]
    max_volunteers: Mapped[int] = mapped_column(default=1)
    type: Mapped[ShiftType] = mapped_column(default=ShiftType.MORNING)
    created_at: Mapped[datetime] = mapped_column(default=naive_utcnow)

    signups: Mapped[list[Signup]] = relationship(
        back_populates="shift",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=Signup.created_at,
    )
    waitlist: Mapped[list[WaitlistEntry]] = relationship(
        back_populates="shift",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=(WaitlistEntry.created_at, WaitlistEntry.id),
    )

    # For listings only. Capacity decisions always count inside their own
    # transaction.
    confirmed_count = column_property(
        select(func.count(Signup.id))
        .where(Signup.shift_id == id, Signup.status == SignupStatus.CONFIRMED)
        .correlate_except(Signup)  # type: ignore[arg-type]
        .scalar_subquery()  # type: ignore[attr-defined]
    )
    waitlist_count = column_property(
        select(func.count(WaitlistEntry.id))
        .where(WaitlistEntry.shift_id == id)
        .correlate_except(WaitlistEntry)  # type: ignore[arg-type]
        .scalar_subquery()  # type: ignore[attr-defined]
    )

    def __init__(
        self,
        title: str,
        date: Date,
        start_time: str | None = None,
        end_time: str | None = None,
        max_volunteers: int = 1,
        type: ShiftType = ShiftType.MORNING,
        description: str | None = None,
        notes: str | None = None,
    ):
        self.title = title
        self.date = date
        self.start_time = start_time
        self.end_time = end_time
        self.max_volunteers = max_volunteers
        self.type = type
        self.description = description
        self.notes = notes

    def __repr__(self):
        return f"<Shift {self.id} {self.title}@{self.date} {self.start_time}-{self.end_time}>"

    @property
    def start(self) -> datetime:
        return shift_start(self)

    @property
    def end(self) -> datetime:
        return shift_end(self)

    @property
    def scheduled_minutes(self) -> int:
        return scheduled_minutes(self.start_time, self.end_time)

    def is_past(self, now: datetime | None = None) -> bool:
        return is_past(self, now)

    @property
    def vacancies(self) -> int:
        return max(0, self.max_volunteers - (self.confirmed_count or 0))

    @property
    def confirmed_signups(self) -> list[Signup]:
        return [s for s in self.signups if s.is_confirmed]

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "notes": self.notes,
            "date": self.date.isoformat(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "max_volunteers": self.max_volunteers,
            "type": str(self.type),
            "confirmed_count": self.confirmed_count,
            "waitlist_count": self.waitlist_count,
            "is_past": self.is_past(),
        }

    @classmethod
    def get_all(cls):
        return cls.query.order_by(Shift.date, Shift.start_time, Shift.id).all()

    @classmethod
    def get_upcoming(cls, today: Date):
        return cls.query.where(Shift.date >= today).order_by(Shift.date, Shift.start_time, Shift.id).all()
