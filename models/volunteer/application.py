import enum
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .. import BaseModel, naive_utcnow
from .exc import Conflict, SignupErrorKind

if TYPE_CHECKING:
    from ..user import User

__all__ = [
    "ApplicationState",
    "VolunteerApplication",
]


class ApplicationState(enum.StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class VolunteerApplication(BaseModel):
    __tablename__ = "volunteer_application"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str]
    email: Mapped[str] = mapped_column(index=True)
    phone: Mapped[str | None]
    message: Mapped[str | None]
    state: Mapped[ApplicationState] = mapped_column(default=ApplicationState.PENDING, index=True)
    created_at: Mapped[datetime] = mapped_column(default=naive_utcnow)
    decided_at: Mapped[datetime | None]
    decided_by_id: Mapped[int | None] = mapped_column(ForeignKey("user.id", ondelete="SET NULL"))
    user_id: Mapped[int | None] = mapped_column(ForeignKey("user.id", ondelete="SET NULL"))

    decided_by: Mapped["User"] = relationship(foreign_keys=[decided_by_id])
    user: Mapped["User"] = relationship(foreign_keys=[user_id])

    def __init__(self, name: str, email: str, phone: str | None = None, message: str | None = None):
        self.name = name
        self.email = email
        self.phone = phone
        self.message = message

    def __repr__(self):
        return f"<VolunteerApplication {self.id} {self.email} {self.state}>"

    def _decide(self, state: ApplicationState, admin: "User"):
        if self.state != ApplicationState.PENDING:
            raise Conflict(f"Application has already been {self.state}", SignupErrorKind.ALREADY_DECIDED)
        self.state = state
        self.decided_at = naive_utcnow()
        self.decided_by = admin

    def approve(self, admin: "User", user: "User"):
        self._decide(ApplicationState.APPROVED, admin)
        self.user = user

    def reject(self, admin: "User"):
        self._decide(ApplicationState.REJECTED, admin)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "message": self.message,
            "state": str(self.state),
            "created_at": self.created_at.isoformat(),
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
            "user_id": self.user_id,
        }

    @classmethod
    def get_active_for(cls, email: str) -> "VolunteerApplication | None":
        """A pending or approved application from this address, if any."""
        return cls.query.where(
            func.lower(cls.email) == email.lower(),
            cls.state.in_([ApplicationState.PENDING, ApplicationState.APPROVED]),
        ).first()
