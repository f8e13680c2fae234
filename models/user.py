from __future__ import annotations

import base64
import hashlib
import hmac
import time
from datetime import datetime, timedelta

from flask_login import UserMixin
from sqlalchemy import Index, delete, func, select
from sqlalchemy.exc import NoResultFound
from sqlalchemy.orm import Mapped, mapped_column, relationship

from main import db

from . import BaseModel, naive_utcnow
from .permission import Permission, UserPermission
from .volunteer.shift import Signup, WaitlistEntry

__all__ = [
    "User",
]


def _generate_hmac(prefix, key, msg):
    """
    Generate a keyed HMAC for a unique purpose. You don't want to call this directly.

    This returns bytes because we don't want to assume the encoding of msg.
    """
    if isinstance(key, str):
        key = key.encode("utf-8")

    if isinstance(prefix, str):
        prefix = prefix.encode("utf-8")

    if isinstance(msg, str):
        msg = msg.encode("utf-8")

    mac = hmac.new(key, prefix + msg, digestmod=hashlib.sha256)
    # Truncate the digest to 20 base64 characters (120 bits)
    return msg + b"-" + base64.urlsafe_b64encode(mac.digest())[:20]


def generate_timed_hmac(prefix, key, timestamp, uid):
    """Typical time-limited HMAC used for logins, etc"""
    timestamp = int(timestamp)  # to truncate floating point, not coerce strings
    msg = f"{timestamp}-{uid}"
    return _generate_hmac(prefix, key, msg).decode("ascii")


def verify_timed_hmac(prefix, key, current_timestamp, code, valid_hours):
    try:
        timestamp, uid, _ = code.split("-", 2)
        timestamp, uid = int(timestamp), int(uid)
    except ValueError:
        return None

    expected_code = generate_timed_hmac(prefix, key, timestamp, uid)
    if hmac.compare_digest(expected_code, code):
        age = datetime.fromtimestamp(current_timestamp) - datetime.fromtimestamp(timestamp)
        if age > timedelta(hours=valid_hours):
            return None
        return uid

    return None


def generate_login_code(key, timestamp, uid):
    return generate_timed_hmac("login-", key, timestamp, uid)


def verify_login_code(key, current_timestamp, code):
    # Login links are mailed out when an application is approved, so allow
    # a couple of days for the volunteer to get round to clicking them.
    return verify_timed_hmac("login-", key, current_timestamp, code, valid_hours=48)


class User(BaseModel, UserMixin):
    __tablename__ = "user"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(unique=True, index=True)
    name: Mapped[str] = mapped_column(index=True)
    phone: Mapped[str | None]
    blocked: Mapped[bool] = mapped_column(default=False)
    blocked_reason: Mapped[str | None]
    blocked_at: Mapped[datetime | None]
    created_at: Mapped[datetime] = mapped_column(default=naive_utcnow)

    permissions: Mapped[list[Permission]] = relationship(
        back_populates="users",
        secondary=UserPermission,
        lazy="joined",
    )
    signups: Mapped[list[Signup]] = relationship(back_populates="user", cascade="all, delete-orphan")
    waitlist_entries: Mapped[list[WaitlistEntry]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __init__(self, email: str, name: str):
        self.email = email
        self.name = name

    def __repr__(self):
        return f"<User {self.email}>"

    def __str__(self):
        return f"{self.name} <{self.email}>"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "blocked": self.blocked,
            "blocked_reason": self.blocked_reason,
            "blocked_at": self.blocked_at.isoformat() if self.blocked_at else None,
            "is_admin": self.is_admin,
        }

    def login_code(self, key):
        return generate_login_code(key, int(time.time()), self.id)

    def has_permission(self, name, cascade=True) -> bool:
        if cascade:
            if name != "admin" and self.has_permission("admin"):
                return True
            if name.startswith("volunteer:") and name != "volunteer:admin" and self.has_permission("volunteer:admin"):
                return True
        for permission in self.permissions:
            if permission.name == name:
                return True
        return False

    def grant_permission(self, name: str):
        if self.has_permission(name, cascade=False):
            return
        try:
            perm = db.session.execute(select(Permission).where(Permission.name == name)).scalar_one()
        except NoResultFound:
            perm = Permission(name)
            db.session.add(perm)
        self.permissions.append(perm)

    def revoke_permission(self, name: str):
        for user_perm in list(self.permissions):
            if user_perm.name == name:
                self.permissions.remove(user_perm)

    @property
    def is_admin(self) -> bool:
        return self.has_permission("volunteer:admin")

    def block(self, reason: str | None = None):
        """Stop this volunteer taking new shifts. Confirmed signups are left
        alone, but anything they're queued for is dropped from the waitlist."""
        self.blocked = True
        self.blocked_reason = reason
        self.blocked_at = naive_utcnow()
        db.session.execute(delete(WaitlistEntry).where(WaitlistEntry.user_id == self.id))

    def unblock(self):
        self.blocked = False
        self.blocked_reason = None
        self.blocked_at = None

    @classmethod
    def get_by_email(cls, email) -> User | None:
        return User.query.filter(func.lower(User.email) == func.lower(email)).one_or_none()

    @classmethod
    def does_user_exist(cls, email):
        return bool(User.get_by_email(email))

    @classmethod
    def get_by_code(cls, key, code) -> User | None:
        uid = verify_login_code(key, time.time(), code)
        if uid is None:
            return None

        return User.query.filter_by(id=uid).one_or_none()


Index("ix_user_email_lower", func.lower(User.email), unique=True)
