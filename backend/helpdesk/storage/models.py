"""SQLAlchemy models for tickets, problem solutions and users."""
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.auth.identity import ROLE_USER
from helpdesk.storage.db import Base

# Older intake versions wrote the string "null" instead of leaving a field empty
UNSET_MARKERS = ("", "null")


def gen_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_unset(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and value.strip().lower() in UNSET_MARKERS


def unset_to_none(value: Any) -> Any:
    return None if is_unset(value) else value


class TicketModel(Base):
    __tablename__ = "tickets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    user_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    subject: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, default="")
    # Classification fields are free strings so legacy rows load; new rows hold enum values or NULL
    category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    priority: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    source: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


class ProblemSolutionModel(Base):
    """Knowledge-base entry: documented fix for a recurring ticket subject."""
    __tablename__ = "problem_solutions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    subject: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    solution: Mapped[str] = mapped_column(Text, nullable=False, default="")
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class UserModel(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    name: Mapped[str] = mapped_column(String(255), default="")
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), default=ROLE_USER)  # admin, user
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
