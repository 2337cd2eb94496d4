from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(primary_key=True, index=True)
    email: str = Field(index=True, unique=True)
    password_hash: str
    email_confirmed: bool = False
    confirmation_token: Optional[str] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=_utcnow)


class AuthSession(SQLModel, table=True):
    __tablename__ = "auth_sessions"

    token: str = Field(primary_key=True)
    user_id: str = Field(index=True, foreign_key="users.id")
    created_at: datetime = Field(default_factory=_utcnow)


class TrainingSession(SQLModel, table=True):
    __tablename__ = "training_sessions"

    id: str = Field(primary_key=True, index=True)
    user_id: str = Field(index=True, foreign_key="users.id")
    duration: int
    exercise_type: str = "start-stop"
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class QuizResponseRow(SQLModel, table=True):
    __tablename__ = "quiz_responses"

    id: str = Field(primary_key=True, index=True)
    user_id: Optional[str] = Field(default=None, index=True)
    age_range: str
    relationship_status: str
    problem_duration: str
    frequency: str
    anxiety_level: int
    tried_solutions: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    main_concern: str = ""
    created_at: datetime = Field(default_factory=_utcnow)


class LocalEntry(SQLModel, table=True):
    """Key/value pairs kept per device for visitors who are not signed in."""

    __tablename__ = "local_entries"

    device_id: str = Field(primary_key=True)
    key: str = Field(primary_key=True)
    value: str
