"""
Persistence: the backend contract (rows + auth) over SQLModel, the per-device
local store used by visitors who are not signed in, and the session stores
that sit on top of either.
"""
import json
import logging
import secrets
import threading
import uuid
from contextlib import contextmanager
from datetime import timezone
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select
from werkzeug.security import check_password_hash, generate_password_hash

import settings
from auth import AuthChange, AuthEvent, AuthEvents, Subscription
from errors import AuthError, DuplicateSubmission, NetworkError, ValidationError
from models import AuthSession, LocalEntry, QuizResponseRow, TrainingSession, User
from progress import classify_success
from schemas import SessionRecord

logger = logging.getLogger(__name__)

TABLES = {
    "training_sessions": TrainingSession,
    "quiz_responses": QuizResponseRow,
}

MIN_PASSWORD_LENGTH = 6


def _user_dict(user: User) -> dict:
    return {"id": user.id, "email": user.email, "email_confirmed": user.email_confirmed}


class SqlBackend:
    """Row storage and email/password auth, one short-lived DB session per call."""

    def __init__(self, engine, require_confirmation: Optional[bool] = None):
        self.engine = engine
        self.auth_events = AuthEvents()
        if require_confirmation is None:
            require_confirmation = settings.REQUIRE_EMAIL_CONFIRMATION
        self.require_confirmation = require_confirmation

    @contextmanager
    def _session(self):
        try:
            with Session(self.engine) as session:
                yield session
        except OperationalError as e:
            logger.warning("store unreachable: %s", e)
            raise NetworkError("Could not reach the store. Please try again.") from e

    # --- rows ---

    def _model(self, table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise ValueError(f"Unknown table: {table}") from None

    def insert(self, table: str, record: dict) -> dict:
        model = self._model(table)
        row = model(id=str(uuid.uuid4()), **record)
        with self._session() as session:
            session.add(row)
            session.commit()
            session.refresh(row)
            return row.model_dump()

    def query(
        self,
        table: str,
        filters: Optional[dict] = None,
        order_by: str = "created_at",
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> list[dict]:
        model = self._model(table)
        statement = select(model)
        for column, value in (filters or {}).items():
            if column not in model.model_fields:
                raise ValueError(f"Unknown column {column!r} on {table}")
            statement = statement.where(getattr(model, column) == value)
        order_column = getattr(model, order_by)
        statement = statement.order_by(order_column.desc() if descending else order_column.asc())
        if limit is not None:
            statement = statement.limit(limit)
        with self._session() as session:
            return [row.model_dump() for row in session.exec(statement).all()]

    # --- auth ---

    def sign_up(self, email: str, password: str) -> dict:
        email = (email or "").strip().lower()
        if not email or "@" not in email:
            raise AuthError("A valid email is required")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters")

        with self._session() as session:
            if session.exec(select(User).where(User.email == email)).first():
                raise AuthError("User already registered")
            user = User(
                id=str(uuid.uuid4()),
                email=email,
                password_hash=generate_password_hash(password),
                email_confirmed=not self.require_confirmation,
                confirmation_token=secrets.token_urlsafe(24) if self.require_confirmation else None,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            logger.info("signed up %s", email)
            if user.confirmation_token:
                # Stands in for the confirmation email.
                logger.info("confirmation token for %s: %s", email, user.confirmation_token)
            return {"user": _user_dict(user), "confirmation_required": self.require_confirmation}

    def confirm_email(self, token: str) -> dict:
        with self._session() as session:
            user = session.exec(
                select(User).where(User.confirmation_token == token)
            ).first() if token else None
            if not user:
                raise AuthError("Invalid or expired confirmation token")
            user.email_confirmed = True
            user.confirmation_token = None
            session.add(user)
            session.commit()
            session.refresh(user)
            logger.info("confirmed %s", user.email)
            return _user_dict(user)

    def sign_in(self, email: str, password: str) -> tuple[dict, str]:
        """Returns (user, access_token)."""
        email = (email or "").strip().lower()
        with self._session() as session:
            user = session.exec(select(User).where(User.email == email)).first()
            if not user or not check_password_hash(user.password_hash, password or ""):
                logger.warning("failed sign-in for %s", email)
                raise AuthError("Invalid login credentials")
            if not user.email_confirmed:
                raise AuthError("Email not confirmed")
            token = secrets.token_urlsafe(32)
            session.add(AuthSession(token=token, user_id=user.id))
            session.commit()
            result = _user_dict(user)
        logger.info("signed in %s", email)
        self.auth_events.emit(AuthChange(AuthEvent.SIGNED_IN, result["id"], token))
        return result, token

    def sign_out(self, token: str) -> bool:
        with self._session() as session:
            auth_session = session.get(AuthSession, token) if token else None
            if not auth_session:
                return False
            user_id = auth_session.user_id
            session.delete(auth_session)
            session.commit()
        logger.info("signed out user %s", user_id)
        self.auth_events.emit(AuthChange(AuthEvent.SIGNED_OUT, user_id, token))
        return True

    def current_user(self, token: Optional[str]) -> Optional[dict]:
        if not isinstance(token, str) or not token:
            return None
        with self._session() as session:
            auth_session = session.get(AuthSession, token)
            if not auth_session:
                return None
            user = session.get(User, auth_session.user_id)
            return _user_dict(user) if user else None

    def on_auth_state_change(self, callback) -> Subscription:
        return self.auth_events.subscribe(callback)

    # --- per-device key/value ---

    def get_local(self, device_id: str, key: str) -> Optional[str]:
        with self._session() as session:
            entry = session.get(LocalEntry, (device_id, key))
            return entry.value if entry else None

    def set_local(self, device_id: str, key: str, value: str) -> None:
        with self._session() as session:
            entry = session.get(LocalEntry, (device_id, key))
            if entry:
                entry.value = value
            else:
                entry = LocalEntry(device_id=device_id, key=key, value=value)
            session.add(entry)
            session.commit()


class LocalStore:
    """Key/value strings for one device."""

    def __init__(self, backend: SqlBackend, device_id: str):
        self.backend = backend
        self.device_id = device_id

    def get(self, key: str) -> Optional[str]:
        return self.backend.get_local(self.device_id, key)

    def set(self, key: str, value: str) -> None:
        self.backend.set_local(self.device_id, key, value)


# --- session stores ---


class RemoteSessionStore:
    def __init__(self, backend: SqlBackend, user_id: str):
        self.backend = backend
        self.user_id = user_id

    def list(self) -> list[SessionRecord]:
        rows = self.backend.query(
            "training_sessions", {"user_id": self.user_id}, order_by="created_at", descending=True
        )
        return [SessionRecord(date=row["created_at"], duration=row["duration"]) for row in rows]

    def append(self, record: SessionRecord) -> SessionRecord:
        self.backend.insert("training_sessions", {
            "user_id": self.user_id,
            "duration": record.duration,
            "exercise_type": "start-stop",
            "notes": "Successful session" if classify_success(record.duration) else "Keep practicing",
            "created_at": record.date.astimezone(timezone.utc),
        })
        logger.info("saved %ss session for user %s", record.duration, self.user_id)
        return record


class LocalSessionStore:
    KEY = "wellness-sessions"
    UNREADABLE_KEY = "wellness-sessions.unreadable"

    def __init__(self, local: LocalStore):
        self.local = local

    def _read_items(self) -> Optional[list]:
        """The stored JSON list as-is, or None when the value is not a JSON list."""
        raw = self.local.get(self.KEY)
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return items if isinstance(items, list) else None

    def _load(self) -> list[SessionRecord]:
        items = self._read_items()
        if items is None:
            logger.warning("ignoring unreadable sessions for device %s", self.local.device_id)
            return []

        records = []
        for item in items:
            try:
                records.append(SessionRecord.model_validate(item))
            except PydanticValidationError:
                logger.warning("skipping malformed session %r on device %s", item, self.local.device_id)
        return records

    def list(self) -> list[SessionRecord]:
        return sorted(self._load(), key=lambda r: r.date, reverse=True)

    def append(self, record: SessionRecord) -> SessionRecord:
        # Entries this version cannot read are written back untouched.
        items = self._read_items()
        if items is None:
            self.local.set(self.UNREADABLE_KEY, self.local.get(self.KEY))
            logger.warning(
                "moved unreadable sessions for device %s to %r", self.local.device_id, self.UNREADABLE_KEY
            )
            items = []
        items.append(record.model_dump(mode="json"))
        self.local.set(self.KEY, json.dumps(items))
        logger.info("saved %ss session on device %s", record.duration, self.local.device_id)
        return record


def active_store(backend: SqlBackend, user: Optional[dict], device_id: Optional[str]):
    """Signed-in users keep sessions in the backend, everyone else on their device."""
    if user:
        return RemoteSessionStore(backend, user["id"])
    if device_id:
        return LocalSessionStore(LocalStore(backend, device_id))
    raise ValidationError("Sign in or send an X-Device-Id header to keep sessions")


class InFlight:
    """Rejects a second submission for the same owner while one is outstanding."""

    def __init__(self):
        self._lock = threading.Lock()
        self._keys: set = set()

    @contextmanager
    def claim(self, key: str):
        with self._lock:
            if key in self._keys:
                raise DuplicateSubmission("A submission is already in progress")
            self._keys.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._keys.discard(key)
