"""
Auth-state change notifications.

Listeners register a callback and get back a Subscription; they must call
`unsubscribe()` when they go away. Callbacks run on the thread that changed
the auth state, so listeners living on an event loop have to hop back onto it
themselves (see routers/live.py).
"""
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class AuthEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"


@dataclass(frozen=True)
class AuthChange:
    event: AuthEvent
    user_id: str
    token: Optional[str] = None


Listener = Callable[[AuthChange], None]


class Subscription:
    def __init__(self, hub: "AuthEvents", listener: Listener):
        self._hub = hub
        self._listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._hub._remove(self._listener)


class AuthEvents:
    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Subscription:
        with self._lock:
            self._listeners.append(listener)
        return Subscription(self, listener)

    def _remove(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def emit(self, change: AuthChange) -> None:
        with self._lock:
            listeners = list(self._listeners)
        logger.debug("auth event %s for user %s -> %d listener(s)", change.event.value, change.user_id, len(listeners))
        for listener in listeners:
            try:
                listener(change)
            except Exception:
                logger.exception("auth listener failed")

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
