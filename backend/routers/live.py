"""
The app screen over a WebSocket.

The client sends actions ({"action": "timer_start"}, {"action": "select_tab",
"tab": "breathing"}, ...) and receives a full state snapshot after every change
and every timer/breathing tick. The breathing driver only runs while the
breathing tab is selected; closing the socket stops both tickers and drops the
auth subscription.
"""
import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

import settings
from app_state import AppState, Tab, parse_tab, snapshot, update
from auth import AuthChange, AuthEvent
from breathing import BreathingDriver
from db import get_backend
from errors import AuthError, DuplicateSubmission, NetworkError, ValidationError, WellnessError
from schemas import SessionRecord
from store import SqlBackend, active_store
from timer import AsyncioTicker, TimerController, TimerStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])

TIMER_ACTIONS = {
    "timer_start": TimerController.start,
    "timer_pause": TimerController.pause,
    "timer_toggle": TimerController.toggle,
    "timer_reset": TimerController.reset,
}


class LiveChannel:
    def __init__(self, websocket: WebSocket, backend: SqlBackend, token: Optional[str], device_id: Optional[str], ticker=None):
        self.websocket = websocket
        self.backend = backend
        self.token = token
        self.device_id = device_id
        self.loop = asyncio.get_running_loop()
        self.events: asyncio.Queue = asyncio.Queue()
        ticker = ticker or AsyncioTicker(settings.TICK_SECONDS)
        self.timer = TimerController(ticker, on_tick=lambda seconds: self.events.put_nowait(("timer_tick",)))
        self.breathing = BreathingDriver(
            ticker, on_tick=lambda count, phase: self.events.put_nowait(("breathing_tick", count, phase))
        )
        self.state = AppState()
        self._save_task: Optional[asyncio.Task] = None

    def dispatch(self, action: str, **payload):
        self.state = update(self.state, action, **payload)

    async def push(self):
        await self.websocket.send_json(snapshot(self.state, tz=settings.TIMEZONE))

    async def send_error(self, message: str):
        self.dispatch("error", message=message)
        await self.websocket.send_json({"type": "error", "message": message})

    def _on_auth_change(self, change: AuthChange):
        # Called on whatever thread signed the user out.
        self.loop.call_soon_threadsafe(self.events.put_nowait, ("auth", change))

    def _sync_timer(self):
        self.dispatch("timer_changed", seconds=self.timer.seconds, status=self.timer.status)

    async def _load_sessions(self):
        try:
            store = active_store(self.backend, self.state.user, self.device_id)
        except ValidationError:
            self.dispatch("sessions_loaded", sessions=[])
            return
        records = await run_in_threadpool(store.list)
        self.dispatch("sessions_loaded", sessions=records)

    async def _receive(self):
        try:
            while True:
                text = await self.websocket.receive_text()
                try:
                    message = json.loads(text)
                except json.JSONDecodeError:
                    message = None
                await self.events.put(("message", message))
        except WebSocketDisconnect:
            await self.events.put(("disconnect",))

    async def _connect(self):
        if self.token:
            user = await run_in_threadpool(self.backend.current_user, self.token)
            if user is None:
                self.token = None
                await self.send_error("Invalid or expired session")
            else:
                self.dispatch("auth_changed", user=user)
        await self._load_sessions()

    async def run(self):
        subscription = self.backend.on_auth_state_change(self._on_auth_change)
        receiver = asyncio.create_task(self._receive())
        logger.debug("live channel opened (device=%s)", self.device_id)
        try:
            try:
                await self._connect()
            except WellnessError as e:
                await self.send_error(str(e))
            await self.push()
            while True:
                event = await self.events.get()
                if event[0] == "disconnect":
                    break
                try:
                    await self._handle(event)
                except WellnessError as e:
                    await self.send_error(str(e))
        except WebSocketDisconnect:
            pass
        finally:
            self.timer.dispose()
            self.breathing.stop()
            subscription.unsubscribe()
            receiver.cancel()
            if self._save_task is not None:
                self._save_task.cancel()
            logger.debug("live channel closed (device=%s)", self.device_id)

    async def _handle(self, event: tuple):
        kind = event[0]
        if kind == "timer_tick":
            self._sync_timer()
        elif kind == "breathing_tick":
            _, count, phase = event
            self.dispatch("breathing_tick", count=count, phase=phase)
        elif kind == "auth":
            change: AuthChange = event[1]
            if change.event != AuthEvent.SIGNED_OUT or change.token != self.token:
                return
            self.token = None
            self.dispatch("auth_changed", user=None)
            await self._load_sessions()
        elif kind == "saved":
            saved: SessionRecord = event[1]
            if self.timer.status == TimerStatus.PAUSED and self.timer.seconds == saved.duration:
                self.timer.reset()
            self._sync_timer()
            self.dispatch("save_finished")
            await self._load_sessions()
        elif kind == "save_failed":
            # the timer keeps its paused count so the user can retry
            self.dispatch("save_failed", error=event[1])
        elif kind == "message":
            await self._handle_message(event[1])
        await self.push()

    async def _handle_message(self, message):
        if not isinstance(message, dict) or not isinstance(message.get("action"), str):
            raise ValidationError("Messages must be JSON objects with an 'action'")
        action = message["action"]

        if action == "select_tab":
            self._switch_tab(parse_tab(message.get("tab")))
        elif action == "authenticate":
            token = message.get("token")
            if not isinstance(token, str) or not token:
                raise AuthError("Invalid or expired session")
            user = await run_in_threadpool(self.backend.current_user, token)
            if user is None:
                raise AuthError("Invalid or expired session")
            self.token = token
            self.dispatch("auth_changed", user=user)
            await self._load_sessions()
        elif action in TIMER_ACTIONS:
            if self.state.saving:
                raise DuplicateSubmission("A save is already in progress")
            TIMER_ACTIONS[action](self.timer)
            self._sync_timer()
        elif action == "timer_save":
            self._start_save()
        else:
            raise ValidationError(f"Unknown action: {action!r}")

    def _switch_tab(self, tab: Tab):
        previous = self.state.tab
        self.dispatch("select_tab", tab=tab)
        if tab == Tab.BREATHING and previous != Tab.BREATHING:
            self.breathing.start()
            self.dispatch("breathing_reset")
        elif previous == Tab.BREATHING and tab != Tab.BREATHING:
            self.breathing.stop()

    def _start_save(self):
        if self.state.saving:
            raise DuplicateSubmission("A save is already in progress")
        record = self.timer.record()
        store = active_store(self.backend, self.state.user, self.device_id)
        self.dispatch("save_started")
        self._save_task = asyncio.create_task(self._save(store, record))

    async def _save(self, store, record: SessionRecord):
        try:
            await run_in_threadpool(store.append, record)
        except NetworkError as e:
            await self.events.put(("save_failed", str(e)))
        except Exception:
            logger.exception("saving session failed")
            await self.events.put(("save_failed", "Could not save the session. Please try again."))
        else:
            await self.events.put(("saved", record))


@router.websocket("/ws/app")
async def app_channel(
    websocket: WebSocket,
    token: Optional[str] = None,
    device_id: Optional[str] = None,
    backend: SqlBackend = Depends(get_backend),
):
    await websocket.accept()
    await LiveChannel(websocket, backend, token, device_id).run()
