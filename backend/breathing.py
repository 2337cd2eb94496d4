"""
Guided 4-7-8 breathing: a 16-tick cycle of inhale (4), hold (3) and exhale (8).
"""
from enum import Enum
from typing import Callable, Optional

from timer import TickHandle, Ticker

CYCLE_TICKS = 16


class BreathingPhase(str, Enum):
    INHALE = "inhale"
    HOLD = "hold"
    EXHALE = "exhale"

    @property
    def label(self) -> str:
        return PHASE_LABELS[self]


PHASE_LABELS = {
    BreathingPhase.INHALE: "Breathe in deeply...",
    BreathingPhase.HOLD: "Hold your breath...",
    BreathingPhase.EXHALE: "Breathe out slowly...",
}


def next_step(count: int, phase: BreathingPhase) -> tuple[int, BreathingPhase]:
    """Counter and phase after one tick."""
    following = count + 1
    if following <= 4:
        return following, BreathingPhase.INHALE
    if following <= 7:
        return following, BreathingPhase.HOLD
    if following < CYCLE_TICKS:
        return following, BreathingPhase.EXHALE
    # wrap; the phase flips back to inhale on the next tick
    return 0, phase


def display_number(count: int, phase: BreathingPhase) -> int:
    if phase == BreathingPhase.INHALE:
        return count + 1
    if phase == BreathingPhase.HOLD:
        return count - 3
    return CYCLE_TICKS - count


class BreathingDriver:
    def __init__(self, ticker: Ticker, on_tick: Optional[Callable[[int, BreathingPhase], None]] = None):
        self.ticker = ticker
        self.on_tick = on_tick
        self.count = 0
        self.phase = BreathingPhase.INHALE
        self._handle: Optional[TickHandle] = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    @property
    def display(self) -> int:
        return display_number(self.count, self.phase)

    def tick(self):
        self.count, self.phase = next_step(self.count, self.phase)
        if self.on_tick:
            self.on_tick(self.count, self.phase)

    def start(self):
        """(Re)start the cycle from the beginning."""
        self.stop()
        self.count = 0
        self.phase = BreathingPhase.INHALE
        self._handle = self.ticker.every(self.tick)

    def stop(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
