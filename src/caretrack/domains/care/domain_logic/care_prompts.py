"""Short supportive messages shown around the caregiving screens.

Four kinds: orientation (where am I, what's next), regulation (take a
breath), nudge (a gentle reminder to log) and closure (end of a task).
Message choice goes through an injected selector; navigation history is
owned by a :class:`PromptSession`, one per user session.
"""

from __future__ import annotations

import random
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Sequence

from caretrack.core.clock.calendar import Clock, SystemClock, hours_since, minute_of_day, time_slot

MessageSelector = Callable[[Sequence[str]], str]

NAVIGATION_HISTORY = 10
RAPID_NAVIGATION_COUNT = 5
RAPID_NAVIGATION_SECONDS = 10.0
LOW_MOOD_THRESHOLD = 2
OVERDUE_THRESHOLD = 2
LONG_GAP_HOURS = 24.0

ORIENTATION_MESSAGES: dict[str, tuple[str, ...]] = {
    "morning": (
        "Good morning. Here's what today looks like.",
        "Morning. Start with whatever feels most pressing.",
    ),
    "afternoon": (
        "Good afternoon. Here's where things stand.",
        "Afternoon check-in: here's what's left for today.",
    ),
    "evening": (
        "Good evening. A quick look at how today went.",
        "Evening. Here's what's still open before the day ends.",
    ),
    "night": (
        "It's late. Only the essentials are shown.",
        "Late night. Anything that can wait until morning is set aside.",
    ),
}

WELCOME_BACK_MESSAGES: tuple[str, ...] = (
    "Welcome back. Pick up wherever makes sense.",
    "Good to see you again. Nothing here needs to be caught up all at once.",
)

REGULATION_MESSAGES: tuple[str, ...] = (
    "This is a lot to carry. Take a slow breath before the next step.",
    "One thing at a time. The list will still be here in a minute.",
    "You're doing more than it feels like. Pause if you need to.",
)

NUDGE_MESSAGES: tuple[str, ...] = (
    "A quick entry today keeps the picture complete.",
    "Even one log today helps spot patterns later.",
)

SLOW_DOWN_MESSAGES: tuple[str, ...] = (
    "Looking for something? Search might get you there faster.",
    "Lots of screens in a row. The home screen has today's summary.",
)

CLOSURE_MESSAGES: tuple[str, ...] = (
    "Saved. That's one less thing to remember.",
    "Done. Nice work keeping track.",
    "All set for now.",
)


# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------

class IndexSelector:
    """Always picks ``messages[index % len(messages)]``."""

    def __init__(self, index: int = 0) -> None:
        self._index = index

    def __call__(self, messages: Sequence[str]) -> str:
        return messages[self._index % len(messages)]


class SeededSelector:
    """Reproducible pseudo-random choice."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(seed)

    def __call__(self, messages: Sequence[str]) -> str:
        return self._rng.choice(list(messages))


def random_selector(messages: Sequence[str]) -> str:
    return random.choice(list(messages))


# ---------------------------------------------------------------------------
# Navigation history
# ---------------------------------------------------------------------------

class NavigationTracker:
    """Bounded ring buffer of recent screen changes."""

    def __init__(
        self,
        capacity: int = NAVIGATION_HISTORY,
        *,
        rapid_count: int = RAPID_NAVIGATION_COUNT,
        rapid_seconds: float = RAPID_NAVIGATION_SECONDS,
    ) -> None:
        self._events: deque[datetime] = deque(maxlen=capacity)
        self._rapid_count = rapid_count
        self._rapid_seconds = rapid_seconds
        self._lock = threading.Lock()

    def record(self, when: datetime) -> None:
        with self._lock:
            self._events.append(when)

    def is_rapid(self) -> bool:
        """True when the last ``rapid_count`` changes fit in ``rapid_seconds``."""
        with self._lock:
            if len(self._events) < self._rapid_count:
                return False
            recent = list(self._events)[-self._rapid_count:]
        return (recent[-1] - recent[0]).total_seconds() <= self._rapid_seconds

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        return len(self._events)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

@dataclass
class PromptContext:
    mood: int | None = None
    overdue_count: int = 0
    last_log_at: datetime | None = None


def needs_regulation(context: PromptContext) -> bool:
    """Very low mood or a pile-up of overdue doses."""
    low_mood = context.mood is not None and context.mood <= LOW_MOOD_THRESHOLD
    return low_mood or context.overdue_count >= OVERDUE_THRESHOLD


class PromptSession:
    """Per-session prompt state.

    Usage::

        session = PromptSession(selector=IndexSelector(0), clock=FixedClock(...))
        session.record_navigation()
        session.next_prompt(PromptContext(mood=2))
    """

    def __init__(
        self,
        selector: MessageSelector = random_selector,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._select = selector
        self._clock = clock or SystemClock()
        self.navigation = NavigationTracker()

    def record_navigation(self, when: datetime | None = None) -> None:
        self.navigation.record(when or self._clock.now())

    def orientation(self, context: PromptContext) -> str:
        now = self._clock.now()
        if context.last_log_at is not None and hours_since(context.last_log_at, now) >= LONG_GAP_HOURS:
            return self._select(WELCOME_BACK_MESSAGES)
        return self._select(ORIENTATION_MESSAGES[time_slot(minute_of_day(now))])

    def regulation(self, context: PromptContext) -> str | None:
        if not needs_regulation(context):
            return None
        return self._select(REGULATION_MESSAGES)

    def nudge(self, context: PromptContext) -> str | None:
        if self.navigation.is_rapid():
            return self._select(SLOW_DOWN_MESSAGES)
        now = self._clock.now()
        if context.last_log_at is None or hours_since(context.last_log_at, now) >= LONG_GAP_HOURS:
            return self._select(NUDGE_MESSAGES)
        return None

    def closure(self) -> str:
        return self._select(CLOSURE_MESSAGES)

    def next_prompt(self, context: PromptContext) -> dict[str, str]:
        """Most relevant prompt: regulation, then nudge, then orientation."""
        message = self.regulation(context)
        if message is not None:
            return {"kind": "regulation", "message": message}
        message = self.nudge(context)
        if message is not None:
            return {"kind": "nudge", "message": message}
        return {"kind": "orientation", "message": self.orientation(context)}
