"""Sliding-window anti-replay counter tracking."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple

WINDOW_SIZE = 32
_UINT64_MASK = (1 << 64) - 1


class WindowUpdate(NamedTuple):
    """Result of a sliding-window update."""

    counter: int
    window: int
    ok: bool


def _shift_left(value: int, count: int) -> int:
    if count >= 64:
        return 0
    return (value << count) & _UINT64_MASK


def update_sliding_window(counter: int, window: int, new_counter: int) -> WindowUpdate:
    """Check new_counter against the highest counter seen and its history bitmap.

    On rejection the counter and window are returned unchanged.
    """
    if counter == new_counter:
        return WindowUpdate(counter, window, False)

    if new_counter < counter:
        age = counter - new_counter
        if age > WINDOW_SIZE:
            return WindowUpdate(counter, window, False)
        if (window >> (age - 1)) & 1:
            return WindowUpdate(counter, window, False)
        return WindowUpdate(counter, window | (1 << (age - 1)), True)

    shift = new_counter - counter
    updated = _shift_left(window, shift) | _shift_left(1, shift - 1)
    return WindowUpdate(new_counter, updated, True)


@dataclass
class SlidingWindow:
    """Stateful anti-replay window; the first counter seen is always accepted."""

    history: int = 0
    counter: int = 0
    used: bool = False

    def update(self, counter: int) -> bool:
        """Record counter, returning False if it may be a replay."""
        if not self.used:
            self.used = True
            self.counter = counter
            return True
        self.counter, self.history, ok = update_sliding_window(self.counter, self.history, counter)
        return ok