"""
Per-message display preferences.

Keyed by the message's stable id, never by its position in the history,
so inserting or removing messages does not move a toggle onto another
message.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class DisplayPreferences:
    show_chart: bool = True
    show_tool_details: bool = False


class DisplayStateStore:
    """Thread-safe map from message id to DisplayPreferences."""

    def __init__(self, default: DisplayPreferences | None = None):
        self._default = default or DisplayPreferences()
        self._prefs: dict[str, DisplayPreferences] = {}
        self._lock = threading.Lock()

    def get(self, message_id: str) -> DisplayPreferences:
        with self._lock:
            return self._prefs.get(message_id, self._default)

    def _toggle(self, message_id: str, attr: str) -> DisplayPreferences:
        with self._lock:
            current = self._prefs.get(message_id, self._default)
            updated = replace(current, **{attr: not getattr(current, attr)})
            self._prefs[message_id] = updated
            return updated

    def toggle_chart(self, message_id: str) -> DisplayPreferences:
        return self._toggle(message_id, "show_chart")

    def toggle_tool_details(self, message_id: str) -> DisplayPreferences:
        return self._toggle(message_id, "show_tool_details")

    def forget(self, message_id: str) -> None:
        """Drop the preferences of a removed message."""
        with self._lock:
            self._prefs.pop(message_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._prefs)
