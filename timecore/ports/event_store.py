"""Event store port — interface of the external object store.

The core never persists anything; callers plug in whatever store they
own. Core helpers depend on this protocol, never on a specific store.
"""

from __future__ import annotations

from typing import Protocol

from timecore.data.models import TimeInterval


class EventStoreError(Exception):
    """Raised when any event store operation fails."""


class EventStore(Protocol):
    """Abstract event store used by the schedule service."""

    async def list_events(self, range_: TimeInterval) -> list[dict]:
        """Return plain event records (EventRecord shape) relevant to ``range_``.

        Recurring records are returned whole; the core expands them.
        """
        ...
