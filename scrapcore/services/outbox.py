from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from scrapcore.integrations.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


class Outbox:
    """
    Notifications queued during an atomic unit and released after it commits.

    Nothing queued here runs if the unit rolls back, and nothing released
    here can change the unit's outcome.
    """

    def __init__(self, dispatcher: NotificationDispatcher | None) -> None:
        self.dispatcher = dispatcher
        self._pending: list[tuple[str, Callable[..., Awaitable[Any]], tuple, dict]] = []

    def add(self, label: str, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> None:
        self._pending.append((label, fn, args, kwargs))

    def notify_eligible_collectors(self, order: dict, *, forwarded: bool = False) -> None:
        if self.dispatcher is None:
            return
        self.add(
            "notify_eligible_collectors",
            self.dispatcher.notify_eligible_collectors,
            order,
            forwarded=forwarded,
        )

    def notify_party(self, party_id: str | None, event_name: str, payload: dict) -> None:
        if self.dispatcher is None or not party_id:
            return
        self.add(f"notify_party:{event_name}", self.dispatcher.notify_party, party_id, event_name, payload)

    def release(self) -> int:
        if self.dispatcher is None:
            self._pending.clear()
            return 0

        released = 0
        for label, fn, args, kwargs in self._pending:
            try:
                self.dispatcher.fire(fn(*args, **kwargs), label=label)
                released += 1
            except Exception:
                # building the coroutine itself failed; the committed unit stands
                logger.exception("Could not schedule %s", label)
        self._pending.clear()
        return released
