from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable

import httpx

from scrapcore.core.constants import CollectorTier, QuantityType
from scrapcore.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Best-effort fan-out of order events.

    Delivery (push, sockets, device routing) lives outside this service; the
    base dispatcher only records what would have been sent. Callers hand
    coroutines to fire(), which never raises and never blocks the caller.
    """

    def __init__(self) -> None:
        self._inflight: set[asyncio.Task] = set()

    async def notify_eligible_collectors(self, order: dict, *, forwarded: bool = False) -> None:
        tier = _target_tier(order, forwarded)
        logger.info(
            "Order %s available for %s collectors (forwarded=%s)",
            order.get("id"),
            tier,
            forwarded,
        )

    async def notify_party(self, party_id: str, event_name: str, payload: dict) -> None:
        logger.info("Notify %s: %s %s", party_id, event_name, payload)

    def fire(self, awaitable: Awaitable[Any], *, label: str = "notification") -> asyncio.Task:
        task = asyncio.ensure_future(awaitable)
        self._inflight.add(task)

        def _done(t: asyncio.Task) -> None:
            self._inflight.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error("%s failed: %s", label, exc, exc_info=exc)

        task.add_done_callback(_done)
        return task

    async def drain(self) -> None:
        """Wait for in-flight notifications (shutdown and tests)."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()


class WebhookNotificationDispatcher(NotificationDispatcher):
    """Posts every event as JSON to a delivery service webhook."""

    def __init__(self, url: str, *, timeout: float = 5.0, client: httpx.AsyncClient | None = None) -> None:
        super().__init__()
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def _post(self, body: dict) -> None:
        try:
            r = await self._client.post(self.url, json=body)
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Notification webhook unreachable: {e}") from e

        if r.status_code >= 400:
            raise ExternalServiceError(f"Notification webhook error {r.status_code}: {r.text}")

    async def notify_eligible_collectors(self, order: dict, *, forwarded: bool = False) -> None:
        await self._post(
            {
                "event": "forwarded_order" if forwarded else "new_order",
                "target": {"role": "collector", "tier": _target_tier(order, forwarded)},
                "payload": order,
            }
        )

    async def notify_party(self, party_id: str, event_name: str, payload: dict) -> None:
        await self._post(
            {
                "event": event_name,
                "target": {"party_id": party_id},
                "payload": payload,
            }
        )

    async def aclose(self) -> None:
        await super().aclose()
        await self._client.aclose()


def _target_tier(order: dict, forwarded: bool) -> str:
    if forwarded or order.get("quantity_type") == QuantityType.LARGE:
        return CollectorTier.LARGE
    return CollectorTier.SMALL


def build_dispatcher(url: str | None, *, timeout: float = 5.0) -> NotificationDispatcher:
    if url:
        return WebhookNotificationDispatcher(url, timeout=timeout)
    return NotificationDispatcher()
