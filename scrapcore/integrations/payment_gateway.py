from __future__ import annotations

import hashlib
import hmac
import logging
import time

import httpx

from scrapcore.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class PaymentGateway:
    """
    Razorpay orders API client.

    create_intent() opens an external order the mobile checkout pays against;
    verify_signature() checks the checkout callback before any wallet credit.
    """

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        *,
        base_url: str = "https://api.razorpay.com/v1",
        currency: str = "INR",
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.currency = currency
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def create_intent(self, amount_minor: int, metadata: dict) -> dict:
        if not self.key_id or not self.key_secret:
            raise ExternalServiceError("Payment gateway is not configured")

        owner = str(metadata.get("owner_id", ""))[-10:]
        payload = {
            "amount": int(amount_minor),
            "currency": self.currency,
            "receipt": f"wallet_{owner}_{int(time.time() * 1000)}",
            "payment_capture": 1,
            "notes": {k: str(v) for k, v in metadata.items()},
        }

        try:
            r = await self._client.post(
                f"{self.base_url}/orders",
                json=payload,
                auth=(self.key_id, self.key_secret),
            )
        except httpx.HTTPError as e:
            logger.error("Payment gateway unreachable: %s", e)
            raise ExternalServiceError("Payment gateway unreachable") from e

        if r.status_code != 200:
            logger.error("Payment gateway rejected order: %s %s", r.status_code, r.text)
            raise ExternalServiceError("Failed to create recharge order")

        data = r.json()
        return {
            "external_order_id": data["id"],
            "amount": data.get("amount", payload["amount"]),
            "currency": data.get("currency", self.currency),
            "key_id": self.key_id,
        }

    def verify_signature(self, external_order_id: str, external_payment_id: str, signature: str) -> bool:
        if not self.key_secret:
            return False
        body = f"{external_order_id}|{external_payment_id}".encode("utf-8")
        expected = hmac.new(self.key_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature or "")

    async def aclose(self) -> None:
        await self._client.aclose()
