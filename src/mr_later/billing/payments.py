# src/mr_later/billing/payments.py

"""
Client for the payment proxy edge functions.

The functions front the payment processor: the client only receives a hosted
checkout/portal URL and opens it. Plan changes reach the profile through the
processor's webhook, which is outside this package.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

import httpx

from ..errors import GatewayError, ValidationError

logger = logging.getLogger(__name__)

CHECKOUT_FUNCTION = "create-checkout-session"
PORTAL_FUNCTION = "create-portal-session"


class PaymentClient:
    def __init__(
            self,
            client: httpx.AsyncClient,
            *,
            access_token: Callable[[], str | None] = lambda: None,
    ) -> None:
        self._client = client
        self._access_token = access_token

    async def _invoke(self, name: str, payload: dict[str, str]) -> str:
        token = self._access_token() or self._client.headers.get("apikey")
        headers = {"Authorization": f"Bearer {token}"} if token else {}

        try:
            resp = await self._client.post(f"/functions/v1/{name}", json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise GatewayError(f"Network error: {e.__class__.__name__}: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if not resp.is_success:
            message = body.get("error") or resp.text.strip() or f"HTTP {resp.status_code}"
            raise GatewayError(str(message), status=resp.status_code)

        url = body.get("url")
        if not isinstance(url, str) or not url:
            raise GatewayError(f"{name} returned no url", status=resp.status_code)

        logger.info("Payment function %s returned a session url", name)
        return url

    async def create_checkout_session(self, user_id: str, customer_id: str | None = None) -> str:
        if not user_id:
            raise ValidationError("Missing userId")
        payload = {"userId": user_id}
        if customer_id:
            payload["customerId"] = customer_id
        return await self._invoke(CHECKOUT_FUNCTION, payload)

    async def create_portal_session(self, customer_id: str | None) -> str:
        if not customer_id:
            raise ValidationError("Missing customerId")
        return await self._invoke(PORTAL_FUNCTION, {"customerId": customer_id})
