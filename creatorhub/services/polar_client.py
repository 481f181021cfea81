"""
Polar API Client
================

WHAT: Async calls to the Polar REST API (products, customers, checkout
      sessions, customer portal sessions, subscription cancellation)
WHY: Subscription plans are sold through Polar; the subscription service
     only deals in local plans and subscriptions and calls this client for
     anything that lives at the provider.

Every non-2xx response and every transport error becomes
ExternalServiceError; the provider's response text goes to the log only.

References:
- https://docs.polar.sh/api-reference/checkouts/create-session
- https://docs.polar.sh/api-reference/customer-portal/sessions/create
- https://docs.polar.sh/api-reference/subscriptions/update
- https://docs.polar.sh/api-reference/products/create
"""

import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import ExternalServiceError

logger = logging.getLogger(__name__)


PROVIDER = "Polar"
REQUEST_TIMEOUT = 30.0
CHECKOUT_FALLBACK_URL = "https://checkout.polar.sh/{client_secret}"


class PolarClient:
    def __init__(self, api_url: str = "https://api.polar.sh", access_token: str = "",
                 organization_id: str = ""):
        self.api_url = api_url.rstrip("/")
        self.access_token = access_token
        self.organization_id = organization_id

    @property
    def configured(self) -> bool:
        return bool(self.access_token)

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def create_product(self, name: str, description: str, price_amount: int,
                             currency: str = "USD") -> Dict[str, Any]:
        """Monthly recurring product with one fixed price (amount in cents)."""
        payload = {
            "name": name,
            "description": description,
            "recurring_interval": "month",
            "prices": [
                {
                    "amount_type": "fixed",
                    "price_amount": price_amount,
                    "price_currency": currency.lower(),
                }
            ],
        }
        if self.organization_id:
            payload["organization_id"] = self.organization_id
        return await self._request("POST", "/v1/products/", payload, action="product creation")

    async def update_product(self, product_id: str, **fields) -> Dict[str, Any]:
        payload = {key: value for key, value in fields.items() if value is not None}
        return await self._request("PATCH", f"/v1/products/{product_id}", payload, action="product update")

    async def archive_product(self, product_id: str) -> Dict[str, Any]:
        return await self.update_product(product_id, is_archived=True)

    # ------------------------------------------------------------------
    # Customers and checkout
    # ------------------------------------------------------------------

    async def create_customer(self, email: str, name: Optional[str] = None,
                              external_id: Optional[str] = None) -> Dict[str, Any]:
        payload = {"email": email}
        if name:
            payload["name"] = name
        if external_id:
            payload["external_id"] = external_id
        if self.organization_id:
            payload["organization_id"] = self.organization_id
        return await self._request("POST", "/v1/customers/", payload, action="customer creation")

    async def create_checkout(self, product_id: str, success_url: str, customer_email: Optional[str] = None,
                              metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Checkout session; the returned dict always carries `id` and `url`."""
        payload = {
            "products": [product_id],
            "success_url": success_url,
            "customer_email": customer_email,
        }
        if metadata:
            payload["metadata"] = metadata

        data = await self._request("POST", "/v1/checkouts/", payload, action="checkout creation")
        if not data.get("url") and data.get("client_secret"):
            data["url"] = CHECKOUT_FALLBACK_URL.format(client_secret=data["client_secret"])
        if not data.get("id") or not data.get("url"):
            logger.error("[BILLING] Polar checkout response missing id/url")
            raise ExternalServiceError(PROVIDER, "checkout response missing id or url")
        return data

    async def create_customer_portal_session(self, customer_id: str) -> str:
        data = await self._request(
            "POST", "/v1/customer-sessions", {"customer_id": customer_id}, action="portal creation"
        )
        url = data.get("customer_portal_url")
        if not url:
            raise ExternalServiceError(PROVIDER, "portal response missing customer_portal_url")
        return url

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def set_cancel_at_period_end(self, polar_subscription_id: str, cancel: bool = True) -> Dict[str, Any]:
        return await self._request(
            "PATCH",
            f"/v1/subscriptions/{polar_subscription_id}",
            {"cancel_at_period_end": cancel},
            action="subscription update",
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, payload: Dict[str, Any], action: str) -> Dict[str, Any]:
        if not self.configured:
            logger.error("[BILLING] Polar API not configured (%s)", action)
            raise ExternalServiceError(PROVIDER, "Polar API not configured")

        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                response = await client.request(
                    method,
                    f"{self.api_url}{path}",
                    json=payload,
                    headers=headers,
                    timeout=REQUEST_TIMEOUT,
                )
        except httpx.HTTPError as e:
            logger.error("[BILLING] Polar %s failed: %s", action, e, exc_info=True)
            raise ExternalServiceError(PROVIDER, str(e))

        if response.status_code not in (200, 201):
            logger.error("[BILLING] Polar %s failed: %s %s", action, response.status_code, response.text)
            raise ExternalServiceError(PROVIDER, f"{response.status_code} {response.text}")

        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError(PROVIDER, f"invalid JSON in {action} response: {e}")
