"""Mobile money provider client."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import httpx

from packages.ticketing.errors import PaymentGatewayError
from packages.ticketing.models import PaymentIntent, PaymentMethod, PaymentResult

logger = logging.getLogger(__name__)


def _extract_error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or "Unknown payment provider error"

    if isinstance(data, Mapping):
        for key in ("detail", "error", "message"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return "Payment provider rejected the request"


class HttpPaymentGateway:
    """``PaymentGateway`` backed by the provider's REST API.

    Transport failures and error responses raise ``PaymentGatewayError``;
    a well-formed decline comes back as an unsuccessful ``PaymentResult``.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str | None = None,
        currency: str = "UGX",
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._currency = currency

    @classmethod
    def from_settings(
        cls, base_url: str, *, api_key: str | None = None, timeout: float = 15.0
    ) -> "HttpPaymentGateway":
        client = httpx.AsyncClient(base_url=base_url, timeout=timeout)
        return cls(client, api_key=api_key)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        headers: dict[str, str] = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        headers.update(kwargs.pop("headers", {}))

        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise PaymentGatewayError(f"Payment provider unreachable: {exc}") from exc

        if response.status_code >= 400:
            message = _extract_error_message(response)
            logger.warning("Payment provider returned %s for %s %s: %s", response.status_code, method, path, message)
            raise PaymentGatewayError(message, status_code=response.status_code)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise PaymentGatewayError("Payment provider returned a non-JSON body") from exc

    async def create_intent(self, amount: int, event_id: str, buyer_id: str) -> PaymentIntent:
        data = await self._request(
            "POST",
            "/intents",
            json={
                "amount": amount,
                "currency": self._currency,
                "metadata": {"event_id": event_id, "buyer_id": buyer_id},
            },
        )
        intent_id = data.get("id") if isinstance(data, Mapping) else None
        if not intent_id:
            raise PaymentGatewayError("Payment provider returned an intent without an id")
        return PaymentIntent(id=str(intent_id), amount=int(data.get("amount", amount)))

    async def list_methods(self) -> Sequence[PaymentMethod]:
        data = await self._request("GET", "/methods")
        items = data.get("methods", []) if isinstance(data, Mapping) else data
        return [
            PaymentMethod(id=str(item["id"]), provider=str(item["provider"]))
            for item in items or []
            if isinstance(item, Mapping) and "id" in item and "provider" in item
        ]

    async def process_payment(self, intent_id: str, method: PaymentMethod, amount: int) -> PaymentResult:
        data = await self._request(
            "POST",
            f"/intents/{intent_id}/process",
            json={"method_id": method.id, "provider": method.provider, "amount": amount},
        )
        if not isinstance(data, Mapping):
            raise PaymentGatewayError("Payment provider returned an unexpected body")
        status = str(data.get("status", "")).lower()
        if status == "succeeded":
            transaction_id = data.get("transaction_id")
            return PaymentResult(success=True, transaction_id=str(transaction_id) if transaction_id else None)
        return PaymentResult(success=False, error=str(data.get("error") or f"Payment {status or 'failed'}"))
