from typing import Any, Dict, Optional

from core.config import logger, PAYPAL_API_URL, PAYPAL_CLIENT_ID, PAYPAL_APP_SECRET
from core.errors import PaymentProviderError, StorefrontError
from utils.payments import CaptureResult, PaymentGateway, ProviderOrder
from utils.pricing import format_cents, to_cents


def _first(lst: Any) -> Dict[str, Any]:
    if isinstance(lst, list) and lst and isinstance(lst[0], dict):
        return lst[0]
    return {}


def _approve_link(data: Dict[str, Any]) -> Optional[str]:
    for link in data.get("links") or []:
        if isinstance(link, dict) and link.get("rel") in ("approve", "payer-action"):
            return link.get("href")
    return None


class PayPalGateway(PaymentGateway):
    """PayPal Orders v2: create an order, buyer approves, then capture."""

    name = "paypal"
    success_statuses = frozenset({"COMPLETED"})

    def __init__(self, *args, api_url: str = PAYPAL_API_URL, client_id: str = PAYPAL_CLIENT_ID, app_secret: str = PAYPAL_APP_SECRET, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_url = api_url.rstrip("/")
        self.client_id = client_id
        self.app_secret = app_secret

    async def _access_token(self, client) -> str:
        if not self.client_id or not self.app_secret:
            raise PaymentProviderError(self.name, message="PayPal credentials are not configured")
        data = await self._send(
            client,
            "POST",
            f"{self.api_url}/v1/oauth2/token",
            auth=(self.client_id, self.app_secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
        )
        token = data.get("access_token")
        if not token:
            raise PaymentProviderError(self.name, body=data, message="PayPal token response has no access_token")
        return str(token)

    async def create_order(self, amount_cents: int, currency: str, reference: str) -> ProviderOrder:
        async with self._client() as client:
            token = await self._access_token(client)
            data = await self._send(
                client,
                "POST",
                f"{self.api_url}/v2/checkout/orders",
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                json={
                    "intent": "CAPTURE",
                    "purchase_units": [
                        {
                            "reference_id": reference,
                            "amount": {"currency_code": currency, "value": format_cents(amount_cents)},
                        }
                    ],
                },
            )
        order_id = data.get("id")
        if not order_id:
            raise PaymentProviderError(self.name, body=data, message="PayPal order response has no id")
        logger.info(f"[paypal] created order {order_id} for reference={reference}")
        return ProviderOrder(id=str(order_id), approve_url=_approve_link(data))

    async def capture(self, provider_order_id: str) -> CaptureResult:
        async with self._client() as client:
            token = await self._access_token(client)
            data = await self._send(
                client,
                "POST",
                f"{self.api_url}/v2/checkout/orders/{provider_order_id}/capture",
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                json={},
            )
        return self.parse_capture(data)

    def parse_capture(self, data: Dict[str, Any]) -> CaptureResult:
        unit = _first(data.get("purchase_units"))
        capture = _first(((unit.get("payments") or {}).get("captures")))
        amount = capture.get("amount") or {}
        amount_cents = None
        if amount.get("value") is not None:
            try:
                amount_cents = to_cents(amount["value"])
            except StorefrontError:
                raise PaymentProviderError(self.name, body=data, message=f"PayPal returned an invalid amount: {amount.get('value')!r}")
        return CaptureResult(
            id=str(data.get("id") or ""),
            provider_order_id=str(data.get("id") or "") or None,
            status=str(data.get("status") or ""),
            payer_email=str(((data.get("payer") or {}).get("email_address")) or ""),
            amount_cents=amount_cents,
            currency=amount.get("currency_code"),
            reference=unit.get("reference_id"),
            raw=data,
        )
