"""
Payment gateway interface.

A gateway only translates between our order/amount types and a provider's
wire format. It keeps no business state and never retries; any provider or
network failure surfaces as PaymentProviderError.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import httpx
from pydantic import BaseModel

from core.config import logger, PROVIDER_TIMEOUT_SEC
from core.errors import PaymentProviderError, UnknownPaymentMethod


class PaymentResult(BaseModel):
    """Provider confirmation attached to an order once it is paid."""

    id: str
    status: str
    email_address: str = ""
    price_paid: str = "0.00"


@dataclass(frozen=True)
class ProviderOrder:
    id: str
    approve_url: Optional[str] = None


@dataclass(frozen=True)
class CaptureResult:
    id: str
    status: str
    provider_order_id: Optional[str] = None
    payer_email: str = ""
    amount_cents: Optional[int] = None
    currency: Optional[str] = None
    reference: Optional[str] = None  # our order id, when the provider echoes it back
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


class PaymentGateway:
    name = "gateway"
    success_statuses: frozenset = frozenset()

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = PROVIDER_TIMEOUT_SEC):
        self._transport = transport
        self._timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _send(self, client: httpx.AsyncClient, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            resp = await client.request(method, url, **kwargs)
        except httpx.HTTPError as ex:
            logger.warning(f"[{self.name}] {method} {url} failed: {ex}")
            raise PaymentProviderError(self.name, message=f"{self.name} unreachable: {ex}")
        if resp.status_code not in (200, 201):
            body = resp.text[:2000]
            logger.warning(f"[{self.name}] {method} {url} -> {resp.status_code}: {body}")
            raise PaymentProviderError(self.name, status=resp.status_code, body=body)
        try:
            data = resp.json()
        except ValueError:
            raise PaymentProviderError(self.name, status=resp.status_code, body=resp.text[:2000], message=f"{self.name} returned invalid JSON")
        if not isinstance(data, dict):
            raise PaymentProviderError(self.name, status=resp.status_code, body=data, message=f"{self.name} returned an unexpected body")
        return data

    async def create_order(self, amount_cents: int, currency: str, reference: str) -> ProviderOrder:
        raise NotImplementedError

    async def capture(self, provider_order_id: str) -> CaptureResult:
        raise NotImplementedError

    def verify_event(self, raw_body: bytes, headers: Mapping[str, str]) -> Optional[CaptureResult]:
        """Verify an asynchronous provider confirmation.

        Returns None for authentic events that do not confirm a payment.
        """
        raise PaymentProviderError(self.name, message=f"{self.name} does not send payment events")


def get_gateway(payment_method: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> PaymentGateway:
    """Pick the gateway variant for an order's stored payment-method label."""
    from utils.paypal import PayPalGateway
    from utils.dodo import DodoGateway

    gateways = {
        "PayPal": PayPalGateway,
        "Card": DodoGateway,
    }
    cls = gateways.get((payment_method or "").strip())
    if cls is None:
        raise UnknownPaymentMethod(payment_method)
    return cls(transport=transport)
