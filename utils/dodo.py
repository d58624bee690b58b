import os
from dataclasses import replace
from typing import Any, Dict, Mapping, Optional, Tuple

from standardwebhooks import Webhook, WebhookVerificationError

from core.config import (
    logger,
    DODO_API_BASE,
    DODO_API_KEY,
    DODO_CHECKOUT_PATH,
    DODO_ADHOC_PRODUCT_ID,
    DODO_WEBHOOK_SECRET,
    FRONTEND_ORIGIN,
)
from core.errors import PaymentProviderError
from utils.payments import CaptureResult, PaymentGateway, ProviderOrder


def build_headers(api_key: str, api_base: str) -> dict:
    headers = {
        "Authorization": f"Bearer {(api_key or '').strip()}",
        "Content-Type": "application/json",
        "Accept": "application/json",
        "User-Agent": "StorefrontBackend/1.0",
    }
    business_id = (os.getenv("DODO_BUSINESS_ID") or "").strip()
    brand_id = (os.getenv("DODO_BRAND_ID") or "").strip()
    env_hdr = (os.getenv("DODO_PAYMENTS_ENVIRONMENT") or os.getenv("DODO_ENV") or "").strip().strip('"')
    # Sensible default for test domains
    base = (api_base or "").lower()
    if not env_hdr and ("test.dodopayments.com" in base or "sandbox" in base):
        env_hdr = "sandbox"
    if env_hdr.lower() == "prod":
        env_hdr = "production"

    if business_id:
        headers["Dodo-Business-Id"] = business_id
    if brand_id:
        headers["Dodo-Brand-Id"] = brand_id
    if env_hdr:
        headers["Dodo-Environment"] = env_hdr
    return headers


def pick_checkout_url(data: Dict[str, Any]) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    # Common fields for session or link creation responses
    link = (
        data.get("checkout_url")
        or data.get("session_url")
        or data.get("url")
        or data.get("payment_link")
    )
    if link:
        return str(link)
    obj = data.get("data")
    if isinstance(obj, dict):
        inner = obj.get("checkout_url") or obj.get("session_url") or obj.get("url") or ""
        return str(inner) or None
    return None


SESSION_ID_KEYS = ("checkout_session_id", "session_id", "checkout_id")


def deep_find_first(obj: Dict[str, Any], keys: Tuple[str, ...], depth: int = 0) -> str:
    """First non-empty string value for any of ``keys``, searching nested dicts."""
    if not isinstance(obj, dict) or depth > 6:
        return ""
    for k in keys:
        v = obj.get(k)
        if isinstance(v, (str, int)) and str(v).strip():
            return str(v).strip()
    for v in obj.values():
        if isinstance(v, dict):
            found = deep_find_first(v, keys, depth + 1)
            if found:
                return found
    return ""


def event_object(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Unwrap the payment object from the shapes providers send:
    {data: {object: {...}}}, {data: {...}}, {object: {...}} or the bare object."""
    data_node = payload.get("data")
    if isinstance(data_node, dict) and isinstance(data_node.get("object"), dict):
        return data_node["object"]
    if isinstance(data_node, dict):
        return data_node
    if isinstance(payload.get("object"), dict):
        return payload["object"]
    return payload


class DodoGateway(PaymentGateway):
    """Card payments through Dodo hosted checkout.

    Direct charge: the buyer pays on the hosted page and Dodo both charges and
    notifies us by webhook; ``capture`` only reads back the payment.
    """

    name = "dodo"
    success_statuses = frozenset({"succeeded"})

    def __init__(
        self,
        *args,
        api_base: str = DODO_API_BASE,
        api_key: str = DODO_API_KEY,
        product_id: str = DODO_ADHOC_PRODUCT_ID,
        webhook_secret: str = DODO_WEBHOOK_SECRET,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.product_id = product_id
        self.webhook_secret = webhook_secret

    def _headers(self) -> dict:
        if not (self.api_key or "").strip():
            raise PaymentProviderError(self.name, message="DODO_API_KEY is not configured")
        return build_headers(self.api_key, self.api_base)

    async def create_order(self, amount_cents: int, currency: str, reference: str) -> ProviderOrder:
        if not self.product_id:
            raise PaymentProviderError(self.name, message="DODO_ADHOC_PRODUCT_ID is not configured")
        return_url = f"{FRONTEND_ORIGIN}/order/{reference}"
        payload = {
            "product_cart": [
                {
                    "product_id": self.product_id,
                    "quantity": 1,
                    "amount": int(amount_cents),  # lowest denomination
                }
            ],
            "billing_currency": currency,
            "return_url": return_url,
            "metadata": {"order_id": reference},
        }
        async with self._client() as client:
            data = await self._send(client, "POST", f"{self.api_base}{DODO_CHECKOUT_PATH}", headers=self._headers(), json=payload)
        session_id = data.get("session_id") or data.get("id")
        if not session_id:
            raise PaymentProviderError(self.name, body=data, message="Dodo checkout response has no session id")
        logger.info(f"[dodo] created checkout session {session_id} for reference={reference}")
        return ProviderOrder(id=str(session_id), approve_url=pick_checkout_url(data))

    async def capture(self, provider_order_id: str) -> CaptureResult:
        async with self._client() as client:
            session = await self._send(client, "GET", f"{self.api_base}{DODO_CHECKOUT_PATH}/{provider_order_id}", headers=self._headers())
            payment_id = session.get("payment_id")
            if not payment_id:
                # Buyer has not paid yet
                return CaptureResult(
                    id="",
                    provider_order_id=provider_order_id,
                    status=str(session.get("payment_status") or session.get("status") or "pending"),
                    raw=session,
                )
            payment = await self._send(client, "GET", f"{self.api_base}/payments/{payment_id}", headers=self._headers())
        result = self.parse_payment(payment)
        if not result.provider_order_id:
            result = replace(result, provider_order_id=provider_order_id)
        return result

    def parse_payment(self, obj: Dict[str, Any]) -> CaptureResult:
        meta = obj.get("metadata") if isinstance(obj.get("metadata"), dict) else {}
        customer = obj.get("customer") if isinstance(obj.get("customer"), dict) else {}
        amount = obj.get("total_amount", obj.get("amount"))
        try:
            amount_cents = int(amount) if amount is not None else None
        except (TypeError, ValueError):
            raise PaymentProviderError(self.name, body=obj, message=f"Dodo returned an invalid amount: {amount!r}")
        session_id = deep_find_first(obj, SESSION_ID_KEYS)
        return CaptureResult(
            id=str(obj.get("payment_id") or obj.get("id") or ""),
            provider_order_id=session_id or None,
            status=str(obj.get("status") or ""),
            payer_email=str(customer.get("email") or obj.get("customer_email") or "").lower(),
            amount_cents=amount_cents,
            currency=(str(obj.get("currency")).upper() if obj.get("currency") else None),
            reference=(str(meta.get("order_id")) if meta.get("order_id") else None),
            raw=obj,
        )

    def verify_event(self, raw_body: bytes, headers: Mapping[str, str]) -> Optional[CaptureResult]:
        if not self.webhook_secret:
            raise PaymentProviderError(self.name, message="DODO_WEBHOOK_SECRET is not configured")
        wh_headers = {
            "webhook-id": headers.get("webhook-id") or "",
            "webhook-timestamp": headers.get("webhook-timestamp") or "",
            "webhook-signature": headers.get("webhook-signature") or "",
        }
        try:
            payload = Webhook(self.webhook_secret).verify(data=raw_body, headers=wh_headers)
        except WebhookVerificationError as ex:
            raise PaymentProviderError(self.name, status=401, message=f"invalid webhook signature: {ex}")
        if not isinstance(payload, dict):
            raise PaymentProviderError(self.name, body=payload, message="webhook body is not an object")

        evt_type = str(payload.get("type") or payload.get("event") or "").strip().lower()
        if evt_type != "payment.succeeded":
            logger.info(f"[dodo] ignoring webhook event type={evt_type or 'unknown'}")
            return None
        result = self.parse_payment(event_object(payload))
        if not result.provider_order_id:
            # Session id can sit outside the payment object
            session_id = deep_find_first(payload, SESSION_ID_KEYS)
            if session_id:
                result = replace(result, provider_order_id=session_id)
        return result
