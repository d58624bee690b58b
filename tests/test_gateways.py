"""Tests for the PayPal and Dodo gateway adapters against mocked provider HTTP."""

import json

import httpx
import pytest

from core.errors import PaymentProviderError, UnknownPaymentMethod
from utils.dodo import DodoGateway, build_headers, event_object, pick_checkout_url
from utils.payments import get_gateway
from utils.paypal import PayPalGateway

from conftest import WEBHOOK_SECRET, signed_webhook

PAYPAL = "https://paypal.test"
DODO = "https://test.dodopayments.com"


def _paypal(handler):
    return PayPalGateway(
        transport=httpx.MockTransport(handler),
        api_url=PAYPAL,
        client_id="cid",
        app_secret="secret",
    )


def _paypal_token_or(handler):
    def route(request: httpx.Request):
        if request.url.path == "/v1/oauth2/token":
            assert request.headers["authorization"].startswith("Basic ")
            return httpx.Response(200, json={"access_token": "tok"})
        assert request.headers["authorization"] == "Bearer tok"
        return handler(request)

    return route


class TestPayPal:
    @pytest.mark.asyncio
    async def test_create_order_sends_amount_and_reference(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                201,
                json={
                    "id": "5O190127TN364715T",
                    "status": "CREATED",
                    "links": [
                        {"rel": "self", "href": f"{PAYPAL}/v2/checkout/orders/5O190127TN364715T"},
                        {"rel": "approve", "href": "https://www.sandbox.paypal.com/checkoutnow?token=5O190127TN364715T"},
                    ],
                },
            )

        order = await _paypal(_paypal_token_or(handler)).create_order(6500, "USD", "order-1")

        assert order.id == "5O190127TN364715T"
        assert order.approve_url.endswith("token=5O190127TN364715T")
        assert seen["path"] == "/v2/checkout/orders"
        unit = seen["body"]["purchase_units"][0]
        assert seen["body"]["intent"] == "CAPTURE"
        assert unit["reference_id"] == "order-1"
        assert unit["amount"] == {"currency_code": "USD", "value": "65.00"}

    @pytest.mark.asyncio
    async def test_capture_is_parsed(self):
        def handler(request):
            assert request.url.path == "/v2/checkout/orders/5O190127TN364715T/capture"
            return httpx.Response(
                201,
                json={
                    "id": "5O190127TN364715T",
                    "status": "COMPLETED",
                    "payer": {"email_address": "buyer@example.com"},
                    "purchase_units": [
                        {
                            "reference_id": "order-1",
                            "payments": {"captures": [{"id": "3C679366HH908993F", "amount": {"currency_code": "USD", "value": "65.00"}}]},
                        }
                    ],
                },
            )

        capture = await _paypal(_paypal_token_or(handler)).capture("5O190127TN364715T")

        assert capture.id == "5O190127TN364715T"
        assert capture.provider_order_id == "5O190127TN364715T"
        assert capture.status == "COMPLETED"
        assert capture.payer_email == "buyer@example.com"
        assert capture.amount_cents == 6500
        assert capture.currency == "USD"
        assert capture.reference == "order-1"

    @pytest.mark.asyncio
    async def test_error_status_becomes_provider_error(self):
        def handler(request):
            return httpx.Response(422, json={"name": "UNPROCESSABLE_ENTITY"})

        with pytest.raises(PaymentProviderError) as exc:
            await _paypal(_paypal_token_or(handler)).capture("X")
        assert exc.value.status == 422
        assert exc.value.provider == "paypal"

    @pytest.mark.asyncio
    async def test_network_failure_becomes_provider_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(PaymentProviderError):
            await _paypal(handler).create_order(100, "USD", "order-1")

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        gateway = PayPalGateway(transport=httpx.MockTransport(lambda r: httpx.Response(200)), client_id="", app_secret="")
        with pytest.raises(PaymentProviderError):
            await gateway.create_order(100, "USD", "order-1")


def _dodo(handler=None, **kw):
    transport = httpx.MockTransport(handler) if handler else None
    opts = dict(api_base=DODO, api_key="key", product_id="pdt_adhoc", webhook_secret=WEBHOOK_SECRET)
    opts.update(kw)
    return DodoGateway(transport=transport, **opts)


class TestDodo:
    @pytest.mark.asyncio
    async def test_create_checkout_session(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"session_id": "cks_1", "checkout_url": "https://checkout.dodo/cks_1"})

        order = await _dodo(handler).create_order(6500, "USD", "order-1")

        assert order.id == "cks_1"
        assert order.approve_url == "https://checkout.dodo/cks_1"
        assert seen["url"] == f"{DODO}/checkouts"
        assert seen["auth"] == "Bearer key"
        assert seen["body"]["product_cart"] == [{"product_id": "pdt_adhoc", "quantity": 1, "amount": 6500}]
        assert seen["body"]["metadata"] == {"order_id": "order-1"}
        assert seen["body"]["return_url"].endswith("/order/order-1")

    @pytest.mark.asyncio
    async def test_capture_reads_payment_for_session(self):
        def handler(request):
            if request.url.path == "/checkouts/cks_1":
                return httpx.Response(200, json={"id": "cks_1", "payment_id": "pay_1"})
            assert request.url.path == "/payments/pay_1"
            return httpx.Response(
                200,
                json={
                    "payment_id": "pay_1",
                    "status": "succeeded",
                    "total_amount": 6500,
                    "currency": "usd",
                    "customer": {"email": "Buyer@Example.com"},
                    "metadata": {"order_id": "order-1"},
                },
            )

        capture = await _dodo(handler).capture("cks_1")

        assert capture.id == "pay_1"
        assert capture.provider_order_id == "cks_1"
        assert capture.status == "succeeded"
        assert capture.amount_cents == 6500
        assert capture.currency == "USD"
        assert capture.payer_email == "buyer@example.com"
        assert capture.reference == "order-1"

    @pytest.mark.asyncio
    async def test_capture_before_payment_is_pending(self):
        def handler(request):
            return httpx.Response(200, json={"id": "cks_1", "payment_status": "requires_payment_method"})

        capture = await _dodo(handler).capture("cks_1")

        assert capture.id == ""
        assert capture.status == "requires_payment_method"

    def test_verify_event_parses_payment(self):
        raw, headers = signed_webhook({
            "type": "payment.succeeded",
            "data": {"payment_id": "pay_1", "status": "succeeded", "total_amount": 6500, "metadata": {"order_id": "order-1"}},
        })

        capture = _dodo().verify_event(raw, headers)

        assert capture.id == "pay_1"
        assert capture.reference == "order-1"
        assert capture.amount_cents == 6500

    def test_verify_event_finds_nested_session_id(self):
        raw, headers = signed_webhook({
            "type": "payment.succeeded",
            "business_id": "bus_1",
            "checkout": {"session_id": "cks_9"},
            "data": {"payment_id": "pay_1", "status": "succeeded", "metadata": {"order_id": "order-1"}},
        })

        capture = _dodo().verify_event(raw, headers)

        assert capture.provider_order_id == "cks_9"

    def test_verify_event_without_session_id(self):
        raw, headers = signed_webhook({
            "type": "payment.succeeded",
            "data": {"payment_id": "pay_1", "status": "succeeded", "metadata": {"order_id": "order-1"}},
        })

        capture = _dodo().verify_event(raw, headers)

        assert capture.provider_order_id is None
        assert capture.reference == "order-1"

    def test_verify_event_ignores_other_types(self):
        raw, headers = signed_webhook({"type": "refund.succeeded", "data": {}})
        assert _dodo().verify_event(raw, headers) is None

    def test_verify_event_rejects_bad_signature(self):
        raw, headers = signed_webhook({"type": "payment.succeeded"}, secret="whsec_" + "QUJDREVGR0hJSktMTU5PUFFSU1RVVldY")
        with pytest.raises(PaymentProviderError) as exc:
            _dodo().verify_event(raw, headers)
        assert exc.value.status == 401

    def test_verify_event_without_secret(self):
        raw, headers = signed_webhook({"type": "payment.succeeded"})
        with pytest.raises(PaymentProviderError):
            _dodo(webhook_secret="").verify_event(raw, headers)


def test_helpers():
    headers = build_headers("key", DODO)
    assert headers["Authorization"] == "Bearer key"
    assert headers["Dodo-Environment"] == "sandbox"
    assert pick_checkout_url({"data": {"url": "https://x"}}) == "https://x"
    assert event_object({"data": {"object": {"id": 1}}}) == {"id": 1}
    assert event_object({"id": 2}) == {"id": 2}


def test_gateway_selection():
    assert isinstance(get_gateway("PayPal"), PayPalGateway)
    assert isinstance(get_gateway("Card"), DodoGateway)
    with pytest.raises(UnknownPaymentMethod):
        get_gateway("CashOnDelivery")
