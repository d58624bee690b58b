"""
Payment reconciliation: applies a payment confirmation to an order exactly once.

Confirmations arrive at least once (capture callbacks after a provider
redirect, provider webhooks, manual cash-on-delivery marking), so the unpaid ->
paid flip is a conditional update guarded by a row lock, and the stock
decrement rides in the same transaction.
"""
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import logger
from core.errors import (
    ActionResult,
    AlreadyPaid,
    OrderNotFound,
    OrderVanished,
    PaymentVerificationFailed,
    PersistenceError,
    StorefrontError,
)
from models.order import Order
from models.product import Product
from utils.emailing import send_purchase_receipt
from utils.payments import CaptureResult, PaymentGateway, PaymentResult, ProviderOrder, get_gateway
from utils.pricing import format_cents

Notifier = Callable[[Order], Any]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _load_order(db: Session, order_id: str, lock: bool = False) -> Optional[Order]:
    q = db.query(Order).filter(Order.id == order_id)
    if lock:
        # FOR UPDATE where the dialect supports it; refresh whatever the session cached
        q = q.with_for_update(of=Order).populate_existing()
    return q.first()


def _notify(order: Order, notify: Optional[Notifier]) -> None:
    if notify is None:
        return
    try:
        notify(order)
    except Exception as ex:
        # Payment state is committed; a failed receipt must not undo it
        logger.warning(f"[reconcile] receipt notification for order {order.id} failed: {ex}")


def verify_capture(order: Order, capture: CaptureResult, gateway: PaymentGateway) -> PaymentResult:
    """Check a provider confirmation against the order it claims to pay."""
    if capture.status not in gateway.success_statuses:
        raise PaymentVerificationFailed(f"{gateway.name} status is {capture.status or 'empty'}", order_id=order.id)
    if not capture.id:
        raise PaymentVerificationFailed("missing provider transaction id", order_id=order.id)
    if order.provider_order_id:
        # A signed event may echo only our order id, not the provider intent
        matched = (
            capture.provider_order_id == order.provider_order_id
            if capture.provider_order_id
            else capture.reference == order.id
        )
        if not matched:
            raise PaymentVerificationFailed("provider order id mismatch", order_id=order.id)
    if capture.amount_cents is not None and capture.amount_cents != order.total_price_cents:
        raise PaymentVerificationFailed(
            f"amount paid {format_cents(capture.amount_cents)} does not match order total {format_cents(order.total_price_cents)}",
            order_id=order.id,
        )
    if capture.currency and order.currency and capture.currency.upper() != order.currency.upper():
        raise PaymentVerificationFailed("currency mismatch", order_id=order.id)

    paid_cents = capture.amount_cents if capture.amount_cents is not None else order.total_price_cents
    return PaymentResult(
        id=capture.id,
        status=capture.status,
        email_address=capture.payer_email or "",
        price_paid=format_cents(paid_cents),
    )


def mark_order_paid(db: Session, order_id: str, payment_result: Optional[PaymentResult] = None) -> Order:
    """Flip an order to paid and decrement stock for its items, atomically.

    Raises OrderNotFound, AlreadyPaid or PersistenceError; raises OrderVanished
    if the row disappears between the lock and the update.
    """
    try:
        order = _load_order(db, order_id, lock=True)
        if not order:
            raise OrderNotFound(order_id)
        if order.is_paid:
            raise AlreadyPaid(order_id)
        lines = [(it.product_id, int(it.qty)) for it in order.items]

        values = {Order.is_paid: True, Order.paid_at: _now()}
        if payment_result is not None:
            values[Order.payment_result] = payment_result.model_dump()
        flipped = (
            db.query(Order)
            .filter(Order.id == order_id, Order.is_paid.is_(False))
            .update(values, synchronize_session=False)
        )
        if flipped != 1:
            db.rollback()
            if db.query(Order.id).filter(Order.id == order_id).first() is None:
                raise OrderVanished(order_id)
            raise AlreadyPaid(order_id)

        for product_id, qty in lines:
            db.query(Product).filter(Product.id == product_id).update(
                {Product.stock: Product.stock - qty},
                synchronize_session=False,
            )
        db.commit()
    except StorefrontError:
        db.rollback()
        raise
    except SQLAlchemyError as ex:
        db.rollback()
        logger.warning(f"[reconcile] mark paid {order_id} failed: {ex}")
        raise PersistenceError(str(ex))

    db.refresh(order)
    logger.info(f"[reconcile] order {order_id} paid; stock decremented for {len(lines)} line(s)")
    return order


async def start_provider_payment(db: Session, order_id: str, gateway: Optional[PaymentGateway] = None) -> ActionResult:
    """Create the provider-side order (payment intent) for an unpaid order.

    An order keeps the first intent issued for it; starting again returns the
    recorded intent so the buyer never pays a second one.
    """
    try:
        order = _load_order(db, order_id)
        if not order:
            raise OrderNotFound(order_id)
        if order.is_paid:
            raise AlreadyPaid(order_id)
        gateway = gateway or get_gateway(order.payment_method)

        if order.provider_order_id:
            provider_order = ProviderOrder(id=order.provider_order_id, approve_url=order.provider_approve_url)
            logger.info(f"[reconcile] reusing {gateway.name} order {provider_order.id} for order {order_id}")
        else:
            provider_order = await gateway.create_order(order.total_price_cents, order.currency, order.id)
            recorded = (
                db.query(Order)
                .filter(Order.id == order_id, Order.is_paid.is_(False), Order.provider_order_id.is_(None))
                .update(
                    {Order.provider_order_id: provider_order.id, Order.provider_approve_url: provider_order.approve_url},
                    synchronize_session=False,
                )
            )
            if recorded == 1:
                db.commit()
                logger.info(f"[reconcile] {gateway.name} order {provider_order.id} started for order {order_id}")
            else:
                # Paid meanwhile, or a concurrent start recorded its intent first
                db.rollback()
                order = _load_order(db, order_id)
                if not order:
                    raise OrderNotFound(order_id)
                if order.is_paid:
                    raise AlreadyPaid(order_id)
                provider_order = ProviderOrder(id=order.provider_order_id, approve_url=order.provider_approve_url)
    except StorefrontError as err:
        db.rollback()
        logger.info(f"[reconcile] payment not started for order {order_id}: {err.code} {err.message}")
        return ActionResult.fail(err)
    except SQLAlchemyError as ex:
        db.rollback()
        logger.warning(f"[reconcile] recording provider order for {order_id} failed: {ex}")
        return ActionResult.fail(PersistenceError(str(ex)))

    return ActionResult.ok(
        f"{gateway.name} order created successfully",
        provider_order_id=provider_order.id,
        approve_url=provider_order.approve_url,
    )


async def capture_provider_payment(
    db: Session,
    order_id: str,
    provider_order_id: str,
    gateway: Optional[PaymentGateway] = None,
    notify: Optional[Notifier] = send_purchase_receipt,
) -> ActionResult:
    """Capture (or confirm) a provider payment after the buyer returns, then mark paid."""
    try:
        order = _load_order(db, order_id)
        if not order:
            raise OrderNotFound(order_id)
        # Do not capture twice at the provider for an order we already settled
        if order.is_paid:
            raise AlreadyPaid(order_id)
        if order.provider_order_id and provider_order_id != order.provider_order_id:
            raise PaymentVerificationFailed("provider order id mismatch", order_id=order_id)
        gateway = gateway or get_gateway(order.payment_method)

        capture = await gateway.capture(provider_order_id)
        payment_result = verify_capture(order, capture, gateway)
        paid = mark_order_paid(db, order_id, payment_result)
    except StorefrontError as err:
        db.rollback()
        logger.info(f"[reconcile] capture rejected for order {order_id}: {err.code} {err.message}")
        return ActionResult.fail(err)
    except SQLAlchemyError as ex:
        db.rollback()
        logger.warning(f"[reconcile] capture for order {order_id} failed: {ex}")
        return ActionResult.fail(PersistenceError(str(ex)))

    _notify(paid, notify)
    return ActionResult.ok(
        f"Your order has been successfully paid by {gateway.name}",
        redirect_to=f"/order/{order_id}",
        order=paid.to_dict(),
    )


def apply_provider_confirmation(
    db: Session,
    capture: CaptureResult,
    gateway: PaymentGateway,
    notify: Optional[Notifier] = send_purchase_receipt,
) -> ActionResult:
    """Apply an already-authenticated asynchronous confirmation (webhook)."""
    try:
        order = None
        if capture.reference:
            order = _load_order(db, capture.reference)
        if order is None and capture.provider_order_id:
            order = db.query(Order).filter(Order.provider_order_id == capture.provider_order_id).first()
        if order is None:
            raise OrderNotFound(capture.reference or capture.provider_order_id or "")
        if order.is_paid:
            raise AlreadyPaid(order.id)

        payment_result = verify_capture(order, capture, gateway)
        paid = mark_order_paid(db, order.id, payment_result)
    except StorefrontError as err:
        db.rollback()
        logger.info(f"[reconcile] {gateway.name} confirmation {capture.id or '-'} not applied: {err.code} {err.message}")
        return ActionResult.fail(err)
    except SQLAlchemyError as ex:
        db.rollback()
        logger.warning(f"[reconcile] {gateway.name} confirmation {capture.id or '-'} failed: {ex}")
        return ActionResult.fail(PersistenceError(str(ex)))

    _notify(paid, notify)
    return ActionResult.ok("Order paid", order=paid.to_dict())


def mark_paid_cash_on_delivery(db: Session, order_id: str, notify: Optional[Notifier] = send_purchase_receipt) -> ActionResult:
    """Administrative mark-as-paid; there is no provider payload to verify."""
    try:
        paid = mark_order_paid(db, order_id)
    except StorefrontError as err:
        return ActionResult.fail(err)

    _notify(paid, notify)
    return ActionResult.ok("Order paid successfully", redirect_to=f"/order/{order_id}", order=paid.to_dict())
