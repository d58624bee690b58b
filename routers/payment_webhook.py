from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.config import logger
from core.database import get_db
from core.errors import AlreadyPaid, OrderNotFound, PaymentProviderError
from utils.dodo import DodoGateway
from utils.reconcile import apply_provider_confirmation

router = APIRouter(prefix="/api/payments", tags=["payments"])


def get_card_gateway() -> DodoGateway:
    return DodoGateway()


@router.post("/card/webhook")
async def card_webhook(request: Request, db: Session = Depends(get_db), gateway: DodoGateway = Depends(get_card_gateway)):
    """Dodo payment events (Standard Webhooks signed).

    Providers deliver at least once; a repeat for an order that is already
    paid is acknowledged with 200 so it stops retrying.
    """
    raw_body = await request.body()
    headers = {
        "webhook-id": request.headers.get("webhook-id") or request.headers.get("Webhook-Id") or "",
        "webhook-timestamp": request.headers.get("webhook-timestamp") or request.headers.get("Webhook-Timestamp") or "",
        "webhook-signature": request.headers.get("webhook-signature") or request.headers.get("Webhook-Signature") or "",
    }
    try:
        capture = gateway.verify_event(raw_body, headers)
    except PaymentProviderError as ex:
        logger.warning(f"[webhook] rejected card event: {ex.message}")
        status = 401 if ex.status == 401 else 400
        return JSONResponse({"error": "invalid webhook"}, status_code=status)

    if capture is None:
        return {"ok": True, "ignored": True}

    result = apply_provider_confirmation(db, capture, gateway)
    if result.success:
        logger.info(f"[webhook] card payment {capture.id} applied")
        return {"ok": True}
    if result.code == AlreadyPaid.code:
        logger.info(f"[webhook] duplicate card payment {capture.id or '-'}; already paid")
        return {"ok": True, "duplicate": True}
    if result.code == OrderNotFound.code:
        # Nothing to retry against
        logger.warning(f"[webhook] card payment {capture.id or '-'} references unknown order {capture.reference or '-'}")
        return {"ok": True, "order_found": False}
    logger.warning(f"[webhook] card payment {capture.id or '-'} not applied: {result.code} {result.message}")
    return result.to_response(400 if result.code == "payment_verification_failed" else 503)
