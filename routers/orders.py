from fastapi import APIRouter, Request, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from core.auth import get_uid_from_request, is_admin
from core.config import PAGE_SIZE
from core.database import get_db
from core.errors import ActionResult, OrderNotFound, Unauthenticated, result_response
from utils.checkout import place_order_for_user
from utils.order_queries import get_order, list_orders_for_user
from utils.reconcile import capture_provider_payment, start_provider_payment

router = APIRouter(prefix="/api/orders", tags=["orders"])


class CapturePayload(BaseModel):
    provider_order_id: str


def _owned_order(request: Request, db: Session, order_id: str):
    """Return (order, error_response); admins may read any order."""
    uid = get_uid_from_request(request)
    if not uid:
        return None, result_response(ActionResult.fail(Unauthenticated()))
    order = get_order(db, order_id)
    if not order or (order.user_id != uid and not is_admin(db, uid)):
        return None, result_response(ActionResult.fail(OrderNotFound(order_id)))
    return order, None


@router.post("")
async def create_order(request: Request, db: Session = Depends(get_db)):
    uid = get_uid_from_request(request)
    return result_response(place_order_for_user(db, uid), success_status=201)


@router.get("/mine")
async def my_orders(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(PAGE_SIZE, ge=1, le=100),
    db: Session = Depends(get_db),
):
    uid = get_uid_from_request(request)
    if not uid:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    return list_orders_for_user(db, uid, page=page, limit=limit)


@router.get("/{order_id}")
async def read_order(order_id: str, request: Request, db: Session = Depends(get_db)):
    order, err = _owned_order(request, db, order_id)
    if err is not None:
        return err
    return {"order": order.to_dict()}


@router.post("/{order_id}/payment")
async def start_payment(order_id: str, request: Request, db: Session = Depends(get_db)):
    """Create the provider order (PayPal) or hosted checkout (card) for this order."""
    order, err = _owned_order(request, db, order_id)
    if err is not None:
        return err
    return result_response(await start_provider_payment(db, order.id))


@router.post("/{order_id}/payment/capture")
async def capture_payment(order_id: str, payload: CapturePayload, request: Request, db: Session = Depends(get_db)):
    order, err = _owned_order(request, db, order_id)
    if err is not None:
        return err
    return result_response(await capture_provider_payment(db, order.id, payload.provider_order_id))
