from typing import Optional

from fastapi import APIRouter, Request, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.auth import get_uid_from_request, is_admin
from core.config import PAGE_SIZE
from core.database import get_db
from core.errors import result_response
from utils.fulfillment import mark_delivered
from utils.order_queries import delete_order, list_all_orders, order_summary
from utils.reconcile import mark_paid_cash_on_delivery

router = APIRouter(prefix="/api/admin", tags=["admin"])


# --- Security helpers ---

def _require_admin(request: Request, db: Session) -> Optional[JSONResponse]:
    uid = get_uid_from_request(request)
    if not uid:
        return JSONResponse({"error": "unauthorized"}, status_code=401)
    if not is_admin(db, uid):
        return JSONResponse({"error": "forbidden"}, status_code=403)
    return None


@router.get("/orders")
async def admin_list_orders(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(PAGE_SIZE, ge=1, le=100),
    db: Session = Depends(get_db),
):
    denied = _require_admin(request, db)
    if denied:
        return denied
    return list_all_orders(db, page=page, limit=limit)


@router.get("/orders/summary")
async def admin_order_summary(request: Request, db: Session = Depends(get_db)):
    denied = _require_admin(request, db)
    if denied:
        return denied
    return order_summary(db)


@router.post("/orders/{order_id}/mark-paid")
async def admin_mark_paid(order_id: str, request: Request, db: Session = Depends(get_db)):
    """Cash on delivery: record payment collected by the courier."""
    denied = _require_admin(request, db)
    if denied:
        return denied
    return result_response(mark_paid_cash_on_delivery(db, order_id))


@router.post("/orders/{order_id}/deliver")
async def admin_deliver(order_id: str, request: Request, db: Session = Depends(get_db)):
    denied = _require_admin(request, db)
    if denied:
        return denied
    return result_response(mark_delivered(db, order_id))


@router.delete("/orders/{order_id}")
async def admin_delete_order(order_id: str, request: Request, db: Session = Depends(get_db)):
    denied = _require_admin(request, db)
    if denied:
        return denied
    return result_response(delete_order(db, order_id))
