"""
Cart Router
Guests are identified by the X-Session-Cart-Id header, signed-in users by their token
"""
from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from core.auth import SESSION_CART_HEADER, get_session_cart_id, get_uid_from_request, resolve_cart_owner
from core.database import get_db
from core.errors import ActionResult, Unauthenticated, result_response
from utils.cart_store import CartOwner, add_item, claim_session_cart, get_cart, new_session_cart_id, remove_item

router = APIRouter(prefix="/api/cart", tags=["cart"])


class AddItemPayload(BaseModel):
    product_id: str
    qty: int = 1


@router.get("")
async def read_cart(request: Request, db: Session = Depends(get_db)):
    owner = resolve_cart_owner(request)
    cart = get_cart(db, owner) if owner else None
    return {"cart": cart.to_dict() if cart else None}


@router.post("/items")
async def add_cart_item(request: Request, payload: AddItemPayload, db: Session = Depends(get_db)):
    owner = resolve_cart_owner(request)
    minted = None
    if owner is None:
        # First add from a new guest: hand out a session cart id
        minted = new_session_cart_id()
        owner = CartOwner.for_session(minted)

    result = add_item(db, owner, payload.product_id, payload.qty)
    if minted and result.success:
        result.data["sessionCartId"] = minted
    resp = result_response(result)
    if minted and result.success:
        resp.headers[SESSION_CART_HEADER] = minted
    return resp


@router.delete("/items/{product_id}")
async def remove_cart_item(product_id: str, request: Request, db: Session = Depends(get_db)):
    owner = resolve_cart_owner(request)
    if owner is None:
        return JSONResponse({"error": "Cart not found"}, status_code=404)
    return result_response(remove_item(db, owner, product_id))


@router.post("/claim")
async def claim_cart(request: Request, db: Session = Depends(get_db)):
    """After sign-in, move the guest cart onto the user."""
    uid = get_uid_from_request(request)
    if not uid:
        return result_response(ActionResult.fail(Unauthenticated()))
    session_cart_id = get_session_cart_id(request)
    if not session_cart_id:
        return result_response(ActionResult.ok("Nothing to claim", claimed=False))
    return result_response(claim_session_cart(db, session_cart_id, uid))
