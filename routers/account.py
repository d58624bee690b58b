from fastapi import APIRouter, Request, Body, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.auth import get_token_claims, get_uid_from_request, resolve_cart_owner
from core.config import logger, PAYMENT_METHODS, DEFAULT_PAYMENT_METHOD
from core.database import get_db
from models.user import User
from utils.cart_store import delete_cart

router = APIRouter(prefix="/api/account", tags=["account"])


class ShippingAddress(BaseModel):
    fullName: str = Field(min_length=3)
    streetAddress: str = Field(min_length=3)
    city: str = Field(min_length=3)
    postalCode: str = Field(min_length=3)
    country: str = Field(min_length=3)
    lat: Optional[float] = None
    lng: Optional[float] = None


class PaymentMethodPayload(BaseModel):
    type: str = DEFAULT_PAYMENT_METHOD


def _current_user(request: Request, db: Session) -> Optional[User]:
    uid = get_uid_from_request(request)
    if not uid:
        return None
    return db.query(User).filter(User.id == uid).first()


# Create/update the local user row from the session token on sign-in
@router.post("/users/sync")
async def users_sync(request: Request, payload: Optional[dict] = Body(default=None), db: Session = Depends(get_db)):
    claims = get_token_claims(request)
    uid = str((claims or {}).get("sub") or "").strip()
    if not uid:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    name = str((payload or {}).get("name") or claims.get("name") or "").strip()
    email = str((payload or {}).get("email") or claims.get("email") or "").strip().lower()
    if not name and email:
        name = email.split("@")[0]

    try:
        user = db.query(User).filter(User.id == uid).first()
        if user:
            user.name = name or user.name
            user.email = email or user.email
        else:
            user = User(id=uid, name=name or "NO_NAME", email=email or f"{uid}@temp.invalid")
            db.add(user)
        db.commit()
        db.refresh(user)
        return {"ok": True, "user": user.to_dict()}
    except SQLAlchemyError as ex:
        db.rollback()
        logger.exception(f"[account] users/sync failed for {uid}: {ex}")
        return JSONResponse({"error": "Failed to sync user profile"}, status_code=500)


@router.get("/me")
async def me(request: Request, db: Session = Depends(get_db)):
    user = _current_user(request, db)
    if not user:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    return {"user": user.to_dict()}


@router.put("/address")
async def update_address(request: Request, payload: dict = Body(...), db: Session = Depends(get_db)):
    user = _current_user(request, db)
    if not user:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    try:
        address = ShippingAddress(**(payload or {}))
    except PydanticValidationError as ex:
        fields = [".".join(str(p) for p in e.get("loc", ())) for e in ex.errors()]
        return JSONResponse({"error": "Invalid shipping address", "fields": fields}, status_code=400)

    try:
        user.address = address.model_dump(exclude_none=True)
        db.commit()
        return {"ok": True, "message": "User updated successfully", "address": user.address}
    except SQLAlchemyError as ex:
        db.rollback()
        logger.warning(f"[account] address update failed for {user.id}: {ex}")
        return JSONResponse({"error": "Failed to update address"}, status_code=503)


@router.put("/payment-method")
async def update_payment_method(request: Request, payload: PaymentMethodPayload, db: Session = Depends(get_db)):
    user = _current_user(request, db)
    if not user:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    method = (payload.type or "").strip()
    if method not in PAYMENT_METHODS:
        return JSONResponse({"error": f"Unsupported payment method: {method}", "allowed": PAYMENT_METHODS}, status_code=400)

    try:
        user.payment_method = method
        db.commit()
        return {"ok": True, "message": "User updated successfully", "paymentMethod": method}
    except SQLAlchemyError as ex:
        db.rollback()
        logger.warning(f"[account] payment method update failed for {user.id}: {ex}")
        return JSONResponse({"error": "Failed to update payment method"}, status_code=503)


@router.post("/sign-out")
async def sign_out(request: Request, db: Session = Depends(get_db)):
    """Drop the caller's cart; the session token itself is revoked by the identity service."""
    owner = resolve_cart_owner(request)
    if owner is None:
        return {"ok": True}
    result = delete_cart(db, owner)
    if not result.success:
        return JSONResponse({"error": result.message}, status_code=503)
    return {"ok": True}
