from typing import Optional

import jwt
from fastapi import Request
from sqlalchemy.orm import Session

from core.config import logger, ADMIN_EMAILS, AUTH_JWT_SECRET, AUTH_JWT_ISSUER
from models.user import User
from utils.cart_store import CartOwner

SESSION_CART_HEADER = "X-Session-Cart-Id"


def _bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("authorization") or request.headers.get("Authorization")
    if not auth_header or not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def get_token_claims(request: Request) -> Optional[dict]:
    """Decode the HS256 session token issued by the identity service."""
    token = _bearer_token(request)
    if not token:
        return None
    if not AUTH_JWT_SECRET:
        logger.warning("[auth] AUTH_JWT_SECRET not configured; rejecting bearer token")
        return None
    options = {"require": ["sub", "exp"]}
    try:
        if AUTH_JWT_ISSUER:
            return jwt.decode(token, AUTH_JWT_SECRET, algorithms=["HS256"], issuer=AUTH_JWT_ISSUER, options=options)
        return jwt.decode(token, AUTH_JWT_SECRET, algorithms=["HS256"], options=options)
    except jwt.PyJWTError as ex:
        logger.warning(f"[auth] token verification failed: {ex}")
        return None


def get_uid_from_request(request: Request) -> Optional[str]:
    claims = get_token_claims(request)
    if not claims:
        return None
    uid = str(claims.get("sub") or "").strip()
    return uid or None


def get_session_cart_id(request: Request) -> Optional[str]:
    value = (request.headers.get(SESSION_CART_HEADER) or "").strip()
    return value or None


def resolve_cart_owner(request: Request) -> Optional[CartOwner]:
    """Signed-in users own their cart by id; guests by the session cart header."""
    uid = get_uid_from_request(request)
    if uid:
        return CartOwner.for_user(uid)
    session_cart_id = get_session_cart_id(request)
    if session_cart_id:
        return CartOwner.for_session(session_cart_id)
    return None


def is_admin(db: Session, uid: Optional[str]) -> bool:
    if not uid:
        return False
    user = db.query(User).filter(User.id == uid).first()
    if not user:
        return False
    if user.role == "admin":
        return True
    return (user.email or "").lower() in ADMIN_EMAILS
