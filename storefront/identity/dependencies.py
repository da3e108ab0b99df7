import hmac
import uuid
from typing import Optional, Union
from fastapi import Depends, Request
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from storefront import logger
from storefront.common.custom_exceptions import AuthError, ForbiddenError
from storefront.config.admin_config import admin_config
from storefront.db.dependencies import get_session
from storefront.schema.full_schema import Customer

USER_HEADER = "X-User-Id"
GUEST_HEADER = "X-Guest-Session"
ADMIN_HEADER = "X-Admin-Secret"


class AuthenticatedUser(BaseModel):
    user_id: int
    public_id: uuid.UUID


class GuestSession(BaseModel):
    session_id: str


Identity = Union[AuthenticatedUser, GuestSession]


def cart_owner_key(identity: Identity) -> str:
    if isinstance(identity, AuthenticatedUser):
        return f"user:{identity.user_id}"
    return f"guest:{identity.session_id}"


async def _user_from_header(session: AsyncSession, raw: str) -> Optional[AuthenticatedUser]:
    # identity headers are set by the upstream auth gateway, never by the browser
    try:
        public_id = uuid.UUID(raw)
    except ValueError:
        raise AuthError("Invalid user identifier")
    res = await session.execute(select(Customer.id).where(Customer.public_id == public_id))
    user_id = res.scalar_one_or_none()
    if user_id is None:
        logger.warning("identity.user_not_found", extra={"user_public_id": raw})
        raise AuthError("User unidentified and not authorized")
    return AuthenticatedUser(user_id=user_id, public_id=public_id)


async def resolve_identity(request: Request, session: AsyncSession = Depends(get_session)) -> Identity:
    raw_user = request.headers.get(USER_HEADER)
    if raw_user:
        user = await _user_from_header(session, raw_user)
        request.state.user_identifier = user.user_id
        return user
    sid = request.headers.get(GUEST_HEADER)
    if sid:
        request.state.sid = sid
        return GuestSession(session_id=sid)
    raise AuthError("Missing identity headers")


async def require_user(identity: Identity = Depends(resolve_identity)) -> AuthenticatedUser:
    if not isinstance(identity, AuthenticatedUser):
        raise AuthError("Login required")
    return identity


async def require_admin(request: Request) -> bool:
    if not admin_config.ENABLE_ADMIN or not admin_config.ADMIN_SECRET:
        raise ForbiddenError("Admin endpoints disabled")
    supplied = request.headers.get(ADMIN_HEADER) or ""
    if not hmac.compare_digest(supplied.encode(), admin_config.ADMIN_SECRET.encode()):
        logger.warning("admin.auth_failed", extra={"path": request.url.path})
        raise ForbiddenError("Admin secret mismatch")
    return True
