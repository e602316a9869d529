"""
Authentication dependency for FastAPI.

Tokens are issued elsewhere; this module only verifies them. Accepted from:
1. Authorization: Bearer <token>
2. x-access-token: <token> (header used by the web client)
"""

import logging
import uuid
from typing import Any

from fastapi import Header, HTTPException
from sqlalchemy.exc import SQLAlchemyError

from hatemates import repo
from hatemates.auth.security import decode_access_token, user_id_from_payload
from hatemates.config import DEV_MODE
from hatemates.database import SessionLocal
from hatemates.errors import StoreFailure

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Raised when authentication fails with detailed reason."""

    def __init__(self, reason: str, detail: str = "unauthorized"):
        self.reason = reason
        self.detail = detail
        self.trace_id = str(uuid.uuid4())
        super().__init__(detail)


def _unauthorized(exc: AuthError) -> HTTPException:
    logger.warning(f"[AUTH_FAILURE] trace_id={exc.trace_id} reason={exc.reason}")
    detail: dict[str, Any] = {"message": exc.detail, "trace_id": exc.trace_id}
    if DEV_MODE:
        detail["reason"] = exc.reason
    return HTTPException(status_code=401, detail=detail)


def _extract_token(authorization: str | None, access_token: str | None) -> str:
    if authorization:
        parts = authorization.split(" ", 1)
        if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
            raise AuthError(reason="malformed_token", detail="Invalid Authorization header")
        return parts[1].strip()
    if access_token and access_token.strip():
        return access_token.strip()
    raise AuthError(reason="missing_token", detail="Authentication required")


def get_current_user(
    authorization: str | None = Header(default=None, alias="Authorization"),
    access_token: str | None = Header(default=None, alias="x-access-token"),
) -> dict[str, Any]:
    try:
        token = _extract_token(authorization, access_token)
    except AuthError as e:
        raise _unauthorized(e)

    try:
        payload = decode_access_token(token)
    except HTTPException as e:
        reason = "token_expired" if "expired" in str(e.detail).lower() else "signature_invalid"
        raise _unauthorized(AuthError(reason=reason, detail=str(e.detail)))

    user_id = user_id_from_payload(payload)
    if user_id is None:
        raise _unauthorized(AuthError(reason="token_missing_subject"))

    try:
        with SessionLocal() as db:
            user = repo.fetch_user(db, user_id)
    except SQLAlchemyError as exc:
        raise StoreFailure("get_current_user") from exc
    if not user:
        raise _unauthorized(AuthError(reason="token_user_not_found"))

    logger.debug(f"[auth] user_id={user_id} demo_group_id={user.get('demo_group_id')}")
    return {
        "id": int(user["user_id"]),
        "first_name": user.get("first_name"),
        "demo_group_id": user.get("demo_group_id"),
    }
