from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from fastapi import HTTPException

from hatemates.config import JWT_SECRET

ALGORITHM = "HS256"


def create_access_token(user_id: int, ttl_minutes: int = 60 * 24) -> str:
    """Tokens are issued by the account service; this exists for local runs and tests."""
    if not JWT_SECRET:
        raise HTTPException(status_code=500, detail="JWT secret not configured")
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl_minutes)).timestamp()),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    if not JWT_SECRET:
        raise HTTPException(status_code=500, detail="JWT secret not configured")
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[ALGORITHM])
        if not isinstance(payload, dict):
            raise HTTPException(status_code=401, detail="Invalid token")
        return payload
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(status_code=401, detail="Token expired") from exc
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc


def user_id_from_payload(payload: dict[str, Any]) -> int | None:
    # Older clients sign {"userId": 7}; current tokens carry "sub".
    raw = payload.get("sub", payload.get("userId"))
    try:
        user_id = int(raw)
    except (TypeError, ValueError):
        return None
    return user_id if user_id > 0 else None
