# taskflow/auth/security.py
"""
Bearer tokens are minted by the external auth provider; this module only
verifies them. `create_access_token` mirrors the provider's token shape for
local tooling and tests.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from loguru import logger

from taskflow.core.config import settings

import uuid

REQUIRED_CLAIMS = ("sub", "email")


def provider_claims(user_id: str, email: str, name: Optional[str] = None, picture: Optional[str] = None) -> dict:
    """Identity claims as the auth provider puts them in its tokens"""
    claims = {"sub": user_id, "email": email}
    if name:
        claims["name"] = name
    if picture:
        claims["picture"] = picture
    return claims


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({
        "exp": datetime.now(timezone.utc) + lifetime,
        "jti": str(uuid.uuid4()),
    })

    return jwt.encode(
        to_encode, settings.JWT_SECRET_KEY.get_secret_value(), algorithm=settings.ALGORITHM
    )


def decode_token(token: str) -> dict:
    """
    Verify signature and expiry and return the claims.
    Raises JWTError (ExpiredSignatureError for stale tokens).
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY.get_secret_value(),
            algorithms=[settings.ALGORITHM],
            options={"require_exp": True}
        )
    except JWTError as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise


def has_identity_claims(payload: dict) -> bool:
    return all(payload.get(claim) for claim in REQUIRED_CLAIMS)
