from typing import Optional

import jwt
from fastapi import Depends, Header

from .config import Settings, get_settings
from .errors import AuthError
from .logging_config import get_logger

logger = get_logger(__name__)

_BEARER_PREFIX = "Bearer "


def decode_user_id(authorization: Optional[str], settings: Settings) -> str:
    """Resolve the user id (``sub`` claim) from an ``Authorization`` header.

    Tokens are verified at the gateway in production, so the signature is
    only checked here when ``jwt_secret`` is configured.
    """
    header = (authorization or "").strip()
    if not header.startswith(_BEARER_PREFIX):
        logger.warning("No authorization token provided")
        raise AuthError("No authorization token provided")

    token = header[len(_BEARER_PREFIX):].strip()
    try:
        if settings.verifies_tokens:
            claims = jwt.decode(
                token,
                settings.jwt_secret,
                algorithms=settings.jwt_algorithms,
                options={"verify_aud": False},
            )
        else:
            claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as exc:
        logger.warning("Invalid authorization token", error=str(exc))
        raise AuthError("Invalid authorization token", details={"reason": str(exc)}) from exc

    user_id = claims.get("sub")
    if not user_id or not isinstance(user_id, str):
        logger.warning("User ID not found in authorization token")
        raise AuthError("User ID not found in authorization token")
    return user_id


def get_user_id(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> str:
    return decode_user_id(authorization, settings)
