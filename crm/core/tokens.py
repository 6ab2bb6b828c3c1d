"""
Token codec: signs and verifies expiring JWTs.

Expiry is checked here against an explicit ``now`` rather than inside jose,
so a token issued at T with TTL d is valid at every time in [T, T + d)
(the deadline is ``ceil(T + d)``) and the clock can be driven in tests.
"""
from enum import Enum
from typing import Any, Mapping, Optional
import logging
import math
import time

from jose import jwt
from jose.exceptions import JWTError

from crm.core.errors import EncodingError, ExpiredTokenError, MalformedTokenError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


class TokenPurpose(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


def issue_token(
    claims: Mapping[str, Any],
    secret: str,
    ttl: int,
    now: Optional[float] = None,
    algorithm: str = ALGORITHM,
) -> str:
    """
    Sign *claims* plus ``iat``/``exp`` in whole unix seconds.

    ``exp`` is rounded up from ``now + ttl`` so the token stays valid for the
    full TTL when issued at a fractional time.
    """
    issued_at = time.time() if now is None else now
    payload = dict(claims)
    payload["iat"] = int(issued_at)
    payload["exp"] = math.ceil(issued_at + ttl)
    try:
        token = jwt.encode(payload, secret, algorithm=algorithm)
    except (JWTError, TypeError, ValueError) as exc:
        logger.error("Failed to encode %s token", payload.get("type"), exc_info=True)
        raise EncodingError() from exc
    logger.info("Issued %s token for subject=%s", payload.get("type"), payload.get("sub"))
    return token


def verify_token(
    token: str,
    secret: str,
    now: Optional[float] = None,
    algorithm: str = ALGORITHM,
) -> dict[str, Any]:
    """
    Verify the signature of *token* and return its claims.

    Raises:
        MalformedTokenError: bad signature, wrong algorithm or unparsable token.
        ExpiredTokenError: ``now`` is at or past the embedded expiry.
    """
    if not token or not isinstance(token, str):
        raise MalformedTokenError()
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"verify_exp": False},
        )
    except JWTError as exc:
        logger.warning("Token verification failed: %s", exc)
        raise MalformedTokenError() from exc

    exp = claims.get("exp")
    if not isinstance(exp, int):
        logger.warning("Token has no usable exp claim")
        raise MalformedTokenError()
    current = time.time() if now is None else now
    if current >= exp:
        logger.info("Token expired for subject=%s", claims.get("sub"))
        raise ExpiredTokenError()
    return claims
