"""Bearer token verification.

Tokens are minted by the school administration service; this service only
verifies them and reads the caller's identity from the claims.
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from schoolbilling import schemas
from schoolbilling.core.config import settings
from schoolbilling.core.logging import logger

bearer_scheme = HTTPBearer(auto_error=False)


def decode_requester(
    token: str,
    secret: Optional[str] = None,
    algorithm: Optional[str] = None,
) -> Optional[schemas.Requester]:
    """Verify a token and return the requester it identifies.

    Args:
        token: The JWT from the Authorization header
        secret: Verification key, defaults to AUTH_TOKEN_SECRET
        algorithm: JWT algorithm, defaults to AUTH_TOKEN_ALGORITHM

    Returns:
        The requester, or None if the token is invalid, expired or lacks claims
    """
    try:
        claims = jwt.decode(
            token,
            secret or settings.AUTH_TOKEN_SECRET,
            algorithms=[algorithm or settings.AUTH_TOKEN_ALGORITHM],
        )
    except JWTError as e:
        logger.warning(f"Rejected bearer token: {e}")
        return None

    try:
        return schemas.Requester(
            id=claims["sub"],
            role=claims["role"],
            school_id=claims.get("school_id"),
            email=claims.get("email"),
            auth_method="jwt",
        )
    except (KeyError, ValidationError) as e:
        logger.warning(f"Bearer token is missing identity claims: {e}")
        return None


def local_system_requester() -> schemas.Requester:
    """Identity used for every request when authentication is disabled."""
    return schemas.Requester(
        id=settings.LOCAL_SYSTEM_USER_ID,
        role=schemas.RequesterRole.SYSTEM_ADMIN.value,
        auth_method="system",
    )


async def get_requester(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[schemas.Requester]:
    """Resolve the caller from the Authorization header."""
    if not settings.AUTH_ENABLED:
        return local_system_requester()

    if credentials is None:
        return None
    return decode_requester(credentials.credentials)
