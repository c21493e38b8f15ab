"""Authentication dependencies for FastAPI"""

from authlib.jose.errors import InvalidTokenError
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from event_registration.auth.jwt_utils import jwt_utils
from event_registration.auth.models import Actor
from event_registration.logging_config import get_logger

security = HTTPBearer(auto_error=False)

logger = get_logger(__name__)


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Actor:
    """
    FastAPI dependency resolving the calling Actor from an Auth0 Bearer token

    Args:
        credentials: HTTP Bearer token credentials from Authorization header

    Returns:
        Actor extracted from a valid token

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return await jwt_utils.extract_actor(credentials.credentials)
    except InvalidTokenError as e:
        logger.info(f"Rejected bearer token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
