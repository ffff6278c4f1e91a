"""Identity dependency for the sync routes.

The service does not authenticate users itself. The caller's bearer
token is forwarded to the configured auth service, which answers with
the user id the request acts for.
"""

import logging
from typing import Dict

import httpx
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import Settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def verify_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Dict:
    """Verify the bearer token with the auth service.

    Returns:
        The auth service's user info, which includes ``user_id``

    Raises:
        HTTPException: 401 if the token is missing or rejected, 503 if the
            auth service cannot be reached
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Missing bearer token")

    settings = Settings()
    try:
        async with httpx.AsyncClient(timeout=settings.auth_timeout) as client:
            response = await client.post(
                settings.auth_url,
                headers={"Authorization": f"Bearer {credentials.credentials}"},
            )
    except httpx.HTTPError as e:
        logger.error(f"Auth service unreachable at {settings.auth_url}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service unavailable",
        )

    if response.status_code != 200:
        logger.warning(f"Token rejected by auth service: {response.status_code}")
        raise _unauthorized("Invalid authentication credentials")

    user_info = response.json()
    if not isinstance(user_info, dict) or not user_info.get("user_id"):
        logger.warning("Auth service reply carried no user_id")
        raise _unauthorized("Invalid authentication credentials")

    return user_info


async def current_user_id(user_info: Dict = Depends(verify_token)) -> str:
    """The authenticated user that owns every entity touched by the request."""
    return str(user_info["user_id"])
