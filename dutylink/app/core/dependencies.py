"""
FastAPI dependencies.

Resolves the worker identity from the bearer token and hands out the
backend store used by the driver endpoints.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from dutylink.app.core.jwt import decode_access_token
from dutylink.app.core.redis_client import get_redis
from dutylink.app.db.session import get_db
from dutylink.app.services.backend_store import BackendStore

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_worker(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> int:
    """
    Return the worker ID carried in the bearer token.

    Raises:
        HTTPException: 401 if the token is invalid or carries no user_id
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    worker_id = payload.get("user_id")
    if not worker_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return int(worker_id)


async def get_store(
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
) -> BackendStore:
    """Backend store bound to the request's database session."""
    return BackendStore(session=db, redis=redis)
