import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_session
from errors import NotAuthenticated
from models import User

logger = logging.getLogger(__name__)

# Missing credentials are not an error here; each operation decides what it needs
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: AsyncSession = Depends(get_session),
) -> Optional[User]:
    if credentials is None:
        return None

    result = await session.execute(select(User).where(User.access_token == credentials.credentials))
    user = result.scalars().first()
    if user is None:
        logger.info("Rejected unknown access token")
    return user


async def require_user(user: Optional[User] = Depends(get_current_user)) -> User:
    if user is None:
        raise NotAuthenticated()
    return user


async def require_admin(user: Optional[User] = Depends(get_current_user)) -> User:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user
