import logging
from typing import Optional

from fastapi import Depends, HTTPException, Query, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.security import jwt_manager
from app.models.user import User, UserRole
from app.services.user import UserService

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def get_external_user_id(
    credentials: HTTPAuthorizationCredentials = Security(security),
) -> str:
    """
    Dependency that requires a valid identity token and returns its subject.
    The internal user may not exist yet (profile completion).
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return jwt_manager.verify_identity_token(credentials.credentials)


async def get_current_user(
    external_id: str = Depends(get_external_user_id),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency that returns the internal user for the identity token.
    Raises 403 when the user still has to complete their profile.
    """
    user = await UserService(db).get_by_external_id(external_id)

    if not user or not user.has_completed_profile:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Profile not completed",
        )

    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """
    Dependency that returns a user if a valid token is provided, or None otherwise.
    """
    if not credentials:
        return None

    try:
        external_id = jwt_manager.verify_identity_token(credentials.credentials)
    except HTTPException:
        # Invalid tokens are treated as an anonymous visitor
        return None

    user = await UserService(db).get_by_external_id(external_id)
    if not user or not user.has_completed_profile:
        return None

    return user


def require_role(role: UserRole):
    """
    Dependency factory to require a role.
    Usage: Depends(require_role(UserRole.ADMIN))
    """

    async def role_checker(user: User = Depends(get_current_user)) -> User:
        if user.role != role:
            logger.warning(
                f"User {user.id} with role {user.role} denied {role.value} access"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{role.value.capitalize()} access required",
            )
        return user

    return role_checker


def pagination_params(
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(
        settings.default_page_size,
        ge=1,
        le=settings.max_page_size,
        description="Page size",
    ),
) -> dict:
    return {"page": page, "size": size}
