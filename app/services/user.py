# app/services/user.py
import logging
import math
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.decorator import db_exception
from app.core.exceptions import ConflictError, NotFoundError
from app.models.user import User, UserRole
from app.schemas.user import AdminUpdateUserRequest, CompleteProfileRequest

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    @db_exception
    async def get_user(self, user_id: int) -> Optional[User]:
        return await self.db.get(User, user_id)

    @db_exception
    async def get_by_external_id(self, external_id: str) -> Optional[User]:
        """Map an identity provider subject to the internal user"""
        result = await self.db.execute(
            select(User).where(User.external_id == external_id)
        )
        return result.scalar_one_or_none()

    async def complete_profile(
        self, external_id: str, profile: CompleteProfileRequest
    ) -> Tuple[User, bool]:
        """
        Create the internal user for an external identity, or update the
        existing one. Safe to call again with the same identity.

        Returns the user and whether this call completed the profile for the
        first time. Repeat calls and the loser of a creation race get False.
        """
        user = await self.get_by_external_id(external_id)
        if user is None:
            try:
                user = await self._create_user(external_id, profile)
                logger.info(f"User {user.id} created for external id {external_id}")
                return user, True
            except ConflictError:
                # Another request created it first
                user = await self.get_by_external_id(external_id)
                if user is None:
                    raise
                return await self._apply_profile(user, profile), False

        first_completion = not user.has_completed_profile
        return await self._apply_profile(user, profile), first_completion

    @db_exception
    async def _create_user(
        self, external_id: str, profile: CompleteProfileRequest
    ) -> User:
        user = User(
            external_id=external_id,
            full_name=profile.full_name,
            email=profile.email,
            avatar_url=profile.avatar_url,
            role=UserRole.USER,
        )
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        return user

    @db_exception
    async def _apply_profile(self, user: User, profile: CompleteProfileRequest) -> User:
        user.full_name = profile.full_name
        if profile.email is not None:
            user.email = profile.email
        if profile.avatar_url is not None:
            user.avatar_url = profile.avatar_url

        await self.db.commit()
        await self.db.refresh(user)
        return user

    @db_exception
    async def update_profile(self, user: User, full_name: str) -> User:
        user.full_name = full_name
        await self.db.commit()
        await self.db.refresh(user)
        return user

    # ==================== Admin ====================

    @db_exception
    async def get_all_users(
        self,
        page: int = 1,
        size: int = 20,
        search: Optional[str] = None,
        role: Optional[UserRole] = None,
    ) -> Tuple[List[User], dict]:
        """Get users with pagination and filters"""
        conditions = []

        if role is not None:
            conditions.append(User.role == role)

        if search:
            search_pattern = f"%{search}%"
            conditions.append(
                or_(
                    User.full_name.ilike(search_pattern),
                    User.email.ilike(search_pattern),
                )
            )

        total = (
            await self.db.execute(select(func.count(User.id)).where(*conditions))
        ).scalar_one()

        offset = (page - 1) * size
        result = await self.db.execute(
            select(User)
            .where(*conditions)
            .order_by(User.created_at.desc(), User.id.desc())
            .offset(offset)
            .limit(size)
        )
        users = list(result.scalars().all())

        total_pages = math.ceil(total / size) if size > 0 else 0
        pagination = {
            "total": total,
            "page": page,
            "size": size,
            "total_pages": total_pages,
        }

        return users, pagination

    @db_exception
    async def update_user(self, user_id: int, update_in: AdminUpdateUserRequest) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")

        for field, value in update_in.model_dump(exclude_unset=True).items():
            if value is None and field in ("full_name", "role"):
                continue
            setattr(user, field, value)

        await self.db.commit()
        await self.db.refresh(user)

        logger.info(f"User {user_id} updated by admin")
        return user

    @db_exception
    async def delete_user(self, user_id: int) -> None:
        """Delete a user; enrollments, overrides and notes go with them."""
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")

        await self.db.delete(user)
        await self.db.commit()
        logger.info(f"User {user_id} deleted")
