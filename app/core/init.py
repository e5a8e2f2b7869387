"""
Application initialization module
Handles initial setup tasks like promoting the default admin
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


async def init_default_admin(db: AsyncSession) -> None:
    """
    Make sure the identity configured as ADMIN_DEFAULT_EXTERNAL_ID is an admin.

    Creates the user with a completed profile if it does not exist yet, or
    promotes it if it does. Does nothing when no external id is configured.

    Args:
        db: Database session
    """
    external_id = settings.admin_default_external_id.strip()
    if not external_id:
        logger.info("No default admin configured, skipping")
        return

    try:
        result = await db.execute(select(User).where(User.external_id == external_id))
        admin = result.scalar_one_or_none()

        if admin and admin.role == UserRole.ADMIN:
            logger.info(f"✅ Admin user already exists (ID: {admin.id})")
            return

        if admin:
            admin.role = UserRole.ADMIN
            if not admin.full_name:
                admin.full_name = settings.admin_default_name
            logger.info(f"🎉 Promoted user {admin.id} to admin")
        else:
            admin = User(
                external_id=external_id,
                full_name=settings.admin_default_name,
                email=settings.admin_default_email,
                role=UserRole.ADMIN,
            )
            db.add(admin)
            logger.info(f"🎉 Default admin created for external id {external_id}")

        await db.commit()

    except Exception as e:
        logger.error(f"❌ Failed to initialize default admin: {e}")
        await db.rollback()
        raise


async def initialize_application(db: AsyncSession) -> None:
    """
    Run all application initialization tasks.

    Args:
        db: Database session
    """
    logger.info("🚀 Starting application initialization...")

    await init_default_admin(db)

    logger.info("✅ Application initialization completed")
