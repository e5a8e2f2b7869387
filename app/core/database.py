import logging

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from app.core.config import settings

logger = logging.getLogger(__name__)

# -----------------------
# Database URL
# -----------------------
DATABASE_URL = settings.sqlalchemy_database_url

# Hide password in logs
safe_db_url = (
    DATABASE_URL.replace(settings.db_password, "****")
    if settings.db_password and not settings.database_url
    else DATABASE_URL
)
logger.info(f"Database URL: {safe_db_url}")

# -----------------------
# SQLAlchemy async engine
# -----------------------
engine_kwargs: dict = {"echo": False, "pool_pre_ping": True}

if DATABASE_URL.startswith("sqlite"):
    # One file, no server: open a connection per checkout
    engine_kwargs["connect_args"] = {"check_same_thread": False}
    engine_kwargs["poolclass"] = NullPool
else:
    engine_kwargs.update(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=30,
        pool_recycle=1800,
        # Enrollment dates are stored and compared in UTC
        connect_args={"server_settings": {"timezone": "UTC"}, "timeout": 5},
    )

engine = create_async_engine(DATABASE_URL, **engine_kwargs)


# -----------------------
# SQLite only enforces ON DELETE CASCADE with foreign_keys enabled
# -----------------------
def enable_sqlite_foreign_keys(sync_engine):
    @event.listens_for(sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


if DATABASE_URL.startswith("sqlite"):
    enable_sqlite_foreign_keys(engine.sync_engine)

# -----------------------
# Session and Base
# -----------------------
AsyncSessionLocal = async_sessionmaker(
    bind=engine, autoflush=False, expire_on_commit=False
)
Base = declarative_base()


async def check_database_connection() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection successful ✅")
        return True
    except Exception as e:
        logger.error(f"Failed to connect to database ❌: {str(e)}")
        return False


# -----------------------
# Dependency for FastAPI
# -----------------------
async def get_db():
    async with AsyncSessionLocal() as db:
        try:
            yield db
        except Exception as e:
            logger.error(f"Database error occurred: {str(e)}")
            await db.rollback()
            raise
