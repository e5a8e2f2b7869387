import logging
from functools import wraps

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.exceptions import ConflictError, StoreUnavailableError

logger = logging.getLogger(__name__)


def db_exception(func):
    """
    Translate SQLAlchemy errors raised by an async service method.

    The decorated method must belong to an object exposing the session as
    ``self.db``; the session is rolled back so it stays usable afterwards.
    """

    @wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except IntegrityError as e:
            await self.db.rollback()
            logger.info(f"{func.__qualname__}: integrity violation ({e.orig})")
            raise ConflictError()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"{func.__qualname__}: {type(e).__name__}: {e}")
            raise StoreUnavailableError()

    return wrapper
