"""Database engine and session management."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from folio.config import settings
from folio.errors import StorageUnavailableError

logger = logging.getLogger(__name__)

engine = create_async_engine(settings.database_url, echo=False)

async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


@asynccontextmanager
async def session_scope(session_factory=None) -> AsyncIterator[AsyncSession]:
    """Open a session inside one transaction.

    Commits when the block exits cleanly, rolls back on any exception.
    Connection-level failures are re-raised as StorageUnavailableError.
    """
    factory = session_factory or async_session
    try:
        async with factory() as session:
            async with session.begin():
                yield session
    except (OperationalError, InterfaceError) as e:
        logger.error("Database unavailable: %s", e)
        raise StorageUnavailableError(str(e)) from e
