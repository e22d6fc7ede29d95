"""
Async database access for the content store.

One engine per process, sized from settings. Each request gets a session
from `get_db`; the store's writes (votes, joins, new posts, view counts)
are committed together when the handler returns and rolled back if it
raises.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from buchat.config import settings

logger = logging.getLogger(__name__)

engine = create_async_engine(
    settings.tidb_url,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_recycle=settings.db_pool_recycle,
    echo=settings.db_echo,
)

# Rows stay readable after commit; the store converts them after flushing
SessionFactory = async_sessionmaker(bind=engine, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    """Create the communities / posts / memberships / interactions tables."""
    # Import registers the mapped classes on Base.metadata
    from buchat import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(
        "Content tables ready: %s", ", ".join(sorted(Base.metadata.tables))
    )


async def get_db():
    async with SessionFactory() as session:
        try:
            yield session
            if session.in_transaction():
                await session.commit()
        except Exception as exc:
            logger.debug("Rolling back content store session: %r", exc)
            await session.rollback()
            raise
