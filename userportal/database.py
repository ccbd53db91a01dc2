"""
Database connection and session management.
Uses SQLAlchemy 2.0 async pattern.
"""

from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from userportal.config import get_settings
from userportal.logging_config import get_logger

logger = get_logger(__name__)
settings = get_settings()


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine with the pool and pragmas the backend needs."""
    if database_url.startswith("sqlite"):
        # NullPool: every session gets its own connection, so concurrent
        # writers are serialized by SQLite's own locking.
        sqlite_engine = create_async_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=NullPool,
        )

        @event.listens_for(sqlite_engine.sync_engine, "connect")
        def _set_sqlite_pragma(dbapi_conn, connection_record):
            """Enable WAL mode + foreign keys on every new SQLite connection."""
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

        return sqlite_engine

    # PostgreSQL settings with connection pooling
    return create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(settings.database_url, echo=settings.debug)
async_session_maker = build_session_maker(engine)


async def seed_roles(session: AsyncSession) -> None:
    """Insert the built-in roles that are missing."""
    from userportal.kernel.models import Role, RoleName
    from userportal.kernel.models.base import utcnow

    existing = set((await session.execute(select(Role.name))).scalars().all())
    now = utcnow()
    for role_name, description in (
        (RoleName.ADMIN, "System administrator"),
        (RoleName.USER, "Regular portal user"),
    ):
        if role_name.value not in existing:
            session.add(
                Role(
                    name=role_name.value,
                    description=description,
                    created_at=now,
                    updated_at=now,
                )
            )
    await session.flush()


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create tables and seed built-in roles."""
    # Import Base from kernel models to ensure all models are registered
    from userportal.kernel.models import Base

    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with build_session_maker(bind)() as session:
        await seed_roles(session)
        await session.commit()
    logger.info("Database schema ready")


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
