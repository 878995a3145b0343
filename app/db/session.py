# tokenline/app/db/session.py
import asyncio
from typing import AsyncGenerator, Awaitable, Optional, TypeVar

from loguru import logger
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings
from app.core.exceptions import UpstreamUnavailableError

T = TypeVar("T")

# --- Delay Engine and Session Creation ---
_async_engine: Optional[AsyncEngine] = None
_AsyncSessionLocal: Optional[async_sessionmaker[AsyncSession]] = None

def get_async_engine() -> AsyncEngine:
    """Creates the engine if it doesn't exist yet."""
    global _async_engine
    if _async_engine is None:
        # O usuário é responsável por fornecer o driver async correto no .env
        # Ex: "postgresql+asyncpg://...", "sqlite+aiosqlite:///..."
        db_url = settings.DATABASE_URL
        if not db_url:
            raise RuntimeError("DATABASE_URL not loaded from settings. Check .env file and config.py")
        connect_args = {}
        if db_url.startswith("sqlite"):
            # Tempo máximo esperando o lock de escrita do SQLite
            connect_args["timeout"] = settings.DB_OPERATION_TIMEOUT_SECONDS
        try:
            _async_engine = create_async_engine(
                db_url,
                pool_pre_ping=True,
                echo=False, # Change to True to see SQL logs
                connect_args=connect_args,
            )
        except Exception as e:
            raise RuntimeError(f"Could not create async engine: {e}") from e
    return _async_engine

def get_session_local() -> async_sessionmaker[AsyncSession]:
    """Creates the session factory if it doesn't exist yet."""
    global _AsyncSessionLocal
    if _AsyncSessionLocal is None:
        engine = get_async_engine() # Ensure engine is created first
        _AsyncSessionLocal = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _AsyncSessionLocal
# --- End Delay ---


async def bounded(db: AsyncSession, awaitable: Awaitable[T], *, operation: str) -> T:
    """Run one storage call under DB_OPERATION_TIMEOUT_SECONDS.

    Connection problems and timeouts roll the session back and surface as
    UpstreamUnavailableError. IntegrityError is left to the caller.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=settings.DB_OPERATION_TIMEOUT_SECONDS)
    except (asyncio.TimeoutError, OperationalError, InterfaceError) as e:
        logger.error(f"Storage failure during '{operation}': {e!r}")
        try:
            await db.rollback()
        except SQLAlchemyError as rollback_error:
            logger.error(f"Rollback after '{operation}' failed: {rollback_error!r}")
        raise UpstreamUnavailableError("storage") from e


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    SessionLocal = get_session_local()
    async with SessionLocal() as db:
        yield db

async def dispose_engine():
     global _async_engine, _AsyncSessionLocal
     if _async_engine:
         await _async_engine.dispose()
         _async_engine = None
         _AsyncSessionLocal = None
