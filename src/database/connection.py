"""
Conexión a Base de Datos

Gestiona la conexión async a SQLite (desarrollo) o PostgreSQL (producción)
donde viven los datos de benchmark. Incluye connection pooling y
context managers.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

# Base para los modelos
Base = declarative_base()

async_engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[async_sessionmaker] = None


def init_async_db(database_url: Optional[str] = None) -> async_sessionmaker:
    """
    Inicializa la conexión asincrónica a la base de datos.

    Args:
        database_url: URL explícita (por defecto la de settings)

    Returns:
        Fábrica de sesiones
    """
    global async_engine, AsyncSessionLocal

    from config.settings import settings

    database_url = database_url or settings.get_async_database_url()

    if "aiosqlite" in database_url:
        db_path = database_url.replace("sqlite+aiosqlite:///", "")
        if db_path and not db_path.startswith(":memory:"):
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        async_engine = create_async_engine(
            database_url,
            echo=settings.DATABASE_ECHO,
            connect_args={"check_same_thread": False}
        )
    else:
        # PostgreSQL async con connection pooling
        async_engine = create_async_engine(
            database_url,
            echo=settings.DATABASE_ECHO,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_recycle=settings.DATABASE_POOL_RECYCLE,
            pool_pre_ping=True
        )

    AsyncSessionLocal = async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )
    return AsyncSessionLocal


async def create_tables_async() -> None:
    """Crea todas las tablas en la base de datos."""
    global async_engine

    if async_engine is None:
        init_async_db()

    # Importar modelos para registrarlos
    from src.database import models  # noqa

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager asincrónico para sesiones de base de datos.

    Uso:
        async with get_async_db() as db:
            result = await db.execute(query)
    """
    global AsyncSessionLocal

    if AsyncSessionLocal is None:
        init_async_db()

    session = AsyncSessionLocal()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def close_async_db() -> None:
    """Cierra las conexiones async de la base de datos."""
    global async_engine, AsyncSessionLocal

    if async_engine is not None:
        await async_engine.dispose()
        async_engine = None
        AsyncSessionLocal = None
