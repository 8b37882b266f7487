from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from fastapi import HTTPException
import logging
from isp_messaging.config import settings


def async_database_url(url: str) -> str:
    """Swap a sync driver URL for its async counterpart."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///")
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://")
    return url


DATABASE_URL = async_database_url(settings.database_url)

# Database engine configuration
engine_config = {
    "echo": settings.db_echo,
    "pool_pre_ping": True,
    "pool_size": settings.db_pool_size,
    "max_overflow": settings.db_max_overflow
}

# SQLite-specific configuration
if DATABASE_URL.startswith("sqlite"):
    engine_config.pop("pool_size", None)
    engine_config.pop("max_overflow", None)
    engine_config["connect_args"] = {"check_same_thread": False}

try:
    engine = create_async_engine(DATABASE_URL, **engine_config)
    async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    Base = declarative_base()
except Exception as e:
    logging.error(f"Failed to create database engine: {str(e)}")
    raise

async def init_db(bind=None):
    try:
        async with (bind or engine).begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logging.info("Database initialized successfully")
    except Exception as e:
        logging.error(f"Failed to initialize database: {str(e)}")
        raise

async def get_db():
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            if isinstance(e, HTTPException) and e.status_code < 500:
                logging.info(f"Database session info: {e.detail}")
            else:
                logging.error(f"Database session error: {str(e)}")
            raise
        finally:
            await session.close()
