"""
Database connection module for OnTheForm using SQLAlchemy async engine with connection pooling
"""

import os
from typing import AsyncGenerator
from pathlib import Path

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.engine import URL
from sqlalchemy.pool import NullPool
from dotenv import load_dotenv

# Load environment variables (do not override shell env)
load_dotenv()
backend_env = Path(__file__).resolve().parents[1] / ".env"
if backend_env.exists():
    load_dotenv(dotenv_path=str(backend_env), override=False)

# Database connection parameters
DATABASE_URL_ENV = os.getenv("DATABASE_URL", "")
DB_NAME = os.getenv("POSTGRES_DB", "ontheform")
DB_USER = os.getenv("POSTGRES_USER", "postgres")
DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "")
DB_HOST = os.getenv("POSTGRES_HOST", "localhost")
DB_PORT = os.getenv("POSTGRES_PORT", "5432")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))

# SQLAlchemy models base class
Base = declarative_base()


def _normalize_async_url(dsn: str) -> str:
    # Ensure SQLAlchemy uses an async driver (asyncpg for Postgres, aiosqlite for SQLite)
    if dsn.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
        return dsn
    if dsn.startswith("postgres://"):
        return "postgresql+asyncpg://" + dsn[len("postgres://"):]
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://"):]
    if dsn.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + dsn[len("sqlite://"):]
    return dsn


if DATABASE_URL_ENV:
    DATABASE_URL = _normalize_async_url(DATABASE_URL_ENV)
else:
    # Build from discrete env vars
    DATABASE_URL = URL.create(
        drivername="postgresql+asyncpg",
        username=DB_USER,
        password=DB_PASSWORD,
        host=DB_HOST,
        port=int(DB_PORT) if str(DB_PORT).isdigit() else None,
        database=DB_NAME,
    ).render_as_string(hide_password=False)

IS_SQLITE = DATABASE_URL.startswith("sqlite")

if IS_SQLITE:
    # Local runs and tests; one connection per session, no pooling
    engine = create_async_engine(DATABASE_URL, echo=False, poolclass=NullPool)
else:
    engine = create_async_engine(
        DATABASE_URL,
        echo=False,
        pool_size=DB_POOL_SIZE,
        max_overflow=DB_MAX_OVERFLOW,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
    )

# Create session factory
async_session_maker = async_sessionmaker(
    engine, expire_on_commit=False, class_=AsyncSession
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an AsyncSession and manages commit/rollback/close."""
    session = async_session_maker()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
