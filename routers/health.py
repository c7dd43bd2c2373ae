import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.sql import text

from db.database import async_session_maker

router = APIRouter(tags=["health"])
logger = logging.getLogger("ontheform.health")


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/health/db")
async def health_db():
    """Lightweight DB health check: runs SELECT 1."""
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Database health check failed")
        # Do not leak internals; return a generic failure
        return JSONResponse(status_code=503, content={"status": "fail", "db": False})
    return {"status": "ok", "db": True}
