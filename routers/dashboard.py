"""
Dashboard API router: summary counts and recent activity for the current admin
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_session
from services.dashboard_service import DashboardService
from utils.auth import CurrentUser, get_current_user

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/stats")
async def get_stats(
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return {"stats": await DashboardService.get_stats(session, user.id)}


@router.get("/recent-submissions")
async def get_recent_submissions(
    limit: int = Query(5, ge=1, le=50),
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return {"submissions": await DashboardService.recent_submissions(session, user.id, limit)}


@router.get("/active-forms")
async def get_active_forms(
    limit: int = Query(10, ge=1, le=50),
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return {"forms": await DashboardService.active_forms(session, user.id, limit)}
