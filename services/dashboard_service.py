"""
Dashboard aggregates for the signed-in admin's own forms
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.schema import Form, Submission
from services.forms_service_async import form_to_dict
from services.submissions_service import submission_to_dict

RECENT_WINDOW_DAYS = 7


class DashboardService:
    """Read-only summaries; scoped to forms created by the user"""

    @staticmethod
    async def get_stats(session: AsyncSession, user_id: str) -> Dict[str, int]:
        total_forms = (
            await session.execute(select(func.count()).select_from(Form).where(Form.created_by == user_id))
        ).scalar_one()

        owned = (
            select(func.count())
            .select_from(Submission)
            .join(Form, Form.id == Submission.form_id)
            .where(Form.created_by == user_id)
        )
        total_submissions = (await session.execute(owned)).scalar_one()
        since = datetime.now(timezone.utc) - timedelta(days=RECENT_WINDOW_DAYS)
        recent = (await session.execute(owned.where(Submission.submitted_at >= since))).scalar_one()

        return {
            "totalForms": total_forms,
            "totalSubmissions": total_submissions,
            "averageSubmissions": round(total_submissions / total_forms) if total_forms else 0,
            "recentSubmissions": recent,
        }

    @staticmethod
    async def recent_submissions(session: AsyncSession, user_id: str, limit: int = 5) -> List[Dict[str, Any]]:
        rows = (
            await session.execute(
                select(Submission, Form.title)
                .join(Form, Form.id == Submission.form_id)
                .where(Form.created_by == user_id)
                .order_by(Submission.submitted_at.desc())
                .limit(limit)
            )
        ).all()
        out = []
        for submission, form_title in rows:
            item = submission_to_dict(submission)
            item["formTitle"] = form_title
            out.append(item)
        return out

    @staticmethod
    async def active_forms(session: AsyncSession, user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        rows = (
            await session.execute(
                select(Form)
                .where(Form.created_by == user_id, Form.is_active.is_(True))
                .order_by(Form.updated_at.desc())
                .limit(limit)
            )
        ).scalars().all()
        return [form_to_dict(form) for form in rows]
