"""
Submissions API router: public submit endpoint plus admin management
"""

from datetime import date, datetime, time
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_session
from db.schema import Form, Submission
from models.base import RequestContext, SubmissionCreate, SubmissionUpdate
from services.forms_service_async import AsyncFormsService, form_to_dict
from services.submission_pipeline import submit_form
from services.submissions_service import SubmissionsService, submission_to_dict
from utils.auth import CurrentUser, ensure_form_access, get_current_user
from utils.email import EmailProvider, build_email_provider
from utils.errors import FormNotFoundError, NotFoundError
from utils.limiter import SUBMISSION_RATE_LIMIT, client_ip, limiter

router = APIRouter(prefix="/api/submissions", tags=["submissions"])


def get_email_provider(request: Request) -> EmailProvider:
    """Provider built at startup; built lazily when the lifespan did not run."""
    provider = getattr(request.app.state, "email_provider", None)
    if provider is None:
        provider = build_email_provider()
        request.app.state.email_provider = provider
    return provider


def _day_start(day: Optional[date]) -> Optional[datetime]:
    return datetime.combine(day, time.min) if day else None


async def _load_owned_submission(
    session: AsyncSession, user: CurrentUser, submission_id: str
) -> Tuple[Submission, Form]:
    submission = await SubmissionsService.get_submission(session, submission_id)
    if submission is None:
        raise NotFoundError("Submission not found", code="SUBMISSION_NOT_FOUND")
    form = await AsyncFormsService.get_form_by_id(session, submission.form_id)
    if form is None:
        raise FormNotFoundError("Form not found")
    ensure_form_access(user, form, code="SUBMISSION_ACCESS_DENIED")
    return submission, form


@router.post("", status_code=201)
@limiter.limit(SUBMISSION_RATE_LIMIT)
async def create_submission(
    request: Request,
    payload: SubmissionCreate,
    session: AsyncSession = Depends(get_session),
    email_provider: EmailProvider = Depends(get_email_provider),
):
    """Submit responses to an active form (public)"""
    context = RequestContext(
        ip=client_ip(request) or None,
        user_agent=request.headers.get("user-agent"),
    )
    return await submit_form(session, payload, context, email_provider)


@router.get("")
async def list_submissions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    form_id: Optional[str] = Query(None, alias="formId"),
    search: Optional[str] = None,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Submissions across the current user's forms (every form for a super admin)"""
    return await SubmissionsService.list_user_submissions(
        session,
        user,
        page=page,
        limit=limit,
        form_id=form_id,
        search=search,
        start_date=_day_start(start_date),
        end_date=_day_start(end_date),
    )


@router.get("/form/{form_id}")
async def list_form_submissions(
    form_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """List submissions of a form (owner or super admin)"""
    form = await AsyncFormsService.get_form_by_id(session, form_id)
    if form is None:
        raise FormNotFoundError("Form not found")
    ensure_form_access(user, form)
    result = await SubmissionsService.list_submissions(
        session,
        form_id,
        page=page,
        limit=limit,
        search=search,
        start_date=_day_start(start_date),
        end_date=_day_start(end_date),
    )
    result["form"] = form_to_dict(form)
    return result


@router.get("/{submission_id}")
async def get_submission(
    submission_id: str,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    submission, form = await _load_owned_submission(session, user, submission_id)
    return {"submission": submission_to_dict(submission), "form": form_to_dict(form)}


@router.put("/{submission_id}")
async def update_submission(
    submission_id: str,
    payload: SubmissionUpdate,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Edit the stored responses; the same validation as the public endpoint applies"""
    submission, form = await _load_owned_submission(session, user, submission_id)
    updated = await SubmissionsService.update_responses(session, submission, form, payload.responses)
    return {"message": "Submission updated successfully", "submission": submission_to_dict(updated)}


@router.delete("/{submission_id}")
async def delete_submission(
    submission_id: str,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    submission, _ = await _load_owned_submission(session, user, submission_id)
    await SubmissionsService.delete_submission(session, submission)
    return {"message": "Submission deleted successfully"}
