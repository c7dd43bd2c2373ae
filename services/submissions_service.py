"""
Submissions service: transactional writer for public submissions plus admin operations
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import String, case, cast, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db.schema import CONSTRAINT_FIELD, Form, Submission
from models.base import RequestContext
from models.fields import FieldModel, FieldType, is_blank, parse_fields
from services.response_validator import is_valid_email, validate_responses
from services.uniqueness_checker import check_unique, duplicate_message, unique_key_for
from utils.auth import CurrentUser
from utils.errors import (
    ConfigurationError,
    DuplicateSubmissionError,
    FormNotFoundError,
    ResponseValidationError,
)

logger = logging.getLogger("ontheform.submissions")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if total else 0,
    }


def submission_to_dict(submission: Submission) -> Dict[str, Any]:
    """Convert a submission row to the camelCase shape used by the admin UI"""
    return {
        "id": submission.id,
        "formId": submission.form_id,
        "responses": submission.responses or {},
        "submitterEmail": submission.submitter_email,
        "submitterIp": submission.submitter_ip,
        "userAgent": submission.user_agent,
        "submittedAt": _iso(submission.submitted_at),
        "updatedAt": _iso(submission.updated_at),
    }


class SubmissionsService:
    """Service for handling form submissions"""

    @staticmethod
    def extract_submitter_email(fields: List[FieldModel], responses: Dict[str, Any]) -> Optional[str]:
        """First email-typed field (declared order) holding a value becomes the submitter email.

        A malformed address in that field rejects the whole submission.
        """
        for field in fields:
            if field.type is not FieldType.EMAIL:
                continue
            value = responses.get(field.id)
            if is_blank(value):
                continue
            if not isinstance(value, str) or not is_valid_email(value):
                raise ConfigurationError(
                    f"Invalid email format in field: {field.label}", code="INVALID_EMAIL_FORMAT"
                )
            return value.strip().lower()
        return None

    @staticmethod
    def known_responses(fields: List[FieldModel], responses: Dict[str, Any]) -> Dict[str, Any]:
        """Keep only answers for fields that exist on the form"""
        known = {f.id for f in fields}
        return {k: v for k, v in (responses or {}).items() if k in known}

    @staticmethod
    async def write_submission(
        session: AsyncSession,
        form: Form,
        fields: List[FieldModel],
        responses: Dict[str, Any],
        context: RequestContext,
    ) -> Submission:
        """
        Persist a validated submission and bump the form counter in one transaction

        Args:
            session: SQLAlchemy async session (the uniqueness pre-check ran in it)
            form: The active form being submitted to
            fields: Parsed field schema of the form
            responses: Validated response map
            context: Client IP / user agent

        Returns:
            The committed Submission row

        Raises:
            FormNotFoundError: The form was deactivated or deleted meanwhile
            DuplicateSubmissionError: A concurrent submission claimed the same unique key
            ConfigurationError: The email field holds a malformed address
        """
        form_id = form.id
        conflict_message = duplicate_message(form)
        submitter_email = SubmissionsService.extract_submitter_email(fields, responses)
        unique_key = unique_key_for(form, context, responses)

        bumped = await session.execute(
            update(Form)
            .where(Form.id == form_id, Form.is_active.is_(True))
            .values(submission_count=Form.submission_count + 1)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount == 0:
            await session.rollback()
            raise FormNotFoundError()

        submission = Submission(
            form_id=form_id,
            responses=SubmissionsService.known_responses(fields, responses),
            submitter_email=submitter_email,
            submitter_ip=(context.ip or None),
            user_agent=context.user_agent,
            unique_key=unique_key,
        )
        session.add(submission)
        try:
            await session.flush()
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.info("Duplicate submission rejected by unique key form=%s", form_id)
            raise DuplicateSubmissionError(conflict_message)

        logger.info("Submission stored id=%s form=%s", submission.id, form_id)
        return submission

    @staticmethod
    async def get_submission(session: AsyncSession, submission_id: str) -> Optional[Submission]:
        return await session.get(Submission, submission_id)

    @staticmethod
    def _filter_conditions(
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[Any]:
        conditions = []
        if search:
            term = f"%{search.strip()}%"
            conditions.append(
                or_(
                    Submission.submitter_email.ilike(term),
                    cast(Submission.responses, String).ilike(term),
                )
            )
        if start_date:
            conditions.append(Submission.submitted_at >= start_date)
        if end_date:
            # Inclusive of the whole end day
            conditions.append(Submission.submitted_at < end_date + timedelta(days=1))
        return conditions

    @staticmethod
    async def list_submissions(
        session: AsyncSession,
        form_id: str,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Paginated submissions for a form, newest first, with optional text and date filters"""
        page = max(1, int(page or 1))
        limit = min(100, max(1, int(limit or 10)))

        conditions = [Submission.form_id == form_id]
        conditions += SubmissionsService._filter_conditions(search, start_date, end_date)

        total = (
            await session.execute(select(func.count()).select_from(Submission).where(*conditions))
        ).scalar_one()
        rows = (
            await session.execute(
                select(Submission)
                .where(*conditions)
                .order_by(Submission.submitted_at.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            )
        ).scalars().all()

        return {
            "submissions": [submission_to_dict(s) for s in rows],
            "pagination": _pagination(page, limit, total),
        }

    @staticmethod
    async def list_user_submissions(
        session: AsyncSession,
        user: CurrentUser,
        page: int = 1,
        limit: int = 10,
        form_id: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Submissions across every form the user may manage (all forms for a super admin)"""
        page = max(1, int(page or 1))
        limit = min(100, max(1, int(limit or 10)))

        conditions = []
        if not user.is_super_admin:
            conditions.append(Form.created_by == user.id)
        if form_id:
            conditions.append(Submission.form_id == form_id)
        conditions += SubmissionsService._filter_conditions(search, start_date, end_date)

        total = (
            await session.execute(
                select(func.count())
                .select_from(Submission)
                .join(Form, Form.id == Submission.form_id)
                .where(*conditions)
            )
        ).scalar_one()
        rows = (
            await session.execute(
                select(Submission, Form.title)
                .join(Form, Form.id == Submission.form_id)
                .where(*conditions)
                .order_by(Submission.submitted_at.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            )
        ).all()

        submissions = []
        for submission, form_title in rows:
            item = submission_to_dict(submission)
            item["formTitle"] = form_title
            submissions.append(item)
        return {"submissions": submissions, "pagination": _pagination(page, limit, total)}

    @staticmethod
    async def update_responses(
        session: AsyncSession,
        submission: Submission,
        form: Form,
        responses: Dict[str, Any],
    ) -> Submission:
        """Admin edit of a stored submission; runs the same rules as the public endpoint"""
        fields = parse_fields(form.fields)
        result = validate_responses(fields, responses)
        if not result.is_valid:
            raise ResponseValidationError(result.errors)

        conflict_message = duplicate_message(form)
        submission.submitter_email = SubmissionsService.extract_submitter_email(fields, responses)
        if form.unique_constraint_type == CONSTRAINT_FIELD:
            context = RequestContext(ip=submission.submitter_ip, user_agent=submission.user_agent)
            await check_unique(session, form, context, responses, exclude_submission_id=submission.id)
            submission.unique_key = unique_key_for(form, context, responses)

        submission.responses = SubmissionsService.known_responses(fields, responses)
        submission.updated_at = datetime.now(timezone.utc)
        try:
            await session.flush()
            await session.commit()
        except IntegrityError:
            await session.rollback()
            raise DuplicateSubmissionError(conflict_message)
        return submission

    @staticmethod
    async def delete_submission(session: AsyncSession, submission: Submission) -> None:
        """Delete a submission and decrement its form's counter (never below zero)"""
        form_id = submission.form_id
        submission_id = submission.id
        await session.execute(delete(Submission).where(Submission.id == submission_id))
        await session.execute(
            update(Form)
            .where(Form.id == form_id)
            .values(
                submission_count=case(
                    (Form.submission_count > 0, Form.submission_count - 1), else_=0
                )
            )
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        logger.info("Submission deleted id=%s form=%s", submission_id, form_id)
