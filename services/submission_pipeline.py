"""
Public submission flow: lookup -> validate -> uniqueness -> write -> side effects.

Each stage depends on the previous one succeeding; nothing is written unless
validation and the uniqueness check pass, and nothing after the write can
turn a stored submission into a failed request.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from models.base import RequestContext, SubmissionCreate
from models.fields import parse_fields
from services.forms_service_async import AsyncFormsService
from services.response_validator import validate_responses
from services.side_effects import run_post_commit_hooks
from services.submissions_service import SubmissionsService
from services.uniqueness_checker import check_unique
from utils.email import EmailProvider
from utils.errors import FormNotFoundError, ResponseValidationError

logger = logging.getLogger("ontheform.pipeline")

SUCCESS_MESSAGE = "Form submitted successfully"


async def submit_form(
    session: AsyncSession,
    payload: SubmissionCreate,
    context: RequestContext,
    email_provider: Optional[EmailProvider],
) -> Dict[str, Any]:
    form = await AsyncFormsService.get_active_form(session, payload.form_id)
    if form is None:
        raise FormNotFoundError()

    fields = parse_fields(form.fields)
    result = validate_responses(fields, payload.responses)
    if not result.is_valid:
        logger.info("Submission rejected form=%s errors=%d", form.id, len(result.errors))
        raise ResponseValidationError(result.errors)

    await check_unique(session, form, context, payload.responses)

    submission = await SubmissionsService.write_submission(
        session, form, fields, payload.responses, context
    )

    report = await run_post_commit_hooks(form, submission, email_provider)

    body = {
        "message": SUCCESS_MESSAGE,
        "submission": {
            "id": submission.id,
            "formId": submission.form_id,
            "submittedAt": submission.submitted_at.isoformat(),
        },
    }
    body.update(report.as_response())
    return body
