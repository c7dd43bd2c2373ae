"""
Per-form uniqueness constraint enforcement (none / per-IP / per-field-value)
"""
import hashlib
import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.schema import CONSTRAINT_FIELD, CONSTRAINT_IP, CONSTRAINT_NONE, Form, Submission
from models.base import RequestContext
from utils.errors import ConfigurationError, DuplicateSubmissionError

logger = logging.getLogger("ontheform.uniqueness")

DUPLICATE_IP_MESSAGE = "You have already submitted this form from this IP address"
DUPLICATE_FIELD_MESSAGE = "A submission with this value already exists"


def _require_ip(context: RequestContext) -> str:
    ip = (context.ip or "").strip()
    if not ip:
        raise ConfigurationError(
            "Unable to determine client IP address", code="CLIENT_IP_UNAVAILABLE"
        )
    return ip


def constrained_value(form: Form, responses: Dict[str, Any]) -> Tuple[str, str]:
    """Return (field_id, value) for a per-field constraint or raise ConfigurationError."""
    field_id = form.unique_constraint_field
    value = (responses or {}).get(field_id) if field_id else None
    if isinstance(value, (list, tuple, dict)):
        raise ConfigurationError(
            "Unique field must hold a single value", code="UNIQUE_FIELD_INVALID"
        )
    if not field_id or value is None or str(value).strip() == "":
        raise ConfigurationError("Required unique field is missing", code="UNIQUE_FIELD_REQUIRED")
    return field_id, str(value)


def unique_key_for(form: Form, context: RequestContext, responses: Dict[str, Any]) -> Optional[str]:
    """Storage-level uniqueness token, enforced by UNIQUE (form_id, unique_key)."""
    ctype = form.unique_constraint_type or CONSTRAINT_NONE
    if ctype == CONSTRAINT_IP:
        return f"ip:{_require_ip(context)}"
    if ctype == CONSTRAINT_FIELD:
        field_id, value = constrained_value(form, responses)
        digest = hashlib.sha256(f"{field_id}\x00{value}".encode("utf-8")).hexdigest()
        return f"field:{digest}"
    return None


def duplicate_message(form: Form) -> str:
    if form.unique_constraint_type == CONSTRAINT_IP:
        return DUPLICATE_IP_MESSAGE
    return DUPLICATE_FIELD_MESSAGE


async def check_unique(
    session: AsyncSession,
    form: Form,
    context: RequestContext,
    responses: Dict[str, Any],
    exclude_submission_id: Optional[str] = None,
) -> None:
    """Raise DuplicateSubmissionError when a prior submission already satisfies the constraint.

    This is a fast reject; the writer's unique key is the authoritative check
    for two requests racing past this query.
    """
    ctype = form.unique_constraint_type or CONSTRAINT_NONE
    if ctype == CONSTRAINT_NONE:
        return

    stmt = select(Submission.id).where(Submission.form_id == form.id)
    if ctype == CONSTRAINT_IP:
        stmt = stmt.where(Submission.submitter_ip == _require_ip(context))
    elif ctype == CONSTRAINT_FIELD:
        field_id, value = constrained_value(form, responses)
        stmt = stmt.where(Submission.responses[field_id].as_string() == value)
    else:
        raise ConfigurationError(
            f"Unknown uniqueness constraint: {ctype}", code="INVALID_CONSTRAINT_TYPE"
        )

    if exclude_submission_id:
        stmt = stmt.where(Submission.id != exclude_submission_id)

    result = await session.execute(stmt.limit(1))
    if result.scalar_one_or_none() is not None:
        logger.info("Duplicate submission rejected form=%s constraint=%s", form.id, ctype)
        raise DuplicateSubmissionError(duplicate_message(form))
