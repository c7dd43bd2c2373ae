"""
Response validation for public form submissions.

Checks a response map against a form's field schema and collects every
violation instead of stopping at the first one, so a submitter can fix all
problems in one round-trip. No I/O; calling it twice with the same input
yields the same error list.
"""
import re
from dataclasses import dataclass, field as dc_field
from typing import Any, Dict, List, Optional, Sequence

from models.fields import (
    AnswerError,
    ChoiceSetAnswer,
    FieldModel,
    FieldType,
    FileAnswer,
    TextAnswer,
    is_blank,
    parse_answer,
)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match((value or "").strip()))


@dataclass
class ValidationResult:
    errors: List[str] = dc_field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def matches_accept(accept: Optional[str], filename: str, mimetype: Optional[str]) -> bool:
    """Match a file against an HTML-style accept list ('image/*,.pdf')."""
    rules = [r.strip().lower() for r in (accept or "").split(",") if r.strip()]
    if not rules:
        return True
    name = (filename or "").lower()
    mime = (mimetype or "").lower()
    for rule in rules:
        if rule == "*/*":
            return True
        if rule.startswith("."):
            if name.endswith(rule):
                return True
        elif rule.endswith("/*"):
            if mime.startswith(rule[:-1]):
                return True
        elif mime == rule:
            return True
    return False


def _check_answer(field: FieldModel, answer) -> Optional[str]:
    if isinstance(answer, TextAnswer):
        if field.type is FieldType.EMAIL and not is_valid_email(answer.value):
            return f"{field.label} must be a valid email address"
        if field.type in (FieldType.SELECT, FieldType.RADIO) and not field.allow_other:
            if answer.value not in (field.options or []):
                return f"{field.label} contains an invalid option"
        return None

    if isinstance(answer, ChoiceSetAnswer):
        if not field.allow_other:
            options = set(field.options or [])
            if any(v not in options for v in answer.values):
                return f"{field.label} contains an invalid option"
        return None

    if isinstance(answer, FileAnswer):
        if answer.size is not None and answer.size > field.file_size_limit:
            return f"{field.label} exceeds the maximum file size"
        if not matches_accept(field.accept, answer.filename, answer.mimetype):
            return f"{field.label} has an unsupported file type"
        return None

    # Numbers and dates carry no rules beyond a successful parse
    return None


def validate_responses(fields: Sequence[FieldModel], responses: Dict[str, Any]) -> ValidationResult:
    """Validate ``responses`` against ``fields``; at most one message per field."""
    result = ValidationResult()
    responses = responses or {}
    for field in fields:
        value = responses.get(field.id)
        if is_blank(value):
            if field.required:
                result.errors.append(f"{field.label} is required")
            continue
        try:
            answer = parse_answer(field, value)
        except AnswerError as e:
            result.errors.append(str(e))
            continue
        message = _check_answer(field, answer)
        if message:
            result.errors.append(message)
    return result
