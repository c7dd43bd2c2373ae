"""
Field schema models and the typed answer variants parsed from raw responses
"""
import math
import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_MAX_FILE_SIZE = 5 * 1024 * 1024

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class FieldType(str, Enum):
    TEXT = "text"
    EMAIL = "email"
    TEXTAREA = "textarea"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    NUMBER = "number"
    DATE = "date"
    FILE = "file"


CHOICE_TYPES = frozenset({FieldType.SELECT, FieldType.RADIO, FieldType.CHECKBOX})
TEXT_TYPES = frozenset({FieldType.TEXT, FieldType.EMAIL, FieldType.TEXTAREA, FieldType.SELECT, FieldType.RADIO})


class FieldModel(BaseModel):
    """One admin-authored input definition embedded in a form."""
    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    id: str
    type: FieldType
    label: str
    secondary_label: Optional[str] = Field(default=None, alias="secondaryLabel")
    placeholder: Optional[str] = None
    required: bool = False
    options: Optional[List[str]] = None
    allow_other: bool = Field(default=False, alias="allowOther")
    accept: Optional[str] = None
    max_file_size: Optional[int] = Field(default=None, alias="maxFileSize")

    @field_validator("id", "label")
    def not_blank(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("options")
    def clean_options(cls, v):
        if v is None:
            return v
        return [str(o).strip() for o in v if str(o).strip()]

    @field_validator("max_file_size")
    def positive_size(cls, v):
        if v is not None and v <= 0:
            raise ValueError("maxFileSize must be positive")
        return v

    @model_validator(mode="after")
    def check_type_rules(self):
        if self.type in CHOICE_TYPES:
            if not self.options:
                raise ValueError(f"Field '{self.id}' of type {self.type.value} requires options")
        else:
            # Free-text escape hatch only applies to choice fields
            self.allow_other = False
        if self.type is not FieldType.FILE:
            self.accept = None
            self.max_file_size = None
        return self

    @property
    def file_size_limit(self) -> int:
        return self.max_file_size or DEFAULT_MAX_FILE_SIZE

    def to_storage(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def parse_fields(raw_fields: Any) -> List[FieldModel]:
    """Parse a stored fields array into FieldModel instances (declared order preserved)."""
    return [FieldModel.model_validate(f) for f in (raw_fields or [])]


def find_duplicate_ids(fields: List[FieldModel]) -> List[str]:
    seen, dupes = set(), []
    for f in fields:
        if f.id in seen and f.id not in dupes:
            dupes.append(f.id)
        seen.add(f.id)
    return dupes


# Answer variants: one per value shape a field type can produce

@dataclass(frozen=True)
class TextAnswer:
    value: str


@dataclass(frozen=True)
class NumberAnswer:
    value: float


@dataclass(frozen=True)
class DateAnswer:
    value: date


@dataclass(frozen=True)
class ChoiceSetAnswer:
    values: Tuple[str, ...]


@dataclass(frozen=True)
class FileAnswer:
    filename: str
    path: Optional[str]
    mimetype: Optional[str]
    size: Optional[int]


Answer = Union[TextAnswer, NumberAnswer, DateAnswer, ChoiceSetAnswer, FileAnswer]


class AnswerError(ValueError):
    """Raised when a raw value cannot be read as the field's answer type."""


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return str(value).strip() == ""


def _scalar(field: FieldModel, value: Any) -> str:
    if isinstance(value, (list, tuple, dict)):
        raise AnswerError(f"{field.label} must be a single value")
    return str(value).strip()


def parse_answer(field: FieldModel, value: Any) -> Answer:
    """Read a non-blank raw response value as the variant for ``field.type``."""
    if field.type in TEXT_TYPES:
        return TextAnswer(_scalar(field, value))

    if field.type is FieldType.CHECKBOX:
        items = value if isinstance(value, (list, tuple)) else [value]
        if any(isinstance(i, (list, tuple, dict)) for i in items):
            raise AnswerError(f"{field.label} contains an invalid option")
        return ChoiceSetAnswer(tuple(str(i).strip() for i in items if not is_blank(i)))

    if field.type is FieldType.NUMBER:
        if isinstance(value, bool):
            raise AnswerError(f"{field.label} must be a number")
        try:
            number = float(_scalar(field, value))
        except (TypeError, ValueError):
            raise AnswerError(f"{field.label} must be a number")
        if not math.isfinite(number):
            raise AnswerError(f"{field.label} must be a number")
        return NumberAnswer(number)

    if field.type is FieldType.DATE:
        raw = _scalar(field, value)
        if not _ISO_DATE_RE.match(raw):
            raise AnswerError(f"{field.label} must be a valid date")
        try:
            return DateAnswer(date.fromisoformat(raw))
        except ValueError:
            raise AnswerError(f"{field.label} must be a valid date")

    if field.type is FieldType.FILE:
        if not isinstance(value, dict) or not str(value.get("filename") or "").strip():
            raise AnswerError(f"{field.label} must be an uploaded file")
        size = value.get("size")
        if size is not None:
            try:
                size = int(size)
            except (TypeError, ValueError):
                raise AnswerError(f"{field.label} must be an uploaded file")
        return FileAnswer(
            filename=str(value["filename"]).strip(),
            path=value.get("path"),
            mimetype=(str(value["mimetype"]).strip().lower() if value.get("mimetype") else None),
            size=size,
        )

    raise AnswerError(f"{field.label} has an unsupported field type")
