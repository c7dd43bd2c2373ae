"""
Form-level schema checks and helpers for turning validated models into column values
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from models.fields import FieldModel, find_duplicate_ids
from utils.errors import ConfigurationError


def sanitize_for_db(model_instance: BaseModel, exclude_unset: bool = False) -> Dict[str, Any]:
    """
    Convert a validated Pydantic model to a dictionary of column values

    Field definitions are stored in their wire shape (camelCase aliases) so the
    builder UI reads back exactly what it saved.
    """
    data = model_instance.model_dump(exclude_unset=exclude_unset)
    fields = getattr(model_instance, "fields", None)
    if "fields" in data and fields is not None:
        data["fields"] = [f.to_storage() for f in fields]
    return data


def check_field_ids(fields: List[FieldModel]) -> None:
    dupes = find_duplicate_ids(fields)
    if dupes:
        raise ConfigurationError(
            f"Duplicate field IDs found: {', '.join(dupes)}",
            code="DUPLICATE_FIELD_IDS",
            details={"duplicateIds": dupes},
        )


def check_constraint(
    fields: List[FieldModel],
    unique_constraint_type: Optional[str],
    unique_constraint_field: Optional[str],
) -> None:
    """A per-field constraint must name a field that exists on the form."""
    if unique_constraint_type != "field":
        return
    if not unique_constraint_field:
        raise ConfigurationError(
            "Field selection is required for field-based uniqueness", code="FIELD_REQUIRED"
        )
    if unique_constraint_field not in {f.id for f in fields}:
        raise ConfigurationError("Selected field does not exist in form", code="FIELD_NOT_FOUND")


def check_form_schema(
    fields: List[FieldModel],
    unique_constraint_type: Optional[str] = None,
    unique_constraint_field: Optional[str] = None,
) -> None:
    check_field_ids(fields)
    check_constraint(fields, unique_constraint_type, unique_constraint_field)
