"""Unit tests for the pure response validator."""
import pytest
from pydantic import ValidationError

from models.fields import FieldModel, parse_fields
from services.response_validator import matches_accept, validate_responses


def fields(*defs):
    return parse_fields(list(defs))


SIGNUP = fields(
    {"id": "name", "type": "text", "label": "Full Name", "required": True},
    {"id": "email", "type": "email", "label": "Email Address", "required": True},
    {"id": "topics", "type": "checkbox", "label": "Topics", "required": True, "options": ["A", "B"]},
    {"id": "notes", "type": "textarea", "label": "Notes"},
)


def test_missing_required_fields_reported_once_each():
    result = validate_responses(SIGNUP, {"name": "   ", "topics": []})
    assert result.errors == [
        "Full Name is required",
        "Email Address is required",
        "Topics is required",
    ]
    assert not result.is_valid


def test_all_errors_collected_not_fail_fast():
    result = validate_responses(
        SIGNUP, {"name": "", "email": "nope", "topics": ["A", "Z"]}
    )
    assert result.errors == [
        "Full Name is required",
        "Email Address must be a valid email address",
        "Topics contains an invalid option",
    ]


@pytest.mark.parametrize("value,ok", [("not-an-email", False), ("a@b.co", True), ("a@b", False), (" a@b.co ", True)])
def test_email_shape(value, ok):
    f = fields({"id": "e", "type": "email", "label": "E-mail"})
    result = validate_responses(f, {"e": value})
    assert result.is_valid is ok


def test_optional_email_may_be_blank():
    f = fields({"id": "e", "type": "email", "label": "E-mail"})
    assert validate_responses(f, {"e": ""}).is_valid
    assert validate_responses(f, {}).is_valid


def test_select_option_containment_and_allow_other():
    strict = fields({"id": "c", "type": "select", "label": "Color", "options": ["X", "Y"]})
    loose = fields({"id": "c", "type": "select", "label": "Color", "options": ["X", "Y"], "allow_other": True})

    assert validate_responses(strict, {"c": "Z"}).errors == ["Color contains an invalid option"]
    assert validate_responses(strict, {"c": "X"}).is_valid
    assert validate_responses(loose, {"c": "Z"}).is_valid


def test_radio_follows_select_rules():
    f = fields({"id": "r", "type": "radio", "label": "Size", "options": ["S", "M"]})
    assert validate_responses(f, {"r": "L"}).errors == ["Size contains an invalid option"]


def test_checkbox_checks_every_element_and_coerces_scalar():
    f = fields({"id": "t", "type": "checkbox", "label": "Topics", "options": ["A", "B"]})
    assert validate_responses(f, {"t": ["A", "B"]}).is_valid
    assert validate_responses(f, {"t": "B"}).is_valid
    assert validate_responses(f, {"t": ["A", "C", "D"]}).errors == ["Topics contains an invalid option"]

    other = fields({"id": "t", "type": "checkbox", "label": "Topics", "options": ["A"], "allow_other": True})
    assert validate_responses(other, {"t": ["A", "Something else"]}).is_valid


def test_number_and_date_values():
    f = fields(
        {"id": "age", "type": "number", "label": "Age"},
        {"id": "dob", "type": "date", "label": "Birthday"},
    )
    assert validate_responses(f, {"age": "42", "dob": "1990-05-17"}).is_valid
    assert validate_responses(f, {"age": 7.5}).is_valid
    assert validate_responses(f, {"age": "forty", "dob": "17/05/1990"}).errors == [
        "Age must be a number",
        "Birthday must be a valid date",
    ]
    assert validate_responses(f, {"dob": "2023-02-30"}).errors == ["Birthday must be a valid date"]


def test_file_metadata_rules():
    f = fields(
        {"id": "cv", "type": "file", "label": "Resume", "accept": "image/*,.pdf", "maxFileSize": 1000}
    )
    ok = {"filename": "cv.pdf", "path": "/uploads/cv.pdf", "mimetype": "application/pdf", "size": 900}
    assert validate_responses(f, {"cv": ok}).is_valid

    too_big = dict(ok, size=5000)
    assert validate_responses(f, {"cv": too_big}).errors == ["Resume exceeds the maximum file size"]

    wrong_type = dict(ok, filename="cv.docx", mimetype="application/msword")
    assert validate_responses(f, {"cv": wrong_type}).errors == ["Resume has an unsupported file type"]

    assert validate_responses(f, {"cv": "cv.pdf"}).errors == ["Resume must be an uploaded file"]


def test_file_default_size_limit():
    f = fields({"id": "doc", "type": "file", "label": "Document"})
    meta = {"filename": "big.bin", "size": 6 * 1024 * 1024}
    assert validate_responses(f, {"doc": meta}).errors == ["Document exceeds the maximum file size"]


@pytest.mark.parametrize(
    "accept,filename,mimetype,expected",
    [
        (None, "a.exe", "application/x-msdownload", True),
        ("*/*", "a.exe", None, True),
        (".PDF", "report.pdf", None, True),
        ("image/*", "pic.png", "image/png", True),
        ("image/png", "pic.jpg", "image/jpeg", False),
    ],
)
def test_matches_accept(accept, filename, mimetype, expected):
    assert matches_accept(accept, filename, mimetype) is expected


def test_unknown_response_keys_are_ignored():
    f = fields({"id": "a", "type": "text", "label": "A", "required": True})
    assert validate_responses(f, {"a": "x", "injected": "<script>"}).is_valid


def test_validation_is_deterministic():
    payload = {"name": "", "email": "bad", "topics": ["Q"]}
    assert validate_responses(SIGNUP, payload).errors == validate_responses(SIGNUP, payload).errors


def test_choice_field_requires_options():
    with pytest.raises(ValidationError):
        FieldModel.model_validate({"id": "c", "type": "select", "label": "Color", "options": []})


def test_allow_other_dropped_for_non_choice_fields():
    f = FieldModel.model_validate({"id": "t", "type": "text", "label": "T", "allow_other": True})
    assert f.allow_other is False
