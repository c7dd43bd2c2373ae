"""Uniqueness checker and transactional writer, exercised against the database."""
import pytest

from conftest import count_submissions, get_form_row
from models.base import RequestContext
from models.fields import parse_fields
from services.submissions_service import SubmissionsService
from services.uniqueness_checker import check_unique, unique_key_for
from utils.errors import ConfigurationError, DuplicateSubmissionError, FormNotFoundError

ALICE = RequestContext(ip="10.0.0.1", user_agent="pytest")
BOB = RequestContext(ip="10.0.0.2", user_agent="pytest")


async def _write(session, form, responses, context=ALICE):
    return await SubmissionsService.write_submission(
        session, form, parse_fields(form.fields), responses, context
    )


async def test_no_constraint_always_accepts(session, make_form):
    form = await make_form()
    await _write(session, form, {"email": "a@b.com"})
    await check_unique(session, form, ALICE, {"email": "a@b.com"})


async def test_ip_constraint_rejects_same_ip_only(session, make_form):
    form = await make_form(unique_constraint_type="ip")
    await _write(session, form, {"email": "a@b.com"})

    with pytest.raises(DuplicateSubmissionError) as exc:
        await check_unique(session, form, ALICE, {"email": "c@d.com"})
    assert exc.value.message == "You have already submitted this form from this IP address"

    await check_unique(session, form, BOB, {"email": "c@d.com"})


async def test_ip_constraint_needs_a_client_ip(session, make_form):
    form = await make_form(unique_constraint_type="ip")
    with pytest.raises(ConfigurationError) as exc:
        await check_unique(session, form, RequestContext(ip=None), {"email": "a@b.com"})
    assert exc.value.code == "CLIENT_IP_UNAVAILABLE"


async def test_field_constraint_rejects_same_value(session, make_form):
    form = await make_form(unique_constraint_type="field", unique_constraint_field="email")
    await _write(session, form, {"email": "a@b.com"})

    with pytest.raises(DuplicateSubmissionError) as exc:
        await check_unique(session, form, BOB, {"email": "a@b.com"})
    assert exc.value.status_code == 409
    assert exc.value.message == "A submission with this value already exists"

    await check_unique(session, form, ALICE, {"email": "other@b.com"})


@pytest.mark.parametrize("responses", [{}, {"email": ""}, {"email": None}, {"note": "x"}])
async def test_field_constraint_missing_value_is_configuration_error(session, make_form, responses):
    form = await make_form(unique_constraint_type="field", unique_constraint_field="email")
    with pytest.raises(ConfigurationError) as exc:
        await check_unique(session, form, ALICE, responses)
    assert exc.value.code == "UNIQUE_FIELD_REQUIRED"
    assert exc.value.status_code == 400


async def test_field_constraint_without_target_field_is_configuration_error(session, make_form):
    form = await make_form(unique_constraint_type="field", unique_constraint_field=None)
    with pytest.raises(ConfigurationError):
        await check_unique(session, form, ALICE, {"email": "a@b.com"})


async def test_writer_inserts_and_increments_counter(session, make_form):
    form = await make_form()
    submission = await _write(session, form, {"email": "  A@B.com ", "note": "hi", "stray": "dropped"})

    assert submission.id
    assert submission.submitted_at is not None
    assert submission.submitter_email == "a@b.com"
    assert submission.submitter_ip == "10.0.0.1"
    assert submission.responses == {"email": "  A@B.com ", "note": "hi"}
    assert (await get_form_row(form.id)).submission_count == 1


async def test_writer_counter_tracks_every_submission(session, make_form):
    form = await make_form()
    for i in range(3):
        await _write(session, form, {"email": f"user{i}@example.com"})
    assert (await get_form_row(form.id)).submission_count == 3
    assert await count_submissions(form.id) == 3


async def test_writer_refuses_inactive_form(session, make_form):
    form = await make_form(is_active=False)
    form_id = form.id
    with pytest.raises(FormNotFoundError):
        await _write(session, form, {"email": "a@b.com"})
    assert await count_submissions(form_id) == 0


async def test_malformed_submitter_email_rejects_write(session, make_form):
    form = await make_form()
    with pytest.raises(ConfigurationError) as exc:
        await _write(session, form, {"email": ["a@b.com"]})
    assert exc.value.code == "INVALID_EMAIL_FORMAT"
    assert (await get_form_row(form.id)).submission_count == 0


async def test_first_email_field_in_declared_order_wins(session, make_form):
    form = await make_form(
        fields=[
            {"id": "work", "type": "email", "label": "Work Email"},
            {"id": "home", "type": "email", "label": "Home Email"},
        ]
    )
    submission = await _write(session, form, {"home": "home@x.io", "work": ""})
    assert submission.submitter_email == "home@x.io"


async def test_storage_key_rejects_duplicate_that_skipped_the_precheck(session, make_form):
    """Two requests racing past check_unique: the second insert must fail and roll back its increment."""
    form = await make_form(unique_constraint_type="field", unique_constraint_field="email")
    form_id = form.id
    await _write(session, form, {"email": "race@b.com"}, ALICE)

    with pytest.raises(DuplicateSubmissionError):
        await _write(session, form, {"email": "race@b.com"}, BOB)

    assert (await get_form_row(form_id)).submission_count == 1
    assert await count_submissions(form_id) == 1


async def test_ip_storage_key_rejects_duplicate(session, make_form):
    form = await make_form(unique_constraint_type="ip")
    form_id = form.id
    await _write(session, form, {"email": "one@b.com"}, ALICE)
    with pytest.raises(DuplicateSubmissionError):
        await _write(session, form, {"email": "two@b.com"}, ALICE)
    assert (await get_form_row(form_id)).submission_count == 1


async def test_unique_key_derivation(make_form):
    none_form = await make_form()
    ip_form = await make_form(unique_constraint_type="ip")
    field_form = await make_form(unique_constraint_type="field", unique_constraint_field="email")

    assert unique_key_for(none_form, ALICE, {}) is None
    assert unique_key_for(ip_form, ALICE, {}) == "ip:10.0.0.1"
    a = unique_key_for(field_form, ALICE, {"email": "a@b.com"})
    b = unique_key_for(field_form, BOB, {"email": "a@b.com"})
    assert a == b and a.startswith("field:")
    assert unique_key_for(field_form, ALICE, {"email": "z@b.com"}) != a


async def test_delete_decrements_counter(session, make_form):
    form = await make_form()
    subs = [await _write(session, form, {"email": f"u{i}@b.com"}) for i in range(3)]
    await SubmissionsService.delete_submission(session, subs[0])
    assert (await get_form_row(form.id)).submission_count == 2
    assert await count_submissions(form.id) == 2
