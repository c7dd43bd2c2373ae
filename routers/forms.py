"""
Forms API router: admin form management plus public form lookup
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_session
from db.schema import Form
from models.base import DisplayUpdate, FormCreate, FormSettingsUpdate, FormUpdate
from services.forms_service_async import AsyncFormsService, form_to_dict, public_form_dict
from utils.auth import CurrentUser, ensure_form_access, get_current_user
from utils.errors import FormNotFoundError

router = APIRouter(prefix="/api/forms", tags=["forms"])


async def _load_owned_form(session: AsyncSession, user: CurrentUser, form_id: str) -> Form:
    form = await AsyncFormsService.get_form_by_id(session, form_id)
    if form is None:
        raise FormNotFoundError("Form not found")
    ensure_form_access(user, form)
    return form


@router.get("")
async def list_forms(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    status: Optional[Literal["active", "inactive"]] = None,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Get forms visible to the current user"""
    return await AsyncFormsService.list_forms(session, user, page, limit, search, status)


@router.get("/displayed")
async def get_displayed_form(session: AsyncSession = Depends(get_session)):
    """The form currently featured on the public landing page"""
    form = await AsyncFormsService.get_displayed_form(session)
    if form is None:
        raise FormNotFoundError("No form is currently displayed")
    return {"form": public_form_dict(form)}


@router.get("/{form_id}/public")
async def get_public_form(form_id: str, session: AsyncSession = Depends(get_session)):
    """Public form definition; inactive forms are not found"""
    form = await AsyncFormsService.get_active_form(session, form_id)
    if form is None:
        raise FormNotFoundError()
    return {"form": public_form_dict(form)}


@router.get("/{form_id}")
async def get_form(
    form_id: str,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    form = await _load_owned_form(session, user, form_id)
    return {"form": form_to_dict(form)}


@router.post("", status_code=201)
async def create_form(
    payload: FormCreate,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    form = await AsyncFormsService.create_form(session, user.id, payload)
    return {"message": "Form created successfully", "form": form_to_dict(form)}


@router.put("/{form_id}")
async def update_form(
    form_id: str,
    payload: FormUpdate,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    form = await _load_owned_form(session, user, form_id)
    form = await AsyncFormsService.update_form(session, form, payload)
    return {"message": "Form updated successfully", "form": form_to_dict(form)}


@router.put("/{form_id}/settings")
async def update_form_settings(
    form_id: str,
    payload: FormSettingsUpdate,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Uniqueness constraint, QR code and email notification settings"""
    form = await _load_owned_form(session, user, form_id)
    form = await AsyncFormsService.update_settings(session, form, payload)
    return {"message": "Form settings updated successfully", "form": form_to_dict(form)}


@router.patch("/{form_id}/toggle")
async def toggle_form(
    form_id: str,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    form = await _load_owned_form(session, user, form_id)
    form = await AsyncFormsService.toggle_active(session, form)
    state = "activated" if form.is_active else "deactivated"
    return {"message": f"Form {state} successfully", "form": form_to_dict(form)}


@router.put("/{form_id}/display")
async def set_displayed_form(
    form_id: str,
    payload: DisplayUpdate,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    form = await _load_owned_form(session, user, form_id)
    form = await AsyncFormsService.set_displayed(session, form, payload.is_displayed)
    return {"form": form_to_dict(form)}


@router.post("/{form_id}/duplicate", status_code=201)
async def duplicate_form(
    form_id: str,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    form = await _load_owned_form(session, user, form_id)
    copy = await AsyncFormsService.duplicate_form(session, form, user.id)
    return {"message": "Form duplicated successfully", "form": form_to_dict(copy)}


@router.delete("/{form_id}")
async def delete_form(
    form_id: str,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Delete a form and all of its submissions"""
    form = await _load_owned_form(session, user, form_id)
    await AsyncFormsService.delete_form(session, form)
    return {"message": "Form deleted successfully"}
