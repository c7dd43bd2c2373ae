"""
Async Forms service module with Pydantic validation
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db.schema import Form, Submission, User
from models.base import FormCreate, FormSettingsUpdate, FormUpdate
from models.fields import parse_fields
from models.validators import check_constraint, check_form_schema, sanitize_for_db
from utils.auth import CurrentUser
from utils.errors import AppError, FormNotFoundError

logger = logging.getLogger("ontheform.forms")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def form_to_dict(form: Form, creator_name: Optional[str] = None) -> Dict[str, Any]:
    """Convert snake_case columns to the camelCase shape the builder UI expects"""
    data = {
        "id": form.id,
        "title": form.title,
        "description": form.description,
        "fields": form.fields or [],
        "isActive": bool(form.is_active),
        "isDisplayed": bool(form.is_displayed),
        "submissionCount": form.submission_count or 0,
        "uniqueConstraintType": form.unique_constraint_type or "none",
        "uniqueConstraintField": form.unique_constraint_field,
        "bannerUrl": form.banner_url,
        "showQrCode": bool(form.show_qr_code),
        "sendEmailNotification": bool(form.send_email_notification),
        # Terms and conditions
        "showTermsCheckbox": bool(form.show_terms_checkbox),
        "termsText": form.terms_text,
        "termsSecondaryText": form.terms_secondary_text,
        "termsLinkUrl": form.terms_link_url,
        "termsLinkText": form.terms_link_text,
        # Metadata
        "createdBy": form.created_by,
        "createdAt": _iso(form.created_at),
        "updatedAt": _iso(form.updated_at),
    }
    if creator_name is not None:
        data["createdByName"] = creator_name
    return data


def public_form_dict(form: Form) -> Dict[str, Any]:
    """What an anonymous respondent may see: no owner, counters or uniqueness internals"""
    data = form_to_dict(form)
    for key in ("createdBy", "submissionCount", "uniqueConstraintField", "isDisplayed", "updatedAt"):
        data.pop(key, None)
    return data


class AsyncFormsService:
    """Async service for handling form operations"""

    @staticmethod
    async def get_form_by_id(session: AsyncSession, form_id: str) -> Optional[Form]:
        return await session.get(Form, form_id)

    @staticmethod
    async def get_active_form(session: AsyncSession, form_id: str) -> Optional[Form]:
        """Public lookup: inactive forms are indistinguishable from missing ones"""
        result = await session.execute(
            select(Form).where(Form.id == form_id, Form.is_active.is_(True))
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_displayed_form(session: AsyncSession) -> Optional[Form]:
        result = await session.execute(
            select(Form).where(Form.is_displayed.is_(True), Form.is_active.is_(True)).limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_forms(
        session: AsyncSession,
        user: CurrentUser,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Paginated forms; super admins see every form, admins only their own"""
        page = max(1, int(page or 1))
        limit = min(100, max(1, int(limit or 10)))

        conditions = []
        if not user.is_super_admin:
            conditions.append(Form.created_by == user.id)
        if search:
            term = f"%{search.strip()}%"
            conditions.append(or_(Form.title.ilike(term), Form.description.ilike(term)))
        if status == "active":
            conditions.append(Form.is_active.is_(True))
        elif status == "inactive":
            conditions.append(Form.is_active.is_(False))

        total = (
            await session.execute(select(func.count()).select_from(Form).where(*conditions))
        ).scalar_one()
        rows = (
            await session.execute(
                select(Form, User.name)
                .outerjoin(User, User.id == Form.created_by)
                .where(*conditions)
                .order_by(Form.created_at.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            )
        ).all()

        return {
            "forms": [form_to_dict(form, creator_name or "") for form, creator_name in rows],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if total else 0,
            },
        }

    @staticmethod
    async def create_form(session: AsyncSession, user_id: str, payload: FormCreate) -> Form:
        """
        Create a new form

        Raises:
            ConfigurationError: duplicate field ids or a uniqueness constraint on a missing field
        """
        check_form_schema(payload.fields, payload.unique_constraint_type, payload.unique_constraint_field)
        data = sanitize_for_db(payload)
        if data.get("unique_constraint_type") != "field":
            data["unique_constraint_field"] = None
        form = Form(created_by=user_id, **data)
        session.add(form)
        await session.commit()
        logger.info("Form created id=%s by=%s", form.id, user_id)
        return form

    @staticmethod
    async def update_form(session: AsyncSession, form: Form, payload: FormUpdate) -> Form:
        """Apply only the attributes present in the payload"""
        data = sanitize_for_db(payload, exclude_unset=True)
        if payload.fields is not None:
            check_form_schema(payload.fields, form.unique_constraint_type, form.unique_constraint_field)
        for key, value in data.items():
            if key in ("title", "fields", "is_active", "show_terms_checkbox") and value is None:
                continue
            setattr(form, key, value)
        await session.commit()
        return form

    @staticmethod
    async def update_settings(session: AsyncSession, form: Form, payload: FormSettingsUpdate) -> Form:
        sent = payload.model_fields_set
        ctype = form.unique_constraint_type or "none"
        if "unique_constraint_type" in sent and payload.unique_constraint_type is not None:
            ctype = payload.unique_constraint_type
        target = (
            payload.unique_constraint_field
            if "unique_constraint_field" in sent
            else form.unique_constraint_field
        )
        check_constraint(parse_fields(form.fields), ctype, target)
        form.unique_constraint_type = ctype
        form.unique_constraint_field = target if ctype == "field" else None
        if payload.show_qr_code is not None:
            form.show_qr_code = payload.show_qr_code
        if payload.send_email_notification is not None:
            form.send_email_notification = payload.send_email_notification
        await session.commit()
        logger.info("Form settings updated id=%s constraint=%s", form.id, form.unique_constraint_type)
        return form

    @staticmethod
    async def toggle_active(session: AsyncSession, form: Form) -> Form:
        form.is_active = not form.is_active
        await session.commit()
        return form

    @staticmethod
    async def set_displayed(session: AsyncSession, form: Form, displayed: bool) -> Form:
        """Make ``form`` the publicly displayed form (clearing any other) or undisplay it"""
        form_id = form.id
        if displayed:
            await session.execute(
                update(Form)
                .where(Form.is_displayed.is_(True), Form.id != form_id)
                .values(is_displayed=False)
                .execution_options(synchronize_session="fetch")
            )
        form.is_displayed = displayed
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            raise AppError("Another form was displayed at the same time", code="DISPLAY_CONFLICT", status_code=409)
        return form

    @staticmethod
    async def duplicate_form(session: AsyncSession, form: Form, user_id: str) -> Form:
        """Copy a form's schema and settings; the copy starts inactive with no submissions"""
        copy = Form(
            title=f"{form.title} (Copy)"[:255],
            description=form.description,
            fields=list(form.fields or []),
            is_active=False,
            is_displayed=False,
            submission_count=0,
            unique_constraint_type=form.unique_constraint_type,
            unique_constraint_field=form.unique_constraint_field,
            banner_url=form.banner_url,
            show_qr_code=form.show_qr_code,
            send_email_notification=form.send_email_notification,
            show_terms_checkbox=form.show_terms_checkbox,
            terms_text=form.terms_text,
            terms_secondary_text=form.terms_secondary_text,
            terms_link_url=form.terms_link_url,
            terms_link_text=form.terms_link_text,
            created_by=user_id,
        )
        session.add(copy)
        await session.commit()
        return copy

    @staticmethod
    async def delete_form(session: AsyncSession, form: Form) -> None:
        """Delete a form and all of its submissions in a single transaction"""
        form_id = form.id
        await session.execute(delete(Submission).where(Submission.form_id == form_id))
        result = await session.execute(delete(Form).where(Form.id == form_id))
        if result.rowcount == 0:
            await session.rollback()
            raise FormNotFoundError("Form not found")
        await session.commit()
        logger.info("Form deleted id=%s", form_id)
