"""
SQLAlchemy table definitions for users, forms and form submissions
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB

from db.database import Base

# JSONB on Postgres so responses can be queried by key; plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")

CONSTRAINT_NONE = "none"
CONSTRAINT_IP = "ip"
CONSTRAINT_FIELD = "field"
CONSTRAINT_TYPES = (CONSTRAINT_NONE, CONSTRAINT_IP, CONSTRAINT_FIELD)


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(String(20), nullable=False, default="admin")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class Form(Base):
    __tablename__ = "forms"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    fields = Column(JSONType, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    is_displayed = Column(Boolean, nullable=False, default=False)
    submission_count = Column(Integer, nullable=False, default=0)
    unique_constraint_type = Column(String(10), nullable=False, default=CONSTRAINT_NONE)
    unique_constraint_field = Column(String(255))
    banner_url = Column(String(500))
    show_qr_code = Column(Boolean, nullable=False, default=False)
    send_email_notification = Column(Boolean, nullable=False, default=False)
    show_terms_checkbox = Column(Boolean, nullable=False, default=False)
    terms_text = Column(Text)
    terms_secondary_text = Column(Text)
    terms_link_url = Column(String(500))
    terms_link_text = Column(String(255))
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    __table_args__ = (
        # Only one form system-wide may be the publicly displayed form
        Index(
            "uq_forms_single_displayed",
            "is_displayed",
            unique=True,
            postgresql_where=text("is_displayed"),
            sqlite_where=text("is_displayed = 1"),
        ),
        Index("idx_forms_created_by", "created_by"),
    )


class Submission(Base):
    __tablename__ = "form_submissions"

    id = Column(String(36), primary_key=True, default=_uuid)
    form_id = Column(String(36), ForeignKey("forms.id", ondelete="CASCADE"), nullable=False)
    responses = Column(JSONType, nullable=False, default=dict)
    submitter_email = Column(String(255))
    submitter_ip = Column(String(45))
    user_agent = Column(Text)
    # Derived from the form's uniqueness constraint at write time; NULL when none applies
    unique_key = Column(String(128))
    submitted_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    __table_args__ = (
        UniqueConstraint("form_id", "unique_key", name="uq_submissions_form_unique_key"),
        Index("idx_submissions_form_id", "form_id"),
        Index("idx_submissions_form_ip", "form_id", "submitter_ip"),
        Index("idx_submissions_submitted_at", "submitted_at"),
    )
