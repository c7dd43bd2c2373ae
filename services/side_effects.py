"""
Best-effort work that runs after a submission has been committed.

Each hook has its own failure boundary: a hook that raises is logged and its
outcome recorded on the report, but it can never fail the request or undo
the stored submission.
"""
import asyncio
import html
import logging
import os
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from db.schema import Form, Submission
from utils.email import EmailAttachment, EmailProvider, render_email
from utils.qr import png_data_url, qr_png_bytes

logger = logging.getLogger("ontheform.side_effects")

BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:8000")
EMAIL_SEND_TIMEOUT = float(os.getenv("EMAIL_SEND_TIMEOUT", "20"))
EMAIL_FAILURE_MESSAGE = "Failed to send confirmation email"
QR_CONTENT_ID = "submission-qr"


@dataclass
class SideEffectReport:
    qr_code: Optional[str] = None
    qr_png: Optional[bytes] = None
    email_sent: Optional[bool] = None
    email_error: Optional[str] = None

    def as_response(self) -> dict:
        """Only the keys for steps that actually ran."""
        out = {}
        if self.qr_code:
            out["qrCode"] = self.qr_code
        if self.email_sent is not None:
            out["emailSent"] = self.email_sent
        if self.email_error:
            out["emailError"] = self.email_error
        return out


@dataclass
class HookContext:
    form: Form
    submission: Submission
    email_provider: Optional[EmailProvider]
    report: SideEffectReport


@dataclass(frozen=True)
class PostCommitHook:
    name: str
    run: Callable[[HookContext], Awaitable[None]]
    on_failure: Callable[[SideEffectReport], None]


def absolute_url(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    if path.lower().startswith(("http://", "https://")):
        return path
    return BACKEND_URL.rstrip("/") + "/" + path.lstrip("/")


async def generate_qr_code(ctx: HookContext) -> None:
    if not ctx.form.show_qr_code:
        return
    png = qr_png_bytes(ctx.submission.id)
    ctx.report.qr_png = png
    ctx.report.qr_code = png_data_url(png)


def _qr_failed(report: SideEffectReport) -> None:
    report.qr_png = None
    report.qr_code = None


async def send_confirmation_email(ctx: HookContext) -> None:
    form, submission, report = ctx.form, ctx.submission, ctx.report
    if not form.send_email_notification or not submission.submitter_email:
        return
    if ctx.email_provider is None:
        raise RuntimeError("No email provider configured")

    attachments = []
    if report.qr_png:
        attachments.append(
            EmailAttachment(
                filename="submission-qr.png",
                content=report.qr_png,
                content_type="image/png",
                content_id=QR_CONTENT_ID,
            )
        )
    # Titles are stored HTML-escaped; the template escapes on render
    title = html.unescape(form.title or "")
    body = render_email(
        "submission_confirmation.html",
        {
            "form_title": title,
            "banner_url": absolute_url(form.banner_url),
            "qr_cid": QR_CONTENT_ID if report.qr_png else None,
            "show_qr_code": form.show_qr_code,
            "submission_id": submission.id,
        },
    )
    result = await asyncio.wait_for(
        ctx.email_provider.send(
            submission.submitter_email,
            f"Form Submission Confirmation - {title}",
            body,
            attachments,
        ),
        timeout=EMAIL_SEND_TIMEOUT,
    )
    report.email_sent = True
    logger.info(
        "Confirmation email sent submission=%s message_id=%s", submission.id, result.message_id
    )


def _email_failed(report: SideEffectReport) -> None:
    report.email_sent = False
    report.email_error = EMAIL_FAILURE_MESSAGE


# QR runs first so the email can embed it
POST_COMMIT_HOOKS = (
    PostCommitHook("qr_code", generate_qr_code, _qr_failed),
    PostCommitHook("confirmation_email", send_confirmation_email, _email_failed),
)


async def run_post_commit_hooks(
    form: Form,
    submission: Submission,
    email_provider: Optional[EmailProvider],
    hooks: Sequence[PostCommitHook] = POST_COMMIT_HOOKS,
) -> SideEffectReport:
    report = SideEffectReport()
    ctx = HookContext(form=form, submission=submission, email_provider=email_provider, report=report)
    for hook in hooks:
        try:
            await hook.run(ctx)
        except Exception:
            logger.exception("Post-submission step '%s' failed for submission %s", hook.name, submission.id)
            hook.on_failure(report)
    return report
