import asyncio
import base64
import logging
import os
import smtplib
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from pathlib import Path
from typing import List, Optional

import bleach
import httpx
from bleach.css_sanitizer import CSSSanitizer
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

# Email configuration from environment
EMAIL_PROVIDER = os.getenv("EMAIL_PROVIDER", "smtp")
EMAIL_FROM = os.getenv("EMAIL_FROM", "no-reply@ontheform.app")
EMAIL_FROM_NAME = os.getenv("EMAIL_FROM_NAME", "OnTheForm")

# Resend configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
RESEND_SEND_URL = "https://api.resend.com/emails"

# Debugging
EMAIL_DEBUG = os.getenv("EMAIL_DEBUG", "false").lower() in ("1", "true", "yes", "on")

# Centralized logger for email utils
logger = logging.getLogger("ontheform.email")


def _elog(msg: str):
    if EMAIL_DEBUG:
        logger.debug(msg)


_CSS_SANITIZER = CSSSanitizer(
    allowed_css_properties=[
        "color", "background-color", "font-weight", "font-style", "text-decoration",
        "text-align", "margin", "margin-top", "margin-bottom", "padding",
        "border", "border-radius", "display", "width", "height", "max-width", "line-height",
    ],
    allowed_svg_properties=[],
)

# Template search paths (file-based first, env override last)
template_search_paths = [str(Path(__file__).resolve().parents[1] / "templates" / "email")]
_env_dir = os.getenv("EMAIL_TEMPLATE_DIR")
if _env_dir:
    template_search_paths.append(_env_dir)

_templates_env = Environment(
    loader=FileSystemLoader(template_search_paths),
    autoescape=select_autoescape(["html", "xml"]),
)


def sanitize_url(url: str) -> str:
    u = str(url or "").strip()
    if u.lower().startswith(("http://", "https://")):
        return u
    return ""


def sanitize_html(html: str) -> str:
    """
    Sanitize a small subset of HTML suitable for email bodies.
    Allows formatting and simple layout while removing scripts, iframes, etc.
    """
    s = str(html or "")
    if not s:
        return ""
    allowed_tags = [
        "a", "p", "br", "strong", "em", "b", "i", "ul", "ol", "li",
        "div", "span", "table", "tr", "td", "h1", "h2", "h3", "img", "hr",
    ]
    allowed_attrs = {
        "*": ["style"],
        "a": ["href", "title", "target", "rel"],
        "img": ["src", "alt", "width", "height", "style"],
    }
    return bleach.clean(
        s,
        tags=allowed_tags,
        attributes=allowed_attrs,
        protocols=["http", "https", "mailto", "cid"],
        strip=True,
        css_sanitizer=_CSS_SANITIZER,
    )


def render_email(template_name: str, context: dict) -> str:
    try:
        template = _templates_env.get_template(template_name)
    except TemplateNotFound:
        logger.error("Email template '%s' not found. Paths searched: %s", template_name, template_search_paths)
        raise
    safe_ctx = {"year": datetime.now().year}
    safe_ctx.update(context or {})
    # Sanitize dynamic HTML/URLs
    if "banner_url" in safe_ctx:
        safe_ctx["banner_url"] = sanitize_url(safe_ctx.get("banner_url"))
    if "content_html" in safe_ctx:
        safe_ctx["content_html"] = sanitize_html(safe_ctx.get("content_html"))
    return template.render(**safe_ctx)


@dataclass
class EmailAttachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"
    # Set to reference the attachment inline from the HTML body as cid:<content_id>
    content_id: Optional[str] = None


@dataclass
class EmailSendResult:
    success: bool
    message_id: Optional[str] = None


class EmailDeliveryError(RuntimeError):
    """Raised by a provider when a message could not be handed off."""


class EmailProvider(ABC):
    """Capability interface for sending one HTML email."""

    name = "base"

    @abstractmethod
    async def send(
        self,
        to: str,
        subject: str,
        html_body: str,
        attachments: Optional[List[EmailAttachment]] = None,
    ) -> EmailSendResult:
        """Send a message or raise EmailDeliveryError."""


class SmtpEmailProvider(EmailProvider):
    """
    Send email over SMTP (STARTTLS by default, implicit TLS on port 465).

    Environment variables:
      - SMTP_HOST: SMTP server host (default: smtp.resend.com)
      - SMTP_PORT: SMTP server port (default: 587 for STARTTLS)
      - SMTP_USER: SMTP username (Resend recommends 'resend')
      - SMTP_PASSWORD or RESEND_API_KEY: SMTP password
    """

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_addr: str,
        timeout: float = 15,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_addr = from_addr
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> "SmtpEmailProvider":
        try:
            port = int(os.getenv("SMTP_PORT", "587") or "587")
        except ValueError:
            port = 587
        return cls(
            host=os.getenv("SMTP_HOST", "smtp.resend.com"),
            port=port,
            username=os.getenv("SMTP_USER", "resend"),
            password=os.getenv("SMTP_PASSWORD") or RESEND_API_KEY,
            from_addr=formataddr((EMAIL_FROM_NAME, EMAIL_FROM)),
        )

    def build_message(
        self,
        to: str,
        subject: str,
        html_body: str,
        attachments: Optional[List[EmailAttachment]] = None,
    ) -> EmailMessage:
        # MIME email with plain-text fallback
        msg = EmailMessage()
        msg["From"] = self.from_addr
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid(domain=EMAIL_FROM.split("@")[-1] or None)
        msg.set_content("This email contains HTML content. If you see this, please view in an HTML-capable client.")
        msg.add_alternative(html_body, subtype="html")

        html_part = msg.get_payload()[1]
        for att in attachments or []:
            maintype, _, subtype = att.content_type.partition("/")
            if att.content_id:
                html_part.add_related(
                    att.content,
                    maintype=maintype,
                    subtype=subtype or "octet-stream",
                    cid=f"<{att.content_id}>",
                    filename=att.filename,
                )
            else:
                msg.add_attachment(
                    att.content,
                    maintype=maintype,
                    subtype=subtype or "octet-stream",
                    filename=att.filename,
                )
        return msg

    def _send_sync(self, msg: EmailMessage) -> None:
        try:
            if self.port == 465:
                context = ssl.create_default_context()
                with smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout) as server:
                    server.login(self.username, self.password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                    server.ehlo()
                    context = ssl.create_default_context()
                    server.starttls(context=context)
                    server.ehlo()
                    server.login(self.username, self.password)
                    server.send_message(msg)
            _elog(f"SMTP send ok via {self.host}:{self.port} to={msg['To']}")
        except smtplib.SMTPResponseException as e:
            err = e.smtp_error.decode("utf-8", "ignore") if isinstance(e.smtp_error, (bytes, bytearray)) else str(e.smtp_error)
            logger.warning("SMTP error %s: %s", e.smtp_code, err)
            raise EmailDeliveryError("Failed to send email via SMTP") from e
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("SMTP send failed: %s", e)
            raise EmailDeliveryError("Failed to send email via SMTP") from e

    async def send(self, to, subject, html_body, attachments=None) -> EmailSendResult:
        if not self.password:
            logger.error("SMTP password / RESEND_API_KEY missing; cannot send email")
            raise EmailDeliveryError("Email is not configured. Provide SMTP_PASSWORD or RESEND_API_KEY.")
        msg = self.build_message(to, subject, html_body, attachments)
        # smtplib blocks; keep it off the event loop
        await asyncio.to_thread(self._send_sync, msg)
        return EmailSendResult(success=True, message_id=msg["Message-ID"])


class ResendEmailProvider(EmailProvider):
    """Send email through the Resend HTTP API."""

    name = "resend"

    def __init__(
        self,
        api_key: str,
        from_addr: str,
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.from_addr = from_addr
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_env(cls) -> "ResendEmailProvider":
        return cls(api_key=RESEND_API_KEY, from_addr=formataddr((EMAIL_FROM_NAME, EMAIL_FROM)))

    def build_payload(self, to, subject, html_body, attachments=None) -> dict:
        payload = {
            "from": self.from_addr,
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        if attachments:
            payload["attachments"] = []
            for att in attachments:
                item = {
                    "filename": att.filename,
                    "content": base64.b64encode(att.content).decode("ascii"),
                    "content_type": att.content_type,
                }
                if att.content_id:
                    item["content_id"] = att.content_id
                payload["attachments"].append(item)
        return payload

    async def send(self, to, subject, html_body, attachments=None) -> EmailSendResult:
        if not self.api_key:
            logger.error("RESEND_API_KEY missing; cannot send email")
            raise EmailDeliveryError("Email is not configured. Provide RESEND_API_KEY.")
        payload = self.build_payload(to, subject, html_body, attachments)
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(RESEND_SEND_URL, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("Resend request failed: %s", e)
            raise EmailDeliveryError("Failed to send email via Resend") from e

        if response.status_code >= 400:
            logger.warning("Resend rejected message status=%s body=%s", response.status_code, response.text[:200])
            raise EmailDeliveryError(f"Resend API error {response.status_code}")

        try:
            message_id = response.json().get("id")
        except ValueError:
            message_id = None
        _elog(f"Resend send ok to={to} id={message_id}")
        return EmailSendResult(success=True, message_id=message_id)


_PROVIDERS = {
    SmtpEmailProvider.name: SmtpEmailProvider,
    ResendEmailProvider.name: ResendEmailProvider,
}


def build_email_provider(name: Optional[str] = None) -> EmailProvider:
    """Pick the provider named by EMAIL_PROVIDER (smtp | resend)."""
    key = (name or EMAIL_PROVIDER or "smtp").strip().lower()
    try:
        provider_cls = _PROVIDERS[key]
    except KeyError:
        raise ValueError(f"Unknown EMAIL_PROVIDER '{key}'. Expected one of: {', '.join(sorted(_PROVIDERS))}")
    logger.info("Email provider: %s", key)
    return provider_cls.from_env()
