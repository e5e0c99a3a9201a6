"""Template-driven transactional email (password reset links)."""
from __future__ import annotations

import html
import re
import smtplib
from email.message import EmailMessage
from typing import Dict, Optional

from jinja2 import BaseLoader, Environment, TemplateError

from electivepro import config as app_config
from electivepro.i18n.preferences import SUPPORTED_LANGUAGES
from electivepro.utils.logging import get_logger

LOG = get_logger("email_delivery")
_PASSWORD_RESET_KEY = "password_reset"
_LANG_ORDER = tuple(SUPPORTED_LANGUAGES) or ("en",)
_SMTP_TIMEOUT = 20
_HTML_ENV = Environment(loader=BaseLoader(), autoescape=True, trim_blocks=True, lstrip_blocks=True)
_TEXT_ENV = Environment(loader=BaseLoader(), autoescape=False, trim_blocks=True, lstrip_blocks=True)
_HTML_BREAK_PATTERN = re.compile(r"</p>|<br\s*/?>", re.IGNORECASE)
_TAG_PATTERN = re.compile(r"<[^>]+>")

_TEMPLATES: Dict[str, Dict[str, Dict[str, str]]] = {
    _PASSWORD_RESET_KEY: {
        "en": {
            "subject": "Reset your {{ institution_name }} password",
            "html_body": (
                "<p>Hello {{ user_name }},</p>"
                "<p>We received a request to reset your password for {{ institution_name }}.</p>"
                '<p><a href="{{ reset_url }}">Choose a new password</a></p>'
                "<p>The link is valid for 24 hours. If you did not ask for it, ignore this message.</p>"
            ),
        },
        "ru": {
            "subject": "Сброс пароля {{ institution_name }}",
            "html_body": (
                "<p>Здравствуйте, {{ user_name }}!</p>"
                "<p>Мы получили запрос на сброс пароля для {{ institution_name }}.</p>"
                '<p><a href="{{ reset_url }}">Задать новый пароль</a></p>'
                "<p>Ссылка действует 24 часа. Если вы не запрашивали сброс, просто проигнорируйте письмо.</p>"
            ),
        },
    },
}


class EmailDeliveryError(RuntimeError):
    """Base error for email delivery failures."""


class TemplateMissingError(EmailDeliveryError):
    """Raised when the requested template is not configured."""


class MailNotConfiguredError(EmailDeliveryError):
    """Raised when SMTP settings are absent."""


class EmailSendError(EmailDeliveryError):
    """Raised when the SMTP server refuses or cannot be reached."""


def _render_template(env: Environment, template_str: str, context: Dict[str, object]) -> str:
    try:
        return env.from_string(template_str or "").render(**context)
    except TemplateError as exc:  # pragma: no cover - templates are in-code
        raise EmailDeliveryError("template_render_failed") from exc


def _html_to_text(value: str) -> str:
    if not value:
        return ""
    working = _HTML_BREAK_PATTERN.sub("\n", value)
    working = _TAG_PATTERN.sub("", working)
    working = html.unescape(working)
    working = re.sub(r"\n{3,}", "\n\n", working)
    return working.strip()


def _resolve_language(preferred: Optional[str]) -> str:
    for candidate in (preferred, app_config.default_locale()):
        if candidate:
            normalized = candidate.strip().lower()
            if normalized in _LANG_ORDER:
                return normalized
    return _LANG_ORDER[0]


def _load_template(template_key: str, language: str) -> Dict[str, str]:
    templates = _TEMPLATES.get(template_key) or {}
    record = templates.get(language)
    if record:
        return record
    for fallback in _LANG_ORDER:
        record = templates.get(fallback)
        if record:
            return record
    raise TemplateMissingError(f"{template_key}_template_missing")


def ensure_mail_configured() -> None:
    if not app_config.mail_configured():
        raise MailNotConfiguredError("mail_not_configured")


def _deliver(message: EmailMessage) -> None:
    ensure_mail_configured()
    host = app_config.smtp_host()
    try:
        with smtplib.SMTP(host, app_config.smtp_port(), timeout=_SMTP_TIMEOUT) as smtp:
            if app_config.smtp_use_tls():
                smtp.starttls()
            username = app_config.smtp_username()
            if username:
                smtp.login(username, app_config.smtp_password() or "")
            smtp.send_message(message)
    except (OSError, smtplib.SMTPException) as exc:
        LOG.warning("SMTP delivery failed host=%s to=%s: %s", host, message["To"], exc)
        raise EmailSendError("mail_send_failed") from exc


def build_message(*, recipient: str, subject: str, html_body: str, text_body: str) -> EmailMessage:
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = app_config.mail_from()
    message["To"] = recipient
    message.set_content(text_body)
    if html_body:
        message.add_alternative(html_body, subtype="html")
    return message


def send_password_reset_email(
    *,
    recipient_email: str,
    user_name: Optional[str],
    reset_url: str,
    institution_name: Optional[str] = None,
    preferred_language: Optional[str] = None,
) -> Dict[str, object]:
    """Render and send emailed password reset instructions."""

    if not recipient_email:
        raise EmailDeliveryError("recipient_required")
    if not reset_url:
        raise EmailDeliveryError("reset_url_required")
    ensure_mail_configured()

    language = _resolve_language(preferred_language)
    template = _load_template(_PASSWORD_RESET_KEY, language)
    context = {
        "user_name": (user_name or recipient_email).strip() or recipient_email,
        "institution_name": institution_name or app_config.APP_NAME,
        "reset_url": reset_url,
    }
    subject = _render_template(_TEXT_ENV, template["subject"], context).strip()
    html_body = _render_template(_HTML_ENV, template["html_body"], context)
    text_body = _html_to_text(html_body)
    if reset_url not in text_body:
        text_body = f"{text_body}\n{reset_url}".strip()

    _deliver(build_message(recipient=recipient_email, subject=subject, html_body=html_body, text_body=text_body))
    LOG.info("Sent password reset email email=%s language=%s", recipient_email, language)
    return {"language": language, "sent": True}


__all__ = [
    "send_password_reset_email",
    "build_message",
    "ensure_mail_configured",
    "EmailDeliveryError",
    "TemplateMissingError",
    "MailNotConfiguredError",
    "EmailSendError",
]
