"""Password reset email rendering and SMTP hand-off."""
from __future__ import annotations

import smtplib

import pytest

from electivepro.services import email_delivery
from electivepro.services.email_delivery import EmailDeliveryError, EmailSendError, MailNotConfiguredError

RESET_URL = "https://app.electivepro.net/auth/accept-invite?token=abc123"


def _send(**overrides):
    kwargs = {
        "recipient_email": "ada@alpha.edu",
        "user_name": "Ada Lovelace",
        "reset_url": RESET_URL,
        "institution_name": "Alpha University",
    }
    kwargs.update(overrides)
    return email_delivery.send_password_reset_email(**kwargs)


def _parts(message):
    text = message.get_body(preferencelist=("plain",)).get_content()
    html = message.get_body(preferencelist=("html",)).get_content()
    return text, html


def test_reset_email_carries_text_and_html(mail_outbox):
    result = _send()

    assert result == {"language": "en", "sent": True}
    (message,) = mail_outbox.messages()
    assert message["To"] == "ada@alpha.edu"
    assert message["From"] == "no-reply@electivepro.net"
    assert message["Subject"] == "Reset your Alpha University password"
    text, html = _parts(message)
    assert "Hello Ada Lovelace," in text
    assert RESET_URL in text
    assert f'href="{RESET_URL}"' in html
    (conn,) = mail_outbox.connections
    assert (conn.host, conn.port) == ("smtp.test", 587)
    assert conn.started_tls is True
    assert conn.credentials is None


def test_profile_language_and_fallback(mail_outbox):
    assert _send(preferred_language="RU")["language"] == "ru"
    assert _send(preferred_language="de")["language"] == "en"

    first, second = mail_outbox.messages()
    assert first["Subject"] == "Сброс пароля Alpha University"
    assert second["Subject"].startswith("Reset your")


def test_default_locale_used_without_preference(monkeypatch, mail_outbox):
    monkeypatch.setenv("ELECTIVEPRO_DEFAULT_LOCALE", "ru")

    assert _send(preferred_language=None)["language"] == "ru"


def test_user_name_is_escaped_in_html(mail_outbox):
    _send(user_name="<b>Eve</b>")

    text, html = _parts(mail_outbox.messages()[0])
    assert "&lt;b&gt;Eve&lt;/b&gt;" in html
    assert "<b>Eve</b>" not in html
    assert "Hello <b>Eve</b>," in text


def test_credentials_and_plain_connection(monkeypatch, mail_outbox):
    monkeypatch.setenv("ELECTIVEPRO_SMTP_USERNAME", "mailer")
    monkeypatch.setenv("ELECTIVEPRO_SMTP_PASSWORD", "s3cret")
    monkeypatch.setenv("ELECTIVEPRO_SMTP_TLS", "false")
    monkeypatch.setenv("ELECTIVEPRO_SMTP_PORT", "2525")
    monkeypatch.setenv("ELECTIVEPRO_MAIL_FROM", "registrar@alpha.edu")

    _send()

    (conn,) = mail_outbox.connections
    assert conn.port == 2525
    assert conn.started_tls is False
    assert conn.credentials == ("mailer", "s3cret")
    assert mail_outbox.messages()[0]["From"] == "registrar@alpha.edu"


def test_unconfigured_mail_is_refused():
    with pytest.raises(MailNotConfiguredError) as excinfo:
        _send()

    assert str(excinfo.value) == "mail_not_configured"


@pytest.mark.parametrize(
    "failure",
    [smtplib.SMTPRecipientsRefused({"ada@alpha.edu": (550, b"no such user")}), ConnectionRefusedError()],
)
def test_smtp_failures_are_wrapped(mail_outbox, failure):
    mail_outbox.smtp.fail_with = failure

    with pytest.raises(EmailSendError) as excinfo:
        _send()

    assert str(excinfo.value) == "mail_send_failed"
    assert mail_outbox.messages() == []


@pytest.mark.parametrize(
    ("overrides", "code"),
    [({"recipient_email": ""}, "recipient_required"), ({"reset_url": ""}, "reset_url_required")],
)
def test_required_fields(mail_outbox, overrides, code):
    with pytest.raises(EmailDeliveryError) as excinfo:
        _send(**overrides)

    assert str(excinfo.value) == code
