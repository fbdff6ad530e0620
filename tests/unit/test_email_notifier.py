from __future__ import annotations

import smtplib

import pytest

from vod_pipeline.common.config import get_settings
from vod_pipeline.notify.email.sender import EmailNotifier
from vod_pipeline.notify.factory import get_notifier
from vod_pipeline.notify.log import LogNotifier


class _FakeSMTP:
    sent: list = []
    fail = False

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def ehlo(self):
        return None

    def has_extn(self, name):
        return False

    def login(self, user, password):
        return None

    def send_message(self, msg):
        if _FakeSMTP.fail:
            raise smtplib.SMTPServerDisconnected("gone")
        _FakeSMTP.sent.append(msg)


@pytest.fixture()
def smtp(monkeypatch):
    s = get_settings()
    snapshot = (s.smtp_host, s.smtp_user, s.smtp_pass, s.email_from, s.notify_provider)
    s.smtp_host = "smtp.local"
    s.smtp_user = None
    s.smtp_pass = None
    s.email_from = "noreply@example.com"
    _FakeSMTP.sent = []
    _FakeSMTP.fail = False
    monkeypatch.setattr("vod_pipeline.notify.email.sender.smtplib.SMTP", _FakeSMTP)
    try:
        yield _FakeSMTP
    finally:
        s.smtp_host, s.smtp_user, s.smtp_pass, s.email_from, s.notify_provider = snapshot


def test_success_mail(smtp) -> None:
    res = EmailNotifier().notify_success("u@example.com", "Holiday")

    assert res.ok is True
    msg = smtp.sent[0]
    assert msg["Subject"] == "Your Video 'Holiday' is Ready!"
    assert msg["To"] == "u@example.com"
    assert "Holiday" in msg.get_body(preferencelist=("plain",)).get_content()


def test_failure_mail_contains_reason(smtp) -> None:
    res = EmailNotifier().notify_failure("u@example.com", "Holiday", "Файл не читается")

    assert res.ok is True
    msg = smtp.sent[0]
    assert msg["Subject"] == "Video Processing Failed for 'Holiday'"
    assert "Файл не читается" in msg.get_body(preferencelist=("html",)).get_content()


def test_mail_without_recipient_is_not_sent(smtp) -> None:
    res = EmailNotifier().notify_success(None, "Holiday")
    assert res.ok is False
    assert smtp.sent == []


def test_smtp_error_is_reported_not_raised(smtp) -> None:
    smtp.fail = True
    res = EmailNotifier().notify_success("u@example.com", "Holiday")
    assert res.ok is False
    assert "gone" in (res.error or "")


def test_factory_selects_provider(smtp) -> None:
    s = get_settings()
    s.notify_provider = "email"
    assert isinstance(get_notifier(), EmailNotifier)
    s.notify_provider = "log"
    assert isinstance(get_notifier(), LogNotifier)
