"""
SMTP-отправка уведомлений о готовности / ошибке обработки видео.

Важно:
- Логировать только метаданные (кому, статус, message-id)
- Текст ошибки в письме обрезается, внутренние пути не передаются
"""

from __future__ import annotations

import smtplib
from email.message import EmailMessage
from email.utils import make_msgid
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from vod_pipeline.common.config import get_settings
from vod_pipeline.common.logging import get_project_logger
from vod_pipeline.notify.base import NotifyResult
from vod_pipeline.notify.results import fail_result, ok_result

log = get_project_logger()

_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
_REASON_MAX = 500


def _jinja() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(_TEMPLATES_DIR)),
        autoescape=select_autoescape(["html", "xml"]),
    )


class EmailNotifier:
    def __init__(self, env: Environment | None = None) -> None:
        self.s = get_settings()
        self.env = env or _jinja()

    def notify_success(self, address: str | None, job_name: str) -> NotifyResult:
        ctx = {"video_name": job_name}
        return self._send(
            address=address,
            subject=f"Your Video '{job_name}' is Ready!",
            html_body=self.env.get_template("video_ready.html.j2").render(**ctx),
            text_body=self.env.get_template("video_ready.txt.j2").render(**ctx),
        )

    def notify_failure(self, address: str | None, job_name: str, reason: str) -> NotifyResult:
        ctx = {"video_name": job_name, "reason": (reason or "")[:_REASON_MAX]}
        return self._send(
            address=address,
            subject=f"Video Processing Failed for '{job_name}'",
            html_body=self.env.get_template("video_failed.html.j2").render(**ctx),
            text_body=self.env.get_template("video_failed.txt.j2").render(**ctx),
        )

    def _send(
        self, *, address: str | None, subject: str, html_body: str, text_body: str
    ) -> NotifyResult:
        if not address:
            return fail_result("smtp", "recipient_empty")
        if not self.s.smtp_host:
            return fail_result("smtp", "SMTP_HOST_not_set")

        msg = EmailMessage()
        msg["From"] = self.s.email_from
        msg["To"] = address
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        msg.set_content(text_body)
        msg.add_alternative(html_body, subtype="html")

        try:
            with smtplib.SMTP(self.s.smtp_host, self.s.smtp_port, timeout=20) as smtp:
                smtp.ehlo()
                if smtp.has_extn("starttls"):
                    smtp.starttls()
                    smtp.ehlo()
                if self.s.smtp_user and self.s.smtp_pass:
                    smtp.login(self.s.smtp_user, self.s.smtp_pass)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            log.error("email_send_failed", extra={"payload": {"to": address, "err": str(e)[:200]}})
            return fail_result("smtp", str(e))

        log.info("email_sent", extra={"payload": {"to": address, "provider": "smtp"}})
        return ok_result("smtp", message_id=msg["Message-ID"])
