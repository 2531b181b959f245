from __future__ import annotations

import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage

from ..errors import DeliveryError
from ..models import RunContext
from .base import Notifier
from .formatter import (
    format_error_subject,
    format_error_text,
    format_html_body,
    format_subject,
    format_text_body,
)


@dataclass(slots=True)
class EmailNotifier(Notifier):
    """
    SMTP 邮件通知（implicit TLS，即 SMTP over SSL）。

    正文为 multipart/alternative：纯文本 + HTML 两个部分。
    """

    smtp_host: str
    smtp_port: int
    username: str
    password: str
    email_from: str
    to_list: tuple[str, ...]
    timeout_seconds: float = 20.0

    def channel(self) -> str:
        return "email"

    def render(self, matches: tuple[str, ...], ctx: RunContext) -> EmailMessage:
        msg = self._new_message(format_subject(matches, ctx.url))
        msg.set_content(format_text_body(matches))
        msg.add_alternative(format_html_body(matches, ctx.url), subtype="html")
        return msg

    def render_error(self, message: str, ctx: RunContext) -> EmailMessage:
        msg = self._new_message(format_error_subject(ctx.url))
        msg.set_content(format_error_text(message))
        return msg

    def deliver(self, payload: EmailMessage) -> None:
        try:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, timeout=self.timeout_seconds, context=context) as client:
                if self.username:
                    client.login(self.username, self.password)
                client.send_message(payload)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"smtp delivery via {self.smtp_host}:{self.smtp_port} failed: {e}") from e

    def _new_message(self, subject: str) -> EmailMessage:
        if not self.to_list:
            raise ValueError("EmailNotifier.to_list is empty")
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.email_from
        msg["To"] = ", ".join(self.to_list)
        return msg
