from .base import Notifier
from .email import EmailNotifier
from .formatter import format_html_body, format_subject, format_text_body
from .webhook import WebhookNotifier

# 渠道集合是封闭的：只有 email 与 webhook 两种。
Channel = EmailNotifier | WebhookNotifier

__all__ = [
    "Channel",
    "EmailNotifier",
    "Notifier",
    "WebhookNotifier",
    "format_html_body",
    "format_subject",
    "format_text_body",
]
