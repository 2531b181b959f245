from __future__ import annotations

import http.client
import logging
import urllib.error
from dataclasses import dataclass

from ..errors import DeliveryError
from ..http_utils import HttpClient
from ..models import RunContext
from .base import Notifier
from .formatter import format_chat_message


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WebhookNotifier(Notifier):
    """
    聊天类 webhook 通知（JSON POST，服务端成功时返回 201 Created）。

    说明：
    - payload 形如 {"textMode": "styled", "number": <sender>, "recipients": [...], "message": "..."}
    - 对服务端语义比较宽松：非 201 只记 warning，不算失败；只有传输层出错才算失败
    """

    webhook_url: str
    http: HttpClient
    sender: str
    recipients: tuple[str, ...]
    message_prefix: str = ""

    def channel(self) -> str:
        return "webhook"

    def render(self, matches: tuple[str, ...], ctx: RunContext) -> dict[str, object]:
        return self._build_payload(format_chat_message(matches, ctx.url, self.message_prefix))

    def render_error(self, message: str, ctx: RunContext) -> dict[str, object]:
        return self._build_payload(f"{self.message_prefix}Error polling {ctx.url}: {message}")

    def deliver(self, payload: dict[str, object]) -> None:
        try:
            resp = self.http.post_json(self.webhook_url, payload)
        except (urllib.error.URLError, TimeoutError, OSError, http.client.HTTPException) as e:
            raise DeliveryError(f"webhook delivery failed: {e}") from e

        if resp.status != 201:
            logger.warning(
                "webhook unexpected status: status=%d body=%r",
                resp.status,
                resp.body[:200],
            )

    def _build_payload(self, message: str) -> dict[str, object]:
        return {
            "textMode": "styled",
            "number": self.sender,
            "recipients": list(self.recipients),
            "message": message,
        }
