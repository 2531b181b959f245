from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True)
class TextSearch:
    """
    文本规则：逐行做子串匹配，命中时输出前后各一行的上下文。
    """

    terms: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class HtmlSelect:
    """
    HTML 规则：按 CSS selector 选取元素。

    origin_base 为目标页面的 origin（scheme://host[:port]），用于改写相对链接。
    """

    selector: str
    origin_base: str


MatchRule = TextSearch | HtmlSelect


@dataclass(frozen=True, slots=True)
class ThrottleRecord:
    """
    节流记录：每个目标域名一份，落盘格式 "{epoch}|{count}"。
    """

    last_sent_epoch_seconds: int
    sent_count_in_window: int

    def serialize(self) -> str:
        return f"{self.last_sent_epoch_seconds}|{self.sent_count_in_window}"

    @classmethod
    def parse(cls, text: str) -> ThrottleRecord | None:
        """
        解析落盘内容；字段数不对或无法解析为整数时返回 None（视为损坏）。
        """
        parts = text.strip().split("|")
        if len(parts) != 2:
            return None
        try:
            return cls(last_sent_epoch_seconds=int(parts[0]), sent_count_in_window=int(parts[1]))
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class ThrottlePolicy:
    max_per_window: int = 3
    window_seconds: int = 300


class OutcomeStatus(str, Enum):
    SENT = "sent"
    SUPPRESSED = "suppressed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RunOutcome:
    """
    单个渠道的执行结果。

    - SENT：已投递
    - SUPPRESSED：未投递（reason 为 "dry-run" 或 "throttled"）；dry-run 时 payload 为渲染结果
    - FAILED：投递失败，reason 为错误描述
    """

    channel: str
    status: OutcomeStatus
    reason: str | None = None
    payload: Any = None

    @classmethod
    def sent(cls, channel: str) -> RunOutcome:
        return cls(channel=channel, status=OutcomeStatus.SENT)

    @classmethod
    def suppressed(cls, channel: str, reason: str, payload: Any = None) -> RunOutcome:
        return cls(channel=channel, status=OutcomeStatus.SUPPRESSED, reason=reason, payload=payload)

    @classmethod
    def failed(cls, channel: str, reason: str) -> RunOutcome:
        return cls(channel=channel, status=OutcomeStatus.FAILED, reason=reason)


@dataclass(frozen=True, slots=True)
class RunContext:
    url: str
    observed_at: datetime
