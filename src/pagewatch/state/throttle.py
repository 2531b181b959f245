from __future__ import annotations

import logging
import urllib.parse
from dataclasses import dataclass

from ..models import ThrottleRecord
from .store import ThrottleStore


logger = logging.getLogger(__name__)


def throttle_key(url: str) -> str:
    """目标 URL 的域名；无法解析时为空串。"""
    try:
        return urllib.parse.urlsplit(url).hostname or ""
    except ValueError:
        return ""


@dataclass(slots=True)
class ThrottleGate:
    """
    基于落盘计数的通知节流闸门。

    策略偏向“不漏报”：
    - 无记录 / 记录损坏：放行并重新计数
    - 窗口内已发送次数 < max_per_window：放行，计数 +1，时间戳不变（突发额度）
    - 额度耗尽后，只有距离 last_sent 超过 window_seconds 才放行并重置为 1
    """

    store: ThrottleStore

    def try_acquire(self, target_key: str, now: int, max_per_window: int, window_seconds: int) -> bool:
        text = self.store.read(target_key)
        record = ThrottleRecord.parse(text) if text is not None else None

        if text is not None and record is None:
            logger.warning("throttle record corrupt, discarding: key=%r content=%r", target_key, text[:100])
            self.store.delete(target_key)

        if record is None:
            self._persist(target_key, ThrottleRecord(last_sent_epoch_seconds=now, sent_count_in_window=1))
            return True

        within_threshold = record.sent_count_in_window < max_per_window
        window_expired = now > record.last_sent_epoch_seconds + window_seconds

        if within_threshold:
            self._persist(
                target_key,
                ThrottleRecord(
                    last_sent_epoch_seconds=record.last_sent_epoch_seconds,
                    sent_count_in_window=record.sent_count_in_window + 1,
                ),
            )
            return True

        if window_expired:
            self._persist(target_key, ThrottleRecord(last_sent_epoch_seconds=now, sent_count_in_window=1))
            return True

        logger.info(
            "throttled: key=%r count=%d last_sent=%d window_seconds=%d",
            target_key,
            record.sent_count_in_window,
            record.last_sent_epoch_seconds,
            window_seconds,
        )
        return False

    def _persist(self, target_key: str, record: ThrottleRecord) -> None:
        self.store.write(target_key, record.serialize())
