from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from .models import MatchRule, RunContext, RunOutcome, ThrottlePolicy, utc_now
from .notify.base import Notifier
from .rules.extractor import extract
from .state.throttle import ThrottleGate, throttle_key


logger = logging.getLogger(__name__)


def _describe(payload: Any) -> str:
    if hasattr(payload, "as_string"):
        return payload.as_string()
    return repr(payload)


@dataclass(slots=True)
class Dispatcher:
    """
    单次运行的编排：Extract -> Throttle -> Fan-out。

    - 无匹配：直接结束，不触碰节流记录
    - 节流闸门每次运行只检查一次，且在任何渠道之前
    - 放行后每个渠道一个并发任务，全部完成后才返回；单个渠道失败只记为 FAILED
    """

    gate: ThrottleGate
    dry_run: bool = False
    clock: Callable[[], float] = field(default=time.time)

    def run(
        self,
        content: str,
        *,
        target_url: str,
        rule: MatchRule,
        throttle: ThrottlePolicy,
        channels: Sequence[Notifier],
    ) -> tuple[RunOutcome, ...]:
        return self.dispatch(extract(content, rule), target_url=target_url, throttle=throttle, channels=channels)

    def dispatch(
        self,
        matches: tuple[str, ...],
        *,
        target_url: str,
        throttle: ThrottlePolicy,
        channels: Sequence[Notifier],
    ) -> tuple[RunOutcome, ...]:
        if not matches:
            logger.info("no matches: url=%s", target_url)
            return ()

        logger.info("found matches: url=%s count=%d", target_url, len(matches))
        for m in matches:
            logger.debug("match:\n%s", m)

        key = throttle_key(target_url)
        if not self.gate.try_acquire(key, int(self.clock()), throttle.max_per_window, throttle.window_seconds):
            return tuple(RunOutcome.suppressed(n.channel(), "throttled") for n in channels)

        ctx = RunContext(url=target_url, observed_at=utc_now())
        return self.fan_out(channels, lambda n: n.render(matches, ctx))

    def notify_error(self, message: str, ctx: RunContext, channels: Sequence[Notifier]) -> tuple[RunOutcome, ...]:
        """错误通知：不经过节流闸门，直接并发发往所有渠道。"""
        return self.fan_out(channels, lambda n: n.render_error(message, ctx))

    def fan_out(self, channels: Sequence[Notifier], render: Callable[[Notifier], Any]) -> tuple[RunOutcome, ...]:
        if not channels:
            return ()
        with ThreadPoolExecutor(max_workers=len(channels), thread_name_prefix="notify") as pool:
            futures = [pool.submit(self._deliver_one, n, render) for n in channels]
            return tuple(f.result() for f in futures)

    def _deliver_one(self, notifier: Notifier, render: Callable[[Notifier], Any]) -> RunOutcome:
        channel = "unknown"
        try:
            channel = notifier.channel()
            payload = render(notifier)
            if self.dry_run:
                logger.info("dry run, not delivering: channel=%s payload=%s", channel, _describe(payload))
                return RunOutcome.suppressed(channel, "dry-run", payload)
            notifier.deliver(payload)
        except Exception as e:  # noqa: BLE001
            logger.exception("notify failed: channel=%s notifier_type=%s", channel, type(notifier).__name__)
            return RunOutcome.failed(channel, f"{type(e).__name__}: {e}")
        logger.info("notification sent: channel=%s", channel)
        return RunOutcome.sent(channel)
