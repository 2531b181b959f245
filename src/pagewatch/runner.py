from __future__ import annotations

import http.client
import logging
import os
import time
import urllib.error
from dataclasses import dataclass
from datetime import datetime

from .config import AppConfig
from .dispatcher import Dispatcher
from .errors import FetchError
from .http_utils import HttpClient
from .models import MatchRule, OutcomeStatus, RunContext, RunOutcome, ThrottlePolicy, utc_now
from .notify import Channel
from .notify.email import EmailNotifier
from .notify.formatter import format_html_body
from .notify.webhook import WebhookNotifier
from .rules.extractor import extract
from .state.file_store import FileThrottleStore
from .state.throttle import ThrottleGate


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunOnceReport:
    started_at: datetime
    finished_at: datetime
    duration_ms: int
    url: str
    matches: int
    outcomes: tuple[RunOutcome, ...]

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def sent(self) -> int:
        return self.count(OutcomeStatus.SENT)

    @property
    def suppressed(self) -> int:
        return self.count(OutcomeStatus.SUPPRESSED)

    @property
    def failed(self) -> int:
        return self.count(OutcomeStatus.FAILED)


@dataclass(slots=True)
class Runner:
    """
    一次完整运行：Fetch -> Extract -> Throttle -> Notify。

    拉取失败时尽力通过所有渠道发一封错误通知，然后把 FetchError 继续抛出。
    """

    http: HttpClient
    dispatcher: Dispatcher
    target_url: str
    rule: MatchRule
    throttle: ThrottlePolicy
    notifiers: tuple[Channel, ...]
    debug: bool = False
    artifacts_dir: str = "."

    def run_once(self) -> RunOnceReport:
        started_at = utc_now()
        start_t = time.monotonic()

        content = self.fetch()
        if self.debug:
            self._write_artifact("content.html", content)

        matches = extract(content, self.rule)
        if self.debug and matches and any(isinstance(n, EmailNotifier) for n in self.notifiers):
            self._write_artifact("email.html", format_html_body(matches, self.target_url))

        outcomes = self.dispatcher.dispatch(
            matches,
            target_url=self.target_url,
            throttle=self.throttle,
            channels=self.notifiers,
        )
        return RunOnceReport(
            started_at=started_at,
            finished_at=utc_now(),
            duration_ms=int((time.monotonic() - start_t) * 1000),
            url=self.target_url,
            matches=len(matches),
            outcomes=outcomes,
        )

    def fetch(self) -> str:
        try:
            resp = self.http.get(self.target_url)
            content = resp.text()
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            raise self._fetch_failed(f"Error fetching {self.target_url}: {e}") from e
        except (http.client.HTTPException, LookupError) as e:
            raise self._fetch_failed(f"Error reading body of {self.target_url}: {e}") from e

        logger.debug("fetched: url=%s status=%d bytes=%d", resp.url, resp.status, len(resp.body))
        return content

    def _fetch_failed(self, message: str) -> FetchError:
        logger.exception("fetch failed: url=%s", self.target_url)
        self._notify_fetch_error(message)
        return FetchError(message)

    def _notify_fetch_error(self, message: str) -> None:
        if not self.notifiers:
            return
        ctx = RunContext(url=self.target_url, observed_at=utc_now())
        outcomes = self.dispatcher.notify_error(message, ctx, self.notifiers)
        for o in outcomes:
            logger.info("error notification: channel=%s status=%s", o.channel, o.status.value)

    def _write_artifact(self, name: str, text: str) -> None:
        path = os.path.join(self.artifacts_dir, name)
        try:
            os.makedirs(self.artifacts_dir, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(text)
        except OSError:
            logger.warning("cannot write debug artifact: path=%s", path, exc_info=True)
            return
        logger.debug("debug artifact written: path=%s", path)


def build_runner(config: AppConfig, *, http: HttpClient | None = None) -> Runner:
    """
    根据配置构建可运行的 Runner。

    统一在这里做“配置 -> 实例”的装配；秘钥在加载配置时已解析，这里不再读环境变量。
    """
    http = http or HttpClient()
    dispatcher = Dispatcher(
        gate=ThrottleGate(store=FileThrottleStore(config.state_dir)),
        dry_run=config.dry_run,
    )

    notifiers: list[Channel] = []
    if config.email:
        notifiers.append(
            EmailNotifier(
                smtp_host=config.email.smtp_host,
                smtp_port=config.email.smtp_port,
                username=config.email.username,
                password=config.email.password,
                email_from=config.email.email_from,
                to_list=config.email.to_list,
            )
        )

    if config.webhook:
        notifiers.append(
            WebhookNotifier(
                webhook_url=config.webhook.url,
                http=http,
                sender=config.webhook.sender,
                recipients=config.webhook.recipients,
                message_prefix=config.webhook.message_prefix,
            )
        )

    return Runner(
        http=http,
        dispatcher=dispatcher,
        target_url=config.target_url,
        rule=config.rule,
        throttle=config.throttle,
        notifiers=tuple(notifiers),
        debug=config.debug,
        artifacts_dir=config.artifacts_dir,
    )
