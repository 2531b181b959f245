import http.client
import os
import urllib.error
from dataclasses import dataclass

import pytest

from pagewatch.dispatcher import Dispatcher
from pagewatch.errors import FetchError
from pagewatch.http_utils import HttpResponse
from pagewatch.models import HtmlSelect, OutcomeStatus, TextSearch, ThrottlePolicy
from pagewatch.notify.email import EmailNotifier
from pagewatch.runner import Runner
from pagewatch.state.file_store import FileThrottleStore
from pagewatch.state.throttle import ThrottleGate

from fakes import FakeNotifier


URL = "https://shop.example.com/list"
PAGE = b'<html><body><ul><li class="hit"><a href="/p/1">One</a></li><li>Other</li></ul></body></html>'


@dataclass
class _FakeHttp:
    """
    纯内存 HttpClient：get 返回固定页面或抛出预设异常。
    """

    body: bytes = PAGE
    content_type: str = "text/html; charset=utf-8"
    error: Exception | None = None
    calls: int = 0

    def get(self, url: str) -> HttpResponse:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return HttpResponse(status=200, url=url, headers={"Content-Type": self.content_type}, body=self.body)


def _runner(tmp_path, http: _FakeHttp, notifiers, **kwargs) -> Runner:  # noqa: ANN001
    dispatcher = Dispatcher(
        gate=ThrottleGate(store=FileThrottleStore(str(tmp_path / "state"))),
        dry_run=kwargs.pop("dry_run", False),
        clock=lambda: 1000,
    )
    return Runner(
        http=http,  # type: ignore[arg-type]
        dispatcher=dispatcher,
        target_url=URL,
        rule=kwargs.pop("rule", HtmlSelect(selector="li.hit", origin_base="https://shop.example.com")),
        throttle=ThrottlePolicy(max_per_window=3, window_seconds=300),
        notifiers=tuple(notifiers),
        **kwargs,
    )


def test_run_once_notifies_then_throttles(tmp_path) -> None:  # noqa: ANN001
    """
    端到端：
    - 前三次运行在突发额度内，全部发送
    - 第四次被节流，渠道不会被调用
    """
    notifier = FakeNotifier(name="fake")
    runner = _runner(tmp_path, _FakeHttp(), [notifier])

    reports = [runner.run_once() for _ in range(4)]

    assert [r.sent for r in reports] == [1, 1, 1, 0]
    assert reports[3].suppressed == 1
    assert reports[3].outcomes[0].reason == "throttled"
    assert len(notifier.delivered) == 3
    _kind, url, matches = notifier.delivered[0]
    assert url == URL
    assert matches == ('<li class="hit"><a href="https://shop.example.com/p/1">One</a></li>',)
    assert reports[0].matches == 1


def test_run_once_without_matches_skips_gate(tmp_path) -> None:  # noqa: ANN001
    notifier = FakeNotifier(name="fake")
    runner = _runner(tmp_path, _FakeHttp(), [notifier], rule=TextSearch(terms=("absent",)))

    report = runner.run_once()

    assert report.matches == 0
    assert report.outcomes == ()
    assert not (tmp_path / "state").exists()


def test_fetch_error_sends_error_notification_then_raises(tmp_path) -> None:  # noqa: ANN001
    ok = FakeNotifier(name="ok")
    bad = FakeNotifier(name="bad", fail=True)
    runner = _runner(tmp_path, _FakeHttp(error=urllib.error.URLError("connection refused")), [ok, bad])

    with pytest.raises(FetchError):
        runner.run_once()

    assert len(ok.delivered) == 1
    kind, url, message = ok.delivered[0]
    assert (kind, url) == ("error", URL)
    assert "connection refused" in message


def test_debug_writes_artifacts(tmp_path) -> None:  # noqa: ANN001
    email = EmailNotifier(
        smtp_host="smtp.example.com",
        smtp_port=465,
        username="bot",
        password="secret",
        email_from="Watcher <bot@example.com>",
        to_list=("user@example.com",),
    )
    artifacts = tmp_path / "debug"
    runner = _runner(tmp_path, _FakeHttp(), [email], dry_run=True, debug=True, artifacts_dir=str(artifacts))

    report = runner.run_once()

    assert [o.status for o in report.outcomes] == [OutcomeStatus.SUPPRESSED]
    assert (artifacts / "content.html").read_text(encoding="utf-8") == PAGE.decode("utf-8")
    email_html = (artifacts / "email.html").read_text(encoding="utf-8")
    assert "Found 1 match(es) for https://shop.example.com/list" in email_html
    assert os.path.exists(artifacts / "email.html")


def test_truncated_body_sends_error_notification_then_raises(tmp_path) -> None:  # noqa: ANN001
    notifier = FakeNotifier(name="fake")
    runner = _runner(tmp_path, _FakeHttp(error=http.client.IncompleteRead(b"partial", 10)), [notifier])

    with pytest.raises(FetchError):
        runner.run_once()

    assert len(notifier.delivered) == 1
    kind, url, message = notifier.delivered[0]
    assert (kind, url) == ("error", URL)
    assert "Error reading body" in message


def test_unknown_charset_falls_back_to_utf8(tmp_path) -> None:  # noqa: ANN001
    notifier = FakeNotifier(name="fake")
    runner = _runner(tmp_path, _FakeHttp(content_type="text/html; charset=x-bogus"), [notifier])

    report = runner.run_once()

    assert report.matches == 1
    assert report.sent == 1
    assert notifier.delivered[0][0] == "matches"
