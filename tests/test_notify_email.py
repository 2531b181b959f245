import smtplib
from datetime import UTC, datetime

import pytest

from pagewatch.errors import DeliveryError
from pagewatch.models import RunContext
from pagewatch.notify.email import EmailNotifier


CTX = RunContext(url="https://shop.example.com/list", observed_at=datetime(2026, 2, 10, tzinfo=UTC))


def _notifier() -> EmailNotifier:
    return EmailNotifier(
        smtp_host="smtp.example.com",
        smtp_port=465,
        username="bot",
        password="secret",
        email_from="Watcher <bot@example.com>",
        to_list=("User <user@example.com>",),
    )


class _FakeSMTP:
    """
    模拟 smtplib.SMTP_SSL：记录连接参数、登录与发送的消息。
    """

    instances: list["_FakeSMTP"] = []
    fail_login = False

    def __init__(self, host, port, timeout=None, context=None) -> None:  # noqa: ANN001
        self.host = host
        self.port = port
        self.context = context
        self.logged_in: tuple[str, str] | None = None
        self.sent: list = []
        _FakeSMTP.instances.append(self)

    def __enter__(self) -> "_FakeSMTP":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        return None

    def login(self, user: str, password: str) -> None:
        if _FakeSMTP.fail_login:
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")
        self.logged_in = (user, password)

    def send_message(self, msg) -> None:  # noqa: ANN001
        self.sent.append(msg)


@pytest.fixture(autouse=True)
def _fake_smtp(monkeypatch: pytest.MonkeyPatch) -> None:
    _FakeSMTP.instances = []
    _FakeSMTP.fail_login = False
    monkeypatch.setattr("smtplib.SMTP_SSL", _FakeSMTP)


def test_render_builds_text_and_html_alternatives() -> None:
    msg = _notifier().render(("<p>one</p>", "two"), CTX)

    assert msg["Subject"] == "Found 2 match(es) for https://shop.example.com/list"
    assert msg["From"] == "Watcher <bot@example.com>"
    assert msg["To"] == "User <user@example.com>"
    assert msg.get_content_type() == "multipart/alternative"

    text = msg.get_body(preferencelist=("plain",)).get_content()
    assert text.startswith("Results:\n<p>one</p>\n---\ntwo")

    html = msg.get_body(preferencelist=("html",)).get_content()
    assert "<title>Found 2 match(es) for https://shop.example.com/list</title>" in html
    assert "<td><p>one</p></td>" in html
    assert "<td>two</td>" in html
    assert 'class="container"' in html
    assert "max-width: 440px" in html


def test_render_error_uses_error_subject() -> None:
    msg = _notifier().render_error("connection refused", CTX)
    assert msg["Subject"] == "Error polling site https://shop.example.com/list"
    assert msg.get_content().startswith("Error: \nconnection refused")


def test_deliver_uses_implicit_tls_and_login() -> None:
    notifier = _notifier()
    msg = notifier.render(("x",), CTX)
    notifier.deliver(msg)

    assert len(_FakeSMTP.instances) == 1
    client = _FakeSMTP.instances[0]
    assert (client.host, client.port) == ("smtp.example.com", 465)
    assert client.context is not None
    assert client.logged_in == ("bot", "secret")
    assert client.sent == [msg]


def test_deliver_transport_failure_is_delivery_error() -> None:
    _FakeSMTP.fail_login = True
    notifier = _notifier()
    with pytest.raises(DeliveryError):
        notifier.deliver(notifier.render(("x",), CTX))
    assert _FakeSMTP.instances[0].sent == []
