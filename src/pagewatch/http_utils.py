from __future__ import annotations

import codecs
import json
import random
import ssl
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Mapping


# 伪装成 Googlebot，尽量拿到服务端渲染后的完整页面。
CRAWLER_USER_AGENT = (
    "Mozilla/5.0 AppleWebKit/537.36 (KHTML, like Gecko; compatible; Googlebot/2.1; "
    "+http://www.google.com/bot.html) Chrome/W.X.Y.Z Safari/537.36"
)


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status: int
    url: str
    headers: Mapping[str, str]
    body: bytes

    def text(self, encoding: str | None = None) -> str:
        return self.body.decode(encoding or self.charset(), errors="replace")

    def charset(self) -> str:
        content_type = self.headers.get("Content-Type") or self.headers.get("content-type") or ""
        for part in content_type.split(";"):
            key, _, value = part.strip().partition("=")
            if key.lower() == "charset" and value:
                charset = value.strip('"')
                try:
                    codecs.lookup(charset)
                except LookupError:
                    return "utf-8"
                return charset
        return "utf-8"


class HttpClient:
    """
    轻量 HTTP 客户端（仅依赖标准库）。

    - get：拉取目标页面，对 429/5xx 与网络错误做有限次退避重试
    - post_json：发送 webhook；任何 HTTP 状态都原样返回，只有传输层错误才抛异常
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 20.0,
        user_agent: str = CRAWLER_USER_AGENT,
        max_retries: int = 3,
        base_backoff_seconds: float = 0.8,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._user_agent = user_agent
        self._max_retries = max_retries
        self._base_backoff_seconds = base_backoff_seconds
        self._ssl_context = ssl.create_default_context()

    def get(self, url: str, *, headers: Mapping[str, str] | None = None) -> HttpResponse:
        request_headers = {"User-Agent": self._user_agent}
        if headers:
            request_headers.update(dict(headers))

        last_error: Exception | None = None
        for attempt in range(self._max_retries + 1):
            try:
                req = urllib.request.Request(url=url, headers=request_headers, method="GET")
                with urllib.request.urlopen(req, timeout=self._timeout_seconds, context=self._ssl_context) as resp:
                    resp_headers = {k: v for k, v in resp.headers.items()}
                    return HttpResponse(
                        status=getattr(resp, "status", 200),
                        url=resp.geturl(),
                        headers=resp_headers,
                        body=resp.read(),
                    )
            except urllib.error.HTTPError as e:
                last_error = e
                retry = e.code in (429, 500, 502, 503, 504)
                if (not retry) or attempt >= self._max_retries:
                    raise
            except (urllib.error.URLError, TimeoutError) as e:
                last_error = e
                if attempt >= self._max_retries:
                    raise

            backoff = self._base_backoff_seconds * (2**attempt)
            jitter = random.random() * 0.25 * backoff
            time.sleep(backoff + jitter)

        assert last_error is not None
        raise last_error

    def post_json(self, url: str, payload: Any, *, headers: Mapping[str, str] | None = None) -> HttpResponse:
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        request_headers = {
            "User-Agent": self._user_agent,
            "Content-Type": "application/json; charset=utf-8",
            "Accept": "application/json",
        }
        if headers:
            request_headers.update(dict(headers))

        req = urllib.request.Request(url=url, data=data, headers=request_headers, method="POST")
        try:
            with urllib.request.urlopen(req, timeout=self._timeout_seconds, context=self._ssl_context) as resp:  # noqa: S310
                return HttpResponse(
                    status=getattr(resp, "status", 200),
                    url=resp.geturl(),
                    headers={k: v for k, v in resp.headers.items()},
                    body=resp.read(),
                )
        except urllib.error.HTTPError as e:
            return HttpResponse(
                status=e.code,
                url=url,
                headers={k: v for k, v in (e.headers or {}).items()},
                body=e.read() or b"",
            )
