from __future__ import annotations

from typing import Any, Protocol

from ..models import RunContext


class Notifier(Protocol):
    """
    通知渠道接口。

    约定：
    - render / render_error 只做渲染，不做任何 I/O
    - deliver 是唯一的 I/O 步骤；失败抛 DeliveryError，由 dispatcher 在渠道边界捕获
    - channel() 用于日志与结果归属
    """

    def channel(self) -> str: ...

    def render(self, matches: tuple[str, ...], ctx: RunContext) -> Any: ...

    def render_error(self, message: str, ctx: RunContext) -> Any: ...

    def deliver(self, payload: Any) -> None: ...
