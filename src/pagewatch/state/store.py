from __future__ import annotations

from typing import Protocol


class ThrottleStore(Protocol):
    """
    节流记录存储接口：每个 key（目标域名）对应一条纯文本记录。

    - read：不存在返回 None
    - write：整体覆盖
    - delete：记录损坏时丢弃；不存在时静默
    """

    def read(self, key: str) -> str | None: ...

    def write(self, key: str, text: str) -> None: ...

    def delete(self, key: str) -> None: ...
