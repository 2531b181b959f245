from __future__ import annotations


class PagewatchError(Exception):
    """所有 pagewatch 异常的基类。"""


class ConfigError(PagewatchError, ValueError):
    """配置缺失或非法：在任何网络 I/O 之前抛出（fail-fast）。"""


class ParseError(PagewatchError, ValueError):
    """规则本身语法非法（例如 CSS selector 无法解析）。"""


class FetchError(PagewatchError):
    """拉取目标页面失败（网络/传输层）。"""


class ThrottleIOError(PagewatchError):
    """无法读写节流记录文件。"""


class DeliveryError(PagewatchError):
    """单个通知渠道发送失败；由 dispatcher 在渠道边界捕获。"""
