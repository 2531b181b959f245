"""
pagewatch

单次运行：抓取一个页面，按规则（文本关键词 / CSS selector）抽取匹配片段；
有匹配且节流闸门放行时，并发地通过邮件与 webhook 发送通知。
调度周期由外部（cron 等）决定。
"""

from .models import HtmlSelect, RunOutcome, TextSearch

__all__ = [
    "HtmlSelect",
    "RunOutcome",
    "TextSearch",
]
