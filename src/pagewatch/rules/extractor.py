from __future__ import annotations

import re
import urllib.parse

import soupsieve
from bs4 import BeautifulSoup

from ..errors import ParseError
from ..models import HtmlSelect, MatchRule, TextSearch


_DEFAULT_PORTS = {"http": 80, "https": 443}
_SRCSET_RE = re.compile(r"""\s+srcset=(?:"[^"]*"|'[^']*')""")


def origin_of(url: str) -> str:
    """
    计算 URL 的 origin：scheme://host[:port]，默认端口省略。
    """
    parsed = urllib.parse.urlsplit(url)
    host = parsed.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    port = parsed.port
    if port is not None and _DEFAULT_PORTS.get(parsed.scheme) != port:
        return f"{parsed.scheme}://{host}:{port}"
    return f"{parsed.scheme}://{host}"


def compile_selector(selector: str) -> soupsieve.SoupSieve:
    try:
        return soupsieve.compile(selector)
    except (soupsieve.SelectorSyntaxError, ValueError, TypeError) as e:
        raise ParseError(f"invalid selector {selector!r}: {e}") from e


def search_text(content: str, terms: tuple[str, ...]) -> tuple[str, ...]:
    """
    文本模式：外层遍历关键词、内层遍历行；同一行命中两个关键词会产出两条结果。

    首/末行命中时缺失的相邻行用空串代替。
    """
    lines = content.split("\n")
    last = len(lines) - 1
    results: list[str] = []
    for term in terms:
        for index, line in enumerate(lines):
            if term not in line:
                continue
            prev_line = lines[index - 1] if index > 0 else ""
            next_line = lines[index + 1] if index < last else ""
            results.append("\n".join([prev_line, line, next_line]))
    return tuple(results)


def rewrite_fragment(fragment: str, origin: str) -> str:
    fragment = fragment.replace('href="/', f'href="{origin}/')
    fragment = fragment.replace('src="//', 'src="https://')
    return _SRCSET_RE.sub("", fragment)


def select_html(content: str, selector: str, origin: str) -> tuple[str, ...]:
    compiled = compile_selector(selector)
    soup = BeautifulSoup(content, "html.parser")
    return tuple(rewrite_fragment(str(element), origin) for element in compiled.select(soup))


def extract(content: str, rule: MatchRule) -> tuple[str, ...]:
    """
    将页面内容按规则抽取为匹配片段（按出现顺序，不去重）。
    """
    if isinstance(rule, TextSearch):
        return search_text(content, rule.terms)
    if isinstance(rule, HtmlSelect):
        return select_html(content, rule.selector, rule.origin_base)
    raise TypeError(f"unsupported rule: {type(rule).__name__}")
