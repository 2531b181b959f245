from __future__ import annotations

import html


_HTML_HEAD = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<style>
    .container {
        max-width: 440px;
    }
    .container img {
        max-width: 440px;
        height: unset;
    }
</style>
"""


def format_subject(matches: tuple[str, ...], url: str) -> str:
    return f"Found {len(matches)} match(es) for {url}"


def format_text_body(matches: tuple[str, ...]) -> str:
    return "Results:\n" + "\n---\n".join(matches)


def format_html_body(matches: tuple[str, ...], url: str) -> str:
    """
    邮件 HTML 正文：固定宽度容器，每条匹配放在一个表格单元格里。

    匹配片段本身就是 HTML（或纯文本），原样嵌入，不做转义。
    """
    subject = html.escape(format_subject(matches, url))
    safe_url = html.escape(url, quote=True)
    rows = "".join(f"<tr><td>{m}</td></tr>" for m in matches)
    return (
        _HTML_HEAD
        + f"<title>{subject}</title>"
        + "</head>"
        + "<body>"
        + f'<h2><a class="url" href="{safe_url}">{safe_url}</a></h2><br>'
        + f'<table class="container"><tbody>{rows}</tbody></table>'
        + "</body>"
        + "</html>"
    )


def format_chat_message(matches: tuple[str, ...], url: str, prefix: str = "") -> str:
    return f"{prefix}Found {len(matches)} match(es) at {url}"


def format_error_subject(url: str) -> str:
    return f"Error polling site {url}"


def format_error_text(message: str) -> str:
    return f"Error: \n{message}"
