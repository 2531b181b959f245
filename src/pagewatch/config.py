from __future__ import annotations

import json
import os
import urllib.parse
from dataclasses import dataclass
from email.utils import formataddr, getaddresses, parseaddr
from typing import Any, Mapping

from .errors import ConfigError
from .models import HtmlSelect, MatchRule, TextSearch, ThrottlePolicy
from .rules.extractor import compile_selector, origin_of


DEFAULT_STATE_DIR = "./.pagewatch"


def _require_dict(value: Any, *, where: str) -> Mapping[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"Expected object at {where}, got {type(value)}")
    return value


def _get_bool(d: Mapping[str, Any], key: str, default: bool) -> bool:
    v = d.get(key, default)
    if isinstance(v, str):
        return v.strip().lower() not in ("", "0", "false", "no", "off")
    return bool(v)


def _get_int(d: Mapping[str, Any], key: str, default: int, *, where: str) -> int:
    v = d.get(key, default)
    if v is None or v == "":
        return default
    if isinstance(v, bool):
        raise ConfigError(f"Expected integer at {where}.{key}, got bool")
    try:
        return int(v)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Expected integer at {where}.{key}, got {v!r}") from e


def _get_str(d: Mapping[str, Any], key: str, default: str | None = None) -> str | None:
    v = d.get(key, default)
    if v is None:
        return None
    return str(v)


def _get_str_list(d: Mapping[str, Any], key: str, default: list[str]) -> list[str]:
    v = d.get(key, default)
    if v is None:
        return list(default)
    if isinstance(v, str):
        return [part for part in v.split(",") if part]
    if isinstance(v, list):
        return [str(x) for x in v]
    return list(default)


def _require_str(d: Mapping[str, Any], key: str, *, where: str) -> str:
    v = _get_str(d, key)
    if not v or not v.strip():
        raise ConfigError(f"Missing required setting {where}.{key}")
    return v.strip()


def _require_mailbox(value: str, *, where: str) -> str:
    _name, addr = parseaddr(value)
    if "@" not in addr:
        raise ConfigError(f"Need mailbox of form 'Name <user@example.com>' at {where}, got {value!r}")
    return value


def _get_mailbox_list(d: Mapping[str, Any], key: str, *, where: str) -> tuple[str, ...]:
    """
    地址列表：字符串按 RFC 5322 地址列表解析（显示名里的逗号不会被拆开），列表则逐项解析。
    """
    v = d.get(key)
    if v is None:
        return ()
    values = [v] if isinstance(v, str) else [str(x) for x in v] if isinstance(v, list) else []
    mailboxes: list[str] = []
    for name, addr in getaddresses(values):
        if not name and not addr:
            continue
        if "@" not in addr:
            raise ConfigError(f"Need mailbox of form 'Name <user@example.com>' at {where}, got {addr!r}")
        mailboxes.append(formataddr((name, addr)))
    return tuple(mailboxes)


def _resolve_secret(
    d: Mapping[str, Any],
    value_key: str,
    env_key: str,
    environ: Mapping[str, str],
    *,
    where: str,
) -> str:
    """
    秘钥优先取显式值，否则按 *_env 指定的环境变量名解析；两者都没有视为配置错误。
    """
    value = _get_str(d, value_key)
    if value:
        return value
    env_name = _get_str(d, env_key)
    if env_name and environ.get(env_name):
        return environ[env_name]
    raise ConfigError(f"Missing required setting {where}.{value_key} (or env named by {where}.{env_key})")


@dataclass(frozen=True, slots=True)
class EmailConfig:
    """
    邮件通知配置（SMTP over SSL）。
    """

    smtp_host: str
    smtp_port: int
    username: str
    password: str
    email_from: str
    to_list: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class WebhookConfig:
    """
    webhook 通知配置。

    sender:
      - 发送方身份（payload 中的 number 字段）
    recipients:
      - 接收方列表，至少 1 个
    message_prefix:
      - 消息前缀，原样拼接在消息最前面
    """

    url: str
    sender: str
    recipients: tuple[str, ...]
    message_prefix: str = ""


@dataclass(frozen=True, slots=True)
class AppConfig:
    """
    应用总配置：启动时构造一次，之后只读地传给各组件。

    target_url:
      - 被轮询的页面（每次运行只处理这一个 URL）
    rule:
      - TextSearch 或 HtmlSelect，二选一
    throttle / state_dir:
      - 节流策略与节流记录目录
    dry_run:
      - 只渲染不投递
    debug / artifacts_dir:
      - 调试模式下把抓取内容与邮件正文落盘到 artifacts_dir
    """

    target_url: str
    rule: MatchRule
    throttle: ThrottlePolicy
    state_dir: str
    email: EmailConfig | None
    webhook: WebhookConfig | None
    dry_run: bool = False
    debug: bool = False
    artifacts_dir: str = "."


def _parse_http_url(value: str, *, where: str) -> str:
    try:
        parsed = urllib.parse.urlsplit(value)
        _port = parsed.port
    except ValueError as e:
        raise ConfigError(f"Invalid URL at {where}: {value!r}: {e}") from e
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ConfigError(f"Invalid URL at {where}: {value!r} is not an absolute http(s) URL")
    return value


def _build_rule(rule: Mapping[str, Any], target_url: str) -> MatchRule:
    rule_type = (_get_str(rule, "type") or "").strip().lower()
    if rule_type == "text":
        terms = tuple(t for t in _get_str_list(rule, "terms", []) if t)
        if not terms:
            raise ConfigError("Missing required setting $.rule.terms for text rule")
        return TextSearch(terms=terms)
    if rule_type == "html":
        selector = _require_str(rule, "selector", where="$.rule")
        compile_selector(selector)
        return HtmlSelect(selector=selector, origin_base=origin_of(target_url))
    raise ConfigError(f"Unknown rule type {rule_type!r}: expected 'text' or 'html'")


def _build_email(em: Mapping[str, Any], environ: Mapping[str, str]) -> EmailConfig:
    where = "$.notify.email"
    to_list = _get_mailbox_list(em, "to_list", where=f"{where}.to_list")
    if not to_list:
        raise ConfigError(f"Missing required setting {where}.to_list")
    return EmailConfig(
        smtp_host=_require_str(em, "smtp_host", where=where),
        smtp_port=_get_int(em, "smtp_port", 465, where=where),
        username=_resolve_secret(em, "user", "user_env", environ, where=where),
        password=_resolve_secret(em, "password", "password_env", environ, where=where),
        email_from=_require_mailbox(_require_str(em, "from", where=where), where=f"{where}.from"),
        to_list=to_list,
    )


def _build_webhook(wh: Mapping[str, Any], environ: Mapping[str, str]) -> WebhookConfig:
    where = "$.notify.webhook"
    recipients = tuple(r for r in _get_str_list(wh, "recipients", []) if r)
    if not recipients:
        raise ConfigError(f"Missing required setting {where}.recipients")
    return WebhookConfig(
        url=_parse_http_url(_resolve_secret(wh, "url", "url_env", environ, where=where), where=f"{where}.url"),
        sender=_require_str(wh, "sender", where=where),
        recipients=recipients,
        message_prefix=_get_str(wh, "message_prefix", "") or "",
    )


def build_config(raw: Any, environ: Mapping[str, str] | None = None) -> AppConfig:
    """
    唯一的配置构造入口：要么返回完整合法的 AppConfig，要么抛 ConfigError / ParseError。
    """
    env = os.environ if environ is None else environ
    root = _require_dict(raw, where="$")

    target_url = _parse_http_url(_require_str(root, "target_url", where="$"), where="$.target_url")
    rule = _build_rule(_require_dict(root.get("rule"), where="$.rule"), target_url)

    throttle = _require_dict(root.get("throttle", {}), where="$.throttle")
    policy = ThrottlePolicy(
        max_per_window=_get_int(throttle, "max_per_window", 3, where="$.throttle"),
        window_seconds=_get_int(throttle, "window_seconds", 300, where="$.throttle"),
    )
    if policy.max_per_window < 1 or policy.window_seconds < 0:
        raise ConfigError(f"Invalid throttle policy: {policy}")
    state_dir = _get_str(throttle, "state_dir", DEFAULT_STATE_DIR) or DEFAULT_STATE_DIR

    notify = _require_dict(root.get("notify", {}), where="$.notify")
    email_cfg = None
    if notify.get("email") is not None:
        email_cfg = _build_email(_require_dict(notify["email"], where="$.notify.email"), env)
    webhook_cfg = None
    if notify.get("webhook") is not None:
        webhook_cfg = _build_webhook(_require_dict(notify["webhook"], where="$.notify.webhook"), env)

    debug = _require_dict(root.get("debug", {}), where="$.debug")
    return AppConfig(
        target_url=target_url,
        rule=rule,
        throttle=policy,
        state_dir=state_dir,
        email=email_cfg,
        webhook=webhook_cfg,
        dry_run=_get_bool(root, "dry_run", False),
        debug=_get_bool(debug, "enabled", False),
        artifacts_dir=_get_str(debug, "artifacts_dir", ".") or ".",
    )


def load_config(config_path: str, environ: Mapping[str, str] | None = None) -> AppConfig:
    """
    使用 JSON 作为配置落地形式，避免引入第三方 YAML 解析依赖。

    JSON 顶层结构（示意）：
    {
      "target_url": "https://example.com/page",
      "rule": { "type": "html", "selector": "div.item" },
      "throttle": { "max_per_window": 3, "window_seconds": 300, "state_dir": "./.pagewatch" },
      "notify": { "email": { ... }, "webhook": { ... } }
    }
    """
    try:
        with open(config_path, "rb") as f:
            raw = json.loads(f.read().decode("utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot read config {config_path}: {e}") from e
    return build_config(raw, environ)


def config_from_env(environ: Mapping[str, str]) -> AppConfig:
    """
    兼容旧的纯环境变量配置方式（TARGET_URL / CONTENT_TYPE / SELECTOR / SEARCH_TEXT / SMTP_* ...）。

    先翻译成与 JSON 配置相同的结构，再走 build_config 统一校验。
    """
    content_type = (environ.get("CONTENT_TYPE") or "").strip().lower()
    rule: dict[str, Any] = {"type": content_type}
    if content_type == "text":
        rule["terms"] = environ.get("SEARCH_TEXT") or ""
    elif content_type == "html":
        rule["selector"] = environ.get("SELECTOR") or ""

    notify: dict[str, Any] = {}
    if environ.get("SMTP_RELAY") or environ.get("EMAIL_TO"):
        notify["email"] = {
            "smtp_host": environ.get("SMTP_RELAY"),
            "smtp_port": environ.get("SMTP_PORT") or 465,
            "user_env": "SMTP_USER",
            "password_env": "SMTP_PASS",
            "from": environ.get("EMAIL_FROM"),
            "to_list": environ.get("EMAIL_TO") or "",
        }
    if environ.get("WEBHOOK_URL"):
        notify["webhook"] = {
            "url_env": "WEBHOOK_URL",
            "sender": environ.get("WEBHOOK_SENDER"),
            "recipients": environ.get("WEBHOOK_RECIPIENTS") or "",
            "message_prefix": environ.get("WEBHOOK_PREFIX") or "",
        }

    raw = {
        "target_url": environ.get("TARGET_URL"),
        "rule": rule,
        "throttle": {
            "max_per_window": environ.get("THROTTLE_MAX"),
            "window_seconds": environ.get("THROTTLE_WINDOW_SECONDS"),
            "state_dir": environ.get("THROTTLE_DIR") or DEFAULT_STATE_DIR,
        },
        "dry_run": "PREVENT_EMAIL" in environ,
        "debug": {"enabled": "DEBUG" in environ, "artifacts_dir": environ.get("DEBUG_DIR") or "."},
        "notify": notify,
    }
    return build_config(raw, environ)
