from __future__ import annotations

import argparse
import dataclasses
import logging
import os

from .config import AppConfig, config_from_env, load_config
from .errors import ConfigError, PagewatchError, ParseError
from .models import HtmlSelect, TextSearch
from .runner import build_runner


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="pagewatch", description="Poll a page once and notify on matches")
    p.add_argument(
        "--config",
        default=None,
        help="Path to JSON config file. Without it, settings are read from environment variables",
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Log level (DEBUG/INFO/WARNING/ERROR). Defaults to env PAGEWATCH_LOG_LEVEL or INFO",
    )
    p.add_argument("--dry-run", action="store_true", help="Render notifications but do not deliver them")
    p.add_argument("--debug", action="store_true", help="Write fetched content and email body to artifacts dir")
    return p


def _resolve_log_level(value: str | None) -> int:
    v = (value or "").strip().upper()
    if not v:
        return logging.INFO
    level = logging.getLevelNamesMapping().get(v)
    if isinstance(level, int):
        return level
    return logging.INFO


def _rule_summary(config: AppConfig) -> str:
    rule = config.rule
    if isinstance(rule, TextSearch):
        return f"text terms={','.join(rule.terms)}"
    if isinstance(rule, HtmlSelect):
        return f"html selector={rule.selector}"
    return type(rule).__name__


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    log_level = _resolve_log_level(args.log_level or os.environ.get("PAGEWATCH_LOG_LEVEL"))
    if args.debug:
        log_level = min(log_level, logging.DEBUG)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger = logging.getLogger("pagewatch")

    try:
        config = load_config(args.config) if args.config else config_from_env(os.environ)
    except (ConfigError, ParseError) as e:
        logger.error("invalid configuration: %s", e)
        return 2

    if args.dry_run or args.debug:
        config = dataclasses.replace(
            config,
            dry_run=config.dry_run or args.dry_run,
            debug=config.debug or args.debug,
        )

    runner = build_runner(config)
    logger.info("polling %s for %s", config.target_url, _rule_summary(config))
    logger.info(
        "config: max_per_window=%d window_seconds=%d state_dir=%s dry_run=%s",
        config.throttle.max_per_window,
        config.throttle.window_seconds,
        config.state_dir,
        config.dry_run,
    )
    if not runner.notifiers:
        logger.warning("no notifiers configured; matches will only be logged")

    try:
        report = runner.run_once()
    except PagewatchError as e:
        logger.error("run failed: %s", e)
        return 1

    for o in report.outcomes:
        if o.reason:
            logger.info("outcome: channel=%s status=%s reason=%s", o.channel, o.status.value, o.reason)
        else:
            logger.info("outcome: channel=%s status=%s", o.channel, o.status.value)
    logger.info(
        "finished: duration_ms=%d matches=%d sent=%d suppressed=%d failed=%d",
        report.duration_ms,
        report.matches,
        report.sent,
        report.suppressed,
        report.failed,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
