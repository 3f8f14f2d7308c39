"""Launcher for the lifecycle bot.

Usage:
  python run_lifecycle.py --config operator.yaml          # resync forever
  python run_lifecycle.py --config operator.yaml --once   # single pass, exit code reflects errors

Credentials come from the environment: JIRA_SERVER, JIRA_EMAIL (omit for a
Data Center personal access token), JIRA_API_TOKEN and SLACK_BOT_TOKEN.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys

from lifecycle_app.core.errors import ConfigError
from lifecycle_app.core.settings import DEFAULT_CONFIG_NAME, load_credentials, load_operator_config
from lifecycle_app.runner import Runner, build_controllers

LOGGER = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Mark stale Jira issues and reassign meta-component issues.")
    p.add_argument("--config", default=DEFAULT_CONFIG_NAME, help="Operator YAML configuration.")
    p.add_argument("--once", action="store_true", help="Run each controller once and exit.")
    p.add_argument(
        "--controller",
        action="append",
        choices=["stale", "metacomponent"],
        help="Controller to run (repeatable, default all).",
    )
    p.add_argument("--log-level", default="INFO")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = load_operator_config(args.config)
        credentials = load_credentials(args.config)
    except ConfigError as exc:
        LOGGER.error("%s", exc)
        return 2
    if not credentials.jira_token:
        LOGGER.error("JIRA_API_TOKEN is required.")
        return 2

    runner = Runner(build_controllers(config, credentials, args.controller or ("stale", "metacomponent")))
    if args.once:
        return 0 if runner.run_once() else 1

    signal.signal(signal.SIGTERM, lambda *_: runner.stop())
    signal.signal(signal.SIGINT, lambda *_: runner.stop())
    LOGGER.info("Lifecycle bot started against %s", credentials.jira_server)
    runner.run_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
