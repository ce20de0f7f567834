"""CLI entry point.

Usage:
    autorefresh serve ./site --port 8000
    autorefresh watch ws://127.0.0.1:8000/_autorefresh
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .agent import ReloadAgent
from .config import AutorefreshConfig, load_yaml_config
from .errors import AutorefreshError


def _configure_logging(level_name: str, log_file: str | None) -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name.upper(), logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autorefresh",
        description="Reload browser pages when a development server restarts",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-file", metavar="PATH",
        help="Also write logs to a rotating file",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Serve a directory with autorefresh injected")
    serve.add_argument(
        "root", nargs="?", default=None,
        help="Directory to serve (default: config root or current dir)",
    )
    serve.add_argument("--host", default=None, help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: 8000)")
    serve.add_argument("--path", default=None, help="Reload endpoint path (default: /_autorefresh)")
    serve.add_argument(
        "--refresh-rate", type=int, default=None,
        help="Browser retry interval in ms, at least 100 (default: 500)",
    )
    serve.add_argument(
        "--no-inject", action="store_true",
        help="Do not inject the reload script into HTML pages",
    )
    serve.add_argument(
        "--config", metavar="PATH",
        help="YAML config file",
    )

    watch = sub.add_parser("watch", help="Block until the server behind URL restarts")
    watch.add_argument("url", help="Reload endpoint URL (ws:// or http://)")
    watch.add_argument(
        "--refresh-rate", type=int, default=None,
        help="Retry interval in ms (default: 500)",
    )
    return parser


def _resolve_config(args: argparse.Namespace) -> AutorefreshConfig:
    config = AutorefreshConfig.from_env()
    config_path = getattr(args, "config", None)
    if config_path:
        config = load_yaml_config(config_path, base=config)
    for attr in ("root", "host", "port", "path", "refresh_rate"):
        value = getattr(args, attr, None)
        if value is not None:
            setattr(config, attr, value)
    if getattr(args, "no_inject", False):
        config.inject = False
    return config


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    try:
        config = _resolve_config(args)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)
    _configure_logging("DEBUG" if args.verbose else config.log_level, args.log_file)
    logger = logging.getLogger(__name__)

    if args.command == "watch":
        try:
            agent = ReloadAgent(args.url, config.refresh_rate)
        except AutorefreshError as exc:
            logger.error("%s", exc)
            sys.exit(2)
        try:
            asyncio.run(agent.run())
        except KeyboardInterrupt:
            print("\nInterrupted.")
            sys.exit(1)
        print(f"Server behind {args.url} restarted.")
        sys.exit(0)

    from .server import DevServer

    try:
        server = DevServer(config)
    except AutorefreshError as exc:
        logger.error("%s", exc)
        sys.exit(2)
    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        pass
    sys.exit(0)


if __name__ == "__main__":
    main()
