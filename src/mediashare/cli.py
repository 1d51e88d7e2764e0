"""Command-line entry point: ``mediashare [--host H] [--port P] [--config-path FILE]``."""

from __future__ import annotations

import argparse
import logging

import uvicorn

from mediashare.api.app import create_app
from mediashare.config import load_config

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mediashare",
        description="Serve a media folder over HTTP with share links.",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=3000, help="Port to listen on (default: 3000)")
    parser.add_argument(
        "--config-path",
        default=None,
        help="YAML config file (default: $CONFIG_PATH, then ./config.yaml or ./config.json)",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Logging verbosity (default: info)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)

    config = load_config(args.config_path)
    logger.info("Serving %s on http://%s:%d", config.media_dir, args.host, args.port)
    if config.auth_enabled:
        logger.info("Authentication enabled")

    uvicorn.run(create_app(config), host=args.host, port=args.port, log_level=args.log_level)
