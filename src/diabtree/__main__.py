"""Command-line entry point: train on the configured dataset and serve the API."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from pathlib import Path

import uvicorn

from diabtree.api import create_app
from diabtree.config import Settings
from diabtree.logging import enable_logging


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser.

    Options left unset fall back to `Settings`, which reads `DIABTREE_*`
    environment variables.

    Returns:
        argparse.ArgumentParser: The configured parser.
    """
    parser = argparse.ArgumentParser(prog="diabtree", description=__doc__)
    parser.add_argument("--dataset", type=Path, help="CSV dataset to train on.")
    parser.add_argument("--host", help="Bind host.")
    parser.add_argument("--port", type=int, help="Bind port.")
    parser.add_argument("--log-level", help="Log level (TRACE, DEBUG, INFO, REQUEST, WARNING, ERROR, CRITICAL).")
    parser.add_argument("--log-format", choices=["short", "full", "json"], help="Log line format.")
    return parser


def load_settings(argv: Sequence[str] | None = None) -> Settings:
    """Merge command-line overrides over environment settings.

    Args:
        argv (Sequence[str] | None): Arguments to parse. Defaults to `sys.argv[1:]`.

    Returns:
        Settings: The effective settings.
    """
    args = build_parser().parse_args(argv)
    overrides = {
        "dataset_path": args.dataset,
        "host": args.host,
        "port": args.port,
        "log_level": args.log_level.upper() if args.log_level else None,
        "log_format": args.log_format,
    }
    return Settings(**{key: value for key, value in overrides.items() if value is not None})


def main(argv: Sequence[str] | None = None) -> None:
    """Train the model and serve the HTTP API until interrupted."""
    settings = load_settings(argv)
    with enable_logging(level=settings.log_level, log_format=settings.log_format):
        uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
