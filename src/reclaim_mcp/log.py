"""Logging setup. Records go to stderr; stdout belongs to the stdio transport."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

err_console = Console(stderr=True)


def configure_logging(level: str | int = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
