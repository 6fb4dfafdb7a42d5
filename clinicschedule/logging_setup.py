"""
Logging configuration for the command line tools.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: str = "INFO", console: Optional[Console] = None) -> None:
    """Route all ``clinicschedule`` loggers through a RichHandler on stderr."""
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
