"""Logging setup.

Logs always go to stderr: in stdio mode stdout carries the JSON-RPC wire.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

stderr_console = Console(stderr=True)


def configure_logging(level: str = "INFO") -> None:
    """Install a rich handler on the ``logic_mcp`` logger, once."""
    logger = logging.getLogger("logic_mcp")
    logger.setLevel(level.upper())
    if any(isinstance(h, RichHandler) for h in logger.handlers):
        return

    handler = RichHandler(
        console=stderr_console,
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)
    logger.propagate = False
