"""Centralised logging setup.

Library modules only ever call ``logging.getLogger(__name__)``; the CLI calls
``setup_logging()`` once at startup to attach a rich handler.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

# Third-party loggers that are chatty at INFO/DEBUG.
_NOISY_LOGGERS: tuple[str, ...] = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy", "httpx", "httpcore")


def setup_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Configure the root logger with a ``RichHandler`` writing to stderr.

    Args:
        verbose: DEBUG for vidask loggers when True, WARNING otherwise.
        console: Console to render into (defaults to a stderr console).
    """
    root = logging.getLogger()
    level = logging.DEBUG if verbose else logging.WARNING
    root.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in root.handlers):
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(name)s — %(message)s"))
        root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if verbose else logging.WARNING)

    logging.getLogger(__name__).debug("Logging configured (verbose=%s)", verbose)
