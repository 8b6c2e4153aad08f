"""Shared logging configuration for Credence.

Call ``configure_logging()`` once at a CLI entry point. Library modules only
ever call ``logging.getLogger(__name__)`` and never configure handlers.
The function is idempotent: if the root logger already has handlers, it
does nothing.
"""

import logging


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logger with a console handler (idempotent)."""
    root = logging.getLogger()
    if root.handlers:
        return

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(console)
    root.setLevel(level)
