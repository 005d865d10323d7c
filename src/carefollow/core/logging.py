from __future__ import annotations

import logging

from rich.logging import RichHandler

_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)


def configure_logging(verbosity: int = 0) -> None:
    level = _LEVELS[max(0, min(verbosity, len(_LEVELS) - 1))]
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # Keep HTTP client chatter out of normal runs.
    for noisy in ("httpx", "openai", "urllib3"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))
