from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional


class _ConsoleNoiseFilter(logging.Filter):
    """Keep planner logs on the console; third-party records only from ERROR up."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "planner" or record.name.startswith("planner."):
            return True
        return record.levelno >= logging.ERROR


def setup_logging(*, console_level: int = logging.INFO, log_file: Optional[Path] = None) -> None:
    """Configure the root logger for CLI runs.

    Library modules only create named loggers; handlers are installed here,
    once, before the first command runs.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_file), encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(fmt)
        root.addHandler(fh)

    logging.captureWarnings(True)


def level_from_name(name: str) -> int:
    return getattr(logging, str(name or "INFO").upper(), logging.INFO)


__all__ = ["setup_logging", "level_from_name"]
