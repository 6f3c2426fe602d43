# src/mr_later/logging_setup.py

from __future__ import annotations

import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Access/refresh tokens are JWTs; the realtime client echoes them in join frames.
_JWT_RE = re.compile(r"eyJ[\w-]+\.[\w-]+\.[\w-]+")

# Live-sync transport: disconnects and rejoins matter, heartbeats do not.
_REALTIME_LOGGERS = ("realtime", "websockets")
_HTTP_LOGGERS = ("httpx", "httpcore")


class _RedactTokensFilter(logging.Filter):
    """Replace bearer tokens in the rendered message with a short marker."""

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        if "eyJ" in msg:
            record.msg = _JWT_RE.sub("<jwt>", msg)
            record.args = None
        return True


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the REPL readable:
    - mr_later logs pass (the change-feed adapter only at WARNING+)
    - realtime/websockets at WARNING+, so a dropped live connection is visible
    - everything else third-party (httpx included) only at ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name.startswith("mr_later."):
            if name.startswith("mr_later.gateway.realtime_feed"):
                return record.levelno >= logging.WARNING
            return True

        if name.split(".", 1)[0] in _REALTIME_LOGGERS:
            return record.levelno >= logging.WARNING

        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/mr_later",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
) -> None:
    """
    Console handler for the REPL plus a rotating DEBUG file (mr_later.log).

    Call this ONCE, very early (before first logger.info).
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    redact = _RedactTokensFilter()

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    ch.addFilter(redact)
    root.addHandler(ch)

    # Long-running sessions with a live socket grow the file steadily.
    fh = RotatingFileHandler(
        log_dir / "mr_later.log",
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    fh.addFilter(redact)
    root.addHandler(fh)

    logging.captureWarnings(True)

    # Request lines carry query filters with user ids; keep them out of the file.
    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    # Heartbeats and raw frames are DEBUG.
    for name in _REALTIME_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO)
