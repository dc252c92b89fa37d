"""Logging setup for the splitter.

Lower layers (parsing, planning, building) never log; the RPC client, the
submission coordinator and the payout session log through loggers under the
``splitter`` namespace:

    log = get_logger(__name__)
    log.info("normal event / milestone")
    log.warning("a non-fatal condition that needs attention")
    log.exception("context message when an exception occurs")
"""
from __future__ import annotations

import logging
import os
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Union

ROOT_LOGGER = "splitter"
_DEFAULT_FMT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"


class RedactFilter(logging.Filter):
    # Signatures share the alphabet and length of secret keys, so base58 is
    # only masked when labelled as a secret.
    RE_SECRET_B58 = re.compile(r"(secret|seed|clave|key)(\S*\s*[:=]\s*)[1-9A-HJ-NP-Za-km-z]{43,90}", re.I)
    RE_KEY_ARRAY = re.compile(r"\[(\s*\d{1,3}\s*,){31,}\s*\d{1,3}\s*\]")

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        msg = self.RE_SECRET_B58.sub(r"\1\2[REDACTED_SECRET]", msg)
        msg = self.RE_KEY_ARRAY.sub("[REDACTED_KEY_BYTES]", msg)
        record.msg, record.args = msg, None
        return True


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def setup_logging(
    level: Union[int, str] = "INFO",
    log_file: Optional[Union[str, os.PathLike]] = None,
    to_console: bool = True,
    rotate_max_bytes: int = 2_000_000,
    backup_count: int = 3,
    force: bool = False,
    fmt: str = _DEFAULT_FMT,
    datefmt: str = _DEFAULT_DATEFMT,
) -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if getattr(root, "_splitter_configured", False) and not force:
        return root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    handlers: List[logging.Handler] = []
    formatter = logging.Formatter(fmt, datefmt)

    if log_file is not None:
        log_path = Path(log_file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            log_path, maxBytes=int(rotate_max_bytes), backupCount=int(backup_count),
            encoding="utf-8", delay=True
        )
        fh.setFormatter(formatter)
        fh.addFilter(RedactFilter())
        handlers.append(fh)

    if to_console:
        sh = logging.StreamHandler()
        sh.setFormatter(formatter)
        sh.addFilter(RedactFilter())
        handlers.append(sh)

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)
    for handler in handlers:
        root.addHandler(handler)
    root.propagate = False
    root._splitter_configured = True  # type: ignore[attr-defined]
    return root
