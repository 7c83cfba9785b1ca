# hearing/utils/logging.py
# -*- coding: utf-8 -*-
"""
Hearing Server — logging utilities
----------------------------------
One place that configures logging for the whole process (called once from
hearing.main).

Components prefix their messages with a bracketed tag ("[Dialogue]",
"[SessionStore]", "[generate:ack]"), so the format only adds time, level
and logger name.

Per-logger levels can be overridden without a code change:

    HEARING_LOG_LEVELS="hearing.core.dialogue=DEBUG,urllib3=INFO"

HTTP client and server chatter (uvicorn access log, urllib3 from requests,
httpx from the test client, redis) defaults to WARNING.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_QUIET_LOGGERS: Dict[str, str] = {
    "uvicorn.access": "WARNING",
    "urllib3": "WARNING",
    "httpx": "WARNING",
    "redis": "WARNING",
}


def parse_level_overrides(raw: Optional[str]) -> Dict[str, str]:
    """
    Parse "name=LEVEL,name=LEVEL" into a dict.

    Entries without "=" or with an unknown level name are skipped.
    """
    overrides: Dict[str, str] = {}
    for item in (raw or "").split(","):
        name, sep, level = item.partition("=")
        name, level = name.strip(), level.strip().upper()
        if not sep or not name:
            continue
        if not isinstance(logging.getLevelName(level), int):
            continue
        overrides[name] = level
    return overrides


def setup_logging(
    *,
    debug: bool = False,
    level: Optional[int] = None,
) -> None:
    """
    Configure root logging for the process.

    Parameters
    ----------
    debug:
        DEBUG when True, INFO otherwise. Wired from settings.debug.
    level:
        Explicit root level; wins over `debug`.

    Safe to call again (e.g. under uvicorn --reload): existing handlers are
    kept and only logger levels change. Handler levels are left alone so a
    per-logger DEBUG override still reaches the console.
    """
    root_level = level if level is not None else (logging.DEBUG if debug else logging.INFO)

    root = logging.getLogger()
    if root.handlers:
        root.setLevel(root_level)
    else:
        logging.basicConfig(level=root_level, format=LOG_FORMAT, datefmt=DATE_FORMAT)

    levels = dict(_QUIET_LOGGERS)
    levels.update(parse_level_overrides(os.getenv("HEARING_LOG_LEVELS")))
    for name, name_level in levels.items():
        logging.getLogger(name).setLevel(name_level)


def get_logger(name: str) -> logging.Logger:
    """Same as logging.getLogger; kept so modules can import from hearing.utils."""
    return logging.getLogger(name)
