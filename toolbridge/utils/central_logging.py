"""
Central logging for toolbridge.

Logs go to ``<log_dir>/``:
- all.log, errors.log
- registry.log, dispatch.log, store.log, http.log, routes.log
plus a coloured console handler.
"""
import logging
import sys
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

FMT = "%(asctime)s|%(levelname)-8s|%(name)-22s|%(message)s"
FMT_DETAIL = "%(asctime)s|%(levelname)-8s|%(name)-22s|%(filename)s:%(lineno)d|%(message)s"
DATE_FMT = "%Y-%m-%d %H:%M:%S"
MAX_BYTES, BACKUP = 10 * 1024 * 1024, 5

CATEGORY_LOGGERS = (
    ("registry", "registry.log"),
    ("dispatch", "dispatch.log"),
    ("store", "store.log"),
    ("http", "http.log"),
    ("routes", "routes.log"),
)

_init = {"central": False}


class ColorFormatter(logging.Formatter):
    """Formatter with ANSI colors for console."""
    C = {10: '\033[36m', 20: '\033[32m', 30: '\033[33m', 40: '\033[31m', 50: '\033[35m'}
    R = '\033[0m'

    def format(self, r):
        return f"{self.C.get(r.levelno, '')}{super().format(r)}{self.R}"


@lru_cache(maxsize=32)
def _handler(path: str, level: int = logging.DEBUG) -> RotatingFileHandler:
    """Cached rotating file handler factory."""
    h = RotatingFileHandler(path, maxBytes=MAX_BYTES, backupCount=BACKUP, encoding='utf-8')
    h.setLevel(level)
    h.setFormatter(logging.Formatter(FMT_DETAIL, DATE_FMT))
    return h


def _level(value: Union[int, str]) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_central_logging(
    log_dir: Optional[Union[str, Path]] = None,
    console_level: Union[int, str] = logging.INFO,
    enable_console: bool = True,
) -> None:
    """Initialize logging for the ``toolbridge`` logger tree. Call once at startup.

    With ``log_dir=None`` only the console handler is installed.
    """
    if _init["central"]:
        return

    root = logging.getLogger("toolbridge")
    root.setLevel(logging.DEBUG)
    root.handlers.clear()
    root.propagate = False

    if log_dir is not None:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        root.addHandler(_handler(str(directory / "all.log")))
        root.addHandler(_handler(str(directory / "errors.log"), logging.ERROR))
        for name, filename in CATEGORY_LOGGERS:
            logging.getLogger(f"toolbridge.{name}").addHandler(_handler(str(directory / filename)))

    if enable_console:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(_level(console_level))
        console.setFormatter(ColorFormatter(FMT, DATE_FMT))
        root.addHandler(console)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    _init["central"] = True
    root.debug("toolbridge logging ready | log_dir=%s", log_dir)
