"""
ColonyPlanner Logger - Persistent file-based logging.

Provides structured, levelled logging to rotating log files so you can
review exactly what the planner decided long after a run ends, without
relying on a live console.

Usage
-----
    from ColonyPlanner.logger import get_logger

    log = get_logger()          # module-level logger
    log.info("Planner started")
    log.debug("Rotation order: %s", order, tick=1234)
    log.warning("No anchor in base %s", base_id)

    # Planner-specific helpers
    log.plan_event("GENERATED", "W1N1 | 8 tiers | 212 cells", tick=1234)
    log.placement("extension", (24, 27), "OK", base="W1N1", tick=1234)

The log file lives at  logs/colony_<timestamp>.log  under the working
directory. Old log files are kept for up to LOG_BACKUP_COUNT runs.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


# ── Configuration ────────────────────────────────────────────────────────────

LOG_DIR          = Path("logs")         # Relative to CWD (i.e. project root)
LOG_LEVEL        = logging.DEBUG        # File log level  (very verbose)
CONSOLE_LEVEL    = logging.INFO         # Console level   (INFO and above)
LOG_BACKUP_COUNT = 10                   # How many old log files to keep
MAX_BYTES        = 5 * 1024 * 1024      # 5 MB per file before rotating


# ── Custom log levels ─────────────────────────────────────────────────────────

PLAN_EVENT_LEVEL = 25   # between INFO (20) and WARNING (30)
SITE_LEVEL       = 15   # between DEBUG (10) and INFO (20)

logging.addLevelName(PLAN_EVENT_LEVEL, "PLAN")
logging.addLevelName(SITE_LEVEL,       "SITE")


# ── Custom formatter ──────────────────────────────────────────────────────────

class ColonyFormatter(logging.Formatter):
    """
    Adds a [tick] column when a 'tick' extra field is present, so log lines
    can be correlated directly to a world tick.

    Example output:
        2026-10-19 21:14:03.412 | INFO    |        - | Planner started
        2026-10-19 21:14:05.001 | PLAN    |     1280 | GENERATED | W1N1 | 8 tiers
        2026-10-19 21:14:05.002 | SITE    |     1280 | extension @ (24,27) -> OK [W1N1]
    """

    BASE_FMT = "%(asctime)s.%(msecs)03d | %(levelname)-7s | %(tick_col)8s | %(message)s"
    DATE_FMT = "%Y-%m-%d %H:%M:%S"

    def format(self, record: logging.LogRecord) -> str:
        tick = getattr(record, "tick", None)
        record.tick_col = "-" if tick is None else str(tick)
        record.levelname = record.levelname[:7]
        return super().format(record)


# ── Logger factory ────────────────────────────────────────────────────────────

_logger_instance: Optional["ColonyLogger"] = None


def get_logger(name: str = "colony") -> "ColonyLogger":
    """
    Return the singleton ColonyLogger, creating it on first call.

    Call this once at module level in each file that needs logging:

        log = get_logger()
    """
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = ColonyLogger(name)
    return _logger_instance


class ColonyLogger:
    """
    Thin wrapper around Python's standard logging that adds planner-specific
    helpers and wires up both a rotating file handler and a console handler.
    """

    def __init__(self, name: str = "colony") -> None:
        self._logger = logging.getLogger(name)
        self._logger.setLevel(LOG_LEVEL)

        # Avoid adding duplicate handlers if the logger is re-initialised
        if self._logger.handlers:
            return

        self._setup_handlers()

    # ── Setup ─────────────────────────────────────────────────────────────────

    def _setup_handlers(self) -> None:
        LOG_DIR.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file  = LOG_DIR / f"colony_{timestamp}.log"

        formatter = ColonyFormatter(
            fmt     = ColonyFormatter.BASE_FMT,
            datefmt = ColonyFormatter.DATE_FMT,
        )

        # ── Rotating file handler ──────────────────────────────────────────
        file_handler = logging.handlers.RotatingFileHandler(
            filename    = log_file,
            maxBytes    = MAX_BYTES,
            backupCount = LOG_BACKUP_COUNT,
            encoding    = "utf-8",
        )
        file_handler.setLevel(LOG_LEVEL)
        file_handler.setFormatter(formatter)

        # ── Console handler ────────────────────────────────────────────────
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(CONSOLE_LEVEL)
        console_handler.setFormatter(formatter)

        self._logger.addHandler(file_handler)
        self._logger.addHandler(console_handler)

        self._logger.info(
            "Logger initialised, writing to %s",
            log_file.resolve(),
        )

    # ── Standard log levels ───────────────────────────────────────────────────

    def debug(self, msg: str, *args, tick: Optional[int] = None, **kwargs) -> None:
        self._logger.debug(msg, *args, extra={"tick": tick}, **kwargs)

    def info(self, msg: str, *args, tick: Optional[int] = None, **kwargs) -> None:
        self._logger.info(msg, *args, extra={"tick": tick}, **kwargs)

    def warning(self, msg: str, *args, tick: Optional[int] = None, **kwargs) -> None:
        self._logger.warning(msg, *args, extra={"tick": tick}, **kwargs)

    def error(self, msg: str, *args, tick: Optional[int] = None, **kwargs) -> None:
        self._logger.error(msg, *args, extra={"tick": tick}, **kwargs)

    def exception(self, msg: str, *args, tick: Optional[int] = None, **kwargs) -> None:
        self._logger.exception(msg, *args, extra={"tick": tick}, **kwargs)

    # ── Planner-specific helpers ──────────────────────────────────────────────

    def plan_event(
        self,
        event_type: str,
        detail: str,
        tick: Optional[int] = None,
    ) -> None:
        """
        Log a significant named plan event (generation, tier change, replan,
        corrective removal).

        Example:
            log.plan_event("GENERATED", "W1N1 | 8 tiers", tick=1280)
            log.plan_event("TIER_UP", "W1N1 | 3 -> 4", tick=45000)
        """
        self._logger.log(
            PLAN_EVENT_LEVEL,
            "%s | %s",
            event_type.upper(),
            detail,
            extra={"tick": tick},
        )

    def placement(
        self,
        kind: str,
        position: tuple[int, int],
        result: str,
        base: Optional[str] = None,
        tick: Optional[int] = None,
    ) -> None:
        """
        Log an individual build-marker attempt and its outcome.

        Example:
            log.placement("extension", (24, 27), "OK", base="W1N1", tick=1280)
        """
        base_str = f" [{base}]" if base is not None else ""
        self._logger.log(
            SITE_LEVEL,
            "%s @ (%d,%d) -> %s%s",
            kind,
            position[0],
            position[1],
            result,
            base_str,
            extra={"tick": tick},
        )
