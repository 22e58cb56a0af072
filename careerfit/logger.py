"""
Structured logging for careerfit.

Provides centralized logging with console and file destinations plus
in-process counters for assessment throughput and result-access health.
Counters are updated under a lock because unlocks run concurrently.
"""

import json
import logging
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .config import get_settings

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def log_file_path(log_dir: Path, day: Optional[datetime] = None) -> Path:
    """One file per day: careerfit_YYYYMMDD.log."""
    return log_dir / f"careerfit_{(day or datetime.now()).strftime('%Y%m%d')}.log"


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _file_handler(log_dir: Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file_path(log_dir), encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _fresh_metrics() -> Dict[str, Any]:
    return {
        "sessions_started": 0,
        "submissions_scored": 0,
        "submissions_rejected": 0,
        "first_unlocks": 0,
        "reviews": 0,
        "unlock_conflicts": 0,
        "grants_rejected": {},
        "recommendation_failures": 0,
        "notifications_failed": 0,
        "errors_by_type": {},
    }


class StructuredLogger:
    """
    Logger writing "message | Context: {json}" lines to console and/or a
    daily file, with counters for sessions, submissions and result unlocks.
    """

    def __init__(
        self,
        name: str = "careerfit",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Args:
            name: Logger name
            level: DEBUG, INFO, WARNING, ERROR or CRITICAL
            log_dir: Directory for the daily log file (default: logs/)
            enable_file: Write to the daily log file
            enable_console: Write to stdout
        """
        numeric_level = getattr(logging, level.upper())
        self.logger = logging.getLogger(name)
        self.logger.setLevel(numeric_level)
        self.logger.handlers.clear()
        self.logger.propagate = False

        self._lock = threading.Lock()
        self.metrics = _fresh_metrics()

        if enable_console:
            self.logger.addHandler(_console_handler(numeric_level))
        if enable_file:
            self.logger.addHandler(_file_handler(log_dir or Path("logs")))

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, context)

    def warning(self, message: str, **context):
        self._log(logging.WARNING, message, context)

    def error(self, message: str, **context):
        self._log(logging.ERROR, message, context)

    def critical(self, message: str, **context):
        self._log(logging.CRITICAL, message, context)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Counters

    def _bump(self, key: str, sub_key: Optional[str] = None):
        with self._lock:
            if sub_key is None:
                self.metrics[key] += 1
            else:
                bucket = self.metrics[key]
                bucket[sub_key] = bucket.get(sub_key, 0) + 1

    def record_session_started(self):
        self._bump("sessions_started")

    def record_submission(self, accepted: bool):
        """Count a scored or rejected submission."""
        self._bump("submissions_scored" if accepted else "submissions_rejected")

    def record_unlock(self, is_review: bool):
        self._bump("reviews" if is_review else "first_unlocks")

    def record_unlock_conflict(self):
        """Count a first-unlock insert that lost the race and became a review."""
        self._bump("unlock_conflicts")

    def record_grant_rejected(self, reason: str):
        self._bump("grants_rejected", reason)

    def record_recommendation_failure(self, error_type: str):
        self._bump("recommendation_failures")
        self.record_error(error_type)

    def record_notification_failure(self, error_type: str):
        self._bump("notifications_failed")
        self.record_error(error_type)

    def record_error(self, error_type: str):
        self._bump("errors_by_type", error_type)

    def get_metrics(self) -> dict:
        """Snapshot of the counters plus the review rate."""
        with self._lock:
            snapshot = {k: dict(v) if isinstance(v, dict) else v for k, v in self.metrics.items()}

        unlock_calls = snapshot["first_unlocks"] + snapshot["reviews"]
        snapshot["review_rate"] = round(snapshot["reviews"] / unlock_calls, 3) if unlock_calls else 0.0
        return snapshot

    def log_metrics_summary(self):
        m = self.get_metrics()

        self.info("=== careerfit metrics ===")
        self.info(f"Sessions started: {m['sessions_started']}")
        self.info(f"Submissions: {m['submissions_scored']} scored, {m['submissions_rejected']} rejected")
        self.info(
            f"Unlocks: {m['first_unlocks']} first, {m['reviews']} reviews "
            f"({m['unlock_conflicts']} concurrent conflicts)"
        )
        self.info(f"Recommendation failures: {m['recommendation_failures']}")
        self.info(f"Notifications failed: {m['notifications_failed']}")

        for title, counts in (("Grant rejections", m["grants_rejected"]), ("Errors", m["errors_by_type"])):
            if counts:
                self.info(f"{title}:")
                for key, count in counts.items():
                    self.info(f"  {key}: {count}")


_global_logger: Optional[StructuredLogger] = None


def get_logger(name: str = "careerfit", level: Optional[str] = None, **kwargs) -> StructuredLogger:
    """
    Shared logger for the package, created on first use.

    Level, log directory and file output default to config.Settings when
    not passed explicitly; later calls return the existing instance.
    """
    global _global_logger

    if _global_logger is None:
        settings = get_settings()
        kwargs.setdefault("log_dir", settings.log_dir)
        kwargs.setdefault("enable_file", settings.log_to_file)
        _global_logger = StructuredLogger(name=name, level=level or settings.log_level, **kwargs)

    return _global_logger


def reset_logger():
    """Drop the shared logger (useful for testing)."""
    global _global_logger
    _global_logger = None
