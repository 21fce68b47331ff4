# src/cloud_helpers/reporting.py

"""
Error reporting and structured log sink.

Both are thin layers over the AWS Lambda Powertools Logger, which emits one
JSON document per entry. Reporting is fire-and-forget: a failure to report is
logged locally and never reaches the caller.
"""

import logging
from enum import Enum

from aws_lambda_powertools import Logger

from .config import AppConfig
from .exceptions import get_error_context

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    """Log severities accepted by LogSink, mapped onto logger methods."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    NOTICE = "NOTICE"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"
    ALERT = "ALERT"
    EMERGENCY = "EMERGENCY"


_SEVERITY_METHODS = {
    Severity.DEBUG: "debug",
    Severity.INFO: "info",
    Severity.NOTICE: "info",
    Severity.WARNING: "warning",
    Severity.ERROR: "error",
    Severity.CRITICAL: "critical",
    Severity.ALERT: "critical",
    Severity.EMERGENCY: "critical",
}


def build_logger(config: AppConfig) -> Logger:
    return Logger(service=config.service_name, level=config.log_level)


class ErrorReporter:
    """Sends errors to the structured error log."""

    def __init__(self, powertools_logger: Logger):
        self._logger = powertools_logger

    def report(self, error: BaseException) -> None:
        """Report *error*. Never raises."""
        try:
            self._logger.error(
                f"Error reported: {error}",
                extra={"error": get_error_context(error)},
                exc_info=error,
            )
        except Exception:
            logger.warning("Could not report error", exc_info=True)


class LogSink:
    """Writes named, severity-tagged entries."""

    def __init__(self, powertools_logger: Logger):
        self._logger = powertools_logger

    def log(
        self, name: str, text: str, severity: Severity | str | None = None
    ) -> None:
        # DEBUG unless told otherwise.
        level = Severity(severity.upper()) if isinstance(severity, str) else severity
        level = level or Severity.DEBUG
        method = getattr(self._logger, _SEVERITY_METHODS[level])
        method(text, extra={"log_name": name, "severity": level.value})
