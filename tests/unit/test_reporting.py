# tests/unit/test_reporting.py

from unittest.mock import MagicMock

import pytest
from aws_lambda_powertools import Logger

from cloud_helpers.config import AppConfig
from cloud_helpers.exceptions import TransportError
from cloud_helpers.reporting import ErrorReporter, LogSink, Severity, build_logger


def test_report_logs_structured_error():
    # Arrange
    powertools_logger = MagicMock()
    reporter = ErrorReporter(powertools_logger)
    error = TransportError("boom", status_code=500)

    # Act
    reporter.report(error)

    # Assert
    powertools_logger.error.assert_called_once_with(
        "Error reported: boom",
        extra={"error": error.to_dict()},
        exc_info=error,
    )


def test_report_never_raises():
    powertools_logger = MagicMock()
    powertools_logger.error.side_effect = RuntimeError("sink down")
    reporter = ErrorReporter(powertools_logger)

    reporter.report(ValueError("original"))


@pytest.mark.parametrize(
    "severity, method",
    [
        (None, "debug"),
        (Severity.INFO, "info"),
        ("notice", "info"),
        ("WARNING", "warning"),
        (Severity.ERROR, "error"),
        ("emergency", "critical"),
    ],
)
def test_log_sink_maps_severity(severity, method):
    powertools_logger = MagicMock()
    sink = LogSink(powertools_logger)

    sink.log("audit", "hello", severity)

    expected_severity = (
        Severity(severity.upper()) if severity is not None else Severity.DEBUG
    )
    getattr(powertools_logger, method).assert_called_once_with(
        "hello", extra={"log_name": "audit", "severity": expected_severity.value}
    )


def test_log_sink_rejects_unknown_severity():
    sink = LogSink(MagicMock())

    with pytest.raises(ValueError):
        sink.log("audit", "hello", "LOUD")


def test_build_logger_uses_service_name(app_env):
    config = AppConfig.load_from_env()

    powertools_logger = build_logger(config)

    assert isinstance(powertools_logger, Logger)
    assert powertools_logger.service == "test-service"
