# tests/test_logging.py
import json

import pytest
import structlog

from interview_trainer.config import EnvironmentType
from interview_trainer.core.logging import setup_logging


def test_logging_setup(settings, capsys):
    """Test logging configuration."""
    setup_logging(settings)
    logger = structlog.get_logger()
    assert logger is not None

    # Log a test message
    logger.info("test message", provider="qwen", text="面试")

    # Capture the output
    captured = capsys.readouterr()
    output = captured.out.strip()

    # For development environment, check console output
    if settings.ENVIRONMENT == EnvironmentType.DEVELOPMENT:
        assert "test message" in output
    # For other environments, verify JSON structure
    else:
        try:
            log_dict = json.loads(output)
            assert log_dict["event"] == "test message"
            assert log_dict["level"] == "info"
            assert log_dict["provider"] == "qwen"
            assert log_dict["text"] == "面试"
            assert "timestamp" in log_dict
        except json.JSONDecodeError:
            pytest.fail(f"Log output is not valid JSON: {output}")
