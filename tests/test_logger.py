"""
Tests for logger module
"""
import logging
import os
import pytest
from upload_server.logger import create_logger, resolve_level


def test_create_logger_basic():
    """Test basic logger creation"""
    logger = create_logger("TestLogger")
    assert isinstance(logger, logging.Logger)
    assert logger.name == "TestLogger"


def test_create_logger_with_level():
    """Test logger creation with specific level"""
    logger = create_logger("TestLogger", level="DEBUG")
    assert logger.level == logging.DEBUG

    logger2 = create_logger("TestLogger2", level="ERROR")
    assert logger2.level == logging.ERROR


def test_create_logger_with_env_var(monkeypatch):
    """Test logger respects UPLOAD_SERVER_LOG_LEVEL environment variable"""
    monkeypatch.setenv("UPLOAD_SERVER_LOG_LEVEL", "WARNING")
    logger = create_logger("TestLogger")
    assert logger.level == logging.WARNING


def test_create_logger_default_level(monkeypatch):
    """Test logger defaults to INFO when no level specified"""
    monkeypatch.delenv("UPLOAD_SERVER_LOG_LEVEL", raising=False)

    logger = create_logger("TestLogger")
    assert logger.level == logging.INFO


def test_unknown_level_falls_back_to_info():
    logger = create_logger("TestLoggerBogus", level="LOUD")
    assert logger.level == logging.INFO


def test_resolve_level_argument_wins(monkeypatch):
    monkeypatch.setenv("UPLOAD_SERVER_LOG_LEVEL", "ERROR")
    assert resolve_level("debug") == "DEBUG"
    assert resolve_level() == "ERROR"


def test_logger_has_single_handler():
    """Test that repeated creation does not stack handlers"""
    logger = create_logger("TestLoggerHandlers")
    create_logger("TestLoggerHandlers")
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], logging.StreamHandler)


def test_logger_no_propagation():
    """Test that logger doesn't propagate to root logger"""
    logger = create_logger("TestLogger")
    assert logger.propagate is False


def test_logger_prefix_in_output(caplog):
    """Test that logger prefix (name) appears in log output"""
    logger = create_logger("UploadServer.Writer", level="INFO")

    # Need to add caplog handler to our logger since we set propagate=False
    logger.addHandler(caplog.handler)
    try:
        with caplog.at_level(logging.INFO, logger="UploadServer.Writer"):
            logger.info("Stored text")
    finally:
        logger.removeHandler(caplog.handler)

    assert "Stored text" in caplog.text
    assert caplog.records[0].name == "UploadServer.Writer"


def test_logger_case_insensitive_level():
    """Test that log level is case-insensitive"""
    logger1 = create_logger("TestLoggerA", level="debug")
    logger2 = create_logger("TestLoggerB", level="DeBuG")

    assert logger1.level == logging.DEBUG
    assert logger2.level == logging.DEBUG
