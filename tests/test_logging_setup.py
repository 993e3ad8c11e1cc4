"""Tests for root logger configuration."""

import json
import logging

import pytest

from quest_board.logging_setup import JsonFormatter, build_formatter, configure_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.unit
def test_configure_logging_installs_single_handler(restore_root_logger):
    configure_logging(level="debug", fmt="simple")
    configure_logging(level="warning", fmt="simple")

    assert len(restore_root_logger.handlers) == 1
    assert restore_root_logger.level == logging.WARNING


@pytest.mark.unit
def test_unknown_level_falls_back_to_info(restore_root_logger):
    configure_logging(level="chatty")

    assert restore_root_logger.level == logging.INFO


@pytest.mark.unit
def test_json_formatter_emits_one_object():
    record = logging.LogRecord(
        "quest_board.core.ledger", logging.INFO, __file__, 1, "moved %s", ("r1",), None
    )

    payload = json.loads(JsonFormatter().format(record))

    assert payload["logger"] == "quest_board.core.ledger"
    assert payload["level"] == "INFO"
    assert payload["message"] == "moved r1"


@pytest.mark.unit
def test_build_formatter_selects_by_name():
    assert isinstance(build_formatter("json"), JsonFormatter)
    assert "%(name)s" in build_formatter("detailed")._fmt
    assert build_formatter("simple")._fmt == "%(levelname)s: %(message)s"
