"""Tests for logging setup."""

import logging

import pytest

from cochange_heat.logging_config import ROOT_LOGGER, get_logger, setup_logging


@pytest.fixture(autouse=True)
def restore_package_logger():
    logger = logging.getLogger(ROOT_LOGGER)
    saved = (list(logger.handlers), logger.level)
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        if handler not in saved[0]:
            handler.close()
    for handler in saved[0]:
        logger.addHandler(handler)
    logger.setLevel(saved[1])


@pytest.mark.parametrize(
    "verbosity,level",
    [("quiet", logging.ERROR), ("normal", logging.WARNING), ("verbose", logging.DEBUG)],
)
def test_level_follows_verbosity(verbosity, level):
    assert setup_logging(verbosity).level == level


def test_unknown_verbosity_rejected():
    with pytest.raises(ValueError):
        setup_logging("loud")


def test_repeated_setup_replaces_handlers(tmp_path):
    setup_logging("normal", str(tmp_path / "a.log"))
    logger = setup_logging("normal")

    assert len(logger.handlers) == 1
    assert not any(isinstance(h, logging.FileHandler) for h in logger.handlers)


def test_log_file_receives_records(tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    setup_logging("normal", str(log_file))

    get_logger("engine.runner").warning("window for %s moved", "web")
    get_logger("engine.runner").debug("not at this level")

    text = log_file.read_text(encoding="utf-8")
    assert "WARNING" in text
    assert "cochange_heat.engine.runner: window for web moved" in text
    assert "not at this level" not in text


def test_get_logger_namespacing():
    assert get_logger().name == "cochange_heat"
    assert get_logger("temporal.keys").name == "cochange_heat.temporal.keys"
    assert get_logger("cochange_heat.persistence").name == "cochange_heat.persistence"
