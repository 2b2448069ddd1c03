from __future__ import annotations

import io
import logging

import pytest
from rich.console import Console
from rich.logging import RichHandler

from dotstate.log import LOG_LEVEL_ENV, setup_logging


@pytest.fixture
def buffer() -> io.StringIO:
    yield io.StringIO()
    logger = logging.getLogger("dotstate")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


def test_default_level_is_warning(monkeypatch: pytest.MonkeyPatch, buffer: io.StringIO) -> None:
    monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)

    setup_logging(console=Console(file=buffer, width=200))
    logging.getLogger("dotstate.manager").info("hidden")
    logging.getLogger("dotstate.manager").warning("shown %s", "warning")

    output = buffer.getvalue()
    assert "hidden" not in output
    assert "shown warning" in output


def test_verbose_enables_debug(buffer: io.StringIO) -> None:
    setup_logging(verbose=True, console=Console(file=buffer, width=200))

    logger = logging.getLogger("dotstate")
    assert logger.level == logging.DEBUG
    assert [type(handler) for handler in logger.handlers] == [RichHandler]


def test_environment_overrides_level(monkeypatch: pytest.MonkeyPatch, buffer: io.StringIO) -> None:
    monkeypatch.setenv(LOG_LEVEL_ENV, "info")

    setup_logging(console=Console(file=buffer, width=200))
    setup_logging(console=Console(file=buffer, width=200))

    logger = logging.getLogger("dotstate")
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
