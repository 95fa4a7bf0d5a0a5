"""
Tests for structured logging helpers.
"""

import io
import logging

from permastore.utils.logging import (
    ROOT_LOGGER_NAME,
    LogContext,
    configure_logging,
    disable_logging,
    enable_debug,
    get_logger,
    set_level,
)


class TestGetLogger:
    def test_namespaced(self) -> None:
        assert get_logger("permastore.storage.gateway").name == "permastore.storage.gateway"
        assert get_logger("tests").name == "permastore.tests"
        assert get_logger(ROOT_LOGGER_NAME).name == ROOT_LOGGER_NAME


class TestConfigureLogging:
    def test_extra_fields_rendered(self) -> None:
        stream = io.StringIO()
        configure_logging("INFO", stream=stream, fmt="%(levelname)s %(message)s")

        get_logger("permastore.test").info(
            "Write accepted", extra={"locator": "abc", "size_bytes": 5}
        )

        assert stream.getvalue().strip() == "INFO Write accepted | locator=abc size_bytes=5"

    def test_reconfigure_replaces_handler(self) -> None:
        configure_logging(stream=io.StringIO())
        root = configure_logging(stream=io.StringIO())

        ours = [h for h in root.handlers if getattr(h, "_permastore_handler", False)]
        assert len(ours) == 1

    def test_set_level_by_name(self) -> None:
        set_level("warning")

        assert logging.getLogger(ROOT_LOGGER_NAME).level == logging.WARNING

    def test_disable_and_enable_debug(self) -> None:
        disable_logging()
        assert logging.getLogger(ROOT_LOGGER_NAME).disabled

        enable_debug()

        root = logging.getLogger(ROOT_LOGGER_NAME)
        assert not root.disabled
        assert root.level == logging.DEBUG


class TestLogContext:
    def test_bound_fields_merged(self) -> None:
        stream = io.StringIO()
        configure_logging("DEBUG", stream=stream, fmt="%(message)s")
        log = LogContext(get_logger("permastore.test"), file_id="f1")

        log.bind(node="node1").info("Funding", extra={"amount": 10})

        assert stream.getvalue().strip() == "Funding | amount=10 file_id=f1 node=node1"
