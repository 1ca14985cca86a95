"""Tests for command-line parsing and logging setup."""

import logging

import pytest
from textual.logging import TextualHandler

from pmtop.config import configure_logging, parse_config
from pmtop.models import SamplingConfig


def test_defaults():
    """Test no arguments yields the default SamplingConfig."""
    config, args = parse_config([])

    assert config == SamplingConfig()
    assert args.log_file is None
    assert args.log_level == "WARNING"


def test_all_options():
    """Test every option maps onto SamplingConfig."""
    config, _ = parse_config(
        ["--interval", "2", "--color", "6", "--avg", "60", "--show-cores", "--max-count", "500"]
    )

    assert config == SamplingConfig(
        interval_seconds=2,
        averaging_window_seconds=60,
        show_per_core=True,
        restart_after_samples=500,
        palette=6,
    )


@pytest.mark.parametrize(
    "argv",
    [
        ["--interval", "0"],
        ["--interval", "abc"],
        ["--color", "9"],
        ["--avg", "-1"],
        ["--max-count", "-5"],
        ["--log-level", "TRACE"],
    ],
)
def test_invalid_values_rejected(argv):
    """Test out-of-range values exit with a usage error."""
    with pytest.raises(SystemExit):
        parse_config(argv)


class TestConfigureLogging:
    """Tests for configure_logging."""

    def teardown_method(self):
        logger = logging.getLogger("pmtop")
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)

    def test_textual_handler_by_default(self):
        """Test records go to the Textual console without a log file."""
        configure_logging("INFO")
        logger = logging.getLogger("pmtop")

        assert logger.level == logging.INFO
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], TextualHandler)

    def test_log_file(self, tmp_path):
        """Test records are written to the log file when one is given."""
        log_file = tmp_path / "pmtop.log"
        configure_logging("DEBUG", str(log_file))

        logging.getLogger("pmtop.session").debug("hello from the session")
        logging.getLogger("pmtop").handlers[0].flush()

        assert "hello from the session" in log_file.read_text()

    def test_reconfigure_replaces_handler(self):
        """Test calling configure_logging twice does not stack handlers."""
        configure_logging()
        configure_logging()

        assert len(logging.getLogger("pmtop").handlers) == 1
