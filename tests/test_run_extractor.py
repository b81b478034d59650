"""Tests for the command-line entry point: logging setup and input layering."""

import argparse
import json
import logging

import pytest
from rich.logging import RichHandler

import run_extractor


@pytest.fixture
def root_logging():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def parse_logging_args(*argv):
    parser = argparse.ArgumentParser()
    run_extractor.add_logging_arguments(parser)
    return parser.parse_args(list(argv))


class TestLogging:

    def test_log_file_gets_plain_text_at_debug(self, root_logging, tmp_path):
        log_file = tmp_path / "logs" / "run.log"
        run_extractor.configure_logging(parse_logging_args("--log-file", str(log_file)))

        logger = logging.getLogger("lego_scraper.pipeline.handlers")
        logger.info("SUCCESS: Extracted [bold green]%s[/bold green] (%s)", "10300", "Time Machine")
        logger.debug("Captured %s", "[1, 2]")
        for handler in root_logging.handlers:
            handler.flush()

        content = log_file.read_text(encoding="utf-8")
        assert "SUCCESS: Extracted 10300 (Time Machine)" in content
        assert "[bold green]" not in content
        assert "Captured [1, 2]" in content

    def test_console_level_follows_the_flag(self, root_logging, tmp_path):
        args = parse_logging_args("--log-level", "WARNING", "--log-file", str(tmp_path / "run.log"))
        run_extractor.configure_logging(args)

        consoles = [h for h in root_logging.handlers if isinstance(h, RichHandler)]
        assert consoles[-1].level == logging.WARNING
        assert root_logging.level == logging.DEBUG
        assert logging.getLogger("asyncio").level == logging.WARNING

    def test_defaults(self):
        args = parse_logging_args()
        assert args.log_level == "INFO"
        assert args.log_file == run_extractor.config.LOG_PATH


class TestInputLayering:

    def test_input_file(self, tmp_path):
        path = tmp_path / "input.json"
        path.write_text(json.dumps({"startUrl": "https://www.lego.com/en-gb/themes/technic", "maxProducts": 5}))

        assert run_extractor.load_input(str(path))["maxProducts"] == 5
        assert run_extractor.load_input(None) == {}

    def test_input_file_must_hold_an_object(self, tmp_path):
        path = tmp_path / "input.json"
        path.write_text("[1, 2]")

        with pytest.raises(ValueError):
            run_extractor.load_input(str(path))

    def test_proxy_flags_override_input(self):
        args = argparse.Namespace(proxy_server="http://cli:8000", proxy_username=None, proxy_password="secret")
        input_data = {"proxyConfiguration": {"server": "http://file:8000", "username": "user"}}

        assert run_extractor.build_proxy(args, input_data) == {
            "server": "http://cli:8000",
            "username": "user",
            "password": "secret",
        }

    def test_no_proxy(self):
        args = argparse.Namespace(proxy_server=None, proxy_username="user", proxy_password=None)
        assert run_extractor.build_proxy(args, {}) is None
