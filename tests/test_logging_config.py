"""
Tests for logging configuration formatters.
"""

from __future__ import annotations

import json
import logging

from gitmirror.logging_config import HumanFormatter, JSONFormatter, setup_logging


def _record(msg: str = "cloning a", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="gitmirror.mirror.git_sync",
        level=logging.ERROR,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_includes_repo_and_stage(self):
        data = json.loads(JSONFormatter().format(_record(repo="a", stage="clone")))

        assert data["level"] == "ERROR"
        assert data["logger"] == "gitmirror.mirror.git_sync"
        assert data["message"] == "cloning a"
        assert data["repo"] == "a"
        assert data["stage"] == "clone"

    def test_context_fields_optional(self):
        data = json.loads(JSONFormatter().format(_record()))
        assert "repo" not in data
        assert "stage" not in data


class TestHumanFormatter:

    def test_short_module_name(self):
        line = HumanFormatter().format(_record())
        assert "[git_sync       ]" in line
        assert line.endswith("cloning a")


class TestSetupLogging:

    def test_json_format_and_level(self):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            setup_logging(level="debug", format_type="json")

            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
