"""
Unit tests for the log formatters.
"""

import json
import logging

from archival.core.logging import HumanReadableFormatter, StructuredFormatter


def _record(**extra):
    record = logging.LogRecord(
        name="archival.runner", level=logging.INFO, pathname=__file__, lineno=1,
        msg="Dumped %d rows", args=(5,), exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    """Tests for StructuredFormatter."""

    def test_context_fields(self):
        line = StructuredFormatter().format(_record(run_id="20230301T000000Z", table="orders", state="dumped"))
        data = json.loads(line)

        assert data["message"] == "Dumped 5 rows"
        assert data["level"] == "INFO"
        assert data["run_id"] == "20230301T000000Z"
        assert data["table"] == "orders"
        assert data["state"] == "dumped"
        assert "timestamp" in data

    def test_absent_context_omitted(self):
        data = json.loads(StructuredFormatter(include_timestamp=False).format(_record()))
        assert "table" not in data
        assert "timestamp" not in data


class TestHumanReadableFormatter:
    """Tests for HumanReadableFormatter."""

    def test_context_suffix(self):
        line = HumanReadableFormatter(include_timestamp=False).format(
            _record(run_id="r1", table="orders")
        )
        assert line == "archival.runner - INFO - Dumped 5 rows [run_id=r1 table=orders]"

    def test_no_context(self):
        line = HumanReadableFormatter(include_timestamp=False).format(_record())
        assert line == "archival.runner - INFO - Dumped 5 rows"
