"""Tests for structured logging."""

import io
import json
import logging

import pytest

from taskflow_kernel.exceptions import CommentRequiredError
from taskflow_kernel.logging_config import LogContext, StructuredFormatter, get_logger


def format_record(logger_name, message, **kwargs):
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    logger = logging.getLogger(logger_name)
    logger.addHandler(handler)
    try:
        logger.error(message, **kwargs)
    finally:
        logger.removeHandler(handler)
    return json.loads(stream.getvalue())


class TestLogContext:

    def test_bind_restores_previous_values(self):
        LogContext.set(task_id="outer")

        with LogContext.bind(task_id="inner", actor_id="a1"):
            assert LogContext.get_all() == {"task_id": "inner", "actor_id": "a1"}

        assert LogContext.get_all() == {"task_id": "outer"}

    def test_none_values_ignored(self):
        with LogContext.bind(task_id=None):
            assert LogContext.get_all() == {}

    def test_workflow_fields_bindable(self):
        with LogContext.bind(actor_id="a1", task_id="t1", instance_id="i1", step_id="s1"):
            assert LogContext.get_all() == {
                "actor_id": "a1", "task_id": "t1", "instance_id": "i1", "step_id": "s1",
            }

    @pytest.mark.parametrize("field", ["correlation_id", "trace_id"])
    def test_unknown_field_refused(self, field):
        with pytest.raises(KeyError):
            with LogContext.bind(**{field: "x"}):
                pass

        assert LogContext.get_all() == {}


class TestStructuredFormatter:

    def test_context_and_extra_fields(self):
        with LogContext.bind(task_id="t-1"):
            payload = format_record("taskflow_kernel.test", "event", extra={"step_id": "s-1"})

        assert payload["message"] == "event"
        assert payload["level"] == "ERROR"
        assert payload["task_id"] == "t-1"
        assert payload["step_id"] == "s-1"

    def test_kernel_error_fields_included(self):
        try:
            raise CommentRequiredError("s-1", "REJECT")
        except CommentRequiredError:
            payload = format_record("taskflow_kernel.test", "failed", exc_info=True)

        assert payload["exc_type"] == "CommentRequiredError"
        assert payload["exc_code"] == CommentRequiredError.code
        assert payload["exc_step_id"] == "s-1"
        assert payload["exc_action"] == "REJECT"


def test_loggers_live_under_kernel_namespace():
    assert get_logger("services.x").name == "taskflow_kernel.services.x"
