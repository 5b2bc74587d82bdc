"""
Unit tests for logging with per-task access context
"""
import asyncio
import logging

import pytest

from bi_portal.utils.logger import (
    AccessContextFilter,
    bind_log_context,
    clear_log_context,
    get_log_context,
    get_logger,
)


@pytest.fixture(autouse=True)
def clean_context():
    clear_log_context()
    yield
    clear_log_context()


def make_record() -> logging.LogRecord:
    return logging.LogRecord("bi_portal.test", logging.INFO, __file__, 1, "hello", None, None)


class TestAccessContextFilter:
    """Test the context rendered into every record"""

    def test_dash_outside_any_session(self):
        record = make_record()

        assert AccessContextFilter().filter(record)
        assert record.context == "-"

    def test_bound_values_rendered_in_order(self):
        bind_log_context(user_id="u-1", session_id="sid-1")
        record = make_record()

        AccessContextFilter().filter(record)

        assert record.context == "user_id=u-1 session_id=sid-1"

    def test_none_values_skipped(self):
        bind_log_context(user_id="u-1", session_id=None)

        assert get_log_context() == {"user_id": "u-1"}

    def test_handlers_carry_filter(self):
        logger = get_logger("bi_portal.tests.context")

        assert logger.handlers
        for handler in logger.handlers:
            assert any(isinstance(f, AccessContextFilter) for f in handler.filters)


class TestContextIsolation:
    """Test that bound context stays within its task"""

    async def test_task_context_does_not_leak(self):
        async def work():
            bind_log_context(user_id="u-2")
            return get_log_context()

        inner = await asyncio.ensure_future(work())

        assert inner == {"user_id": "u-2"}
        assert get_log_context() == {}

    async def test_task_inherits_caller_context(self):
        bind_log_context(session_id="sid-9")

        async def work():
            return get_log_context()

        assert await asyncio.ensure_future(work()) == {"session_id": "sid-9"}
