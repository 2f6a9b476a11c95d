"""
tests/test_context.py -- CallContext deadlines, cancellation and log fields.
"""

from __future__ import annotations

import logging
from unittest.mock import patch

import pytest

from core.context import CallContext
from core.errors import DeadlineExceededError


def test_unbounded_context():
    ctx = CallContext("op")
    assert ctx.remaining() is None
    ctx.check()


def test_deadline_expiry():
    with patch("core.context.time.monotonic", return_value=100.0):
        ctx = CallContext.with_timeout("op", 5.0)
    with patch("core.context.time.monotonic", return_value=104.0):
        assert ctx.remaining() == pytest.approx(1.0)
        ctx.check()
    with patch("core.context.time.monotonic", return_value=106.0):
        assert ctx.remaining() == 0.0
        with pytest.raises(DeadlineExceededError):
            ctx.check()


def test_bind_shares_deadline_and_cancellation():
    parent = CallContext.with_timeout("request", 10.0, client="10.0.0.1")
    child = parent.bind(op="login", username="alice")

    assert child.op == "login"
    assert child.deadline == parent.deadline
    assert child.fields == {"client": "10.0.0.1", "username": "alice"}
    assert parent.fields == {"client": "10.0.0.1"}

    parent.cancel()
    assert child.cancelled
    with pytest.raises(DeadlineExceededError):
        child.check()


def test_bind_keeps_op_when_not_given():
    assert CallContext("login").bind(username="alice").op == "login"


def test_log_appends_fields(caplog):
    ctx = CallContext("login", fields={"username": "alice"})
    with caplog.at_level(logging.INFO, logger="authcore.service"):
        ctx.log.info("login attempt")
    record = caplog.records[-1]
    assert record.getMessage() == "login attempt [op=login username=alice]"
    assert record.ctx == {"op": "login", "username": "alice"}
