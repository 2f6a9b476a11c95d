"""
core/context.py -- Per-call context threaded through every service and store call.

A CallContext replaces a process-wide logger and an implicit request scope:
  - `op` and `fields` are the structured logging context for this call only.
    `ctx.log` is a LoggerAdapter that appends them to every record, so two
    concurrent requests never share mutable logging state.
  - `deadline` (time.monotonic() based) and `cancel()` let the caller abort
    work. Stores call `ctx.check()` at entry and use `ctx.remaining()` to
    bound engine-side work where the engine supports it.

Usage:
    ctx = CallContext.with_timeout("login", 10.0, username="alice")
    ctx.log.info("login attempt")
    ctx.check()                       # raises DeadlineExceededError when expired

Layer rule: core/ is the kernel. No imports from api/, auth/, or cache/.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any

from core.errors import DeadlineExceededError

_LOGGER_NAME = "authcore.service"


class _ContextAdapter(logging.LoggerAdapter):
    """Render context fields as `key=value` pairs after the message."""

    def process(self, msg, kwargs):
        fields = " ".join(f"{k}={v}" for k, v in self.extra.items())
        extra = kwargs.setdefault("extra", {})
        extra.setdefault("ctx", dict(self.extra))
        return (f"{msg} [{fields}]" if fields else msg), kwargs


@dataclass
class CallContext:
    op: str
    deadline: float | None = None
    fields: dict[str, Any] = field(default_factory=dict)
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)

    @classmethod
    def with_timeout(cls, op: str, timeout: float | None, **fields: Any) -> CallContext:
        deadline = time.monotonic() + timeout if timeout is not None else None
        return cls(op=op, deadline=deadline, fields=fields)

    def bind(self, op: str | None = None, **fields: Any) -> CallContext:
        """Return a child context sharing this deadline and cancellation flag."""
        return CallContext(
            op=op or self.op,
            deadline=self.deadline,
            fields={**self.fields, **fields},
            _cancelled=self._cancelled,
        )

    @property
    def log(self) -> logging.LoggerAdapter:
        return _ContextAdapter(logging.getLogger(_LOGGER_NAME), {"op": self.op, **self.fields})

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> float | None:
        """Seconds left before the deadline, None when unbounded. Never negative."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        """Raise DeadlineExceededError if this call was cancelled or ran out of time."""
        if self._cancelled.is_set():
            raise DeadlineExceededError("Request was cancelled.")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise DeadlineExceededError()
