"""
trace.py — Run traces for sourcing and payment workflows

Every vendor-sourcing run and every approve-and-execute run opens a Trace.
Steps carry a status and a millisecond offset from the start of the run, so
the admin endpoints can show where a payment stopped and how long each
model or Locus call took.

Usage:
    t = Trace("payment_execution", vendors=2, total=233.0)
    with t.stage("Execute USDC Transfers"):
        result = execute_payments(plan)
    t.ok("Order logged", order_id="ORD-004")

Only the most recent MAX_TRACES runs are kept, in memory.
"""

import threading
import time
import uuid
import logging
from collections import OrderedDict
from contextlib import contextmanager
from datetime import datetime

log = logging.getLogger("alloy.trace")

MAX_TRACES = 200

_lock = threading.Lock()
_store = OrderedDict()  # trace id → Trace, oldest first


class Trace:
    """Timeline of one workflow run."""

    def __init__(self, workflow: str, **context):
        self.id = f"tr_{uuid.uuid4().hex[:8]}"
        self.workflow = workflow
        self.context = context
        self.steps = []
        self.status = "running"  # running | ok | warn | fail
        self.started_at = datetime.now().isoformat(timespec="seconds")
        self.finished_at = None
        self.duration_ms = None
        self._t0 = time.monotonic()
        with _lock:
            _store[self.id] = self
            while len(_store) > MAX_TRACES:
                _store.popitem(last=False)

    def _elapsed(self) -> int:
        return round((time.monotonic() - self._t0) * 1000)

    def step(self, message: str, status: str = "ok", **data):
        entry = {"t": self._elapsed(), "msg": message, "status": status}
        if data:
            entry["data"] = data
        self.steps.append(entry)
        return self

    @contextmanager
    def stage(self, name: str, **data):
        """Time a block as one step; an exception marks the trace failed and propagates."""
        started = self._elapsed()
        try:
            yield self
        except Exception as e:
            self.fail(f"{name}: {e}", **data)
            raise
        self.step(name, took_ms=self._elapsed() - started, **data)

    def warn(self, message: str, **data):
        self.step(message, status="warn", **data)
        if self.status == "running":
            self.status = "warn"
        return self

    def ok(self, message: str = "Complete", **data):
        self.step(message, **data)
        self._close("ok" if self.status != "warn" else "warn")
        return self

    def fail(self, message: str, **data):
        self.step(message, status="fail", **data)
        self._close("fail")
        log.warning("[%s] %s failed: %s", self.workflow, self.id, message,
                    extra={"trace_id": self.id})
        return self

    def _close(self, status: str):
        self.status = status
        self.finished_at = datetime.now().isoformat(timespec="seconds")
        self.duration_ms = self._elapsed()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workflow": self.workflow,
            "status": self.status,
            "context": self.context,
            "steps": list(self.steps),
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "duration_ms": self.duration_ms,
        }


def get_traces(workflow=None, status=None, limit=50) -> list:
    """Newest first, optionally filtered by workflow and status."""
    with _lock:
        runs = list(reversed(_store.values()))
    runs = [t for t in runs
            if (not workflow or t.workflow == workflow) and (not status or t.status == status)]
    return [t.to_dict() for t in runs[:limit]]


def get_trace(trace_id: str):
    with _lock:
        t = _store.get(trace_id)
    return t.to_dict() if t else None


def trace_counts() -> dict:
    """{workflow: {status: count}} over the traces still held."""
    counts = {}
    with _lock:
        runs = list(_store.values())
    for t in runs:
        by_status = counts.setdefault(t.workflow, {})
        by_status[t.status] = by_status.get(t.status, 0) + 1
    return counts


def clear_traces():
    with _lock:
        _store.clear()
