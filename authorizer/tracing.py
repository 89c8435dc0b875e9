"""Minimal distributed tracer that reports finished spans on stdout."""

from __future__ import annotations

import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Mapping

from authorizer.ports import DistributedTracer
from authorizer.structured_logger import with_correlation_id

_trace_id: ContextVar[str] = ContextVar("trace_id", default="")


@dataclass
class SpanEvent:
    """A timestamped event recorded inside a span."""

    name: str
    timestamp: datetime
    attributes: dict[str, Any]


@dataclass
class SimpleSpan:
    """A unit of traced work."""

    trace_id: str
    span_id: str
    operation_name: str
    start_time: datetime
    end_time: datetime | None = None
    tags: dict[str, Any] = field(default_factory=dict)
    events: list[SpanEvent] = field(default_factory=list)
    status: str = "started"
    error: str | None = None
    _token: Token[str] | None = field(default=None, init=False, repr=False, compare=False)


class SimpleTracer(DistributedTracer):
    """Tracer whose spans share the trace id of the context they start in."""

    def __init__(self, service_name: str) -> None:
        self.service_name = service_name

    def start_span(self, operation_name: str) -> SimpleSpan:
        trace_id = _trace_id.get() or str(uuid.uuid4())
        span = SimpleSpan(
            trace_id=trace_id,
            span_id=str(uuid.uuid4()),
            operation_name=operation_name,
            start_time=datetime.now(timezone.utc),
            tags={"service.name": self.service_name, "service.version": "1.0.0"},
        )
        span._token = _trace_id.set(trace_id)
        return span

    def finish_span(self, span: Any, error: BaseException | None = None) -> None:
        if not isinstance(span, SimpleSpan):
            return
        span.end_time = datetime.now(timezone.utc)
        if error is not None:
            span.status = "error"
            span.error = str(error)
        else:
            span.status = "completed"
        self._release(span)
        self._log_span(span)

    def add_tag(self, span: Any, key: str, value: Any) -> None:
        if isinstance(span, SimpleSpan):
            span.tags[key] = value

    def add_event(
        self, span: Any, name: str, attributes: Mapping[str, Any] | None = None
    ) -> None:
        """Record a named event with attributes on the span."""
        if isinstance(span, SimpleSpan):
            span.events.append(
                SpanEvent(
                    name=name,
                    timestamp=datetime.now(timezone.utc),
                    attributes=dict(attributes or {}),
                )
            )

    def extract_trace_id(self) -> str:
        """Return the current trace id, or an empty string outside any span."""
        return _trace_id.get()

    @contextmanager
    def inject_correlation_id(self) -> Iterator[str]:
        """Use the current trace id as correlation id for the block, if there is one."""
        trace_id = self.extract_trace_id()
        if not trace_id:
            yield ""
            return
        with with_correlation_id(trace_id):
            yield trace_id

    @staticmethod
    def _release(span: SimpleSpan) -> None:
        token, span._token = span._token, None
        if token is None:
            return
        try:
            _trace_id.reset(token)
        except ValueError:
            # The span was started in another context; nothing to restore here.
            pass

    @staticmethod
    def _log_span(span: SimpleSpan) -> None:
        elapsed = datetime.now(timezone.utc) - span.start_time
        millis = elapsed // timedelta(milliseconds=1)
        suffix = f"ERROR: {span.error}" if span.error is not None else ""
        sys.stdout.write(
            f"TRACE [{span.trace_id[:8]}] {span.operation_name} {span.status} "
            f"- {millis}ms {suffix}\n"
        )