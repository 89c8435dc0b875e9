"""In-process Prometheus-style metrics and a collector for the authorizer."""

from __future__ import annotations

import bisect
import math
import threading
from typing import Iterable, Iterator, Mapping, Sequence

from authorizer.ports import MetricsCollector

DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


def exponential_buckets(start: float, factor: float, count: int) -> list[float]:
    """Return ``count`` bucket bounds starting at ``start``, each ``factor`` times the last."""
    if count < 1:
        raise ValueError("exponential_buckets needs a positive count")
    if start <= 0:
        raise ValueError("exponential_buckets needs a positive start value")
    if factor <= 1:
        raise ValueError("exponential_buckets needs a factor greater than 1")
    buckets = []
    value = float(start)
    for _ in range(count):
        buckets.append(value)
        value *= factor
    return buckets


def _format_value(value: float) -> str:
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _labels_text(pairs: Iterable[tuple[str, str]]) -> str:
    rendered = ",".join(f'{name}="{_escape_label(value)}"' for name, value in pairs)
    return f"{{{rendered}}}" if rendered else ""


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, help: str) -> None:
        self.name = name
        self.help = help
        self._lock = threading.Lock()

    def _lines(self) -> Iterator[str]:
        raise NotImplementedError


class _LabelledMetric(_Metric):
    def __init__(self, name: str, help: str, label_names: Sequence[str]) -> None:
        super().__init__(name, help)
        self.label_names = tuple(label_names)
        self._values: dict[tuple[str, ...], float] = {}

    def _key(self, label_values: Sequence[object]) -> tuple[str, ...]:
        if len(label_values) != len(self.label_names):
            raise ValueError(
                f"{self.name} expects {len(self.label_names)} label values, "
                f"got {len(label_values)}"
            )
        return tuple(str(value) for value in label_values)

    def value(self, *args: object) -> float:
        """Return the current value for the given label values (0 if never set)."""
        key = self._key(args)
        with self._lock:
            return self._values.get(key, 0.0)

    def _lines(self) -> Iterator[str]:
        with self._lock:
            items = sorted(self._values.items())
        for key, value in items:
            labels = _labels_text(zip(self.label_names, key))
            yield f"{self.name}{labels} {_format_value(value)}"


class CounterVec(_LabelledMetric):
    """Monotonic counters partitioned by label values."""

    kind = "counter"

    def inc(self, *args: object) -> None:
        """Add one to the counter for the given label values."""
        key = self._key(args)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + 1.0

    def value(self, *args: object) -> float:
        return super().value(*args)


class GaugeVec(_LabelledMetric):
    """Gauges partitioned by label values."""

    kind = "gauge"

    def set(self, value: float, *args: object) -> None:
        """Set the gauge for the given label values."""
        key = self._key(args)
        with self._lock:
            self._values[key] = float(value)

    def value(self, *args: object) -> float:
        return super().value(*args)


class Histogram(_Metric):
    """Distribution of observations over fixed upper bounds."""

    kind = "histogram"

    def __init__(self, name: str, help: str, buckets: Sequence[float] | None = None) -> None:
        super().__init__(name, help)
        bounds = [float(b) for b in (DEFAULT_BUCKETS if buckets is None else buckets)]
        if bounds and math.isinf(bounds[-1]) and bounds[-1] > 0:
            bounds.pop()
        if any(later <= earlier for earlier, later in zip(bounds, bounds[1:])):
            raise ValueError("histogram buckets must be in strictly increasing order")
        self.buckets = tuple(bounds)
        self._counts = [0] * len(self.buckets)
        self.count = 0
        self.sum = 0.0

    def observe(self, value: float) -> None:
        """Record one observation."""
        value = float(value)
        index = bisect.bisect_left(self.buckets, value)
        with self._lock:
            if index < len(self._counts):
                self._counts[index] += 1
            self.count += 1
            self.sum += value

    def bucket_counts(self) -> list[tuple[float, int]]:
        """Return cumulative counts per upper bound, ending with +Inf."""
        with self._lock:
            counts = list(self._counts)
            total = self.count
        result = []
        running = 0
        for bound, n in zip(self.buckets, counts):
            running += n
            result.append((bound, running))
        result.append((math.inf, total))
        return result

    def _lines(self) -> Iterator[str]:
        for bound, n in self.bucket_counts():
            yield f'{self.name}_bucket{{le="{_format_value(bound)}"}} {n}'
        with self._lock:
            total_sum, total_count = self.sum, self.count
        yield f"{self.name}_sum {_format_value(total_sum)}"
        yield f"{self.name}_count {total_count}"


class Registry:
    """A set of uniquely named metrics that renders in the text exposition format."""

    def __init__(self) -> None:
        self._metrics: dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def register(self, metric: _Metric) -> _Metric:
        """Add a metric; raise ValueError if its name is already taken."""
        with self._lock:
            if metric.name in self._metrics:
                raise ValueError(f"metric {metric.name!r} is already registered")
            self._metrics[metric.name] = metric
        return metric

    def render(self) -> str:
        """Return every metric, sorted by name, in the text exposition format."""
        with self._lock:
            metrics = sorted(self._metrics.values(), key=lambda m: m.name)
        lines: list[str] = []
        for metric in metrics:
            lines.append(f"# HELP {metric.name} {_escape_help(metric.help)}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            lines.extend(metric._lines())
        return "".join(line + "\n" for line in lines)


DEFAULT_REGISTRY = Registry()


class PrometheusCollector(MetricsCollector):
    """Metrics collector backed by counters, a histogram and gauges in a registry."""

    def __init__(self, registry: Registry | None = None) -> None:
        self.registry = registry if registry is not None else DEFAULT_REGISTRY
        self.transaction_counter = CounterVec(
            "transactions_total", "Total number of processed transactions", ["status"]
        )
        self.transaction_latency = Histogram(
            "transaction_duration_seconds",
            "Transaction processing duration in seconds",
            exponential_buckets(0.001, 2, 15),
        )
        self.business_metrics = GaugeVec(
            "business_metrics",
            "Business-specific metrics",
            ["metric_name", "status", "cliente_id"],
        )
        self.error_counter = CounterVec(
            "errors_total", "Total number of errors by type", ["error_type"]
        )
        for metric in (
            self.transaction_counter,
            self.transaction_latency,
            self.business_metrics,
            self.error_counter,
        ):
            self.registry.register(metric)

    def increment_transaction_counter(self, status: str) -> None:
        self.transaction_counter.inc(str(status))

    def record_transaction_latency(self, duration: float) -> None:
        self.transaction_latency.observe(duration)

    def record_business_metric(
        self, metric_name: str, value: float, labels: Mapping[str, str]
    ) -> None:
        self.business_metrics.set(
            value,
            metric_name,
            str(labels.get("status", "")),
            str(labels.get("cliente_id", "")),
        )

    def increment_error_counter(self, error_type: str) -> None:
        self.error_counter.inc(error_type)