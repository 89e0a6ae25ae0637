"""Operation metrics for buckets: counters, histograms and an instrumented bucket wrapper."""

from __future__ import annotations

import asyncio
import concurrent.futures
import dataclasses
import io
import math
import threading
import time
from bisect import bisect_left
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from objstore.bucket import Bucket, BucketReader, ObjectAttributes, try_to_get_size

OP_ITER = "iter"
OP_GET = "get"
OP_GET_RANGE = "get_range"
OP_EXISTS = "exists"
OP_UPLOAD = "upload"
OP_DELETE = "delete"
OP_ATTRIBUTES = "attributes"

_ALL_OPS = (OP_ITER, OP_GET, OP_GET_RANGE, OP_EXISTS, OP_UPLOAD, OP_DELETE, OP_ATTRIBUTES)
_TRANSFER_OPS = (OP_GET, OP_GET_RANGE, OP_UPLOAD)

IsOpFailureExpectedFunc = Callable[[BaseException], bool]


def _never_expected(err: BaseException) -> bool:
    return False


def _is_cancelled(err: BaseException | None) -> bool:
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        if isinstance(err, (asyncio.CancelledError, concurrent.futures.CancelledError)):
            return True
        seen.add(id(err))
        err = err.__cause__
    return False


def _format_float(value: float) -> str:
    """Render a sample value the way the text exposition format does."""
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "0"
    sign, digit_tuple, exponent = Decimal(repr(value)).as_tuple()
    digits = list(digit_tuple)
    while len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exponent += 1
    exp = len(digits) + exponent - 1
    text = "".join(str(d) for d in digits)
    prefix = "-" if sign else ""
    if exp < -4 or exp >= 6:
        mantissa = text[0] + ("." + text[1:] if len(text) > 1 else "")
        return f"{prefix}{mantissa}e{'-' if exp < 0 else '+'}{abs(exp):02d}"
    if exp >= 0:
        if len(text) <= exp + 1:
            return prefix + text + "0" * (exp + 1 - len(text))
        return f"{prefix}{text[:exp + 1]}.{text[exp + 1:]}"
    return f"{prefix}0.{'0' * (-exp - 1)}{text}"


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _sample(name: str, labels: Sequence[tuple[str, str]], value: float) -> str:
    if labels:
        rendered = ",".join(f'{key}="{_escape_label(val)}"' for key, val in labels)
        return f"{name}{{{rendered}}} {_format_float(value)}"
    return f"{name} {_format_float(value)}"


def exponential_buckets(start: float, factor: float, count: int) -> list[float]:
    """Return ``count`` bucket bounds starting at ``start``, each ``factor`` times the last."""
    if count < 1:
        raise ValueError("exponential_buckets needs a positive count")
    if start <= 0:
        raise ValueError("exponential_buckets needs a positive start value")
    if factor <= 1:
        raise ValueError("exponential_buckets needs a factor greater than 1")
    bounds = []
    bound = float(start)
    for _ in range(count):
        bounds.append(bound)
        bound *= factor
    return bounds


class Counter:
    """A value that only goes up."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0.0

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def inc(self) -> None:
        self.add(1.0)

    def add(self, value: float) -> None:
        if value < 0:
            raise ValueError("counter cannot decrease in value")
        with self._lock:
            self._value += value


class Histogram:
    """Counts observations into buckets bounded from above."""

    def __init__(self, buckets: Iterable[float]):
        self._bounds = tuple(sorted(float(b) for b in buckets))
        if not self._bounds:
            raise ValueError("histogram needs at least one bucket")
        self._lock = threading.Lock()
        self._counts = [0] * len(self._bounds)
        self._sum = 0.0
        self._count = 0

    def observe(self, value: float) -> None:
        with self._lock:
            index = bisect_left(self._bounds, value)
            if index < len(self._counts):
                self._counts[index] += 1
            self._sum += value
            self._count += 1

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def sum(self) -> float:
        with self._lock:
            return self._sum

    @property
    def buckets(self) -> list[tuple[float, int]]:
        """Upper bounds with the cumulative number of observations at or below each."""
        with self._lock:
            result = []
            running = 0
            for bound, count in zip(self._bounds, self._counts):
                running += count
                result.append((bound, running))
            return result


class _Family:
    kind = ""

    def __init__(self, name: str, help: str, label_names: Sequence[str] = (), const_labels: dict[str, str] | None = None):
        self.name = name
        self.help = help
        self.label_names = tuple(label_names)
        self.const_labels = dict(const_labels or {})

    def _series(self) -> list[tuple[tuple[tuple[str, str], ...], list[str]]]:
        raise NotImplementedError


class _Vec(_Family):
    def __init__(self, name: str, help: str, label_names: Sequence[str], const_labels: dict[str, str] | None = None):
        super().__init__(name, help, label_names, const_labels)
        self._lock = threading.Lock()
        self._children: dict[tuple[str, ...], Any] = {}

    def _new_child(self) -> Any:
        raise NotImplementedError

    def _child(self, args: Sequence[str]) -> Any:
        if len(args) != len(self.label_names):
            raise ValueError(
                f"{self.name}: expected {len(self.label_names)} label values but got {len(args)}"
            )
        key = tuple(str(value) for value in args)
        with self._lock:
            child = self._children.get(key)
            if child is None:
                child = self._new_child()
                self._children[key] = child
            return child

    def _collect(self) -> list[tuple[dict[str, str], Any]]:
        with self._lock:
            items = sorted(self._children.items())
        return [(dict(zip(self.label_names, key)), child) for key, child in items]

    def _labels(self, labels: dict[str, str]) -> tuple[tuple[str, str], ...]:
        return tuple(sorted({**self.const_labels, **labels}.items()))


class CounterVec(_Vec):
    """Counters partitioned by label values."""

    kind = "counter"

    def _new_child(self) -> Counter:
        return Counter()

    def with_label_values(self, *args: str) -> Counter:
        """Return the counter for these label values, creating it if needed."""
        return self._child(args)

    def collect(self) -> list[tuple[dict[str, str], Counter]]:
        """Return each labelled counter with its label values, ordered by those values."""
        return self._collect()

    def _series(self) -> list[tuple[tuple[tuple[str, str], ...], list[str]]]:
        series = []
        for labels, counter in self.collect():
            pairs = self._labels(labels)
            series.append((pairs, [_sample(self.name, pairs, counter.value)]))
        return series


class HistogramVec(_Vec):
    """Histograms partitioned by label values."""

    kind = "histogram"

    def __init__(
        self,
        name: str,
        help: str,
        label_names: Sequence[str],
        buckets: Iterable[float],
        const_labels: dict[str, str] | None = None,
    ):
        super().__init__(name, help, label_names, const_labels)
        self.buckets = tuple(buckets)

    def _new_child(self) -> Histogram:
        return Histogram(self.buckets)

    def with_label_values(self, *args: str) -> Histogram:
        """Return the histogram for these label values, creating it if needed."""
        return self._child(args)

    def collect(self) -> list[tuple[dict[str, str], Histogram]]:
        """Return each labelled histogram with its label values, ordered by those values."""
        return self._collect()

    def _series(self) -> list[tuple[tuple[tuple[str, str], ...], list[str]]]:
        series = []
        for labels, histogram in self.collect():
            pairs = self._labels(labels)
            count = histogram.count
            lines = [
                _sample(f"{self.name}_bucket", pairs + (("le", _format_float(bound)),), cumulative)
                for bound, cumulative in histogram.buckets
            ]
            lines.append(_sample(f"{self.name}_bucket", pairs + (("le", "+Inf"),), count))
            lines.append(_sample(f"{self.name}_sum", pairs, histogram.sum))
            lines.append(_sample(f"{self.name}_count", pairs, count))
            series.append((pairs, lines))
        return series


class Gauge(_Family):
    """A value that can go up and down."""

    kind = "gauge"

    def __init__(self, name: str, help: str, const_labels: dict[str, str] | None = None):
        super().__init__(name, help, (), const_labels)
        self._lock = threading.Lock()
        self._value = 0.0

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def set(self, value: float) -> None:
        with self._lock:
            self._value = float(value)

    def set_to_current_time(self) -> None:
        self.set(time.time())

    def _series(self) -> list[tuple[tuple[tuple[str, str], ...], list[str]]]:
        pairs = tuple(sorted(self.const_labels.items()))
        return [(pairs, [_sample(self.name, pairs, self.value)])]


class Registry:
    """Holds metric families and renders them in the text exposition format."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metrics: list[_Family] = []

    def register(self, metric: _Family) -> _Family:
        with self._lock:
            for existing in self._metrics:
                if existing.name != metric.name:
                    continue
                if existing.kind != metric.kind or existing.help != metric.help:
                    raise ValueError(f"inconsistent registration of metric {metric.name}")
                if existing.const_labels == metric.const_labels and existing.label_names == metric.label_names:
                    raise ValueError(f"duplicate metrics collector registration attempted: {metric.name}")
            self._metrics.append(metric)
        return metric

    def gather(self) -> str:
        """Return every registered family, ordered by name, as exposition text."""
        with self._lock:
            metrics = list(self._metrics)
        families: dict[str, list[_Family]] = {}
        for metric in metrics:
            families.setdefault(metric.name, []).append(metric)

        lines: list[str] = []
        for name in sorted(families):
            members = families[name]
            lines.append(f"# HELP {name} {_escape_help(members[0].help)}")
            lines.append(f"# TYPE {name} {members[0].kind}")
            series = [entry for member in members for entry in member._series()]
            for _, sample_lines in sorted(series, key=lambda entry: entry[0]):
                lines.extend(sample_lines)
        return "".join(line + "\n" for line in lines)


@dataclass
class Metrics:
    """The metric families updated by an instrumented bucket."""

    ops: CounterVec
    ops_failures: CounterVec
    ops_fetched_bytes: CounterVec
    ops_transferred_bytes: HistogramVec
    ops_duration: HistogramVec
    last_successful_upload_time: Gauge
    is_op_failure_expected: IsOpFailureExpectedFunc = field(default=_never_expected)


def bucket_metrics(reg: Registry | None, name: str) -> Metrics:
    """Create the bucket metric families labelled with ``name``, registering them in ``reg`` if given."""
    const = {"bucket": name}
    metrics = Metrics(
        ops=CounterVec(
            "objstore_bucket_operations_total",
            "Total number of all attempted operations against a bucket.",
            ["operation"],
            const,
        ),
        ops_failures=CounterVec(
            "objstore_bucket_operation_failures_total",
            "Total number of operations against a bucket that failed, but were not expected to fail in "
            "certain way from caller perspective. Those errors have to be investigated.",
            ["operation"],
            const,
        ),
        ops_fetched_bytes=CounterVec(
            "objstore_bucket_operation_fetched_bytes_total",
            "Total number of bytes fetched from bucket, per operation.",
            ["operation"],
            const,
        ),
        ops_transferred_bytes=HistogramVec(
            "objstore_bucket_operation_transferred_bytes",
            "Number of bytes transferred from/to bucket per operation.",
            ["operation"],
            exponential_buckets(2 << 14, 2, 16),  # 32KiB, 64KiB, ... 1GiB
            const,
        ),
        ops_duration=HistogramVec(
            "objstore_bucket_operation_duration_seconds",
            "Duration of successful operations against the bucket per operation - iter operations include "
            "time spent on each callback.",
            ["operation"],
            [0.001, 0.01, 0.1, 0.3, 0.6, 1, 3, 6, 9, 20, 30, 60, 90, 120],
            const,
        ),
        last_successful_upload_time=Gauge(
            "objstore_bucket_last_successful_upload_time",
            "Second timestamp of the last successful upload to the bucket.",
            const,
        ),
    )
    if reg is not None:
        for family in (
            metrics.ops,
            metrics.ops_failures,
            metrics.ops_fetched_bytes,
            metrics.ops_transferred_bytes,
            metrics.ops_duration,
            metrics.last_successful_upload_time,
        ):
            reg.register(family)
    return metrics


class TimingReader:
    """Wraps a reader and records read bytes, failures and duration of an operation."""

    def __init__(
        self,
        start: float,
        r: Any,
        close_reader: bool,
        op: str,
        duration: HistogramVec,
        failed: CounterVec,
        is_failure_expected: IsOpFailureExpectedFunc,
        fetched_bytes: CounterVec | None,
        transferred_bytes: HistogramVec,
    ):
        self.reader = r
        self._close_reader = close_reader
        self._start = start
        self._op = op
        self._duration = duration
        self._failed = failed
        self._is_failure_expected = is_failure_expected
        self._fetched_bytes = fetched_bytes
        self._transferred_bytes = transferred_bytes
        self._already_got_err = False
        self.read_bytes = 0
        self._size: int | None = None
        self._size_err: BaseException | None = None
        try:
            self._size = try_to_get_size(r)
        except Exception as exc:  # noqa: BLE001 - reported by object_size
            self._size_err = exc

    def object_size(self) -> int:
        """Return the size measured when the reader was wrapped."""
        if self._size_err is not None:
            raise self._size_err
        return self._size  # type: ignore[return-value]

    def read(self, size: int = -1) -> bytes:
        try:
            data = self.reader.read(size)
        except Exception as exc:
            self._update_metrics(0, exc)
            raise
        self._update_metrics(len(data), None)
        return data

    def _update_metrics(self, n: int, err: BaseException | None) -> None:
        if self._fetched_bytes is not None:
            self._fetched_bytes.with_label_values(self._op).add(n)
        self.read_bytes += n
        if not self._already_got_err and err is not None:
            if not self._is_failure_expected(err) and not _is_cancelled(err):
                self._failed.with_label_values(self._op).inc()
            self._already_got_err = True

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        check = getattr(self.reader, "seekable", None)
        return bool(check()) if callable(check) else False

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if not self.seekable():
            raise io.UnsupportedOperation("seek")
        return self.reader.seek(offset, whence)

    def tell(self) -> int:
        if not self.seekable():
            raise io.UnsupportedOperation("tell")
        return self.reader.tell()

    def close(self) -> None:
        close_err: BaseException | None = None
        closer = getattr(self.reader, "close", None)
        if self._close_reader and callable(closer):
            try:
                closer()
            except Exception as exc:  # noqa: BLE001 - re-raised below
                close_err = exc
                if not self._already_got_err:
                    self._failed.with_label_values(self._op).inc()
                    self._already_got_err = True

        if not self._already_got_err:
            self._duration.with_label_values(self._op).observe(time.monotonic() - self._start)
            self._transferred_bytes.with_label_values(self._op).observe(self.read_bytes)
            # Keeps a second close from recording the operation again.
            self._already_got_err = True

        if close_err is not None:
            raise close_err

    def __enter__(self) -> TimingReader:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def new_timing_reader(
    start: float,
    r: Any,
    close_reader: bool,
    op: str,
    duration: HistogramVec,
    failed: CounterVec,
    is_failure_expected: IsOpFailureExpectedFunc,
    fetched_bytes: CounterVec | None,
    transferred_bytes: HistogramVec,
) -> TimingReader:
    """Wrap ``r``; ``start`` is a ``time.monotonic()`` reading taken when the operation began."""
    duration.with_label_values(op)
    failed.with_label_values(op)
    return TimingReader(
        start, r, close_reader, op, duration, failed, is_failure_expected, fetched_bytes, transferred_bytes
    )


class MetricBucket(Bucket):
    """A bucket that counts, times and measures the operations run against another bucket."""

    def __init__(self, bkt: Bucket, metrics: Metrics):
        self.bkt = bkt
        self.metrics = metrics

    def with_expected_errs(self, fn: IsOpFailureExpectedFunc) -> MetricBucket:
        """Return a bucket sharing these metrics that does not count errors accepted by ``fn`` as failures."""
        return MetricBucket(self.bkt, dataclasses.replace(self.metrics, is_op_failure_expected=fn))

    def reader_with_expected_errs(self, fn: IsOpFailureExpectedFunc) -> BucketReader:
        return self.with_expected_errs(fn)

    def _count_failure(self, op: str, err: BaseException) -> None:
        if not self.metrics.is_op_failure_expected(err) and not _is_cancelled(err):
            self.metrics.ops_failures.with_label_values(op).inc()

    def _observe(self, op: str, start: float) -> None:
        self.metrics.ops_duration.with_label_values(op).observe(time.monotonic() - start)

    def _timing(self, start: float, r: Any, close_reader: bool, op: str, fetched: CounterVec | None) -> TimingReader:
        return new_timing_reader(
            start,
            r,
            close_reader,
            op,
            self.metrics.ops_duration,
            self.metrics.ops_failures,
            self.metrics.is_op_failure_expected,
            fetched,
            self.metrics.ops_transferred_bytes,
        )

    def iter(self, dir: str, f: Callable[[str], Any], *args: Any) -> None:
        op = OP_ITER
        self.metrics.ops.with_label_values(op).inc()
        start = time.monotonic()
        try:
            self.bkt.iter(dir, f, *args)
        except Exception as err:
            self._count_failure(op, err)
            raise
        finally:
            self._observe(op, start)

    def attributes(self, name: str) -> ObjectAttributes:
        op = OP_ATTRIBUTES
        self.metrics.ops.with_label_values(op).inc()
        start = time.monotonic()
        try:
            attrs = self.bkt.attributes(name)
        except Exception as err:
            self._count_failure(op, err)
            raise
        self._observe(op, start)
        return attrs

    def get(self, name: str) -> TimingReader:
        op = OP_GET
        self.metrics.ops.with_label_values(op).inc()
        start = time.monotonic()
        try:
            rc = self.bkt.get(name)
        except Exception as err:
            self._count_failure(op, err)
            self._observe(op, start)
            raise
        return self._timing(start, rc, True, op, self.metrics.ops_fetched_bytes)

    def get_range(self, name: str, off: int, length: int) -> TimingReader:
        op = OP_GET_RANGE
        self.metrics.ops.with_label_values(op).inc()
        start = time.monotonic()
        try:
            rc = self.bkt.get_range(name, off, length)
        except Exception as err:
            self._count_failure(op, err)
            self._observe(op, start)
            raise
        return self._timing(start, rc, True, op, self.metrics.ops_fetched_bytes)

    def exists(self, name: str) -> bool:
        op = OP_EXISTS
        self.metrics.ops.with_label_values(op).inc()
        start = time.monotonic()
        try:
            found = self.bkt.exists(name)
        except Exception as err:
            self._count_failure(op, err)
            raise
        self._observe(op, start)
        return found

    def upload(self, name: str, r: Any) -> None:
        op = OP_UPLOAD
        self.metrics.ops.with_label_values(op).inc()
        start = time.monotonic()
        trc = self._timing(start, r, False, op, None)
        try:
            try:
                self.bkt.upload(name, trc)
            except Exception as err:
                self._count_failure(op, err)
                raise
        finally:
            trc.close()
        self.metrics.last_successful_upload_time.set_to_current_time()

    def delete(self, name: str) -> None:
        op = OP_DELETE
        self.metrics.ops.with_label_values(op).inc()
        start = time.monotonic()
        try:
            self.bkt.delete(name)
        except Exception as err:
            self._count_failure(op, err)
            raise
        self._observe(op, start)

    def is_obj_not_found_err(self, err: BaseException | None) -> bool:
        return self.bkt.is_obj_not_found_err(err)

    def is_access_denied_err(self, err: BaseException | None) -> bool:
        return self.bkt.is_access_denied_err(err)

    def close(self) -> None:
        self.bkt.close()

    def name(self) -> str:
        return self.bkt.name()


def wrap_with(bkt: Bucket, metrics: Metrics) -> MetricBucket:
    """Instrument ``bkt`` with existing metrics, creating every operation's series up front."""
    wrapped = MetricBucket(bkt, metrics)
    for op in _ALL_OPS:
        metrics.ops.with_label_values(op)
        metrics.ops_failures.with_label_values(op)
        metrics.ops_duration.with_label_values(op)
        metrics.ops_fetched_bytes.with_label_values(op)
    for op in _TRANSFER_OPS:
        metrics.ops_transferred_bytes.with_label_values(op)
    return wrapped


def wrap_with_metrics(bkt: Bucket, reg: Registry | None, name: str) -> MetricBucket:
    """Instrument ``bkt`` with new metrics labelled ``name`` and registered in ``reg``."""
    return wrap_with(bkt, bucket_metrics(reg, name))