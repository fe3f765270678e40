from bisect import bisect_left
from collections.abc import Iterable, Iterator, Mapping, Sequence
import math

from prometheus_client.metrics_core import HistogramMetricFamily, Metric
from prometheus_client.utils import floatToGoString

from indexer_metrics.schemas import HistogramState, SeriesState

LabelKey = tuple[str, ...]


class _Series:
    __slots__ = ('labels', 'bucket_counts', 'sum', 'count')

    def __init__(
        self,
        labels: dict[str, str],
        bucket_counts: list[int],
        sum_: float = 0.0,
        count: int = 0,
    ) -> None:
        self.labels = labels
        self.bucket_counts = bucket_counts
        self.sum = sum_
        self.count = count


class HistogramSketch:
    """Cumulative histogram over fixed buckets, one series per label combination.

    Series are keyed by the tuple of label values in ``label_names`` order.
    The sketch is also a Prometheus custom collector: registering it on a
    ``CollectorRegistry`` exposes its series, with ``const_labels`` appended
    to every exported sample. Constant labels are never part of a snapshot.
    """

    def __init__(
        self,
        name: str,
        help: str,
        buckets: Sequence[float],
        label_names: Sequence[str] = (),
        aggregator: str = 'sum',
        const_labels: Mapping[str, str] | None = None,
    ) -> None:
        bounds = [float(b) for b in buckets]
        if bounds and bounds[-1] == math.inf:
            bounds.pop()
        if not bounds:
            raise ValueError(f'histogram {name!r} needs at least one finite bucket')
        if any(not math.isfinite(b) for b in bounds):
            raise ValueError(f'histogram {name!r} has a non-finite bucket')
        if any(a >= b for a, b in zip(bounds, bounds[1:])):
            raise ValueError(f'histogram {name!r} buckets must be strictly ascending')
        if len(set(label_names)) != len(label_names):
            raise ValueError(f'histogram {name!r} has duplicate label names')

        self.name = name
        self.help = help
        self.buckets: tuple[float, ...] = tuple(bounds)
        self.label_names: tuple[str, ...] = tuple(label_names)
        self.aggregator = aggregator
        self.const_labels: dict[str, str] = {
            k: str(v)
            for k, v in (const_labels or {}).items()
            if k not in self.label_names and k != 'le'
        }
        self._series: dict[LabelKey, _Series] = {}

    def _key(self, labels: Mapping[str, str]) -> LabelKey:
        if set(labels) != set(self.label_names):
            raise ValueError(
                f'histogram {self.name!r} expects labels {list(self.label_names)}, '
                f'got {sorted(labels)}'
            )
        return tuple(str(labels[n]) for n in self.label_names)

    def _new_series(self, key: LabelKey) -> _Series:
        return _Series(
            labels=dict(zip(self.label_names, key)),
            bucket_counts=[0] * (len(self.buckets) + 1),
        )

    def observe(self, value: float, labels: Mapping[str, str] | None = None) -> None:
        if not math.isfinite(value):
            raise ValueError(f'cannot observe {value} on histogram {self.name!r}')
        key = self._key(labels or {})
        series = self._series.get(key)
        if series is None:
            series = self._series[key] = self._new_series(key)
        # value <= bound lands in that bucket and every bucket above it
        for i in range(bisect_left(self.buckets, value), len(series.bucket_counts)):
            series.bucket_counts[i] += 1
        series.sum += value
        series.count += 1

    def restore_series(self, states: Iterable[SeriesState]) -> None:
        restored: dict[LabelKey, _Series] = {}
        for state in states:
            key = self._key(state.labels)
            if len(state.bucket_counts) != len(self.buckets) + 1:
                raise ValueError(
                    f'series {state.labels} of {self.name!r} has '
                    f'{len(state.bucket_counts)} buckets, '
                    f'expected {len(self.buckets) + 1}'
                )
            restored[key] = _Series(
                labels=dict(zip(self.label_names, key)),
                bucket_counts=list(state.bucket_counts),
                sum_=state.sum,
                count=state.count,
            )
        self._series = restored

    def series_keys(self) -> list[LabelKey]:
        return sorted(self._series)

    def snapshot(self) -> HistogramState:
        return HistogramState(
            name=self.name,
            help=self.help,
            label_names=self.label_names,
            buckets=self.buckets,
            aggregator=self.aggregator,
            series=tuple(
                SeriesState(
                    labels=dict(s.labels),
                    bucket_counts=tuple(s.bucket_counts),
                    sum=s.sum,
                    count=s.count,
                )
                for s in (self._series[k] for k in self.series_keys())
            ),
        )

    def _exported_label_names(self) -> list[str]:
        return [*self.label_names, *self.const_labels]

    def _exported_series(self) -> list[_Series]:
        series = [self._series[k] for k in self.series_keys()]
        if not series and not self.label_names:
            series = [self._new_series(())]
        return series

    def describe(self) -> list[Metric]:
        return [
            HistogramMetricFamily(
                self.name, self.help, labels=self._exported_label_names()
            )
        ]

    def collect(self) -> Iterator[Metric]:
        family = HistogramMetricFamily(
            self.name, self.help, labels=self._exported_label_names()
        )
        const_values = list(self.const_labels.values())
        for series in self._exported_series():
            buckets = [
                (floatToGoString(bound), float(count))
                for bound, count in zip(self.buckets, series.bucket_counts)
            ]
            buckets.append(('+Inf', float(series.count)))
            family.add_metric(
                [*(series.labels[n] for n in self.label_names), *const_values],
                buckets=buckets,
                sum_value=series.sum,
            )
        yield family


def count_entries(sketch: HistogramSketch) -> int:
    return sum(series.count for series in sketch.snapshot().series)
