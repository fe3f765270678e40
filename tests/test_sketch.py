import math
import random

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.parser import text_string_to_metric_families
import pytest

from indexer_metrics.sketch import HistogramSketch, count_entries


def make_sketch(**kwargs) -> HistogramSketch:
    params = {
        'name': 'request_size_bytes',
        'help': 'Request size',
        'buckets': (0.5, 1.0, 2.0),
    }
    params.update(kwargs)
    return HistogramSketch(**params)


def test_value_on_boundary_lands_in_that_bucket() -> None:
    sketch = make_sketch()
    sketch.observe(1.0)

    (series,) = sketch.snapshot().series
    assert series.bucket_counts == (0, 1, 1, 1)
    assert series.count == 1
    assert series.sum == 1.0


def test_value_above_every_bucket_counts_only_in_inf() -> None:
    sketch = make_sketch()
    sketch.observe(10.0)

    (series,) = sketch.snapshot().series
    assert series.bucket_counts == (0, 0, 0, 1)


def test_cumulative_counts_are_monotonic() -> None:
    sketch = make_sketch(label_names=('route',))
    rng = random.Random(7)
    for _ in range(500):
        sketch.observe(rng.uniform(0, 3), {'route': rng.choice(['a', 'b', 'c'])})

    state = sketch.snapshot()
    assert len(state.series) == 3
    for series in state.series:
        counts = series.bucket_counts
        assert all(a <= b for a, b in zip(counts, counts[1:]))
        assert counts[-1] == series.count
    assert count_entries(sketch) == 500


def test_sum_tracks_observed_values() -> None:
    sketch = make_sketch()
    for value in (0.25, 1.5, 4.0):
        sketch.observe(value)

    (series,) = sketch.snapshot().series
    assert series.sum == pytest.approx(5.75)
    assert series.count == 3


def test_series_are_keyed_by_label_values_in_declared_order() -> None:
    sketch = make_sketch(label_names=('method', 'code'))
    sketch.observe(1, {'code': '200', 'method': 'GET'})
    sketch.observe(1, {'method': 'GET', 'code': '200'})
    sketch.observe(1, {'method': 'POST', 'code': '500'})

    assert sketch.series_keys() == [('GET', '200'), ('POST', '500')]
    assert [s.count for s in sketch.snapshot().series] == [2, 1]


@pytest.mark.parametrize(
    'labels',
    [{}, {'method': 'GET'}, {'method': 'GET', 'code': '200', 'extra': 'x'}],
)
def test_mismatched_labels_are_rejected(labels: dict[str, str]) -> None:
    sketch = make_sketch(label_names=('method', 'code'))
    with pytest.raises(ValueError, match='expects labels'):
        sketch.observe(1.0, labels)
    assert sketch.snapshot().series == ()


@pytest.mark.parametrize('value', [math.nan, math.inf, -math.inf])
def test_non_finite_values_are_rejected(value: float) -> None:
    sketch = make_sketch()
    with pytest.raises(ValueError, match='cannot observe'):
        sketch.observe(value)
    assert sketch.snapshot().series == ()


def test_empty_sketch_snapshots_with_no_series() -> None:
    state = make_sketch().snapshot()
    assert state.series == ()
    assert state.buckets == (0.5, 1.0, 2.0)
    assert state.aggregator == 'sum'


@pytest.mark.parametrize(
    'buckets',
    [(), (2.0, 1.0), (1.0, 1.0), (1.0, math.nan)],
)
def test_invalid_buckets_are_rejected(buckets: tuple[float, ...]) -> None:
    with pytest.raises(ValueError):
        make_sketch(buckets=buckets)


def test_trailing_inf_bucket_is_implicit() -> None:
    sketch = make_sketch(buckets=(1.0, 2.0, math.inf))
    assert sketch.buckets == (1.0, 2.0)


def test_unlabeled_sketch_exports_zero_series_before_observations() -> None:
    registry = CollectorRegistry()
    registry.register(make_sketch())

    text = generate_latest(registry).decode()
    assert 'request_size_bytes_count 0.0' in text
    assert 'request_size_bytes_bucket{le="+Inf"} 0.0' in text


def test_labeled_sketch_exports_nothing_before_observations() -> None:
    registry = CollectorRegistry()
    registry.register(make_sketch(label_names=('route',)))

    text = generate_latest(registry).decode()
    assert 'request_size_bytes_count' not in text


def test_const_labels_are_exported_but_not_snapshotted() -> None:
    sketch = make_sketch(label_names=('route',), const_labels={'env': 'prod'})
    sketch.observe(0.75, {'route': 'a'})
    registry = CollectorRegistry()
    registry.register(sketch)

    text = generate_latest(registry).decode()
    (family,) = text_string_to_metric_families(text)
    samples = {(s.name, s.labels.get('le')): s for s in family.samples}
    bucket = samples[('request_size_bytes_bucket', '1.0')]
    assert bucket.labels == {'route': 'a', 'env': 'prod', 'le': '1.0'}
    assert bucket.value == 1.0
    total = samples[('request_size_bytes_sum', None)]
    assert total.labels == {'route': 'a', 'env': 'prod'}
    assert total.value == 0.75
    assert sketch.snapshot().series[0].labels == {'route': 'a'}


def test_series_labels_take_precedence_over_const_labels() -> None:
    sketch = make_sketch(label_names=('env',), const_labels={'env': 'prod', 'a': 'A'})
    assert sketch.const_labels == {'a': 'A'}
