import logging

import orjson
from prometheus_client import CollectorRegistry
from pydantic import ValidationError

from indexer_metrics.exceptions import StateDecodeError
from indexer_metrics.schemas import HistogramState
from indexer_metrics.sketch import HistogramSketch

logger = logging.getLogger(__name__)


class HistogramSerializer:
    """Converts sketches to and from their storage-safe form."""

    @staticmethod
    def serialize(sketch: HistogramSketch) -> HistogramState:
        return sketch.snapshot()

    @staticmethod
    def deserialize(
        state: HistogramState,
        registry: CollectorRegistry | None = None,
        const_labels: dict[str, str] | None = None,
    ) -> HistogramSketch:
        """Rebuild a sketch from ``state``.

        When ``registry`` is given the sketch registers itself on it once;
        a registry already exposing the same histogram name rejects it with
        ``ValueError``.
        """
        sketch = HistogramSketch(
            name=state.name,
            help=state.help,
            buckets=state.buckets,
            label_names=state.label_names,
            aggregator=state.aggregator,
            const_labels=const_labels,
        )
        sketch.restore_series(state.series)
        if registry is not None:
            registry.register(sketch)
        return sketch

    @staticmethod
    def encode(state: HistogramState) -> bytes:
        return orjson.dumps(state.model_dump(mode='json'))

    @staticmethod
    def decode(raw: bytes | str) -> HistogramState:
        try:
            return HistogramState.model_validate(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError) as e:
            logger.error('Failed to decode histogram state', extra={'error': str(e)})
            raise StateDecodeError(f'Invalid histogram state: {e}') from e
