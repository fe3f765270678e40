import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import logging
import math

from prometheus_client import CollectorRegistry, generate_latest
from pydantic import ValidationError

from indexer_metrics.auth import AuthGate
from indexer_metrics.exceptions import EventValidationError
from indexer_metrics.schemas import (
    Capability,
    ClientsPolicy,
    HistogramState,
    IndexerCompleted,
    IndexerEvent,
    IndexerNotified,
    indexer_event_adapter,
)
from indexer_metrics.serializer import HistogramSerializer
from indexer_metrics.sketch import HistogramSketch
from indexer_metrics.storage import StorageAdapter

logger = logging.getLogger(__name__)

SERVICE_IDENTITY = 'indexer-metrics-collector'


@dataclass(frozen=True)
class HistogramDefinition:
    name: str
    help: str
    buckets: tuple[float, ...]
    label_names: tuple[str, ...] = ()
    aggregator: str = 'sum'

    def empty_state(self) -> HistogramState:
        return HistogramState(
            name=self.name,
            help=self.help,
            label_names=self.label_names,
            buckets=self.buckets,
            aggregator=self.aggregator,
        )


FILE_SIZE_BYTES = HistogramDefinition(
    name='file_size_bytes',
    help='Size of files noticed by the indexer, in bytes',
    buckets=(1e3, 1e4, 1e5, 1e6, 1e7, 1e8, 1e9, 1e10, 1e11),
)

INDEXING_DURATION_SECONDS = HistogramDefinition(
    name='indexing_duration_seconds',
    help='Time taken to index a file, in seconds',
    buckets=(0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 600.0, 1800.0, 3600.0),
)

DEFAULT_HISTOGRAMS: tuple[HistogramDefinition, ...] = (
    FILE_SIZE_BYTES,
    INDEXING_DURATION_SECONDS,
)


class IndexerMetricsCollector:
    """Folds indexer events into persisted histograms and renders them.

    Nothing is cached between operations: every ingest and scrape reads the
    current state from ``storage``, so any number of collectors may share one
    store. Operations on one instance run one at a time.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        clients: ClientsPolicy | None = None,
        default_labels: Mapping[str, str] | None = None,
        histograms: Sequence[HistogramDefinition] = DEFAULT_HISTOGRAMS,
    ) -> None:
        self.storage = storage
        self.auth = AuthGate(clients or {})
        self.default_labels = dict(default_labels or {})
        self.histograms = {spec.name: spec for spec in histograms}
        self._lock = asyncio.Lock()

    @staticmethod
    def identify() -> str:
        return SERVICE_IDENTITY

    def authorize(self, authorization: str | None, capability: Capability) -> str:
        return self.auth.authorize(authorization, capability)

    @staticmethod
    def parse_event(body: bytes | str) -> IndexerEvent:
        try:
            return indexer_event_adapter.validate_json(body)
        except ValidationError as e:
            logger.warning('Rejected event', extra={'error': str(e)})
            raise EventValidationError(str(e)) from e

    def _select(self, event: IndexerEvent) -> tuple[HistogramDefinition, float]:
        if isinstance(event, IndexerNotified):
            return self.histograms[FILE_SIZE_BYTES.name], event.size_bytes
        if isinstance(event, IndexerCompleted):
            return (
                self.histograms[INDEXING_DURATION_SECONDS.name],
                event.duration_seconds,
            )
        raise EventValidationError(f'Unsupported event type: {type(event).__name__}')

    async def load_state(self, spec: HistogramDefinition) -> HistogramState:
        raw = await self.storage.get(spec.name)
        if raw is None:
            return spec.empty_state()
        return HistogramSerializer.decode(raw)

    async def load_sketch(self, spec: HistogramDefinition) -> HistogramSketch:
        return HistogramSerializer.deserialize(await self.load_state(spec))

    async def ingest(self, event: IndexerEvent) -> HistogramState:
        spec, value = self._select(event)
        async with self._lock:
            sketch = await self.load_sketch(spec)
            sketch.observe(value)
            state = HistogramSerializer.serialize(sketch)
            if not all(math.isfinite(s.sum) for s in state.series):
                raise EventValidationError(
                    f'Observing {value} would overflow the sum of {spec.name}'
                )
            await self.storage.put(spec.name, HistogramSerializer.encode(state))
        logger.debug(
            'Histogram persisted',
            extra={'event_type': event.type, 'histogram': spec.name, 'value': value},
        )
        return state

    async def ingest_raw(self, body: bytes | str) -> HistogramState:
        return await self.ingest(self.parse_event(body))

    async def build_registry(self) -> CollectorRegistry:
        registry = CollectorRegistry()
        states = await asyncio.gather(
            *(self.load_state(spec) for spec in self.histograms.values())
        )
        for state in states:
            HistogramSerializer.deserialize(
                state, registry, const_labels=self.default_labels
            )
        return registry

    async def scrape(self) -> str:
        async with self._lock:
            registry = await self.build_registry()
        return generate_latest(registry).decode('utf-8')
