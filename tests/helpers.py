from datetime import UTC, datetime, timedelta
from typing import Any

import orjson
from prometheus_client.parser import text_string_to_metric_families

from indexer_metrics.exceptions import StorageError
from indexer_metrics.storage import MemoryStorage

EXAMPLE_URI = (
    'https://bafkreigh2akiscaildcqabsyg3dfr6chu3fgpregiymsck7e7aqa4s52zy'
    '.ipfs.nftstorage.link/'
)


class FailingStorage(MemoryStorage):
    """Reads normally; writes fail while ``refuse_writes`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.refuse_writes = True

    async def put(self, key: str, value: bytes) -> None:
        if self.refuse_writes:
            raise StorageError(f'write refused for {key!r}')
        await super().put(key, value)


def notified_event(size_bytes: float = 1e6) -> dict[str, Any]:
    return {'type': 'IndexerNotified', 'sizeBytes': size_bytes}


def completed_event(
    duration: timedelta = timedelta(minutes=1), size_bytes: float = 1e6
) -> dict[str, Any]:
    start = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
    return {
        'type': 'IndexerCompleted',
        'uri': EXAMPLE_URI,
        'sizeBytes': size_bytes,
        'startTime': start.isoformat(),
        'endTime': (start + duration).isoformat(),
    }


def as_body(event: dict[str, Any]) -> bytes:
    return orjson.dumps(event)


def histogram_samples(text: str, name: str) -> dict[tuple[str, str | None], float]:
    """Samples of histogram ``name`` keyed by (sample name, le label)."""
    for family in text_string_to_metric_families(text):
        if family.name == name:
            assert family.type == 'histogram'
            return {(s.name, s.labels.get('le')): s.value for s in family.samples}
    raise AssertionError(f'{name} not exposed')
