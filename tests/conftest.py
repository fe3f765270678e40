import pytest

from indexer_metrics.auth import basic_auth_header_value
from indexer_metrics.collector import IndexerMetricsCollector
from indexer_metrics.schemas import ClientsPolicy, clients_policy_adapter
from indexer_metrics.storage import MemoryStorage


@pytest.fixture
def clients_policy() -> ClientsPolicy:
    return clients_policy_adapter.validate_python(
        {
            'eventPoster': {'passwords': ['foo'], 'capabilities': ['postEvent']},
            'metricsScraper': {'passwords': ['bar'], 'capabilities': ['getMetrics']},
            'operator': {
                'passwords': ['old-secret', 'new-secret'],
                'capabilities': ['postEvent', 'getMetrics'],
            },
        }
    )


@pytest.fixture
def poster_auth() -> str:
    return basic_auth_header_value('eventPoster', 'foo')


@pytest.fixture
def scraper_auth() -> str:
    return basic_auth_header_value('metricsScraper', 'bar')


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def collector(
    storage: MemoryStorage, clients_policy: ClientsPolicy
) -> IndexerMetricsCollector:
    return IndexerMetricsCollector(storage=storage, clients=clients_policy)
