from datetime import datetime
from enum import Enum
import math
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


class Capability(str, Enum):
    POST_EVENT = 'postEvent'
    GET_METRICS = 'getMetrics'


class ClientCredentials(BaseModel):
    model_config = ConfigDict(extra='forbid', frozen=True)

    passwords: frozenset[str] = Field(min_length=1)
    capabilities: frozenset[Capability] = frozenset()


ClientsPolicy = dict[str, ClientCredentials]

clients_policy_adapter: TypeAdapter[ClientsPolicy] = TypeAdapter(ClientsPolicy)


class IndexerNotified(BaseModel):
    """An item was noticed by the indexer and queued for indexing."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: Literal['IndexerNotified'] = 'IndexerNotified'
    size_bytes: float = Field(alias='sizeBytes', ge=0, allow_inf_nan=False)


class IndexerCompleted(BaseModel):
    """An item finished indexing."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: Literal['IndexerCompleted'] = 'IndexerCompleted'
    uri: str
    size_bytes: float = Field(alias='sizeBytes', ge=0, allow_inf_nan=False)
    start_time: datetime = Field(alias='startTime')
    end_time: datetime = Field(alias='endTime')

    @model_validator(mode='after')
    def _check_interval(self) -> 'IndexerCompleted':
        if (self.start_time.tzinfo is None) != (self.end_time.tzinfo is None):
            raise ValueError(
                'startTime and endTime must both carry a timezone or neither'
            )
        if self.end_time < self.start_time:
            raise ValueError('endTime must not precede startTime')
        return self

    @property
    def duration_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()


IndexerEvent = Annotated[
    IndexerNotified | IndexerCompleted, Field(discriminator='type')
]

indexer_event_adapter: TypeAdapter[IndexerEvent] = TypeAdapter(IndexerEvent)


class SeriesState(BaseModel):
    model_config = ConfigDict(frozen=True)

    labels: dict[str, str] = Field(default_factory=dict)
    # cumulative counts, one per finite bucket followed by the +Inf bucket
    bucket_counts: tuple[int, ...]
    sum: float = 0.0
    count: int = 0

    @model_validator(mode='after')
    def _check_cumulative(self) -> 'SeriesState':
        if any(c < 0 for c in self.bucket_counts):
            raise ValueError('bucket counts must be non-negative')
        if any(a > b for a, b in zip(self.bucket_counts, self.bucket_counts[1:])):
            raise ValueError('bucket counts must be non-decreasing')
        if not self.bucket_counts or self.bucket_counts[-1] != self.count:
            raise ValueError('the +Inf bucket must equal the series count')
        return self


class HistogramState(BaseModel):
    """Durable form of one named histogram."""

    model_config = ConfigDict(frozen=True)

    type: Literal['histogram'] = 'histogram'
    name: str = Field(min_length=1)
    help: str
    label_names: tuple[str, ...] = ()
    buckets: tuple[float, ...] = Field(min_length=1)
    aggregator: str = 'sum'
    series: tuple[SeriesState, ...] = ()

    @model_validator(mode='after')
    def _check_layout(self) -> 'HistogramState':
        if any(not math.isfinite(b) for b in self.buckets):
            raise ValueError('buckets must be finite, +Inf is implicit')
        if any(a >= b for a, b in zip(self.buckets, self.buckets[1:])):
            raise ValueError('buckets must be strictly ascending')
        seen: set[tuple[str, ...]] = set()
        for series in self.series:
            if set(series.labels) != set(self.label_names):
                raise ValueError(
                    f'series labels {sorted(series.labels)} do not match '
                    f'label names {list(self.label_names)}'
                )
            if len(series.bucket_counts) != len(self.buckets) + 1:
                raise ValueError(
                    f'expected {len(self.buckets) + 1} bucket counts, '
                    f'got {len(series.bucket_counts)}'
                )
            key = tuple(series.labels[name] for name in self.label_names)
            if key in seen:
                raise ValueError(f'duplicate series for labels {series.labels}')
            seen.add(key)
        return self
