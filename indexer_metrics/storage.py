import asyncio
import logging
from typing import Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from indexer_metrics.exceptions import StorageError

logger = logging.getLogger(__name__)


class StorageAdapter(Protocol):
    """Opaque key to bytes store shared by every collector instance.

    ``put`` must be atomic per key: a reader sees either the previous value
    or the whole new one.
    """

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def get(self, key: str) -> bytes | None: ...

    async def put(self, key: str, value: bytes) -> None: ...


class MemoryStorage:
    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        logger.debug('Memory storage ready')

    async def stop(self) -> None:
        logger.debug('Memory storage stopped', extra={'keys': len(self._data)})

    async def get(self, key: str) -> bytes | None:
        async with self._lock:
            return self._data.get(key)

    async def put(self, key: str, value: bytes) -> None:
        async with self._lock:
            self._data[key] = bytes(value)

    def keys(self) -> list[str]:
        return sorted(self._data)


class RedisStorage:
    def __init__(
        self,
        host: str,
        port: int,
        db: int,
        password: str | None,
        key_prefix: str = '',
        ssl: bool = False,
    ):
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.key_prefix = key_prefix
        self.ssl = ssl

        self._redis: Redis | None = None

    async def start(self) -> None:
        if self._redis is not None:
            logger.debug('Redis storage already initialized')
            return

        logger.info(
            'Initializing Redis storage',
            extra={
                'host': self.host,
                'port': self.port,
                'db': self.db,
                'key_prefix': self.key_prefix,
            },
        )
        try:
            self._redis = Redis(
                host=self.host,
                port=self.port,
                db=self.db,
                password=self.password,
                ssl=self.ssl,
                decode_responses=False,
            )
            await self._redis.ping()
        except Exception:
            logger.exception('Failed to start Redis storage')
            self._redis = None
            raise

    async def stop(self) -> None:
        if self._redis:
            logger.info('Stopping Redis storage')
            await self._redis.aclose()
            self._redis = None
        logger.info('Redis storage stopped')

    def _client(self) -> Redis:
        if self._redis is None:
            raise StorageError('Redis storage not started')
        return self._redis

    async def get(self, key: str) -> bytes | None:
        try:
            value = await self._client().get(self.key_prefix + key)
        except RedisError as e:
            logger.exception('Redis get failed', extra={'key': key})
            raise StorageError(f'Failed to read {key!r}: {e}') from e
        return bytes(value) if value is not None else None

    async def put(self, key: str, value: bytes) -> None:
        try:
            await self._client().set(self.key_prefix + key, value)
        except RedisError as e:
            logger.exception('Redis put failed', extra={'key': key})
            raise StorageError(f'Failed to write {key!r}: {e}') from e
