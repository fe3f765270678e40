from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
import uvicorn

from indexer_metrics.collector import IndexerMetricsCollector
from indexer_metrics.config import Settings, settings
from indexer_metrics.log_config_loader import setup_logging
from indexer_metrics.router import router as collector_router
from indexer_metrics.storage import MemoryStorage, RedisStorage, StorageAdapter

setup_logging(
    service_name=settings.SERVICE_NAME,
    level=settings.LOG_LEVEL,
    log_format=settings.LOG_FORMAT,
    version=settings.SERVICE_VERSION,
)

logger = logging.getLogger(__name__)


def create_storage(config: Settings) -> StorageAdapter:
    if config.STORAGE_BACKEND == 'redis':
        return RedisStorage(
            host=config.REDIS_HOST,
            port=config.REDIS_PORT,
            db=config.REDIS_DB,
            password=config.REDIS_PASSWORD,
            key_prefix=config.REDIS_KEY_PREFIX,
        )
    return MemoryStorage()


def create_collector(config: Settings) -> IndexerMetricsCollector:
    return IndexerMetricsCollector(
        storage=create_storage(config),
        clients=config.CLIENTS,
        default_labels=config.PROMETHEUS_DEFAULT_LABELS,
    )


def create_app(collector: IndexerMetricsCollector | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        storage = app.state.collector.storage
        await storage.start()
        logger.info(
            'Collector started',
            extra={
                'storage': type(storage).__name__,
                'clients': len(app.state.collector.auth.clients),
            },
        )
        try:
            yield
        finally:
            logger.info('Shutting down...')
            await storage.stop()
            logger.info('Shutdown complete')

    app = FastAPI(lifespan=lifespan)
    app.state.collector = collector or create_collector(settings)

    @app.get('/health')
    async def health_check() -> dict[str, str]:
        logger.debug('Health check...')
        return {'status': 'ok'}

    app.include_router(collector_router)
    return app


app = create_app()


def main() -> None:
    uvicorn.run(
        'indexer_metrics.main:app',
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.API_RELOAD,
    )


if __name__ == '__main__':
    main()
