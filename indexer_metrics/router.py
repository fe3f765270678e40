from collections.abc import Callable, Coroutine
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST

from indexer_metrics.collector import IndexerMetricsCollector
from indexer_metrics.exceptions import (
    AuthorizationError,
    EventValidationError,
    StorageError,
    UnauthorizedError,
)
from indexer_metrics.schemas import Capability

logger = logging.getLogger(__name__)
router = APIRouter()

WWW_AUTHENTICATE = {'WWW-Authenticate': 'Basic realm="indexer-metrics-collector"'}


def get_collector(request: Request) -> IndexerMetricsCollector:
    collector: IndexerMetricsCollector = request.app.state.collector
    return collector


CollectorDep = Annotated[IndexerMetricsCollector, Depends(get_collector)]


def require_capability(
    capability: Capability,
) -> Callable[..., Coroutine[Any, Any, str]]:
    async def dependency(
        collector: CollectorDep,
        authorization: Annotated[str | None, Header()] = None,
    ) -> str:
        try:
            return collector.authorize(authorization, capability)
        except UnauthorizedError as e:
            raise HTTPException(
                status_code=401, detail=str(e), headers=WWW_AUTHENTICATE
            ) from None
        except AuthorizationError as e:
            raise HTTPException(status_code=403, detail=str(e)) from None

    return dependency


@router.get('/', response_class=PlainTextResponse)
async def identify(collector: CollectorDep) -> str:
    return collector.identify()


@router.post('/events', status_code=202)
async def post_event(
    request: Request,
    collector: CollectorDep,
    client_id: Annotated[str, Depends(require_capability(Capability.POST_EVENT))],
) -> dict[str, str]:
    body = await request.body()
    try:
        event = collector.parse_event(body)
    except EventValidationError as e:
        raise HTTPException(status_code=400, detail=f'Invalid event: {e}') from None

    try:
        await collector.ingest(event)
    except EventValidationError as e:
        raise HTTPException(status_code=400, detail=f'Invalid event: {e}') from None
    except StorageError as e:
        logger.exception(
            'Storage error in /events',
            extra={'client_id': client_id, 'event_type': event.type},
        )
        raise HTTPException(status_code=503, detail='Storage unavailable') from e
    except Exception as e:
        logger.exception('Unexpected error in /events', extra={'client_id': client_id})
        raise HTTPException(status_code=500, detail='Internal error') from e

    logger.debug(
        'Event accepted', extra={'client_id': client_id, 'event_type': event.type}
    )
    return {'status': 'accepted'}


@router.get('/metrics')
async def get_metrics(
    collector: CollectorDep,
    client_id: Annotated[str, Depends(require_capability(Capability.GET_METRICS))],
) -> Response:
    try:
        text = await collector.scrape()
    except StorageError as e:
        logger.exception('Storage error in /metrics', extra={'client_id': client_id})
        raise HTTPException(status_code=503, detail='Storage unavailable') from e
    except Exception as e:
        logger.exception('Unexpected error in /metrics', extra={'client_id': client_id})
        raise HTTPException(status_code=500, detail='Internal error') from e
    return Response(content=text, media_type=CONTENT_TYPE_LATEST)
