"""变更推送 SSE 路由

GET /api/feed/{kind}: 本地 FeedHub 的行级变更（FeedEvent JSON）。
远程控制台的 RestTaskStore.subscribe 消费此端点。
"""

import asyncio

import structlog
from fastapi import APIRouter, Depends
from odara.core.config import SSE_HEARTBEAT_INTERVAL
from odara.core.exceptions import FeedOverflowError
from odara.core.models.policy import get_policy
from odara.core.store import FeedHub
from sse_starlette.sse import EventSourceResponse

from ..deps import get_feed_hub

log = structlog.get_logger()

router = APIRouter()


@router.get("/api/feed/{kind}")
async def stream_feed(kind: str, hub: FeedHub = Depends(get_feed_hub)):
    """SSE 变更流：每条 data 为一个 FeedEvent；订阅者过慢时断开，客户端需重连并全量加载"""
    policy = get_policy(kind)

    async def event_generator():
        subscription = await hub.subscribe(policy.kind)
        try:
            while True:
                try:
                    event = await asyncio.wait_for(
                        anext(subscription), timeout=SSE_HEARTBEAT_INTERVAL
                    )
                except TimeoutError:
                    yield {"comment": "heartbeat"}
                    continue
                except FeedOverflowError:
                    log.warning("feed_stream_overflow", kind=policy.kind)
                    return
                except StopAsyncIteration:
                    return
                yield {
                    "id": event.event_id,
                    "event": event.operation.value,
                    "data": event.model_dump_json(),
                }
        finally:
            await subscription.close()

    return EventSourceResponse(event_generator())
