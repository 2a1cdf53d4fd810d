"""FeedHub -- 内存中的行级变更广播器

每个订阅者持有一个 asyncio.Queue，支持 subscribe/unsubscribe/broadcast。
队列满的订阅者会被移除，其迭代器在取完剩余事件后抛出 FeedOverflowError。
"""

import asyncio
from collections import defaultdict

import structlog

from ..config import FEED_QUEUE_MAXSIZE
from ..exceptions import FeedOverflowError
from ..models.enums import TaskKind
from ..models.feed import FeedEvent

log = structlog.get_logger()


class HubSubscription:
    """FeedHub 订阅句柄 -- 异步迭代 FeedEvent，close() 取消订阅"""

    def __init__(self, hub: "FeedHub", kind: TaskKind, maxsize: int) -> None:
        self.kind = kind
        self._hub = hub
        self._queue: asyncio.Queue[FeedEvent | None] = asyncio.Queue(maxsize=maxsize)
        self._overflowed = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _offer(self, event: FeedEvent) -> bool:
        """非阻塞投递，队列已满返回 False"""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._overflowed = True
            return False
        return True

    def __aiter__(self) -> "HubSubscription":
        return self

    async def __anext__(self) -> FeedEvent:
        if self._overflowed and self._queue.empty():
            raise FeedOverflowError(f"feed subscriber for {self.kind} fell behind")
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def close(self) -> None:
        """取消订阅并唤醒正在等待的迭代器"""
        if self._closed:
            return
        self._closed = True
        await self._hub.unsubscribe(self)
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass


class FeedHub:
    """变更事件广播器 -- 基于 asyncio.Queue 的发布/订阅模式"""

    def __init__(self, queue_maxsize: int = FEED_QUEUE_MAXSIZE) -> None:
        # kind -> set of HubSubscription
        self._subscribers: dict[TaskKind, set[HubSubscription]] = defaultdict(set)
        self._queue_maxsize = queue_maxsize

    async def subscribe(self, kind: TaskKind) -> HubSubscription:
        """订阅指定任务类型的变更

        Args:
            kind: 任务类型

        Returns:
            HubSubscription，新事件会被推送到其队列
        """
        subscription = HubSubscription(self, kind, self._queue_maxsize)
        self._subscribers[kind].add(subscription)
        return subscription

    async def unsubscribe(self, subscription: HubSubscription) -> None:
        """取消订阅

        Args:
            subscription: 之前订阅时返回的句柄
        """
        subscribers = self._subscribers.get(subscription.kind)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.kind]

    def subscriber_count(self, kind: TaskKind) -> int:
        return len(self._subscribers.get(kind, ()))

    async def broadcast(self, event: FeedEvent) -> None:
        """向该任务类型的所有订阅者广播事件

        Args:
            event: 要广播的事件
        """
        dead = [
            sub
            for sub in list(self._subscribers.get(event.kind, ()))
            if not sub._offer(event)
        ]

        # 清理已满的订阅者
        for sub in dead:
            log.warning("feed_subscriber_dropped", kind=event.kind, reason="queue_full")
            await self.unsubscribe(sub)
