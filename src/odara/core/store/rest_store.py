"""RestTaskStore -- 托管 REST 存储客户端（PostgREST 风格）

批量加载：GET  {base_url}/{table}?select=*,template:task_templates(*),resident:residents(*)
部分更新：PATCH {base_url}/{table}?task_id=eq.{id}（幂等，瞬时失败按指数退避重试）
变更推送：GET  {feed_url}/{kind}（SSE，每条 data 为一个 FeedEvent JSON）
"""

import asyncio
import json
from collections.abc import AsyncIterator, Sequence

import httpx
import structlog

from ..config import StoreConfig
from ..exceptions import RowNotFoundError, StoreError, StoreUnavailableError
from ..models.enums import TaskKind
from ..models.feed import FeedEvent, parse_feed_event
from ..models.policy import get_policy
from ..models.task import ScheduledTask, TaskPatch

log = structlog.get_logger()

_SELECT_JOINED = "*,template:task_templates(*),resident:residents(*)"

# 连接类异常（可重试）
_TRANSIENT_ERROR_TYPES = (
    httpx.TransportError,
    TimeoutError,
    ConnectionError,
)


class RestFeedSubscription:
    """SSE 变更推送订阅 -- 异步迭代 FeedEvent，close() 断开连接"""

    def __init__(self, client: httpx.AsyncClient, url: str, kind: TaskKind) -> None:
        self.kind = kind
        self._client = client
        self._url = url
        self._events: AsyncIterator[FeedEvent] = self._iter_events()

    async def _iter_events(self) -> AsyncIterator[FeedEvent]:
        try:
            async with self._client.stream(
                "GET",
                self._url,
                headers={"Accept": "text/event-stream"},
                timeout=httpx.Timeout(10.0, read=None),
            ) as response:
                if response.status_code != 200:
                    raise StoreError(
                        f"feed subscription rejected: HTTP {response.status_code}",
                        recoverable=response.status_code >= 500,
                    )
                data_lines: list[str] = []
                async for line in response.aiter_lines():
                    if line.startswith("data:"):
                        data_lines.append(line[5:].lstrip())
                    elif line == "" and data_lines:
                        event = self._decode("\n".join(data_lines))
                        data_lines = []
                        if event is not None:
                            yield event
        except _TRANSIENT_ERROR_TYPES as e:
            raise StoreUnavailableError(self._url, e) from e

    @staticmethod
    def _decode(payload: str) -> FeedEvent | None:
        try:
            raw = json.loads(payload)
        except json.JSONDecodeError:
            log.warning("feed_event_malformed", error="invalid json")
            return None
        if not isinstance(raw, dict):
            log.warning("feed_event_malformed", error="payload is not an object")
            return None
        return parse_feed_event(raw)

    def __aiter__(self) -> "RestFeedSubscription":
        return self

    async def __anext__(self) -> FeedEvent:
        return await anext(self._events)

    async def close(self) -> None:
        """断开 SSE 连接"""
        await self._events.aclose()


class RestTaskStore:
    """TaskStoreClient 的 REST 实现"""

    def __init__(
        self,
        config: StoreConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            config: 存储配置（base_url / api_key / feed_url / 重试参数）
            client: 可注入的 httpx.AsyncClient（测试用 MockTransport）
        """
        self._config = config
        self._base_url = config.base_url.rstrip("/")
        self._feed_url = config.feed_url.rstrip("/")
        key = config.api_key.get_secret_value()
        headers = {"Accept": "application/json"}
        if key:
            headers["apikey"] = key
            headers["Authorization"] = f"Bearer {key}"
        self._client = client or httpx.AsyncClient(timeout=config.timeout_s)
        self._client.headers.update(headers)

    async def fetch_tasks(
        self,
        kind: TaskKind,
        resident_ids: Sequence[int] | None = None,
    ) -> list[ScheduledTask]:
        """批量加载某类任务

        Raises:
            StoreUnavailableError: 后端不可达或 5xx
            StoreError: 其他 HTTP 错误或返回数据格式错误
        """
        table = get_policy(kind).table
        params = {
            "select": _SELECT_JOINED,
            "order": "scheduled_date.asc,scheduled_time.asc",
        }
        if resident_ids is not None:
            if not resident_ids:
                return []
            params["resident_id"] = f"in.({','.join(str(i) for i in resident_ids)})"

        url = f"{self._base_url}/{table}"
        response = await self._request("GET", url, params=params)
        try:
            rows = response.json()
            return [ScheduledTask.model_validate({**row, "kind": kind}) for row in rows]
        except (ValueError, TypeError) as e:
            raise StoreError(f"invalid task rows from {url}: {e}", recoverable=False) from e

    async def update_task(self, kind: TaskKind, task_id: int, patch: TaskPatch) -> None:
        """部分更新，瞬时失败按指数退避重试

        PATCH 按 task_id 定位且只写显式字段，重发同一 patch 结果相同。

        Raises:
            RowNotFoundError: 没有行被更新
            StoreUnavailableError: 重试耗尽仍不可达
            StoreError: 非瞬时 HTTP 错误
        """
        fields = patch.to_json_row()
        if not fields:
            return
        url = f"{self._base_url}/{get_policy(kind).table}"
        params = {"task_id": f"eq.{task_id}"}
        headers = {"Prefer": "return=representation"}

        for attempt in range(1, self._config.max_retries + 1):
            try:
                response = await self._request(
                    "PATCH", url, params=params, json=fields, headers=headers
                )
            except StoreUnavailableError:
                if attempt >= self._config.max_retries:
                    raise
                delay = self._config.retry_backoff_s * (2 ** (attempt - 1))
                log.warning(
                    "task_write_retry",
                    kind=kind,
                    task_id=task_id,
                    attempt=attempt,
                    delay_s=delay,
                )
                await asyncio.sleep(delay)
                continue

            if not response.json():
                raise RowNotFoundError(task_id)
            return

    async def subscribe(self, kind: TaskKind) -> RestFeedSubscription:
        """订阅 SSE 变更推送"""
        return RestFeedSubscription(self._client, f"{self._feed_url}/{kind.value}", kind)

    async def ping(self) -> None:
        """连通性检查"""
        await self._request("GET", f"{self._base_url}/", params={})

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except _TRANSIENT_ERROR_TYPES as e:
            log.error(
                "store_request_failed",
                method=method,
                url=url,
                error_type=type(e).__name__,
            )
            raise StoreUnavailableError(url, e) from e

        if response.status_code >= 500:
            raise StoreUnavailableError(
                url, RuntimeError(f"HTTP {response.status_code}")
            )
        if response.status_code >= 400:
            raise StoreError(
                f"{method} {url} failed: HTTP {response.status_code} {response.text[:200]}",
                recoverable=False,
            )
        return response
