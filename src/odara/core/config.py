"""配置模块 -- 可通过环境变量覆盖

包含数据库路径、后端存储模式、写入重试、时区、SSE 心跳等可配置项。
"""

import os
from datetime import datetime
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("ODARA_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "ODARA_DB_PATH",
        str(_get_base_dir() / "sqlite" / "odara.db"),
    )


def get_timezone() -> ZoneInfo:
    """获取机构所在时区（执行日期/时间按本地时间记录）"""
    return ZoneInfo(os.environ.get("ODARA_TIMEZONE", "America/Sao_Paulo"))


def now_local() -> datetime:
    """当前本地时间，作为引擎的默认时钟"""
    return datetime.now(get_timezone())


def get_server_address() -> tuple[str, int]:
    """网关监听地址"""
    return os.environ.get("ODARA_HOST", "127.0.0.1"), _int_env("ODARA_PORT", 8000)


def _int_env(name: str, default: int) -> int:
    val = os.environ.get(name)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        log.warning("invalid_int_config", env_var=name, value=val, fallback=default)
        return default


# SSE 心跳间隔（秒）
SSE_HEARTBEAT_INTERVAL: int = _int_env("ODARA_SSE_HEARTBEAT_INTERVAL", 15)

# 每个推送订阅者的队列上限
FEED_QUEUE_MAXSIZE: int = _int_env("ODARA_FEED_QUEUE_MAXSIZE", 100)

# 每个页面保留的提示条数
NOTIFICATION_HISTORY: int = _int_env("ODARA_NOTIFICATION_HISTORY", 50)

# 推送流被服务端结束或连接中断后，重新订阅前的等待（秒）
FEED_RESYNC_DELAY_S: int = _int_env("ODARA_FEED_RESYNC_DELAY_S", 2)


class StoreConfig(BaseModel):
    """后端存储配置 -- 从环境变量加载

    环境变量:
        ODARA_STORE_MODE: sqlite（本地）/ rest（托管 REST 存储）
        ODARA_STORE_URL: REST 基础 URL，例如 https://<project>/rest/v1
        ODARA_STORE_KEY: REST 访问密钥
        ODARA_FEED_URL: 变更推送 SSE 基础 URL
        ODARA_STORE_TIMEOUT_S: 请求超时（秒，默认 10）
        ODARA_STORE_MAX_RETRIES: 部分更新的最大尝试次数（默认 3）
        ODARA_STORE_RETRY_BACKOFF_S: 重试退避基数（秒，默认 0.5）
    """

    mode: Literal["sqlite", "rest"] = Field(default="sqlite", description="存储模式")
    db_path: str = Field(default_factory=get_db_path, description="SQLite 数据库路径")
    base_url: str = Field(default="http://localhost:54321/rest/v1", description="REST 基础 URL")
    api_key: SecretStr = Field(default=SecretStr(""), description="REST 访问密钥")
    feed_url: str = Field(default="http://localhost:8000/api/feed", description="SSE 推送 URL")
    timeout_s: float = Field(default=10.0, gt=0, description="请求超时（秒）")
    max_retries: int = Field(default=3, ge=1, description="部分更新的最大尝试次数")
    retry_backoff_s: float = Field(default=0.5, ge=0, description="重试退避基数（秒）")


def load_store_config() -> StoreConfig:
    """从环境变量加载存储配置

    非法数值记录 warning 并使用默认值，不阻塞启动。
    """
    kwargs: dict = {}

    if val := os.environ.get("ODARA_STORE_MODE"):
        kwargs["mode"] = val

    if val := os.environ.get("ODARA_STORE_URL"):
        kwargs["base_url"] = val

    if val := os.environ.get("ODARA_STORE_KEY"):
        kwargs["api_key"] = SecretStr(val)

    if val := os.environ.get("ODARA_FEED_URL"):
        kwargs["feed_url"] = val

    for env_var, field, cast in (
        ("ODARA_STORE_TIMEOUT_S", "timeout_s", float),
        ("ODARA_STORE_MAX_RETRIES", "max_retries", int),
        ("ODARA_STORE_RETRY_BACKOFF_S", "retry_backoff_s", float),
    ):
        if val := os.environ.get(env_var):
            try:
                kwargs[field] = cast(val)
            except ValueError:
                log.warning(
                    "invalid_store_config",
                    env_var=env_var,
                    value=val,
                )

    return StoreConfig(**kwargs)
