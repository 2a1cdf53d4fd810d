"""structlog 配置模块

dev 模式：pretty print 可读输出
json 模式：结构化 JSON 输出

备注是住户的临床自由文本，默认不进入日志，只记录长度；
ODARA_LOG_ANNOTATIONS=1 时原样输出（本地排查用）。
"""

import logging
import os

import structlog

# 这些字段保存操作员输入的备注原文
ANNOTATION_FIELDS = frozenset({"annotation", "text", "initial_text"})


def redact_annotations(
    logger: object, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """把备注原文替换为 <N chars>"""
    for key in ANNOTATION_FIELDS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str):
            event_dict[key] = f"<{len(value)} chars>"
    return event_dict


def setup_logging() -> None:
    """初始化 structlog 配置

    根据 ODARA_LOG_FORMAT 环境变量选择渲染模式：
    - "json": 结构化 JSON 输出（生产环境）
    - "dev" (默认): pretty print 可读输出
    日志级别由 ODARA_LOG_LEVEL 控制（默认 INFO）。
    """
    log_format = os.environ.get("ODARA_LOG_FORMAT", "dev")
    log_level = os.environ.get("ODARA_LOG_LEVEL", "INFO")
    show_annotations = os.environ.get("ODARA_LOG_ANNOTATIONS", "") == "1"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if not show_annotations:
        shared_processors.append(redact_annotations)

    if log_format == "json":
        # 备注里有葡萄牙语字符，保持原样输出
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
