"""
JSON logs for the sentencify services, shipped to Loki via Promtail.

Every line carries ts, level, module, action and msg, plus whatever context
fields the call site passes (conversation_id, provider, operation, ...).
Third-party records are wrapped in the same envelope with action="log".

    from sentencify.utils.logging import log, get_logger

    logger = get_logger()
    log.info(logger, "llm.invoker", "call_start", "Calling provider",
             provider="claude", model=model)
    log.error(logger, "llm.chat", "send_failed", "Chat send failed",
              error=str(e), error_type=type(e).__name__,
              conversation_id=conversation_id)

Actions end in one of: _start, _done, _failed, _skipped, _fallback.

Useful LogQL:
    {project="sentencify"} | json | level="ERROR"
    {project="sentencify"} | json | conversation_id="<id>"
    {project="sentencify"} | json | module="llm.double_check" action=~".*_fallback"
    {project="sentencify"} | json | module="llm.retry" action="retry_scheduled"

Environment: LOG_FORMAT=json|pretty, LOG_LEVEL=DEBUG|INFO|WARNING|ERROR.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional

ENVELOPE = ("ts", "level", "module", "action", "msg")

# Libraries that flood DEBUG/INFO with per-request noise
NOISY_LOGGERS = (
    "langchain", "langchain_core", "langchain_openai", "openai",
    "httpx", "httpcore",
    "sqlalchemy", "aiosqlite",
    "asyncio",
)


def _timestamp(record: logging.LogRecord) -> str:
    created = datetime.fromtimestamp(record.created, tz=timezone.utc)
    return created.strftime("%Y-%m-%dT%H:%M:%S.") + f"{created.microsecond // 1000:03d}Z"


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, or a single readable line when ``pretty``."""

    def __init__(self, pretty: bool = False):
        super().__init__()
        self.pretty = pretty

    def fields(self, record: logging.LogRecord) -> dict:
        structured = getattr(record, "structured", False)
        data = {
            "ts": _timestamp(record),
            "level": record.levelname,
            "module": record.sl_module if structured else record.name,
            "action": record.sl_action if structured else "log",
            "msg": record.getMessage(),
        }
        if structured:
            data.update((k, v) for k, v in record.sl_fields.items() if v is not None)
        return data

    def format(self, record: logging.LogRecord) -> str:
        data = self.fields(record)
        if not self.pretty:
            return json.dumps(data, default=str, separators=(",", ":"))
        if not getattr(record, "structured", False):
            return data["msg"]
        return self._line(data)

    @staticmethod
    def _line(data: dict) -> str:
        context = " ".join(f"{k}={v}" for k, v in data.items() if k not in ENVELOPE)
        line = "{} {} [{:<16}] {}: {}".format(
            data["ts"][11:23], data["level"][0], data["module"].upper()[:16],
            data["action"], data["msg"],
        )
        return f"{line} | {context}" if context else line


class StructuredLogger:
    """Level helpers taking (logger, module, action, msg, **context)."""

    @staticmethod
    def emit(logger: logging.Logger, level: int, module: str, action: str, msg: str, **fields) -> None:
        if not logger.isEnabledFor(level):
            return
        logger.log(level, msg, extra={
            "structured": True,
            "sl_module": module,
            "sl_action": action,
            "sl_fields": fields,
        })

    def debug(self, logger: logging.Logger, module: str, action: str, msg: str, **fields) -> None:
        self.emit(logger, logging.DEBUG, module, action, msg, **fields)

    def info(self, logger: logging.Logger, module: str, action: str, msg: str, **fields) -> None:
        self.emit(logger, logging.INFO, module, action, msg, **fields)

    def warning(self, logger: logging.Logger, module: str, action: str, msg: str, **fields) -> None:
        self.emit(logger, logging.WARNING, module, action, msg, **fields)

    def error(
        self,
        logger: logging.Logger,
        module: str,
        action: str,
        msg: str,
        error: Optional[str] = None,
        error_type: Optional[str] = None,
        **fields,
    ) -> None:
        """ERROR record; ``error``/``error_type`` come first in the context."""
        self.emit(logger, logging.ERROR, module, action, msg,
                  error=error, error_type=error_type, **fields)


log = StructuredLogger()


def get_logger(name: str = "sentencify") -> logging.Logger:
    return logging.getLogger(name)


def configure_logging() -> None:
    """Install the structured handler on the root logger. Call once at startup."""
    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter(pretty=os.environ.get("LOG_FORMAT") == "pretty"))
    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
