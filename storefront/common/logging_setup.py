import logging
import re
import sys
from logging.handlers import QueueHandler, QueueListener
from queue import Queue
from typing import Any, Dict, Optional
import orjson
from storefront.common.constants import REDACT_FIELDS, request_id_ctx
from storefront.config.admin_config import admin_config

ENV = (admin_config.ENV or "dev").lower()
SERVICE = admin_config.SERVICE_NAME

# key=value or "key": "value" pairs whose value must not reach the log sink
_SECRET_KEYS = ("password", "secret", "token", "authorization", "api_key", "remark1")
_QUOTED_SECRET = re.compile(rf'("(?:{"|".join(_SECRET_KEYS)})"\s*:\s*")[^"]+(")', re.IGNORECASE)
_INLINE_SECRET = re.compile(rf'((?:{"|".join(_SECRET_KEYS)})\s*[=:]\s*)[\w\-./]+', re.IGNORECASE)

# attributes every LogRecord carries; anything else came in through `extra`
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def scrub(text: str) -> str:
    text = _QUOTED_SECRET.sub(r"\1[REDACTED]\2", text)
    return _INLINE_SECRET.sub(r"\1[REDACTED]", text)


def mask(value: Any) -> str:
    value = str(value)
    if len(value) > 12:
        return f"{value[:4]}...{value[-4:]}"
    return f"{value[:2]}..."


def record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    extras = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS and not k.startswith("_")}
    for field in REDACT_FIELDS:
        if extras.get(field) is not None:
            extras[field] = mask(extras[field])
    return extras


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers outside dev."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "event": scrub(record.getMessage()),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
            "env": ENV,
            "service": SERVICE,
        }
        payload.update(record_extras(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode()


class DevFormatter(logging.Formatter):
    """Readable console line with the structured extras appended."""

    def __init__(self):
        super().__init__("%(asctime)s [%(levelname)8s] %(name)s:%(funcName)s:%(lineno)d | %(message)s",
                         datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = record_extras(record)
        if extras:
            line = f"{line} {orjson.dumps(extras, default=str).decode()}"
        return line


_listener: Optional[QueueListener] = None


def setup_logging() -> logging.Logger:
    """Route the root logger through a queue so request handlers never block on stdout."""
    global _listener
    if _listener is not None:
        return logging.getLogger("storefront.app")

    sink = logging.StreamHandler(sys.stdout)
    sink.setFormatter(DevFormatter() if ENV == "dev" else JSONFormatter())

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    q: Queue = Queue(-1)
    root.addHandler(QueueHandler(q))
    root.setLevel(logging.DEBUG if ENV == "dev" else logging.INFO)

    _listener = QueueListener(q, sink, respect_handler_level=True)
    _listener.start()

    for noisy in ("sqlalchemy.engine", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO if ENV == "dev" else logging.WARNING)
    return logging.getLogger("storefront.app")


def stop_logging():
    global _listener
    if _listener is not None:
        _listener.stop()
        _listener = None


class ContextLogger:
    """Logger that stamps the current request id onto every record."""

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event: str, *args, extra: Optional[Dict[str, Any]] = None, **kwargs):
        ctx = {}
        rid = request_id_ctx.get()
        if rid:
            ctx["request_id"] = rid
        ctx.update(extra or {})
        kwargs.setdefault("stacklevel", 3)
        self._logger.log(level, event, *args, extra=ctx, **kwargs)

    def debug(self, event: str, *args, **kwargs):
        self._log(logging.DEBUG, event, *args, **kwargs)

    def info(self, event: str, *args, **kwargs):
        self._log(logging.INFO, event, *args, **kwargs)

    def warning(self, event: str, *args, **kwargs):
        self._log(logging.WARNING, event, *args, **kwargs)

    def error(self, event: str, *args, **kwargs):
        self._log(logging.ERROR, event, *args, **kwargs)

    def exception(self, event: str, *args, **kwargs):
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, event, *args, **kwargs)


def get_logger(name: str = "storefront.app") -> ContextLogger:
    return ContextLogger(name)
