"""Structured logging for the assistant service.

Every event is rendered twice through stdlib handlers:

- JSON lines in ``<log_dir>/current.jsonl`` (INFO and above, rotated)
- stderr, pretty or JSON, at the configured level

Events carry a UTC timestamp, the emitting component (last segment of the
logger name) and whatever request fields were bound with
``request_log_context`` (trace id, tenant, project).
"""

import logging
import logging.handlers
import pathlib
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

LOG_FILE_NAME = "current.jsonl"
LOG_FILE_MAX_BYTES = 100 * 1024 * 1024
LOG_FILE_BACKUPS = 5

_QUIET_LOGGERS = ("httpx", "httpcore", "anthropic", "uvicorn.access")


def _get_log_level() -> str:
    # Read from the environment directly; settings import telemetry.
    from project_assistant.config.bootstrap import get_bootstrap_log_level  # noqa: PLC0415

    return get_bootstrap_log_level()


def _get_log_format() -> str:
    from project_assistant.config.bootstrap import get_bootstrap_log_format  # noqa: PLC0415

    return get_bootstrap_log_format()


def _get_log_dir() -> pathlib.Path:
    from project_assistant.config.bootstrap import get_bootstrap_log_dir  # noqa: PLC0415

    return get_bootstrap_log_dir()


def _add_component(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Derive ``component`` from the logger name unless the caller set one.

    ``project_assistant.tools.executor`` becomes ``executor``. Works for both
    structlog events (name already in ``event_dict``) and stdlib records from
    third-party libraries.
    """
    if "component" in event_dict:
        return event_dict
    name = event_dict.get("logger") or getattr(logger, "name", None) or ""
    event_dict["component"] = name.rsplit(".", 1)[-1] or "unknown"
    return event_dict


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _add_component,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
    ]


def _formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=_shared_processors(),
    )


def _file_handler(log_dir: pathlib.Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        filename=str(log_dir / LOG_FILE_NAME),
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    handler.setLevel(logging.INFO)
    return handler


def _console_handler(log_format: str, level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    renderer: Any
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    handler.setFormatter(_formatter(renderer))
    handler.setLevel(level)
    return handler


def configure_logging() -> None:
    """Install the file and console handlers and configure structlog.

    Safe to call again; existing root handlers are replaced.
    """
    level = getattr(logging, _get_log_level(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    file_error: OSError | None = None
    try:
        root_logger.addHandler(_file_handler(_get_log_dir()))
    except OSError as e:
        file_error = e
    root_logger.addHandler(_console_handler(_get_log_format(), level))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if file_error is not None:
        # Console output only, e.g. on a read-only filesystem
        structlog.get_logger(__name__).warning("log_file_unavailable", error=str(file_error))


@contextmanager
def request_log_context(**fields: Any) -> Iterator[None]:
    """Attach ``fields`` to every event logged inside the block.

    Example:
        >>> with request_log_context(trace_id="t-1", tenant_id="T1", project_id="P1"):
        ...     log.info("reply_ready")
    """
    bound = {key: value for key, value in fields.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def get_logger(name: str) -> Any:  # structlog.stdlib.BoundLogger
    """Return a structlog logger, configuring logging on first use.

    Args:
        name: Logger name, normally the calling module's ``__name__``.
    """
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(name)
