from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog
from structlog.typing import EventDict, Processor

from video_digest.config import AppSettings

LOG_FILE_NAME = "video-digest.log"
TELEMETRY_LOG_FILE_NAME = "video-digest-telemetry.log"

ROOT_LOGGER_NAME = "video_digest"
TELEMETRY_LOGGER_NAME = "video_digest.telemetry"

# Per-request chatter from the upstream clients; failures still surface as warnings.
_LIBRARY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "youtube_transcript_api")


def configure_application_logging(settings: AppSettings) -> Path:
    """Route `video_digest.*` records to the console and a JSON lines file.

    Telemetry events get their own file so request traces stay greppable
    apart from diagnostic logging. Safe to call repeatedly; handlers are
    replaced, not stacked.
    """
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = settings.log_dir / LOG_FILE_NAME
    telemetry_log_file = settings.log_dir / TELEMETRY_LOG_FILE_NAME

    _configure_structlog()

    console_stream = sys.stdout
    _install_handlers(
        logging.getLogger(ROOT_LOGGER_NAME),
        level=logging.DEBUG,
        handlers=[
            _with_formatter(
                logging.StreamHandler(stream=console_stream),
                level=_resolve_log_level(settings.log_level),
                formatter=_build_console_formatter(
                    enable_colors=_stream_supports_color(console_stream)
                ),
            ),
            _with_formatter(
                logging.FileHandler(log_file, encoding="utf-8"),
                level=logging.DEBUG,
                formatter=_build_file_formatter(),
            ),
        ],
    )
    _install_handlers(
        logging.getLogger(TELEMETRY_LOGGER_NAME),
        level=logging.INFO,
        handlers=[
            _with_formatter(
                logging.FileHandler(telemetry_log_file, encoding="utf-8"),
                level=logging.INFO,
                formatter=_build_file_formatter(),
            )
        ],
    )
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(ROOT_LOGGER_NAME).info(
        "logging configured console_level=%s path=%s telemetry_path=%s",
        settings.log_level.upper(),
        log_file,
        telemetry_log_file,
    )
    return log_file


def _resolve_log_level(raw_level: str) -> int:
    resolved = getattr(logging, raw_level.strip().upper(), None)
    return resolved if isinstance(resolved, int) else logging.INFO


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _install_handlers(
    logger: logging.Logger, *, level: int, handlers: list[logging.Handler]
) -> None:
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)


def _with_formatter(
    handler: logging.Handler, *, level: int, formatter: logging.Formatter
) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _build_console_formatter(*, enable_colors: bool) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_pre_chain(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(colors=enable_colors),
        ],
    )


def _build_file_formatter() -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_pre_chain(),
        processors=[
            _add_source_location,
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True, ensure_ascii=False),
        ],
    )


def _shared_pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _add_component,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
    ]


def _add_component(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    # "video_digest.transcript" -> "transcript"; third-party loggers keep their own name.
    logger_name = event_dict.get("logger")
    if isinstance(logger_name, str):
        prefix = f"{ROOT_LOGGER_NAME}."
        event_dict["component"] = (
            logger_name[len(prefix) :] if logger_name.startswith(prefix) else logger_name
        )
    return event_dict


def _add_source_location(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        event_dict["module"] = record.module
        event_dict["lineno"] = record.lineno
        event_dict["task_name"] = getattr(record, "taskName", None)
    return event_dict


def _stream_supports_color(stream: object) -> bool:
    isatty = getattr(stream, "isatty", None)
    if not callable(isatty):
        return False
    try:
        return bool(isatty())
    except ValueError:
        # Closed streams raise on isatty().
        return False
