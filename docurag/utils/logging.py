"""structlog configuration for the CLI and any embedding application.

Every module logs through ``structlog.get_logger(logger_name=__name__)`` with
snake_case event names.  :func:`configure_logging` routes those events, and
standard-library records from chromadb, httpx and openai, to stderr through
one processor chain.  Output is a console layout in development and one JSON
object per line when ``app_env`` is ``"production"``.

Values under keys that look like credentials are masked before rendering.
"""

import logging
import os
import sys

import structlog

# Third-party loggers that are chatty at INFO.
_LIBRARY_LOGGERS = ("chromadb", "httpx", "httpcore", "openai")

_SECRET_SUFFIXES = ("api_key", "token", "password")


def _mask_secrets(_logger, _method: str, event_dict: dict) -> dict:
    for key, value in event_dict.items():
        if value and key.lower().endswith(_SECRET_SUFFIXES):
            event_dict[key] = "***"
    return event_dict


def _rename_logger_name(_logger, _method: str, event_dict: dict) -> dict:
    # get_logger(logger_name=...) binds the module path under logger_name;
    # stdlib records carry it as logger.
    name = event_dict.pop("logger_name", None)
    if name is not None:
        event_dict.setdefault("logger", name)
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    app_env: str | None = None,
) -> structlog.BoundLogger:
    """Install the docurag processor chain and the stdlib bridge.

    ``app_env`` falls back to the ``APP_ENV`` variable.  Library loggers
    stay at WARNING unless ``log_level`` is DEBUG.
    """
    level = logging.getLevelName(log_level.upper())
    env = app_env or os.environ.get("APP_ENV", "development")
    use_json = json_output or env == "production"

    shared: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _rename_logger_name,
        _mask_secrets,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        shared.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[structlog.stdlib.add_logger_name, *shared],
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    library_level = level if level == logging.DEBUG else max(level, logging.WARNING)
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    return structlog.get_logger(logger_name="docurag")
