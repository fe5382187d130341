"""structlog configuration shared by every stage.

Application events (``structlog.get_logger()``) and the driver loggers
(``neo4j``, ``httpx``, ``sqlalchemy``) go through one stdlib handler on
stderr.  Stdout is left to the ``[stage]`` console summaries.
"""

import logging
import sys

import structlog

# Chatty at INFO; capped to WARNING unless the root level is stricter
DRIVER_LOGGERS = ("httpx", "httpcore", "neo4j", "sqlalchemy.engine")


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def configure_logging(json_output: bool = True, log_level: str = "INFO") -> None:
    """Route structlog and stdlib logging through a single stderr handler.

    Args:
        json_output: Render JSON lines (CI, production) instead of
            structlog's console renderer.
        log_level: Root level name, e.g. ``"DEBUG"`` or ``"WARNING"``.
    """
    pre_chain = _pre_chain()
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
    for name in DRIVER_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def bind_stage_context(stage: str, environment: str | None = None) -> None:
    """Attach the running stage (and environment, once known) to every log line."""
    structlog.contextvars.clear_contextvars()
    fields = {"stage": stage}
    if environment is not None:
        fields["environment"] = environment
    structlog.contextvars.bind_contextvars(**fields)
