import logging
import sys
import structlog

LOGGER_NAMESPACE = "relnotes"

def configure_logging(log_level_str: str = "warning", json_logs: bool = False):
    """
    Routes structlog through stdlib logging on the ``relnotes`` logger.

    Console output is colourised when stderr is a terminal; ``json_logs``
    switches to one JSON object per line for build-agent log collectors.
    """
    log_level = getattr(logging, log_level_str.upper(), logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if json_logs:
        renderer = structlog.processors.JSONRenderer()
        pre_render = [structlog.processors.format_exc_info]
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
        pre_render = []

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *pre_render,
            renderer,
        ],
        foreign_pre_chain=[structlog.stdlib.add_log_level],
    )

    # stdout carries the rendered notes, so logs always go to stderr.
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    package_logger = logging.getLogger(LOGGER_NAMESPACE)
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.setLevel(log_level)
    package_logger.propagate = False

    structlog.get_logger(__name__).info("logging_configured", level=log_level_str, json_logs=json_logs)
