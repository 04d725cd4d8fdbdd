"""Logging for csi-sanity runs.

structlog renders over standard logging. While a scenario runs, its name and
the run suffix are bound as context variables, so every structured event
emitted underneath (teardown warnings included) names the scenario and run
that produced it.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import structlog

SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]


def _handler(log_file: str | Path | None) -> logging.Handler:
    if log_file:
        return logging.FileHandler(str(log_file))
    return logging.StreamHandler(sys.stderr)


def configure_logging(
    level: str = "warning",
    log_file: str | Path | None = None,
    json_output: bool = False,
) -> None:
    """Route harness logs to stderr or a file.

    Args:
        level: Log level (debug, info, warning, error)
        log_file: Write here instead of stderr
        json_output: Render one JSON object per event
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(level=log_level, handlers=[_handler(log_file)], format="%(message)s", force=True)

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[*SHARED_PROCESSORS, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def scenario_context(scenario: str, run_suffix: str) -> Iterator[None]:
    """Bind the running scenario and run suffix to every event logged inside."""
    with structlog.contextvars.bound_contextvars(scenario=scenario, run_suffix=run_suffix):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
