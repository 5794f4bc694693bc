"""Logging configuration for the template agent.

Console/file logging with an optional JSON formatter, plus a context manager
that wraps each workflow stage with start/finish records and timings.
"""

import json
import logging
import sys
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from template_agent.exceptions import OperationCancelled

# Attributes present on every LogRecord; anything else came in via ``extra``
_RESERVED_ATTRS = set(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """Render log records as one JSON object per line.

    Keys: timestamp (UTC ISO 8601), level, logger, message, optional
    exception, and ``extra`` holding any context passed via ``extra={...}``.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_fields = {
            k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, ensure_ascii=False, default=str)


def configure_logging(
    level: Union[str, int] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    json_format: bool = False,
    console_output: bool = True,
) -> None:
    """Configure root logging for CLI runs.

    Args:
        level: Logging level name or number (default: INFO)
        log_file: Optional file to log to in addition to the console
        json_format: Use JsonFormatter instead of the plain text format
        console_output: Log to stderr (default: True)

    Example:
        >>> configure_logging(level="DEBUG", log_file="logs/enrich.log")
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if json_format:
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    if console_output:
        # stderr keeps stdout free for tqdm status output
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Request-level chatter from the HTTP stack is rarely useful
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logging.info(
        f"Logging configured: level={logging.getLevelName(level)}, json_format={json_format}"
    )


@contextmanager
def pipeline_stage_logger(stage_name: str, **context):
    """Log entry, exit and duration of a workflow stage.

    A cancellation is logged as ``cancelled`` rather than as a failure; in
    both cases the exception is re-raised.

    Args:
        stage_name: Stage name, used as the logger suffix
        **context: Extra fields attached to every record of the stage

    Example:
        >>> with pipeline_stage_logger("wlo_enrichment", kind="material") as log:
        ...     log.info("Processing 7 resources")
    """
    logger = logging.getLogger(f"template_agent.{stage_name}")
    start_time = datetime.now(UTC)

    def _duration_ms() -> float:
        return round((datetime.now(UTC) - start_time).total_seconds() * 1000, 2)

    logger.info(
        f"Starting stage: {stage_name}",
        extra={"stage": stage_name, "status": "started", **context},
    )

    try:
        yield logger
    except OperationCancelled:
        logger.warning(
            f"Cancelled stage: {stage_name}",
            extra={
                "stage": stage_name,
                "status": "cancelled",
                "duration_ms": _duration_ms(),
                **context,
            },
        )
        raise
    except Exception as e:
        logger.error(
            f"Failed stage: {stage_name}",
            extra={
                "stage": stage_name,
                "status": "failed",
                "duration_ms": _duration_ms(),
                "error": str(e)[:200],
                **context,
            },
            exc_info=True,
        )
        raise

    logger.info(
        f"Completed stage: {stage_name}",
        extra={
            "stage": stage_name,
            "status": "completed",
            "duration_ms": _duration_ms(),
            **context,
        },
    )
