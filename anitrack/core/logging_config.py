"""
Centralized logging configuration with request_id and job_id context support using loguru.

Every module logs through the standard ``logging.getLogger(__name__)``; this
module intercepts those calls, routes them into loguru, and emits simplified
JSON to stderr. A bounded in-memory buffer keeps the most recent records so
they can be inspected without a log shipper.
"""

import json
import logging
import sys
import traceback
from collections import deque
from contextvars import ContextVar
from types import FrameType
from typing import Any, Deque, Dict, List, Optional

from loguru import logger

from anitrack.core.config import settings

# Context variables for request_id and job_id
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
job_id_var: ContextVar[str] = ContextVar("job_id", default="-")

_recent_logs: Deque[Dict[str, Any]] = deque(maxlen=settings.RECENT_LOGS_MAX_ENTRIES)


class InterceptHandler(logging.Handler):
    """
    Handler that intercepts standard logging calls and redirects them to loguru.
    """

    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where the logging call originated
        frame: Optional[FrameType] = sys._getframe(settings.LOGGING_FRAME_DEPTH)
        depth: int = settings.LOGGING_FRAME_DEPTH

        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def context_filter(record):
    """
    Filter that adds request_id and job_id from contextvars to log records.
    """
    request_id = request_id_var.get()
    if request_id and request_id != "-":
        record["extra"]["request_id"] = request_id

    job_id = job_id_var.get()
    if job_id and job_id != "-":
        record["extra"]["job_id"] = job_id

    return record


def build_simplified_json_record(record) -> Dict[str, Any]:
    """
    Build a simplified JSON log record from a loguru record.

    Only includes timestamp, level, message, request_id/job_id (if present)
    and exception details (if present).
    """
    log_record = {
        "timestamp": record["time"].strftime("%Y-%m-%d %H:%M:%S"),
        "level": record["level"].name,
        "message": record["message"],
    }

    if "request_id" in record["extra"]:
        log_record["request_id"] = record["extra"]["request_id"]

    if "job_id" in record["extra"]:
        log_record["job_id"] = record["extra"]["job_id"]

    if record["exception"]:
        traceback_text = None
        if record["exception"].traceback:
            try:
                traceback_text = "".join(
                    traceback.format_exception(
                        record["exception"].type,
                        record["exception"].value,
                        record["exception"].traceback,
                    )
                ).strip()
            except Exception:
                traceback_text = str(record["exception"].traceback)

        log_record["exception"] = {
            "type": (
                record["exception"].type.__name__ if record["exception"].type else None
            ),
            "value": (
                str(record["exception"].value) if record["exception"].value else None
            ),
            "traceback": traceback_text,
        }
    else:
        log_record["exception"] = None

    return log_record


def custom_json_sink(message):
    """Sink that formats logs as simplified JSON on stderr."""
    log_record = build_simplified_json_record(message.record)
    sys.stderr.write(json.dumps(log_record) + "\n")


def recent_logs_sink(message):
    """Sink that keeps the latest records in the bounded in-memory buffer."""
    _recent_logs.append(build_simplified_json_record(message.record))


def configure_logging():
    """
    Configure logging for the application using loguru.

    This function:
    1. Removes default loguru handler
    2. Adds the JSON console sink and the recent-logs buffer sink
    3. Injects request_id and job_id from contextvars
    4. Intercepts all standard logging calls to redirect to loguru
    """
    logger.remove()

    log_level = settings.LOG_LEVEL

    logger.add(
        custom_json_sink,
        level=log_level,
        backtrace=True,
        diagnose=True,
        filter=context_filter,
    )
    logger.add(recent_logs_sink, level=log_level, filter=context_filter)

    # Intercept standard logging
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logger.info("Logging configured successfully with loguru")


def get_recent_logs(count: int = 50) -> List[Dict[str, Any]]:
    """Return up to ``count`` of the most recent log records, oldest first."""
    if count <= 0:
        return []
    return list(_recent_logs)[-count:]


def clear_recent_logs():
    _recent_logs.clear()


def set_request_id(request_id: str):
    """
    Set the request_id for the current context.

    Called at the beginning of each request (in middleware); every log
    emitted while handling the request carries it.
    """
    request_id_var.set(request_id)


def set_job_id(job_id: str):
    """
    Set the job_id for the current context.

    Called when a background job starts running.
    """
    job_id_var.set(job_id)


def clear_request_id():
    request_id_var.set("-")


def clear_job_id():
    job_id_var.set("-")


def get_request_id() -> str:
    """Get the current request_id from context."""
    return request_id_var.get()


def get_job_id() -> str:
    """Get the current job_id from context."""
    return job_id_var.get()
