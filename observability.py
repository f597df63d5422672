import sys
import time
import uuid
import logging
from datetime import datetime, timezone
from typing import Optional

from google.cloud import logging as cloud_logging

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
CLOUD_LOG_NAME = "proxy-requests"


def configure_logging(level=logging.INFO):
    """Configure stdout logging for the serverless runtime."""
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stdout)


def redact(secret: Optional[str], keep: int = 4) -> str:
    """Short prefix of a secret, safe for logs."""
    if not secret:
        return "null"
    return f"{secret[:keep]}..."


class RequestRecord:
    """Per-invocation identifier, arrival time and phase timings."""

    def __init__(self, handler_name: str):
        self.handler_name = handler_name
        self.request_id = str(uuid.uuid4())
        self.started_at = datetime.now(timezone.utc).isoformat()
        self.phases = {}
        self.error = None
        self._start = time.monotonic()
        self._last = self._start

    def mark(self, phase: str) -> float:
        """Record milliseconds spent since the previous checkpoint."""
        now = time.monotonic()
        elapsed = round((now - self._last) * 1000, 2)
        self.phases[phase] = elapsed
        self._last = now
        return elapsed

    def elapsed_ms(self) -> float:
        return round((time.monotonic() - self._start) * 1000, 2)

    def to_debug(self) -> dict:
        return {
            "request_id": self.request_id,
            "timestamp": self.started_at,
            "total_ms": self.elapsed_ms(),
            "phases": dict(self.phases),
        }


class Observability:
    """Logger and timer handed to every handler."""

    def __init__(self, logger: Optional[logging.Logger] = None, cloud_logging_enabled: bool = False):
        self.logger = logger or logging.getLogger("proxy")
        self.cloud_logger = None

        if cloud_logging_enabled:
            try:
                self.cloud_logger = cloud_logging.Client().logger(CLOUD_LOG_NAME)
                self.logger.info("Google Cloud Logging initialized successfully")
            except Exception as e:
                self.logger.warning(f"Could not initialize Google Cloud Logging: {e}")

    def start_request(self, handler_name: str) -> RequestRecord:
        record = RequestRecord(handler_name)
        self.log(record, logging.INFO, "Request started")
        return record

    def log(self, record: RequestRecord, level: int, message: str, **fields):
        parts = [f"[{record.handler_name} {record.request_id[:8]}] {message}"]
        if fields:
            parts.append(" ".join(f"{key}={value}" for key, value in fields.items()))
        self.logger.log(level, " | ".join(parts))

    def fail(self, record: RequestRecord, error: Exception, **fields):
        record.error = {"name": type(error).__name__, "message": str(error)}
        self.log(record, logging.ERROR, f"Request failed: {error}", **fields)

    def finish(self, record: RequestRecord, status: int):
        total = record.elapsed_ms()
        self.log(record, logging.INFO, "Request finished", status=status, total_ms=total)

        if self.cloud_logger is None:
            return
        try:
            self.cloud_logger.log_struct({
                "handler": record.handler_name,
                "request_id": record.request_id,
                "started_at": record.started_at,
                "status": status,
                "total_ms": total,
                "phases": record.phases,
                "error": record.error,
            })
        except Exception as e:
            self.logger.error(f"Error writing request record to Cloud Logging: {e}")
