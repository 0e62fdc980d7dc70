"""
Structured logging for the recall engine.
Embedding calls, searches, cache traffic and reference-data syncs all log through here.
"""

import logging
from typing import Any, Dict, List

class StructuredLogger:
    """Structured logger for retrieval, cache and sync operations."""

    def __init__(self, name: str = "recall"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status in ("failed", "error"):
            self.logger.error(message)
        elif status in ("skipped", "degraded"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_embedding_request(self, model: str, status: str = "success", details: Dict[str, Any] = None):
        """Log an embedding provider call."""
        log_details = {"model": model}
        if details:
            log_details.update(sanitize_payload(details))

        self.log_operation("embedding.generate", status, log_details)

    def log_search(self, mode: str, owner_id: str, kind: str, candidates: int, results: int, status: str = "success"):
        """Log a search run (semantic or keyword)."""
        log_details = {
            "owner_id": owner_id,
            "kind": kind,
            "candidates": candidates,
            "results": results
        }
        self.log_operation(f"search.{mode}", status, log_details)

    def log_cache_operation(self, operation: str, key: str, status: str = "success", details: Dict[str, Any] = None):
        """Log a cache read, write or invalidation."""
        log_details = {"key": key}
        if details:
            log_details.update(details)

        self.log_operation(f"cache.{operation}", status, log_details)

    def log_sync_run(self, profiles_count: int, websites_count: int, errors: List[str], duration_ms: float):
        """Log the outcome of a reference-data sync."""
        log_details = {
            "profiles_count": profiles_count,
            "websites_count": websites_count,
            "error_count": len(errors),
            "duration_ms": round(duration_ms, 2)
        }
        if errors:
            log_details["errors"] = [e[:100] for e in errors]

        self.log_operation("sync.all", "success" if not errors else "degraded", log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)

# Global logger instance
logger = StructuredLogger()

def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for logging: redact secrets, truncate long text."""
    if sensitive_fields is None:
        sensitive_fields = ['api_key', 'authorization', 'secret', 'password', 'token']

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k.lower() not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
