"""
Structured logging for the document access viewer.
Role changes, access requests, access decisions and rewrite calls are logged
as operations; raw field values never reach a log line.
"""

import logging
import os
from typing import Any, Dict, List

SENSITIVE_FIELDS = ['value', 'content', 'masked', 'original', 'secret', 'password', 'token']


class StructuredLogger:
    """Structured logger for role store, request workflow and masking operations."""

    def __init__(self, name: str = "docvault"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if os.getenv("DEBUG", "false").lower() == "true" else logging.INFO)

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
            message += f", Details: {sanitize_payload(details)}"

        self.logger.info(message)

    def log_role_change(self, operation: str, address: str, role: str = None, status: str = "success"):
        """Log a role store mutation."""
        details = {"address": address}
        if role is not None:
            details["role"] = role

        self.log_operation(f"roles.{operation}", status, details)

    def log_access_request(self, request_id: str, action: str, address: str, role: str = None):
        """Log an access request transition."""
        details = {"request_id": request_id, "address": address}
        if role is not None:
            details["role"] = role

        self.log_operation(f"access_request.{action}", "audit", details)

    def log_access_decision(self, address: str, role: str, decisions: Dict[str, str]):
        """Log the per-field decisions computed for a wallet."""
        details = {
            "address": address,
            "role": role or "none",
            "denied": sorted(k for k, v in decisions.items() if v == "denied"),
            "field_count": len(decisions),
        }
        self.log_operation("policy.evaluate_document", "evaluated", details)

    def log_rewrite(self, role: str, model: str, status: str, duration_ms: int = None):
        """Log a semantic rewrite call; the content itself is never logged."""
        details = {"role": role, "model": model}
        if duration_ms is not None:
            details["duration_ms"] = duration_ms

        self.log_operation("masking.semantic_rewrite", status, details)

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


def audit_event(event_type: str, identifiers: Dict[str, Any], payload: Dict[str, Any] = None,
                sensitive_fields: List[str] = None):
    """General audit event logging with privacy controls."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    log_details = identifiers.copy() if identifiers else {}

    if payload:
        log_details["payload"] = sanitize_payload(payload, sensitive_fields=sensitive_fields)

    logger.log_operation(event_type.replace(".", "_"), "audit", log_details)


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
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
