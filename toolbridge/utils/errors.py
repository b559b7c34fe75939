from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Optional

from fastapi import HTTPException, status

logger = logging.getLogger("toolbridge.errors")


class ErrorKind(str, Enum):
    """Typed failure codes carried next to the human readable message."""
    PARSE = "parse_error"
    VALIDATION = "validation_error"
    NOT_FOUND = "not_found"
    TRANSPORT = "transport_error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    SCHEMA = "schema_error"
    STORAGE = "storage_error"
    UNAVAILABLE = "unavailable"


# HTTP status used when a failed envelope leaves through the REST surface
KIND_STATUS = {
    ErrorKind.PARSE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.SCHEMA: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.TRANSPORT: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorKind.CANCELLED: 499,
    ErrorKind.STORAGE: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class ToolError(Exception):
    """Base error for registry and dispatch failures.

    Raised inside components and turned into a result value at the
    operation boundary, never propagated to the caller of install/execute.
    """
    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str, *, kind: Optional[ErrorKind] = None) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class ToolParseError(ToolError):
    kind = ErrorKind.PARSE


class ToolNotFoundError(ToolError):
    kind = ErrorKind.NOT_FOUND


class ToolSchemaError(ToolError):
    kind = ErrorKind.SCHEMA


class ToolStorageError(ToolError):
    kind = ErrorKind.STORAGE


class ToolUnavailableError(ToolError):
    kind = ErrorKind.UNAVAILABLE


# Patterns that might leak sensitive information
SENSITIVE_PATTERNS = [
    r"api[_-]?key[=:\s]+\S+",
    r"password[=:\s]+\S+",
    r"token[=:\s]+\S+",
    r"secret[=:\s]+\S+",
    r"bearer\s+\S+",
    r"\b(?:\d{1,3}\.){3}\d{1,3}\b",  # IP addresses
    r"/home/\S+",  # File paths
    r"/var/\S+",
    r"/etc/\S+",
    r"traceback",
]


def sanitize_error_message(message: str) -> str:
    """Remove potentially sensitive information from error messages.

    Transport failures carry raw httpx messages (URLs, addresses); strip
    those before handing the text to HTTP clients.
    """
    sanitized = message

    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(pattern, "[REDACTED]", sanitized, flags=re.IGNORECASE)

    if len(sanitized) > 500:
        sanitized = sanitized[:500] + "... [truncated]"

    return sanitized


def status_for_kind(kind: Optional[ErrorKind]) -> int:
    if kind is None:
        return status.HTTP_400_BAD_REQUEST
    return KIND_STATUS.get(kind, status.HTTP_400_BAD_REQUEST)


def api_error(
    message: str,
    *,
    status_code: int = status.HTTP_400_BAD_REQUEST,
    code: str = "bad_request",
    internal_message: Optional[str] = None,
    sanitize: bool = True,
) -> HTTPException:
    """Create an API error with optional message sanitization.

    Args:
        message: The error message to show to users
        status_code: HTTP status code
        code: Error code for programmatic handling
        internal_message: Optional detailed message for logging only
        sanitize: Whether to sanitize the message (default True)
    """
    if internal_message:
        logger.error("[%s] Internal: %s", code, internal_message)

    user_message = sanitize_error_message(message) if sanitize else message

    return HTTPException(
        status_code=status_code,
        detail={"error": {"message": user_message, "code": code}},
    )
