"""
Error types for the Rel SDK.

This module defines all exception types used by the SDK:
- RelSdkError: Base exception
- ValidationError: Malformed call arguments (raised before any network access)
- LocalServerError: Cloud-only operation called on a local server connection
- TransportError: Network or HTTP failure (returned, never raised)
- StaleVersionError: Transaction version rejected by the service
- TransactionAbortedError: The service aborted the whole transaction
- DatabaseExistsError: CREATE/CLONE against an existing database
- DatabaseNotFoundError: OPEN against a missing database

Invariants:
    - All errors inherit from RelSdkError
    - Only ValidationError and LocalServerError are ever raised by the SDK;
      TransportError and its subclasses are delivered through Outcome.error
    - Errors include context for debugging
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class RelSdkError(Exception):
    """Base exception for all Rel SDK errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "REL_SDK_ERROR"
        self.details = details or {}


class ValidationError(RelSdkError):
    """Call arguments failed validation.

    Raised when:
    - A query requests no outputs
    - Database name, clone source or install text is missing
    - An argument has the wrong type
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class LocalServerError(RelSdkError):
    """Operation is only available against a cloud deployment."""

    def __init__(self, method_name: str) -> None:
        super().__init__(
            f"The method, {method_name}, is not available on a local server connection.",
            code="LOCAL_SERVER",
            details={"method": method_name},
        )
        self.method_name = method_name


class TransportError(RelSdkError):
    """Round trip to the service failed.

    Covers unreachable servers, timeouts and every non-2xx status.
    Delivered as ``Outcome.error`` together with whatever result the
    service returned.

    Attributes:
        status_code: HTTP status, None for network-level failures
        url: Request URL
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        merged = {"status_code": status_code, "url": url}
        merged.update(details or {})
        super().__init__(message, code=code or "TRANSPORT_ERROR", details=merged)
        self.status_code = status_code
        self.url = url

    @property
    def status(self) -> Optional[int]:
        """Alias for status_code."""
        return self.status_code


class StaleVersionError(TransportError):
    """The transaction's version no longer matches the service.

    Recoverable: reconnect (which refreshes the cached version) and retry.
    """

    def __init__(
        self,
        message: str,
        dbname: str,
        requested_version: int,
        server_version: Optional[int] = None,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            status_code=status_code,
            url=url,
            code="STALE_VERSION",
            details={
                "dbname": dbname,
                "requested_version": requested_version,
                "server_version": server_version,
            },
        )
        self.dbname = dbname
        self.requested_version = requested_version
        self.server_version = server_version


class TransactionAbortedError(TransportError):
    """The service rejected the whole transaction (aborted=true)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message,
            status_code=status_code,
            url=url,
            code=code or "TRANSACTION_ABORTED",
            details=details,
        )


class DatabaseExistsError(TransactionAbortedError):
    """CREATE or CLONE without overwrite hit an existing database."""

    def __init__(
        self,
        dbname: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Database '{dbname}' already exists",
            status_code=status_code,
            url=url,
            code="DATABASE_EXISTS",
            details={"dbname": dbname},
        )
        self.dbname = dbname


class DatabaseNotFoundError(TransportError):
    """The target database does not exist."""

    def __init__(
        self,
        dbname: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Database '{dbname}' not found",
            status_code=status_code,
            url=url,
            code="DATABASE_NOT_FOUND",
            details={"dbname": dbname},
        )
        self.dbname = dbname
