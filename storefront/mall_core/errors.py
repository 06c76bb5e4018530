"""
Error types for Mall Core.

This module defines all exception types raised by the core:
- MallCoreError: Base exception
- AuthenticationRequired: No identity available
- Conflict: Duplicate key on a set collection or store unique violation
- NotFound: Entry missing or not owned by the caller
- RemoteFailure: Transport or store-level failure
- ValidationError: Caller supplied an unusable argument combination

Invariants:
    - All errors inherit from MallCoreError
    - Errors include context for debugging
    - Mutation errors reach the caller unchanged
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class MallCoreError(Exception):
    """Base exception for all Mall Core errors.

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
        self.code = code or "MALL_CORE_ERROR"
        self.details = details or {}


class AuthenticationRequired(MallCoreError):
    """No current user is available.

    Raised when:
    - The identity provider returns no user
    - A request reaches a per-owner operation without an owner id
    """

    def __init__(self, message: str = "User not authenticated") -> None:
        super().__init__(message, code="AUTHENTICATION_REQUIRED")


class Conflict(MallCoreError):
    """A uniqueness rule was violated.

    Raised when:
    - An item is added twice to a set-membership collection
    - The store reports a unique or primary key violation

    Attributes:
        constraint: Name of the violated constraint, when known
    """

    def __init__(
        self,
        message: str,
        constraint: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONFLICT",
            details={"constraint": constraint},
        )
        self.constraint = constraint


class NotFound(MallCoreError):
    """Resource not found.

    Raised when:
    - No entry matches both the entry id and the owner
    - No order line carries the given order number
    """

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: Any,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class RemoteFailure(MallCoreError):
    """The remote store or its transport failed.

    Attributes:
        status: HTTP status returned by the store, if any
        store_code: Store-specific error code, if any
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        store_code: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="REMOTE_FAILURE",
            details={"status": status, "store_code": store_code},
        )
        self.status = status
        self.store_code = store_code


class ValidationError(MallCoreError):
    """Caller arguments failed validation.

    Raised when:
    - Removal names neither an entry id nor an item key
    - A quantity is not a positive integer
    - An order status is empty
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name},
        )
        self.field_name = field_name
