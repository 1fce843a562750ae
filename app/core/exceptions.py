"""Domain exceptions rendered as ErrorResponse envelopes"""

from typing import Any, Optional


class BillFlowError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code: int = 400
    code: str = "BAD_REQUEST"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidRuleError(BillFlowError):
    """Recurring rule is malformed or uses an unsupported frequency"""

    status_code = 422
    code = "INVALID_RECURRING_RULE"


class NotFoundError(BillFlowError):
    status_code = 404
    code = "RESOURCE_NOT_FOUND"


class PermissionDeniedError(BillFlowError):
    status_code = 403
    code = "PERMISSION_DENIED"


class InvalidTransitionError(BillFlowError):
    status_code = 409
    code = "INVALID_STATE_TRANSITION"


class ConflictError(BillFlowError):
    status_code = 409
    code = "CONFLICT"


class StorageError(BillFlowError):
    """Read/write failure from the database; callers decide whether to retry"""

    status_code = 503
    code = "STORAGE_ERROR"
