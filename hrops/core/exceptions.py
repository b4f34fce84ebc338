from typing import Any, Dict, Optional


class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class BadRequestError(AppException):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="BAD_REQUEST",
            details=details
        )


class AuthenticationError(AppException):
    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTH_FAILED"
        )


class AccessDeniedError(AppException):
    """Custom permission error. Named AccessDeniedError to avoid shadowing Python's built-in PermissionError."""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="PERMISSION_DENIED"
        )


class NotFoundError(AppException):
    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND",
            details={"resource": resource, "id": identifier} if identifier is not None else None
        )


class ConflictError(AppException):
    def __init__(self, message: str, error_code: str = "CONFLICT", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=409,
            error_code=error_code,
            details=details
        )


class ApprovalAlreadyProcessedError(ConflictError):
    def __init__(self, approval_code: str, status: str):
        super().__init__(
            message=f"Approval {approval_code} has already been processed",
            error_code="APPROVAL_ALREADY_PROCESSED",
            details={"approval_id": approval_code, "status": status}
        )


class VersionConflictError(ConflictError):
    def __init__(self, approval_code: str, expected: Optional[int] = None, actual: Optional[int] = None):
        super().__init__(
            message=f"Approval {approval_code} was modified by another request",
            error_code="VERSION_CONFLICT",
            details={"approval_id": approval_code, "expected_version": expected, "current_version": actual}
        )
