"""Application exception types."""

from synthjobs.schemas.error import ErrorResponse


class ApiError(Exception):
    """Structured API error that maps directly to contract error payloads."""

    def __init__(self, status_code: int, code: str, message: str, details: dict | None = None) -> None:
        self.status_code = status_code
        self.payload = ErrorResponse(code=code, message=message, details=details)
        super().__init__(message)


class InvalidInputError(ApiError):
    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(status_code=400, code="INVALID_INPUT", message=message, details=details)


class ForbiddenError(ApiError):
    def __init__(self, message: str = "Invalid webhook signature") -> None:
        super().__init__(status_code=403, code="FORBIDDEN", message=message)


class JobNotFoundError(ApiError):
    def __init__(self) -> None:
        super().__init__(status_code=404, code="RESOURCE_NOT_FOUND", message="Resource not found")


class ReplicaNotReadyError(ApiError):
    def __init__(self, replica_id: str, current_status: str | None) -> None:
        super().__init__(
            status_code=409,
            code="REPLICA_NOT_READY",
            message="Replica must be READY before a video can be generated.",
            details={"replica_id": replica_id, "current_status": current_status},
        )


__all__ = [
    "ApiError",
    "ForbiddenError",
    "InvalidInputError",
    "JobNotFoundError",
    "ReplicaNotReadyError",
]
