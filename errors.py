"""
Service error kinds

Services raise these; main.py turns them into JSON error responses using
the status code carried by each class.
"""
from typing import Optional


class ServiceError(Exception):
    status_code = 500
    error = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.error
        super().__init__(self.message)


class ValidationError(ServiceError):
    status_code = 400
    error = "Validation error"


class InvalidOperation(ServiceError):
    status_code = 400
    error = "Invalid operation"


class InvalidToken(ServiceError):
    status_code = 400
    error = "Invalid token"


class Unauthorized(ServiceError):
    status_code = 401
    error = "Unauthorized"


class NotFound(ServiceError):
    status_code = 404
    error = "Not found"


class Conflict(ServiceError):
    status_code = 409
    error = "Conflict"


class StoreError(ServiceError):
    status_code = 500
    error = "Storage error"
