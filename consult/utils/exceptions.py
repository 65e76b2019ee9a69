ERROR_STATUS = {
    "AUTHENTICATION_REQUIRED": 401,
    "BAD_REQUEST": 400,
    "ACCESS_DENIED": 403,
    "NOT_FOUND": 404,
    "INVALID_STATE": 409,
    "INSUFFICIENT_BALANCE": 400,
    "RATE_LIMIT_EXCEEDED": 429,
    "PENDING_REQUEST_EXISTS": 409,
    "VALIDATION_ERROR": 422,
    "UNAVAILABLE": 409,
    "SERVICE_UNAVAILABLE": 503,
}


class ServiceError(Exception):
    def __init__(self, code="SERVICE_ERROR", message="Service error", details=None, status=None):
        self.code = code
        self.message = message
        self.details = details or {}
        self.status = status or ERROR_STATUS.get(code, 400)
        super().__init__(message)

    def __repr__(self):
        return f"ServiceError({self.code!r}, {self.message!r})"


class ValidationFailed(ServiceError):
    def __init__(self, message="Invalid request", details=None):
        super().__init__("VALIDATION_ERROR", message, details)


class NotFound(ServiceError):
    def __init__(self, what="Resource"):
        super().__init__("NOT_FOUND", f"{what} not found")


class AccessDenied(ServiceError):
    def __init__(self, message="Access denied"):
        super().__init__("ACCESS_DENIED", message)


class InvalidState(ServiceError):
    def __init__(self, message, details=None):
        super().__init__("INVALID_STATE", message, details)


class InsufficientBalance(ServiceError):
    def __init__(self, available=None, required=None):
        details = {}
        if available is not None:
            details["available"] = float(available)
        if required is not None:
            details["required"] = float(required)
        super().__init__("INSUFFICIENT_BALANCE", "Insufficient balance", details)
