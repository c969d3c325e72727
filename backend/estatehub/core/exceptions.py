class AppError(Exception):
    """Base class for all application exceptions."""
    code = "APP_ERROR"

    def __init__(self, message: str, status_code: int = 500, details: dict = None, code: str | None = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        if code is not None:
            self.code = code
        super().__init__(self.message)


class InvalidInputError(AppError):
    """Raised when a required field is missing or empty."""
    code = "INVALID_INPUT"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)


class NotFoundError(AppError):
    """Raised when no active record matches the lookup."""
    code = "NOT_FOUND"

    def __init__(self, message: str = "User not found"):
        super().__init__(message, status_code=404)


class DeliveryFailedError(AppError):
    """Raised when the SMS provider rejects or cannot be reached."""
    code = "DELIVERY_FAILED"

    def __init__(self, message: str = "Failed to send OTP. Please try again."):
        super().__init__(message, status_code=400)


class InvalidOrExpiredOtpError(AppError):
    """Covers missing, expired, consumed and mismatched codes alike."""
    code = "INVALID_OR_EXPIRED_OTP"

    def __init__(self):
        super().__init__("Invalid or expired OTP", status_code=401)


class OtpAttemptsExceededError(AppError):
    code = "OTP_ATTEMPTS_EXCEEDED"

    def __init__(self):
        super().__init__("OTP attempts exceeded", status_code=401)
