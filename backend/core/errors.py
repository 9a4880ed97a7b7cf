"""
Service-level error types.

Services raise these; the API layer maps them onto HTTP responses
(see the exception handlers registered in main.py).
"""


class BillingError(Exception):
    """Base exception for service errors."""

    code: str = "billing_error"

    def __init__(self, message: str = "", code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ServiceFailure(BillingError):
    """Business rule failure with a machine-readable code."""

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code, code=code)


class NotFoundFailure(BillingError):
    """Raised when a required record does not exist."""

    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(f"{resource} not found", code=f"{resource}_not_found")


class ValidationFailure(BillingError):
    """Invalid input. messages maps a field to its error codes."""

    code = "validation_errors"

    def __init__(self, messages: dict[str, list[str]]):
        self.messages = messages
        super().__init__(f"Validation errors: {messages}")

    @classmethod
    def single(cls, field: str, error_code: str) -> "ValidationFailure":
        return cls({field: [error_code]})


class InvalidPayableTypeError(BillingError):
    """Raised when a webhook carries an unknown payable type tag."""

    code = "invalid_payable_type"

    def __init__(self, payable_type: str):
        self.payable_type = payable_type
        super().__init__(f"Invalid lago_payable_type: {payable_type}")
