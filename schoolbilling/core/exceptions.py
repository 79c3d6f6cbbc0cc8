"""Shared exceptions module."""

from typing import Optional

from pydantic import ValidationError


class SchoolBillingException(Exception):
    """Base exception for school billing services."""

    pass


class PermissionException(SchoolBillingException):
    """Exception raised when a user does not have the necessary permissions to perform an action."""

    def __init__(
        self,
        message: Optional[str] = "User does not have the right to perform this action",
    ):
        """Create a new PermissionException instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class NotFoundException(SchoolBillingException):
    """Exception raised when an object is not found."""

    def __init__(self, message: Optional[str] = "Object not found"):
        """Create a new NotFoundException instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class BillingValidationError(SchoolBillingException):
    """Raised for malformed request bodies or gateway metadata.

    These are permanent rejections: retrying the same input cannot succeed.
    """

    def __init__(self, message: Optional[str] = "Invalid billing data"):
        """Create a new BillingValidationError instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class ConflictError(SchoolBillingException):
    """Raised when a write would break a uniqueness invariant.

    Either a second ACTIVE/TRIALING subscription for one school, or an external
    gateway reference that already belongs to another row.
    """

    def __init__(self, message: Optional[str] = "Conflicting subscription state"):
        """Create a new ConflictError instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class UnverifiedSignatureError(SchoolBillingException):
    """Raised when a webhook payload cannot be verified against the signing secret."""

    def __init__(self, message: Optional[str] = "Webhook signature could not be verified"):
        """Create a new UnverifiedSignatureError instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class TransientStoreError(SchoolBillingException):
    """Raised when the database is unavailable; the caller is expected to retry."""

    def __init__(self, message: Optional[str] = "Subscription store temporarily unavailable"):
        """Create a new TransientStoreError instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class BillingConfigurationError(SchoolBillingException):
    """Raised when catalog data cannot be billed, e.g. an unsupported billing cycle."""

    def __init__(self, message: Optional[str] = "Invalid billing configuration"):
        """Create a new BillingConfigurationError instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class UnsupportedBillingCycleError(BillingConfigurationError):
    """Raised when a plan's billing cycle is neither monthly nor yearly."""

    def __init__(self, billing_cycle: object, plan_id: Optional[object] = None):
        """Create a new UnsupportedBillingCycleError instance.

        Args:
        ----
            billing_cycle (object): The offending billing cycle value.
            plan_id (object, optional): The plan carrying the billing cycle, if known.

        """
        self.billing_cycle = billing_cycle
        self.plan_id = plan_id
        message = f"Unsupported billing cycle: {billing_cycle}"
        if plan_id is not None:
            message += f" for plan {plan_id}"
        super().__init__(message)


class ExternalServiceError(SchoolBillingException):
    """Exception raised when an external service fails."""

    def __init__(self, service_name: str, message: Optional[str] = "External service failed"):
        """Create a new ExternalServiceError instance.

        Args:
        ----
            service_name (str): The name of the external service.
            message (str, optional): The error message. Has default message.

        """
        self.service_name = service_name
        self.message = message
        super().__init__(f"{service_name}: {message}")


def unpack_validation_error(exc: ValidationError) -> dict:
    """Unpack a Pydantic validation error into a dictionary.

    Args:
    ----
        exc (ValidationError): The Pydantic validation error.

    Returns:
    -------
        dict: The dictionary representation of the validation error.

    """
    error_messages = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        message = error["msg"]
        error_messages.append({field: message})

    return {"errors": error_messages}
