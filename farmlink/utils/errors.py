from fastapi import HTTPException, status


class AppError(HTTPException):
    """
    Base for every domain error.
    Subclasses fix the HTTP status; the message is the response `message`.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Unexpected error"

    def __init__(self, message: str | None = None):
        super().__init__(
            status_code=self.status_code,
            detail=message or self.default_message,
        )

    @property
    def message(self) -> str:
        return self.detail


# -------------------------------
# Taxonomy
# -------------------------------

class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Insufficient permissions"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class DependencyError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Upstream service failed"


# -------------------------------
# Identity
# -------------------------------

class InvalidCredentials(AuthenticationError):
    default_message = "Invalid credentials"


class AccountDisabled(AuthorizationError):
    default_message = "Your account has been deactivated. Please contact support."


class RoleNotPermitted(AuthorizationError):
    default_message = "You do not have access to this role"


class DuplicateEmail(ConflictError):
    default_message = "User already exists with this email"


# -------------------------------
# Catalog / orders
# -------------------------------

class NotAuthorized(AuthorizationError):
    default_message = "Not authorized to perform this action"


class ListingNotFound(NotFoundError):
    default_message = "Product not found"


class ListingUnavailable(ConflictError):
    default_message = "Product is not available"


class InsufficientStock(ConflictError):
    def __init__(self, product_name: str | None = None, product_id=None):
        self.product_id = product_id
        name = product_name or (str(product_id) if product_id else "product")
        super().__init__(f"Insufficient stock for {name}")


class InvalidTransition(ConflictError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move order from {current} to {requested}")


# -------------------------------
# Reviews
# -------------------------------

class NotEligible(AuthorizationError):
    default_message = "You can only review products you have purchased"


class DuplicateReview(ConflictError):
    default_message = "You have already reviewed this product"


# -------------------------------
# Payments
# -------------------------------

class RefundNotAllowed(ConflictError):
    default_message = "Can only refund completed payments"


class PaymentVerificationFailed(ValidationError):
    default_message = "Payment verification failed"
