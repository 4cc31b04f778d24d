from fastapi import HTTPException, status


class StoryNotFoundError(HTTPException):
    """Exception raised when a story is not found."""

    def __init__(self, story_id: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Story with ID '{story_id}' not found"
        )


class BillingStoreError(HTTPException):
    """Exception raised when a billing-critical write cannot be persisted."""

    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Billing store error: {message}"
        )


class PaymentConfigurationError(HTTPException):
    """Exception raised when the payment provider is not configured."""

    def __init__(self, message: str = "Stripe API key not configured"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=message
        )


class AuthenticationError(HTTPException):
    """Exception raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=message,
            headers={"WWW-Authenticate": "Bearer"}
        )


class AuthorizationError(HTTPException):
    """Exception raised for authorization failures."""

    def __init__(self, message: str = "Not authorized to access this resource"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=message
        )
