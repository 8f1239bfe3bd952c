"""
Authentication and authorization exceptions.
"""


class AuthenticationError(Exception):
    """Base exception for authentication errors."""

    def __init__(self, message: str, user_id: str = None, user_name: str = None):
        """
        Initialize AuthenticationError.

        Args:
            message: Error message sent back to the client
            user_id: Optional user ID from the request
            user_name: Optional user name from the request
        """
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.user_name = user_name


class InvalidCredentialsError(AuthenticationError):
    """Raised when userId or userName is missing."""

    pass


class UnknownUserError(AuthenticationError):
    """Raised when the user directory cannot resolve the user."""

    pass


class AuthRequiredError(Exception):
    """Raised when an unauthenticated connection sends a privileged event."""

    def __init__(self, event: str, connection_id: str = None):
        super().__init__(f"Authentication required for '{event}'")
        self.event = event
        self.connection_id = connection_id
