"""
Reconnect exceptions.

Defines exceptions raised by the reconnect state machine and client.
"""


class ReconnectError(Exception):
    """Base exception for reconnect errors."""

    def __init__(self, message: str):
        """
        Initialize reconnect error.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(self.message)


class InvalidReconnectTransition(ReconnectError):
    """Raised when the state machine is driven through an illegal edge."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid reconnect transition: {current} -> {target}")


class ReconnectExhausted(ReconnectError):
    """
    Exception raised when every reconnect attempt has failed.

    Terminal condition: the client stops retrying and the application
    decides what to do next.
    """

    def __init__(self, attempts: int, last_error: str = ""):
        """
        Initialize reconnect exhausted error.

        Args:
            attempts: Number of reconnect attempts made
            last_error: Description of the last connect failure
        """
        self.attempts = attempts
        self.last_error = last_error
        message = f"Reconnect exhausted after {attempts} attempts"
        if last_error:
            message += f" (last error: {last_error})"
        super().__init__(message)
