"""
Inbound message exceptions.
"""


class MessageFormatError(Exception):
    """Raised when an inbound frame cannot be parsed into a message."""

    def __init__(self, message: str, code: str = "INVALID_MESSAGE"):
        """
        Initialize MessageFormatError.

        Args:
            message: Human readable reason
            code: Error code sent to the client
        """
        super().__init__(message)
        self.message = message
        self.code = code
