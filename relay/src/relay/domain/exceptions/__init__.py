"""
Domain exceptions for Relay.
"""

from relay.domain.exceptions.auth_exceptions import (
    AuthenticationError,
    AuthRequiredError,
    InvalidCredentialsError,
    UnknownUserError,
)
from relay.domain.exceptions.message_exceptions import MessageFormatError

__all__ = [
    "AuthenticationError",
    "AuthRequiredError",
    "InvalidCredentialsError",
    "UnknownUserError",
    "MessageFormatError",
]
