"""
User directory infrastructure.
"""

from relay.infrastructure.directory.user_directory import (
    DirectoryChange,
    DirectoryUser,
    UserDirectory,
)

__all__ = ["DirectoryChange", "DirectoryUser", "UserDirectory"]
