"""
Main Emoji registry class with centralized access to all emoji categories.

Usage:
    >>> from shared.reporter.emojis import Emoji
    >>>
    >>> Emoji.SYSTEM.STARTUP        # "🚀"
    >>> Emoji.SECURITY.BLOCKED      # "🚫"
    >>> Emoji.format('SYSTEM', 'STARTUP', 'Server started')
    '🚀 Server started'
"""

from typing import Dict, Type

from shared.reporter.emojis.base_emojis import ComponentEmoji
from shared.reporter.emojis.database_emojis import DatabaseEmoji
from shared.reporter.emojis.errors_emojis import ErrorEmoji
from shared.reporter.emojis.network_emojis import NetworkEmoji
from shared.reporter.emojis.security_emojis import SecurityEmoji
from shared.reporter.emojis.system_emojis import SystemEmoji


class Emoji:
    """
    Central emoji registry with semantic categories.

    Categories:
        SYSTEM: System operations and lifecycle
        DATABASE: Snapshot persistence
        NETWORK: Network and communication
        SECURITY: Authentication and abuse protection
        ERROR: Error levels and warnings
    """

    # ============================================================
    # Emoji Categories (Aggregated from separate modules)
    # ============================================================

    SYSTEM = SystemEmoji
    DATABASE = DatabaseEmoji
    NETWORK = NetworkEmoji
    SECURITY = SecurityEmoji
    ERROR = ErrorEmoji

    @classmethod
    def get_all_categories(cls) -> Dict[str, Type[ComponentEmoji]]:
        """
        Get all registered emoji categories.

        Returns:
            Dictionary mapping category name to emoji class
        """
        return {
            name: attr
            for name, attr in vars(cls).items()
            if (
                not name.startswith("_")
                and isinstance(attr, type)
                and issubclass(attr, ComponentEmoji)
            )
        }

    @classmethod
    def format(cls, category: str, name: str, message: str) -> str:
        """
        Format a message with appropriate emoji from category.

        If the emoji is not found, returns the message unchanged.

        Args:
            category: Category name (e.g., 'SYSTEM', 'NETWORK')
            name: Emoji name (e.g., 'STARTUP', 'CONNECTED')
            message: Message to format

        Returns:
            Formatted message with emoji prefix
        """
        try:
            category_class = getattr(cls, category.upper())
            emoji = getattr(category_class, name.upper())
            return f"{emoji} {message}"
        except AttributeError:
            return message

    @classmethod
    def get(cls, category: str, name: str, default: str = "❓") -> str:
        """Get emoji by category and name with fallback default."""
        try:
            category_class = getattr(cls, category.upper())
            return getattr(category_class, name.upper())
        except AttributeError:
            return default
