"""
Error level emoji definitions.

Usage:
    >>> from shared.reporter.emojis.errors_emojis import ErrorEmoji
    >>> print(f"{ErrorEmoji.CRITICAL} Snapshot write failed")
    🔴 Snapshot write failed
"""

from shared.reporter.emojis.base_emojis import ComponentEmoji


class ErrorEmoji(ComponentEmoji):
    """Error severities used by the relay components."""

    CRITICAL = "🔴"  # Uncaught error, triggers shutdown
    ERROR = "❌"  # Operation failed
    NOT_FOUND = "🔍"  # Missing file or resource
