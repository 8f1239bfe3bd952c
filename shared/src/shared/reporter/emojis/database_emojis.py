"""
Persistence emoji definitions.

Covers snapshot writes and restores of in-memory state.
"""

from shared.reporter.emojis.base_emojis import ComponentEmoji


class DatabaseEmoji(ComponentEmoji):
    """Persistence operations."""

    SAVE = "💾"  # Snapshot written
    LOAD = "📂"  # Snapshot restored
    CORRUPT = "🧨"  # Unreadable snapshot
