"""
Relay lifecycle emoji definitions.
"""

from shared.reporter.emojis.base_emojis import ComponentEmoji


class SystemEmoji(ComponentEmoji):
    """Relay process lifecycle and periodic maintenance."""

    # Process lifecycle
    STARTUP = "🚀"  # Relay starting
    READY = "✅"  # Components wired
    SHUTDOWN = "🛑"  # Shutdown sequence

    # Maintenance loops
    CLEANUP = "🧹"  # Expired windows or restored sessions pruned
    RELOAD = "🔄"  # User directory reloaded from disk
