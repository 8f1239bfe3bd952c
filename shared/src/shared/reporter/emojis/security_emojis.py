"""
Security and abuse protection emoji definitions.

Covers authentication, sessions, rate limiting and IP blocking.
"""

from shared.reporter.emojis.base_emojis import ComponentEmoji


class SecurityEmoji(ComponentEmoji):
    """Authentication, session and abuse protection events."""

    # ============================================================
    # Authentication
    # ============================================================
    AUTH = "🔐"  # Authentication succeeded
    AUTH_FAILED = "🔒"  # Authentication rejected
    SESSION_REPLACED = "♻️"  # Session evicted by a newer login

    # ============================================================
    # Abuse Protection
    # ============================================================
    BLOCKED = "🚫"  # IP blocked
    UNBLOCKED = "✅"  # IP block expired
    RATE_LIMIT = "🛡️"  # Rate limit hit
