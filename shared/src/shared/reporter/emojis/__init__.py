"""Emoji definitions for system reporting."""

from shared.reporter.emojis.database_emojis import DatabaseEmoji
from shared.reporter.emojis.emoji import Emoji
from shared.reporter.emojis.errors_emojis import ErrorEmoji
from shared.reporter.emojis.network_emojis import NetworkEmoji
from shared.reporter.emojis.security_emojis import SecurityEmoji
from shared.reporter.emojis.system_emojis import SystemEmoji

__all__ = [
    "Emoji",
    "SystemEmoji",
    "DatabaseEmoji",
    "NetworkEmoji",
    "SecurityEmoji",
    "ErrorEmoji",
]
