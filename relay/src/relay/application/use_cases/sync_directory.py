"""
Use case for propagating user directory edits to connected clients.
"""

from typing import Any, Dict, Optional

from shared.reporter import SystemReporter
from shared.reporter.emojis import Emoji

from relay.domain.events import ServerEvent, utc_timestamp
from relay.infrastructure.directory import UserDirectory
from relay.infrastructure.sessions import SessionRegistry
from relay.infrastructure.websocket import ConnectionManager


class SyncDirectoryUseCase:
    """
    Reloads the user directory file and announces changes.

    Authenticated clients receive::

        {"event": "uby-data-updated",
         "data": {"users": [...], "changes": {"added": [], "removed": [],
                  "updated": []}, "totalUsers": 3, "timestamp": "..."}}

    Sessions of users removed from the directory stay connected; the
    removal only affects later authentications.
    """

    def __init__(
        self,
        directory: UserDirectory,
        registry: SessionRegistry,
        connection_manager: ConnectionManager,
        reporter: Optional[SystemReporter] = None,
    ):
        self.directory = directory
        self.registry = registry
        self.connection_manager = connection_manager
        self.reporter = reporter

    async def execute(self) -> int:
        """
        Check the directory file once.

        Returns:
            Number of clients notified (0 when nothing changed)
        """
        change = self.directory.reload_if_changed()
        if change is None:
            return 0

        sent = await self.connection_manager.broadcast(
            ServerEvent.DIRECTORY_UPDATED.value,
            {
                "users": [user.to_dict() for user in self.directory.users()],
                "changes": change.to_dict(),
                "totalUsers": len(self.directory),
                "timestamp": utc_timestamp(),
            },
            authenticated_only=True,
        )

        if self.reporter:
            self.reporter.info(
                f"{Emoji.NETWORK.BROADCAST} Directory update sent to {sent} clients",
                context="SyncDirectory",
                verbose_level=2,
            )
        return sent

    def get_stats(self) -> Dict[str, Any]:
        """Directory totals for /api/stats."""
        active = sum(
            1
            for session in self.registry.all()
            if not session.restored and self.directory.contains(session.user_name)
        )
        return {
            "totalUsers": len(self.directory),
            "activeUsers": active,
            "reloads": self.directory.stats["reloads"],
            "lastChange": self.directory.stats["last_change"],
        }
