"""
Session registry: userId <-> connection binding.

Two maps are kept in lock-step:
    - user_id -> connection_id
    - connection_id -> Session

Every mutation touches both maps without awaiting, so no other task can
observe them out of sync.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Set

from shared.reporter import SystemReporter
from shared.reporter.emojis import Emoji

from relay.domain.entities import Session
from relay.domain.exceptions import InvalidCredentialsError, UnknownUserError
from relay.infrastructure.directory import UserDirectory


@dataclass
class AuthenticationResult:
    """Outcome of a successful authentication."""

    session: Session
    replaced_connection_id: Optional[str] = None
    reclaimed: bool = False

    @property
    def replaced(self) -> bool:
        """True if a live session of the same user was evicted."""
        return self.replaced_connection_id is not None


class SessionRegistry:
    """
    Authoritative map of authenticated users.

    At most one Session exists per user_id; authenticating a user that is
    already bound to another connection evicts the older binding (last
    writer wins).
    """

    def __init__(
        self,
        directory: UserDirectory,
        reporter: Optional[SystemReporter] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.directory = directory
        self.reporter = reporter
        self._clock = clock

        self._connections_by_user: Dict[str, str] = {}
        self._sessions: Dict[str, Session] = {}
        self._restored_at: Optional[float] = None

    def authenticate(
        self,
        connection_id: str,
        user_id: Optional[str],
        user_name: Optional[str],
        display_name: Optional[str] = None,
        client_ip: Optional[str] = None,
    ) -> AuthenticationResult:
        """
        Bind user to connection.

        Args:
            connection_id: Connection authenticating
            user_id: User key
            user_name: Login name, resolved against the directory
            display_name: Optional display name (directory fallback)
            client_ip: Remote IP of the connection

        Returns:
            AuthenticationResult with the new session and the evicted
            connection ID, if any

        Raises:
            InvalidCredentialsError: If user_id or user_name is missing
            UnknownUserError: If the directory cannot resolve user_name
        """
        if not user_id or not user_name:
            raise InvalidCredentialsError(
                "Invalid authentication data", user_id=user_id, user_name=user_name
            )

        directory_user = self.directory.get_user_by_username(user_name)
        if directory_user is None:
            raise UnknownUserError(
                "User not found in UBY directory", user_id=user_id, user_name=user_name
            )

        session = Session(
            user_id=user_id,
            user_name=user_name,
            display_name=display_name or directory_user.display_name,
            connection_id=connection_id,
            client_ip=client_ip,
        )

        # Re-authentication as a different user releases the old binding
        previous = self._sessions.get(connection_id)
        if previous is not None and previous.user_id != user_id:
            self._connections_by_user.pop(previous.user_id, None)

        replaced_connection_id = None
        reclaimed = False
        existing_connection_id = self._connections_by_user.get(user_id)

        if existing_connection_id is not None and existing_connection_id != connection_id:
            existing = self._sessions.pop(existing_connection_id, None)
            if existing is not None and existing.restored:
                reclaimed = True
            else:
                replaced_connection_id = existing_connection_id

        self._sessions[connection_id] = session
        self._connections_by_user[user_id] = connection_id

        if self.reporter:
            if replaced_connection_id:
                self.reporter.info(
                    f"{Emoji.SECURITY.SESSION_REPLACED} Session replaced for "
                    f"{session.display_name} [old={replaced_connection_id}] "
                    f"[new={connection_id}]",
                    context="SessionRegistry",
                )
            self.reporter.info(
                f"{Emoji.SECURITY.AUTH} User authenticated: {session.display_name} "
                f"({user_name}) [conn={connection_id}]",
                context="SessionRegistry",
            )

        return AuthenticationResult(
            session=session,
            replaced_connection_id=replaced_connection_id,
            reclaimed=reclaimed,
        )

    def unbind(self, connection_id: str) -> Optional[Session]:
        """
        Remove the session bound to connection_id.

        Returns:
            Removed session, or None if the connection had none
        """
        session = self._sessions.pop(connection_id, None)
        if session is None:
            return None

        if self._connections_by_user.get(session.user_id) == connection_id:
            del self._connections_by_user[session.user_id]

        if self.reporter:
            self.reporter.info(
                f"{Emoji.NETWORK.DISCONNECTED} Session removed: {session.display_name} "
                f"[conn={connection_id}]",
                context="SessionRegistry",
                verbose_level=2,
            )
        return session

    def lookup_by_user_id(self, user_id: str) -> Optional[str]:
        """Get connection ID bound to user_id."""
        return self._connections_by_user.get(user_id)

    def get_by_connection(self, connection_id: str) -> Optional[Session]:
        return self._sessions.get(connection_id)

    def all(self) -> List[Session]:
        """Get all sessions (including restored ones)."""
        return list(self._sessions.values())

    def count(self) -> int:
        return len(self._sessions)

    def live_count(self) -> int:
        """Number of sessions bound to live connections."""
        return sum(1 for s in self._sessions.values() if not s.restored)

    def load(self, sessions: Iterable[Session]) -> int:
        """
        Seed the registry from a snapshot.

        Loaded sessions are flagged as restored until their user
        authenticates again. Users already bound are skipped.

        Returns:
            Number of sessions loaded
        """
        loaded = 0
        for session in sessions:
            if session.user_id in self._connections_by_user:
                continue
            if session.connection_id in self._sessions:
                continue

            restored = session.model_copy(update={"restored": True})
            self._sessions[restored.connection_id] = restored
            self._connections_by_user[restored.user_id] = restored.connection_id
            loaded += 1

        if loaded:
            self._restored_at = self._clock()

        return loaded

    def prune_restored(
        self, live_connection_ids: Set[str], grace_seconds: float
    ) -> List[Session]:
        """
        Drop restored sessions nobody reclaimed within grace_seconds.

        Args:
            live_connection_ids: IDs of currently open connections
            grace_seconds: Time allowed since load for users to reconnect

        Returns:
            Removed sessions
        """
        if self._restored_at is None:
            return []

        if self._clock() - self._restored_at <= grace_seconds:
            return []

        stale = [
            s
            for s in self._sessions.values()
            if s.restored and s.connection_id not in live_connection_ids
        ]
        for session in stale:
            self.unbind(session.connection_id)

        if not any(s.restored for s in self._sessions.values()):
            self._restored_at = None

        if stale and self.reporter:
            self.reporter.info(
                f"{Emoji.SYSTEM.CLEANUP} Pruned {len(stale)} unclaimed restored sessions",
                context="SessionRegistry",
            )
        return stale

    def clear(self) -> None:
        self._sessions.clear()
        self._connections_by_user.clear()
        self._restored_at = None
