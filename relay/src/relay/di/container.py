"""
Dependency Injection container for Relay.

Manages lifecycle and dependencies of all application components.
"""

import logging
import time
from datetime import datetime
from typing import Callable, Optional

from shared.reporter import SystemReporter

from relay.application.use_cases import (
    ManageConnectionUseCase,
    RelayEventUseCase,
    SyncDirectoryUseCase,
)
from relay.config.settings import Settings, resolve_path
from relay.infrastructure.abuse import AbuseGuard
from relay.infrastructure.directory import UserDirectory
from relay.infrastructure.persistence import StateStore
from relay.infrastructure.sessions import SessionRegistry
from relay.infrastructure.shutdown import ShutdownManager
from relay.infrastructure.websocket import ConnectionManager


class Container:
    """
    Dependency Injection container.

    Creates and manages all application dependencies.
    Every component is a process-wide singleton owned by the container.
    """

    def __init__(
        self,
        settings: Settings,
        reporter: Optional[SystemReporter] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize container with settings.

        Args:
            settings: Application settings
            reporter: Shared reporter (created from settings if None)
            clock: Time source for guard, registry and heartbeat checks
        """
        self.settings = settings
        self.clock = clock

        self._reporter = reporter
        self._abuse_guard: Optional[AbuseGuard] = None
        self._user_directory: Optional[UserDirectory] = None
        self._session_registry: Optional[SessionRegistry] = None
        self._state_store: Optional[StateStore] = None
        self._connection_manager: Optional[ConnectionManager] = None
        self._shutdown_manager: Optional[ShutdownManager] = None
        self._relay_use_case: Optional[RelayEventUseCase] = None
        self._manage_connection_use_case: Optional[ManageConnectionUseCase] = None
        self._sync_directory_use_case: Optional[SyncDirectoryUseCase] = None

        # Statistics
        self.stats = {
            "start_time": datetime.utcnow(),
            "sessions_restored": 0,
        }

    @property
    def reporter(self) -> SystemReporter:
        """
        Get SystemReporter singleton.

        Returns:
            SystemReporter writing to stdout and, if configured, a log file
        """
        if self._reporter is None:
            log_file = None
            if self.settings.log_file:
                log_file = str(resolve_path(self.settings.log_file))

            self._reporter = SystemReporter(
                name="relay",
                log_file=log_file,
                level=getattr(logging, self.settings.log_level.upper()),
                verbose=self.settings.verbose,
            )
        return self._reporter

    @property
    def abuse_guard(self) -> AbuseGuard:
        """
        Get AbuseGuard singleton with configured windows.

        Returns:
            AbuseGuard instance
        """
        if self._abuse_guard is None:
            self._abuse_guard = AbuseGuard(
                connection_window=self.settings.connection_window_seconds,
                max_connections=self.settings.max_connections_per_window,
                message_window=self.settings.message_window_seconds,
                max_messages=self.settings.max_messages_per_window,
                block_duration=self.settings.block_duration_seconds,
                exempt_heartbeat=self.settings.rate_limit_exempt_heartbeat,
                reporter=self.reporter,
                clock=self.clock,
            )
        return self._abuse_guard

    @property
    def user_directory(self) -> UserDirectory:
        if self._user_directory is None:
            path = self.settings.users_path
            if path is None:
                self._user_directory = UserDirectory(
                    allow_unlisted=self.settings.allow_unlisted_users,
                    reporter=self.reporter,
                )
            else:
                self._user_directory = UserDirectory.from_file(
                    path,
                    allow_unlisted=self.settings.allow_unlisted_users,
                    reporter=self.reporter,
                )
        return self._user_directory

    @property
    def session_registry(self) -> SessionRegistry:
        if self._session_registry is None:
            self._session_registry = SessionRegistry(
                self.user_directory,
                reporter=self.reporter,
                clock=self.clock,
            )
        return self._session_registry

    @property
    def state_store(self) -> StateStore:
        if self._state_store is None:
            self._state_store = StateStore(
                self.settings.state_file,
                reporter=self.reporter,
            )
        return self._state_store

    @property
    def connection_manager(self) -> ConnectionManager:
        if self._connection_manager is None:
            self._connection_manager = ConnectionManager(reporter=self.reporter)
        return self._connection_manager

    @property
    def shutdown_manager(self) -> ShutdownManager:
        """
        Get ShutdownManager singleton.

        Returns:
            ShutdownManager instance
        """
        if self._shutdown_manager is None:
            self._shutdown_manager = ShutdownManager(
                shutdown_timeout=self.settings.shutdown_timeout,
                grace_period=self.settings.shutdown_grace_period,
                reporter=self.reporter,
            )
        return self._shutdown_manager

    def get_relay_use_case(self) -> RelayEventUseCase:
        """
        Get RelayEventUseCase singleton.

        Returns:
            Use case instance
        """
        if self._relay_use_case is None:
            self._relay_use_case = RelayEventUseCase(
                self.session_registry,
                self.connection_manager,
                reporter=self.reporter,
            )
        return self._relay_use_case

    def get_manage_connection_use_case(self) -> ManageConnectionUseCase:
        """
        Get ManageConnectionUseCase singleton.

        Returns:
            Use case instance
        """
        if self._manage_connection_use_case is None:
            self._manage_connection_use_case = ManageConnectionUseCase(
                settings=self.settings,
                guard=self.abuse_guard,
                registry=self.session_registry,
                store=self.state_store,
                connection_manager=self.connection_manager,
                relay_use_case=self.get_relay_use_case(),
                shutdown_manager=self.shutdown_manager,
                reporter=self.reporter,
                clock=self.clock,
            )
        return self._manage_connection_use_case

    def get_sync_directory_use_case(self) -> SyncDirectoryUseCase:
        if self._sync_directory_use_case is None:
            self._sync_directory_use_case = SyncDirectoryUseCase(
                self.user_directory,
                self.session_registry,
                self.connection_manager,
                reporter=self.reporter,
            )
        return self._sync_directory_use_case

    def restore_state(self) -> int:
        """
        Seed the session registry from the last snapshot.

        Returns:
            Number of sessions restored
        """
        if not self.settings.restore_on_startup:
            return 0

        restored = self.session_registry.load(self.state_store.restore())
        self.stats["sessions_restored"] = restored
        return restored

    def get_uptime_seconds(self) -> float:
        """
        Get server uptime in seconds.

        Returns:
            Uptime in seconds
        """
        return (datetime.utcnow() - self.stats["start_time"]).total_seconds()
