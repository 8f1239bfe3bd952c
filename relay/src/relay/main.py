"""
Relay - realtime sync hub for UBY clients.

Orchestrates Clean Architecture components to relay schedule, user,
driver, status and notification events between authenticated clients.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, List, Optional

import uvicorn
from fastapi import FastAPI
from shared.reporter.emojis import Emoji

from relay import __version__
from relay.config.settings import Settings, load_config
from relay.di import Container
from relay.presentation.api.dependencies import set_container
from relay.presentation.api.routes import status_router, websocket_router


class RelayApp:
    """
    Relay application orchestrator.

    Thin coordination layer that initializes and connects
    all Clean Architecture components.

    Responsibilities:
        - Initialize DI container
        - Setup FastAPI application
        - Restore the last session snapshot
        - Run heartbeat, guard, snapshot and directory watch loops
        - Run the plaintext and (optional) TLS uvicorn servers
        - Graceful shutdown on signals, uncaught errors or remote request
    """

    def __init__(self, settings: Settings, container: Optional[Container] = None):
        """
        Initialize Relay application.

        Args:
            settings: Application settings
            container: Prebuilt container (tests inject fake clocks here)
        """
        self.settings = settings
        self.container = container or Container(settings)
        self.reporter = self.container.reporter

        self.app = self._create_app()
        set_container(self.container)

        self.servers: List[uvicorn.Server] = []
        self._tasks: List[asyncio.Task] = []

        self.reporter.info(
            f"{Emoji.SYSTEM.READY} Relay initialized (env={settings.ENV})",
            context="Relay",
            verbose_level=1,
        )

    def _create_app(self) -> FastAPI:
        """
        Create FastAPI application with lifespan management.

        Returns:
            Configured FastAPI application
        """

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self._on_startup()
            yield
            await self._on_shutdown()

        app = FastAPI(
            title=self.settings.APP_NAME,
            description="Realtime sync relay for UBY clients",
            version=__version__,
            lifespan=lifespan,
        )

        app.include_router(websocket_router)
        app.include_router(status_router)

        return app

    async def _on_startup(self):
        """
        Application startup event handler.

        Restores state, hooks the shutdown sequence and starts the
        background loops.
        """
        self.reporter.info(
            f"{Emoji.SYSTEM.STARTUP} Relay starting...",
            context="Relay",
            verbose_level=1,
        )

        restored = self.container.restore_state()
        if restored:
            self.reporter.info(
                f"{Emoji.DATABASE.LOAD} Restored {restored} sessions from "
                f"{self.container.state_store.path}",
                context="Relay",
            )

        lifecycle = self.container.get_manage_connection_use_case()
        shutdown_manager = self.container.shutdown_manager
        shutdown_manager.install_exception_handler()
        shutdown_manager.register_shutdown_callback(lifecycle.shutdown)
        shutdown_manager.register_shutdown_callback(self._stop_servers)

        self._tasks = [
            asyncio.create_task(
                self._periodic(
                    "Heartbeat sweep",
                    self.settings.heartbeat_check_interval,
                    lifecycle.sweep_heartbeats,
                )
            ),
            asyncio.create_task(
                self._periodic(
                    "Guard sweep",
                    self.settings.guard_sweep_interval,
                    self._sweep_guard,
                )
            ),
            asyncio.create_task(
                self._periodic(
                    "Snapshot",
                    self.settings.snapshot_interval,
                    self._periodic_snapshot,
                )
            ),
        ]

        if self.settings.directory_reload_interval > 0:
            self._tasks.append(
                asyncio.create_task(
                    self._periodic(
                        "Directory watch",
                        self.settings.directory_reload_interval,
                        self.container.get_sync_directory_use_case().execute,
                    )
                )
            )

        self.reporter.info(
            f"Host: {self.settings.host}:{self.settings.port}"
            + (f" (TLS :{self.settings.tls_port})" if self.settings.tls_enabled else ""),
            context="Relay",
            verbose_level=1,
        )
        self.reporter.info(
            f"Users in directory: {len(self.container.user_directory)} "
            f"(unlisted users {'allowed' if self.settings.allow_unlisted_users else 'rejected'})",
            context="Relay",
            verbose_level=1,
        )

    async def _on_shutdown(self):
        """
        Application shutdown event handler.

        Runs the shutdown sequence if nothing triggered it yet, then
        stops the background loops.
        """
        shutdown_manager = self.container.shutdown_manager

        if shutdown_manager.is_running():
            await shutdown_manager.initiate_shutdown("server-stop")
        else:
            await shutdown_manager.wait_for_shutdown_complete()

        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

        shutdown_manager.restore_signal_handlers()

        self.reporter.info(
            f"{Emoji.SYSTEM.SHUTDOWN} Relay stopped",
            context="Relay",
            verbose_level=1,
        )

    async def _periodic(
        self, name: str, interval: float, action: Callable[[], Awaitable]
    ) -> None:
        """Run action every interval seconds until shutdown."""
        shutdown_manager = self.container.shutdown_manager

        self.reporter.info(
            f"{name} started (interval: {interval}s)",
            context="Relay",
            verbose_level=2,
        )

        while not shutdown_manager.is_shutting_down():
            await asyncio.sleep(interval)

            if shutdown_manager.is_shutting_down():
                break

            try:
                await action()
            except Exception as e:
                self.reporter.error(
                    f"{name} failed: {type(e).__name__}: {e}",
                    context="Relay",
                )

    async def _sweep_guard(self) -> None:
        self.container.abuse_guard.sweep()

    async def _periodic_snapshot(self) -> None:
        self.container.state_store.request_snapshot(
            self.container.session_registry.all()
        )

    async def _stop_servers(self, reason: str) -> None:
        for server in self.servers:
            server.should_exit = True

    def _create_servers(self) -> List[uvicorn.Server]:
        servers = [
            uvicorn.Server(
                uvicorn.Config(
                    self.app,
                    host=self.settings.host,
                    port=self.settings.port,
                    log_level=self.settings.log_level,
                    ws_max_size=self.settings.max_message_size,
                )
            )
        ]

        if self.settings.tls_enabled:
            # Lifespan runs once, on the plaintext server
            servers.append(
                uvicorn.Server(
                    uvicorn.Config(
                        self.app,
                        host=self.settings.host,
                        port=self.settings.tls_port,
                        log_level=self.settings.log_level,
                        ws_max_size=self.settings.max_message_size,
                        ssl_certfile=self.settings.ssl_certfile,
                        ssl_keyfile=self.settings.ssl_keyfile,
                        lifespan="off",
                    )
                )
            )

        return servers

    async def _install_signal_handlers(self) -> None:
        """Take over SIGTERM/SIGINT once every server has started."""
        while not all(server.started for server in self.servers):
            if any(server.should_exit for server in self.servers):
                return
            await asyncio.sleep(0.1)

        self.container.shutdown_manager.setup_signal_handlers()

    async def serve(self):
        """
        Run servers with proper signal handling.

        Uses uvicorn.Server API for proper shutdown control.
        """
        self.servers = self._create_servers()
        await asyncio.gather(
            *(server.serve() for server in self.servers),
            self._install_signal_handlers(),
        )

    def start(self):
        """
        Start Relay servers.

        Blocks until the servers are stopped.
        """
        asyncio.run(self.serve())


def main():
    """
    Main entry point for Relay application.

    Loads configuration and starts the server.
    """
    import sys

    config = load_config()

    # Allow port override from command line
    if len(sys.argv) > 1:
        try:
            config.port = int(sys.argv[1])
        except ValueError:
            print(f"Invalid port: {sys.argv[1]}")
            sys.exit(1)

    app = RelayApp(config)

    try:
        app.start()
    except KeyboardInterrupt:
        print("\nRelay stopped by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
