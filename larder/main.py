"""
Larder server - main entry point.

This module starts the registry server with all components:
- HTTP API (FastAPI served by uvicorn)
- Applier loop (ledger -> registry database)

Usage:
    larder-server
    python -m larder.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The ledger is connected and the database opened before the HTTP API
      accepts requests
    - The applier is the only writer to the registry database
    - Shutdown stops the HTTP server before the applier and the ledger

How to change safely:
    - Add new background loops to _tasks so shutdown cancels them
    - Test the shutdown sequence with calls still pending
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter
import uvicorn

from .api import RegistryServicer, Settings, create_app
from .apply import Applier
from .config import RegistryConfig
from .ledger import CallLedger, create_ledger
from .registry import PreservationRegistry
from .store import RegistryDatabase

logger = logging.getLogger(__name__)


def setup_logging(config: RegistryConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("aiokafka").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class Server:
    """Larder server orchestrator.

    Manages the lifecycle of all server components:
    - Ledger connection
    - Registry database
    - Applier loop
    - HTTP server

    Example:
        >>> server = Server()
        >>> await server.start()  # Runs until request_shutdown()
        >>> await server.stop()
    """

    def __init__(self, config: RegistryConfig | None = None) -> None:
        self.config = config or RegistryConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self.ledger: CallLedger | None = None
        self.database: RegistryDatabase | None = None
        self.registry: PreservationRegistry | None = None
        self.applier: Applier | None = None
        self.servicer: RegistryServicer | None = None
        self.http_server: uvicorn.Server | None = None

        # Background tasks
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        """Start the server and all components, then wait for shutdown."""
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting Larder server")
        self.config.log_config()
        self._running = True

        try:
            self.ledger = create_ledger(self.config)
            await self.ledger.connect()
            logger.info("Call ledger connected")

            self.database = RegistryDatabase.from_config(self.config.storage)
            self.registry = PreservationRegistry(self.database)

            self.applier = Applier(
                ledger=self.ledger,
                registry=self.registry,
                topic=self.config.applier.topic,
                group_id=self.config.applier.group_id,
            )
            self._tasks.append(asyncio.create_task(self.applier.start()))

            self.servicer = RegistryServicer(
                ledger=self.ledger,
                registry=self.registry,
                applier=self.applier,
                topic=self.config.applier.topic,
                receipt_timeout_ms=self.config.applier.receipt_timeout_ms,
                receipt_poll_ms=self.config.applier.receipt_poll_ms,
            )
            app = create_app(self.servicer, Settings())
            self.http_server = uvicorn.Server(
                uvicorn.Config(
                    app,
                    host=self.config.http.host,
                    port=self.config.http.port,
                    log_config=None,
                )
            )
            http_task = asyncio.create_task(self.http_server.serve())
            http_task.add_done_callback(lambda _: self.request_shutdown())
            self._tasks.append(http_task)

            logger.info(
                "Larder server started",
                extra={"http_bind": f"{self.config.http.host}:{self.config.http.port}"},
            )

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if not self._running:
            return

        logger.info("Stopping Larder server")

        if self.http_server:
            self.http_server.should_exit = True

        if self.applier:
            await self.applier.stop()

        for task in self._tasks:
            if task is not None and not task.done():
                task.cancel()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        if self.ledger:
            await self.ledger.close()

        if self.database:
            self.database.close()

        self._running = False
        logger.info("Larder server stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    try:
        config = RegistryConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    server = Server(config)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
