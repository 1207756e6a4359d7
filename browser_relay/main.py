"""
Process entry point for the browser relay.

Starts the extension control channel first, then the MCP HTTP server, and
runs until SIGINT or SIGTERM.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from aiohttp import web

from .config import ConfigError, RelayConfig, load_config
from .logging_utils import configure_logging
from .mcp.http import create_app
from .mcp.session_manager import SessionManager
from .relay.service import RelayService
from .tools import build_tool_table

logger = logging.getLogger(__name__)


class RelayApplication:
    """Wires the relay, tool table, session manager and HTTP server together."""

    def __init__(self, config: Optional[RelayConfig] = None):
        self.config = config or RelayConfig()
        self.relay = RelayService(self.config)
        self.table = build_tool_table(snapshot_after_actions=self.config.snapshot_after_actions)
        self.sessions = SessionManager(self.relay, self.table, self.config)
        self.app = create_app(self.sessions, self.relay, self.config)

        self.http_port: Optional[int] = None
        self._runner: Optional[web.AppRunner] = None
        self._shutdown_event = asyncio.Event()

    @property
    def ws_port(self) -> Optional[int]:
        return self.relay.channel.bound_port

    async def start(self):
        """
        Start listening.

        The control channel binds first so a port conflict aborts startup
        before any MCP client can connect.

        Raises:
            OSError: If either port cannot be bound
        """
        logger.info(f"Starting browser relay {self.config.server_version}")
        await self.relay.start()

        try:
            await self.sessions.start()

            self._runner = web.AppRunner(self.app, handle_signals=False)
            await self._runner.setup()
            site = web.TCPSite(self._runner, self.config.host, self.config.port)
            await site.start()
        except Exception:
            await self.stop()
            raise

        addresses = self._runner.addresses
        self.http_port = addresses[0][1] if addresses else self.config.port
        logger.info(f"MCP endpoint: http://{self.config.host}:{self.http_port}{self.config.mcp_path}")

        if self.config.wait_for_extension > 0:
            logger.info(f"Waiting up to {self.config.wait_for_extension:g}s for the browser extension")
            if await self.relay.channel.wait_for_connection(self.config.wait_for_extension):
                logger.info("Browser extension connected")
            else:
                logger.warning("Browser extension did not connect; tools will fail until it does")

    async def stop(self):
        """Close sessions, the HTTP server and the control channel."""
        logger.info("Stopping browser relay")
        await self.sessions.close_all()

        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

        await self.relay.stop()
        logger.info("Browser relay stopped")

    def request_shutdown(self):
        self._shutdown_event.set()

    async def run(self):
        """Start, serve until a shutdown signal, then stop."""
        await self.start()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except NotImplementedError:
                logger.debug(f"Signal handlers not supported for {sig.name}")

        try:
            await self._shutdown_event.wait()
        finally:
            await self.stop()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="browser-relay",
        description="MCP server that relays browser automation tools to a browser extension"
    )
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--host", help="HTTP bind address for the MCP endpoint")
    parser.add_argument("--port", type=int, help="HTTP port for the MCP endpoint")
    parser.add_argument("--ws-port", type=int, help="WebSocket port the browser extension connects to")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], type=str.upper)
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Console entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args.config).with_overrides(
            host=args.host,
            port=args.port,
            ws_port=args.ws_port,
            log_level=args.log_level
        )
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging(config.log_level)

    try:
        asyncio.run(RelayApplication(config).run())
    except OSError as e:
        logger.error(f"Failed to start browser relay: {e}")
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
