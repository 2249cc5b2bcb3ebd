"""haproxy agent-check TCP listener.

Each connection gets one agent line for the current overlaid health and is
then closed; there is no session state between connections.
"""

import asyncio
import logging
from typing import Optional

from signal_sidecar.balancing.agent_protocol import FAILSAFE_LINE, encode_report
from signal_sidecar.config import SidecarConfig
from signal_sidecar.core.state import SidecarState

logger = logging.getLogger(__name__)


class AgentServer:
    """Single-shot TCP responder for haproxy's agent-check."""

    def __init__(self, state: SidecarState, config: SidecarConfig, host: str = '0.0.0.0'):
        self.state = state
        self.config = config
        self.host = host
        self.server: Optional[asyncio.AbstractServer] = None

    def current_line(self) -> str:
        try:
            return encode_report(self.state.report(self.config))
        except Exception as e:
            logger.error(f"agent line evaluation failed: {e!r}", exc_info=True)
            return FAILSAFE_LINE

    async def handle_connection(self, reader: asyncio.StreamReader,
                                writer: asyncio.StreamWriter) -> None:
        line = self.current_line()
        logger.debug(f"agent-check response: {line.strip()}")
        try:
            writer.write(line.encode("ascii"))
            await writer.drain()
        except (ConnectionError, OSError) as e:
            logger.debug(f"agent-check client went away: {e!r}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass

    async def start(self, port: Optional[int] = None) -> None:
        """Start listening; ``port`` overrides the configured TCP port."""
        self.server = await asyncio.start_server(
            self.handle_connection,
            self.host,
            self.config.tcp_port if port is None else port,
        )
        logger.info(f"agent-check listening on :{self.port}")

    @property
    def port(self) -> Optional[int]:
        if self.server is None or not self.server.sockets:
            return None
        return self.server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()
            logger.info("agent-check listener stopped")
