"""Bridge client: subscribes to the relay and tracks connection health.

Mirrors what each browser tab does: keep a WebSocket to the relay open with
a capped linear backoff, and separately probe the static web server so two
independent health signals can be shown.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

import aiohttp
from aiohttp import WSMsgType

from .models import ConnectionStatus, DiagramMessage

logger = logging.getLogger(__name__)

DiagramCallback = Callable[[str, str], None]
StatusCallback = Callable[[ConnectionStatus], None]

class ChannelState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    BACKING_OFF = "backing_off"
    GAVE_UP = "gave_up"
    CLOSED = "closed"

class ReconnectPolicy:
    """Linear backoff: attempt n waits base_delay * n, up to max_attempts."""

    def __init__(self, base_delay: float = 1.0, max_attempts: int = 5):
        self.base_delay = base_delay
        self.max_attempts = max_attempts
        self.attempts = 0

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def next_delay(self) -> Optional[float]:
        """Consume one attempt and return its delay, or None once the cap is reached."""
        if self.exhausted:
            return None
        self.attempts += 1
        return self.base_delay * self.attempts

    def reset(self):
        self.attempts = 0

class StatusTracker:
    """Reports a ConnectionStatus upward only when it differs from the last one."""

    def __init__(self, callback: Optional[StatusCallback] = None):
        self.callback = callback
        self.last: Optional[ConnectionStatus] = None

    def update(self, status: ConnectionStatus) -> bool:
        if status == self.last:
            return False
        self.last = status
        if self.callback is not None:
            try:
                self.callback(status)
            except Exception:
                logger.exception("Status callback failed")
        return True

class BridgeClient:
    """Keeps a subscription to the relay and reports diagrams and health."""

    def __init__(
        self,
        relay_url: str,
        server_url: str,
        on_diagram: DiagramCallback,
        on_status: Optional[StatusCallback] = None,
        policy: Optional[ReconnectPolicy] = None,
        probe_interval: float = 2.0,
        probe_timeout: float = 2.0
    ):
        self.relay_url = relay_url
        self.server_url = server_url
        self.on_diagram = on_diagram
        self.policy = policy or ReconnectPolicy()
        self.probe_interval = probe_interval
        self.probe_timeout = probe_timeout
        self.state = ChannelState.IDLE
        self.server_reachable = False

        self._tracker = StatusTracker(on_status)
        self._closing = False
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._channel_task: Optional[asyncio.Task] = None
        self._probe_task: Optional[asyncio.Task] = None
        self._finished = asyncio.Event()

    @property
    def status(self) -> ConnectionStatus:
        return ConnectionStatus(
            relay_channel_open=self.state == ChannelState.OPEN,
            static_server_reachable=self.server_reachable
        )

    def _publish_status(self):
        self._tracker.update(self.status)

    def _set_state(self, state: ChannelState):
        self.state = state
        if state in (ChannelState.GAVE_UP, ChannelState.CLOSED):
            self._finished.set()
        self._publish_status()

    # Transitions below touch no network, so the state machine can be driven directly

    def handle_message(self, raw: str):
        try:
            message = DiagramMessage.from_json(raw)
        except ValueError as e:
            logger.error(f"Failed to parse WebSocket message: {e}")
            return
        if message is None:
            logger.debug("Ignoring non-diagram message from bridge server")
            return
        logger.info("Received Mermaid diagram from bridge server")
        try:
            self.on_diagram(message.code, message.theme)
        except Exception:
            logger.exception("Diagram callback failed")

    def handle_channel_opened(self):
        logger.info("Connected to Mermaid bridge server")
        self.policy.reset()
        self._set_state(ChannelState.OPEN)

    def handle_channel_closed(self) -> Optional[float]:
        """Move to backoff and return the delay before the next attempt.

        Returns None when the client is shutting down or has used up its
        reconnect attempts; both are terminal.
        """
        if self._closing:
            self._set_state(ChannelState.CLOSED)
            return None

        delay = self.policy.next_delay()
        if delay is None:
            logger.error("Max reconnection attempts reached")
            self._set_state(ChannelState.GAVE_UP)
            return None

        logger.info(
            f"Disconnected from Mermaid bridge server; attempting to reconnect "
            f"({self.policy.attempts}/{self.policy.max_attempts}) in {delay:.1f}s"
        )
        self._set_state(ChannelState.BACKING_OFF)
        return delay

    def handle_probe_result(self, reachable: bool):
        self.server_reachable = reachable
        self._publish_status()

    async def connect(self):
        """Start the relay channel and the web server probe."""
        if self._channel_task is not None:
            return
        self._closing = False
        self._finished.clear()
        self._probe_task = asyncio.create_task(self._run_probe())
        self._channel_task = asyncio.create_task(self._run_channel())

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _run_channel(self):
        while not self._closing:
            self._set_state(ChannelState.CONNECTING)
            try:
                async with self._get_session().ws_connect(self.relay_url) as ws:
                    self._ws = ws
                    self.handle_channel_opened()
                    async for msg in ws:
                        if msg.type == WSMsgType.TEXT:
                            self.handle_message(msg.data)
                        elif msg.type == WSMsgType.ERROR:
                            logger.error(f"WebSocket error: {ws.exception()}")
                            break
            except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
                logger.warning(f"Failed to connect to bridge server at {self.relay_url}: {e}")
            finally:
                self._ws = None

            delay = self.handle_channel_closed()
            if delay is None:
                return
            await asyncio.sleep(delay)

    async def probe_server(self) -> bool:
        """Return True if the web server answered at all, whatever the status."""
        try:
            async with self._get_session().head(
                self.server_url,
                timeout=aiohttp.ClientTimeout(total=self.probe_timeout),
                allow_redirects=False
            ):
                return True
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError):
            return False

    async def _run_probe(self):
        while not self._closing:
            self.handle_probe_result(await self.probe_server())
            await asyncio.sleep(self.probe_interval)

    async def wait_closed(self):
        """Wait until the client gives up reconnecting or is disconnected."""
        await self._finished.wait()

    async def disconnect(self):
        """Close the channel and stop probing; no reconnect is scheduled afterwards."""
        self._closing = True

        if self._ws is not None and not self._ws.closed:
            await self._ws.close()

        for task in (self._probe_task, self._channel_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._probe_task = None
        self._channel_task = None

        if self._session is not None:
            await self._session.close()
            self._session = None

        if self.state != ChannelState.GAVE_UP:
            self.state = ChannelState.CLOSED
        self._finished.set()
        logger.info("Bridge client disconnected")
