"""Relay server: accepts diagrams over HTTP and pushes them to WebSocket subscribers."""

import asyncio
import logging
from typing import Any, Optional, Set

from aiohttp import web, WSCloseCode, WSMsgType

from .exceptions import RelayError
from .models import DiagramMessage, DEFAULT_THEME

logger = logging.getLogger(__name__)

INGEST_PATH = "/mermaid"

@web.middleware
async def json_errors(request: web.Request, handler):
    """Answer routing errors with JSON bodies like the rest of the API."""
    try:
        return await handler(request)
    except web.HTTPNotFound:
        return web.json_response({"error": "Not found"}, status=404)
    except web.HTTPMethodNotAllowed:
        return web.json_response({"error": "Method not allowed"}, status=405)

def _preview(code: str, limit: int = 100) -> str:
    return code if len(code) <= limit else code[:limit] + "..."

class RelayServer:
    """Fans diagrams posted to /mermaid out to every connected WebSocket.

    The subscriber set lives on the instance, so several relays can run side
    by side (one per test, for example). Nothing is persisted: after a
    restart the set is empty until browsers reconnect.
    """

    def __init__(self, host: str = "localhost", port: int = 3001, default_theme: str = DEFAULT_THEME):
        self.host = host
        self.port = port
        self.default_theme = default_theme
        self.subscribers: Set[web.WebSocketResponse] = set()
        self.app = self.make_app()
        self._runner: Optional[web.AppRunner] = None

    def make_app(self) -> web.Application:
        app = web.Application(middlewares=[json_errors])
        app.router.add_post(INGEST_PATH, self.handle_ingest)
        app.router.add_get("/", self.handle_subscribe)
        app.on_shutdown.append(self._close_subscribers)
        return app

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    async def start(self):
        """Bind the relay port.

        Raises:
            RelayError: If the port cannot be bound
        """
        if self._runner is not None:
            return

        runner = web.AppRunner(self.app, access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        try:
            await site.start()
        except OSError as e:
            await runner.cleanup()
            logger.error(f"Failed to start bridge server on port {self.port}: {e}")
            raise RelayError(f"Cannot bind bridge server to {self.host}:{self.port}: {e}")

        self._runner = runner
        logger.info(f"Bridge server started on port {self.port}")

    async def stop(self):
        """Close all subscribers and release the port. Safe to call twice."""
        if self._runner is None:
            return
        runner, self._runner = self._runner, None
        await runner.cleanup()
        logger.info("Bridge server stopped")

    async def _close_subscribers(self, app: web.Application):
        for ws in list(self.subscribers):
            await ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")
        self.subscribers.clear()

    def _bad_request(self, error: str) -> web.Response:
        logger.warning(f"Rejected ingestion request: {error}")
        return web.json_response({"error": error}, status=400)

    def parse_payload(self, payload: Any) -> DiagramMessage:
        """Build a DiagramMessage from an ingestion body.

        Raises:
            ValueError: If the body has no usable code or theme
        """
        if not isinstance(payload, dict):
            raise ValueError("Request body must be a JSON object")

        code = payload.get("code")
        if not isinstance(code, str) or not code.strip():
            raise ValueError("Mermaid code is required")

        theme = payload.get("theme")
        if theme is None or theme == "":
            theme = self.default_theme
        elif not isinstance(theme, str):
            raise ValueError("Theme must be a string")

        return DiagramMessage(code=code, theme=theme)

    async def handle_ingest(self, request: web.Request) -> web.Response:
        try:
            payload = await request.json()
        except ValueError:
            return self._bad_request("Invalid JSON")

        try:
            message = self.parse_payload(payload)
        except ValueError as e:
            return self._bad_request(str(e))

        logger.info(f"Received Mermaid code via HTTP: {_preview(message.code)!r} (theme={message.theme})")
        delivered = await self.broadcast(message)

        return web.json_response({
            "success": True,
            "message": f"Mermaid diagram sent to {delivered} connected browser(s)",
            "recipients": delivered,
        })

    async def handle_subscribe(self, request: web.Request) -> web.StreamResponse:
        ws = web.WebSocketResponse(heartbeat=30.0)
        if not ws.can_prepare(request).ok:
            # Plain GET: report relay health instead of upgrading
            return web.json_response({"status": "ok", "subscribers": len(self.subscribers)})

        await ws.prepare(request)
        self.subscribers.add(ws)
        logger.info(f"Browser client connected ({len(self.subscribers)} total)")

        try:
            async for msg in ws:
                if msg.type == WSMsgType.ERROR:
                    logger.warning(f"Browser client connection error: {ws.exception()}")
                    break
                logger.debug(f"Ignoring {msg.type.name} frame from browser client")
        finally:
            self.subscribers.discard(ws)
            logger.info(f"Browser client disconnected ({len(self.subscribers)} remaining)")

        return ws

    async def broadcast(self, message: DiagramMessage) -> int:
        """Send a message to every open subscriber.

        A subscriber that is closed or fails on send is dropped from the set;
        the others still receive the message.

        Returns:
            Number of subscribers the message was delivered to
        """
        frame = message.to_json()

        targets = []
        for ws in list(self.subscribers):
            if ws.closed:
                self.subscribers.discard(ws)
            else:
                targets.append(ws)

        if not targets:
            return 0

        results = await asyncio.gather(
            *(ws.send_str(frame) for ws in targets),
            return_exceptions=True
        )

        delivered = 0
        for ws, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning(f"Dropping browser client after failed send: {result!r}")
                self.subscribers.discard(ws)
            else:
                delivered += 1
        return delivered
