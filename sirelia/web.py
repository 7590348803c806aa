"""Static server for the pre-built web interface."""

import logging
import mimetypes
from pathlib import Path
from typing import Optional
from urllib.parse import unquote

from aiohttp import web

from .exceptions import SireliaError

logger = logging.getLogger(__name__)

INDEX_FILE = "index.html"

def resolve_static_path(static_dir: Path, url_path: str) -> Optional[Path]:
    """Map a URL path onto a file inside static_dir.

    Returns None when no such file exists (the caller falls back to the
    index document). Paths containing '..' must be rejected before calling.
    """
    relative = unquote(url_path.split("?", 1)[0]).lstrip("/")
    if not relative:
        relative = INDEX_FILE

    root = static_dir.resolve()
    candidate = (root / relative).resolve()
    if candidate != root and root not in candidate.parents:
        return None
    if not candidate.is_file():
        return None
    return candidate

class WebServer:
    """Serves the single-page app with index.html fallback for client-side routes."""

    def __init__(self, static_dir: Path, host: str = "localhost", port: int = 3000):
        self.static_dir = Path(static_dir)
        self.host = host
        self.port = port
        self.app = web.Application()
        self.app.router.add_route("*", "/{tail:.*}", self.handle)
        self._runner: Optional[web.AppRunner] = None

    async def handle(self, request: web.Request) -> web.StreamResponse:
        if request.method not in ("GET", "HEAD"):
            return web.Response(status=405, text="Method Not Allowed")

        if ".." in request.raw_path or ".." in unquote(request.raw_path):
            logger.warning(f"Rejected directory traversal attempt: {request.raw_path}")
            return web.Response(status=403, text="Forbidden")

        path = resolve_static_path(self.static_dir, request.raw_path)
        if path is None:
            path = resolve_static_path(self.static_dir, INDEX_FILE)
            if path is None:
                return web.Response(status=404, text="404 Not Found")

        content_type, _ = mimetypes.guess_type(path.name)
        return web.FileResponse(path, headers={"Content-Type": content_type or "application/octet-stream"})

    async def start(self):
        """Bind the web port.

        Raises:
            SireliaError: If the port cannot be bound
        """
        if not (self.static_dir / INDEX_FILE).is_file():
            logger.warning(f"No {INDEX_FILE} in {self.static_dir}; the web interface will return 404")

        runner = web.AppRunner(self.app, access_log=None)
        await runner.setup()
        try:
            await web.TCPSite(runner, self.host, self.port).start()
        except OSError as e:
            await runner.cleanup()
            logger.error(f"Failed to start web server on port {self.port}: {e}")
            raise SireliaError(f"Cannot bind web server to {self.host}:{self.port}: {e}")

        self._runner = runner
        logger.info(f"Web server started on port {self.port}")

    async def stop(self):
        if self._runner is None:
            return
        runner, self._runner = self._runner, None
        await runner.cleanup()
        logger.info("Web server stopped")
