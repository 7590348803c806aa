"""MCP server that lets an assistant push Mermaid diagrams to the relay."""

import logging
from typing import Any, Dict

from mcp.server.fastmcp import FastMCP

from .exceptions import InvalidDiagramError, RelayError
from .extractor import detect_diagram_type, validation_message
from .models import DEFAULT_THEME
from .publisher import RelayPublisher

logger = logging.getLogger(__name__)

class MermaidBridgeMCP:
    """Exposes render/validate tools backed by a RelayPublisher."""

    def __init__(self, publisher: RelayPublisher):
        self.publisher = publisher
        self.mcp = FastMCP("sirelia-bridge")
        self.setup_tools()
        logger.info(f"MCP bridge initialized for {publisher.ingest_url}")

    def validate_diagram(self, code: str) -> Dict[str, Any]:
        message = validation_message(code)
        return {
            "is_valid": message is None,
            "diagram_type": detect_diagram_type(code),
            "message": message or "Diagram is valid",
        }

    async def push_diagram(self, code: str, theme: str = DEFAULT_THEME) -> Dict[str, Any]:
        """Validate a diagram and forward it to every connected browser.

        Raises:
            InvalidDiagramError: If the code declares no diagram type
            RelayError: If the relay cannot be reached
        """
        message = validation_message(code)
        if message is not None:
            raise InvalidDiagramError(message)

        try:
            result = await self.publisher.publish(code.strip(), theme or DEFAULT_THEME)
        except RelayError as e:
            logger.error(f"Failed to send to WebSocket server: {e}")
            raise RelayError("WebSocket server not available")

        return {
            "success": True,
            "message": result.get("message", "Mermaid code sent to WebSocket server"),
        }

    def setup_tools(self):
        """Set up MCP tools."""

        @self.mcp.tool(name="render_mermaid", description="Render a Mermaid diagram in every connected Sirelia browser")
        async def render_mermaid(code: str, theme: str = DEFAULT_THEME) -> Dict[str, Any]:
            return await self.push_diagram(code, theme)

        @self.mcp.tool(name="validate_mermaid", description="Check that Mermaid code declares a known diagram type")
        async def validate_mermaid(code: str) -> Dict[str, Any]:
            return self.validate_diagram(code)

    def run(self):
        """Serve the tools over stdio."""
        logger.info("Starting MCP bridge")
        try:
            self.mcp.run()
        finally:
            logger.info("MCP bridge stopped")
