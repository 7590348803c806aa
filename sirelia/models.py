"""Messages and status records exchanged across the bridge."""

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

# Tag carried in the "type" field of every pushed frame
DIAGRAM_MESSAGE_TYPE = "mermaid-render"
DEFAULT_THEME = "default"

def now_ms() -> int:
    return int(time.time() * 1000)

@dataclass(frozen=True)
class DiagramMessage:
    """A diagram accepted by the relay, ready to be pushed to subscribers."""
    code: str
    theme: str = DEFAULT_THEME
    timestamp: int = field(default_factory=now_ms)
    kind: str = DIAGRAM_MESSAGE_TYPE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire representation."""
        return {
            "type": self.kind,
            "code": self.code,
            "theme": self.theme,
            "timestamp": self.timestamp,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw: str) -> Optional["DiagramMessage"]:
        """Parse a pushed frame.

        Returns None for frames that are well-formed JSON but not diagram
        messages. Raises ValueError for frames that are not JSON objects.
        """
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
        if data.get("type") != DIAGRAM_MESSAGE_TYPE:
            return None
        code = data.get("code")
        if not isinstance(code, str):
            raise ValueError("Diagram message is missing its code")
        timestamp = data.get("timestamp")
        return cls(
            code=code,
            theme=data.get("theme") or DEFAULT_THEME,
            timestamp=timestamp if isinstance(timestamp, int) else now_ms(),
        )

@dataclass(frozen=True)
class ConnectionStatus:
    """Health of a bridge client: relay channel and static web server."""
    relay_channel_open: bool = False
    static_server_reachable: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "relay_channel_open": self.relay_channel_open,
            "static_server_reachable": self.static_server_reachable,
        }

@dataclass(frozen=True)
class WatchTarget:
    """The watched file and the relay ingestion address it publishes to."""
    path: Path
    relay_host: str = "localhost"
    relay_port: int = 3001

    def __post_init__(self):
        object.__setattr__(self, "path", Path(self.path).expanduser().absolute())

    @property
    def ingest_url(self) -> str:
        return f"http://{self.relay_host}:{self.relay_port}/mermaid"
