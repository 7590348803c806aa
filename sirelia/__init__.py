"""Live Mermaid preview bridge: file watcher, relay server and bridge client."""

from .version import __version__
from .client import BridgeClient, ChannelState, ReconnectPolicy, StatusTracker
from .exceptions import (
    SireliaError,
    ConfigurationError,
    InvalidDiagramError,
    RelayError,
    WatcherError,
)
from .extractor import extract, is_valid_diagram
from .models import ConnectionStatus, DiagramMessage, WatchTarget
from .publisher import RelayPublisher
from .relay import RelayServer
from .watcher import FileWatcher, WatcherState

__all__ = [
    "__version__",
    "BridgeClient",
    "ChannelState",
    "ReconnectPolicy",
    "StatusTracker",
    "SireliaError",
    "ConfigurationError",
    "InvalidDiagramError",
    "RelayError",
    "WatcherError",
    "extract",
    "is_valid_diagram",
    "ConnectionStatus",
    "DiagramMessage",
    "WatchTarget",
    "RelayPublisher",
    "RelayServer",
    "FileWatcher",
    "WatcherState",
]
