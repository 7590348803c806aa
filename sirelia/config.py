from dataclasses import dataclass
from pathlib import Path

from .exceptions import ConfigurationError

@dataclass
class SireliaConfig:
    """Configuration for the Sirelia web server, relay, watcher and client."""
    host: str = "localhost"
    web_port: int = 3000
    bridge_port: int = 3001
    watch_file: str = ".sirelia.mmd"
    static_dir: Path = Path("out")
    theme: str = "default"
    stability_threshold_ms: int = 100
    poll_interval_ms: int = 100
    publish_timeout: float = 5.0
    reconnect_delay: float = 1.0
    max_reconnect_attempts: int = 5
    probe_interval: float = 2.0
    log_dir: Path = Path.home() / ".local/share/sirelia/logs"

    def __post_init__(self):
        """Convert string paths to Path objects."""
        if isinstance(self.static_dir, str):
            self.static_dir = Path(self.static_dir)
        if isinstance(self.log_dir, str):
            self.log_dir = Path(self.log_dir)

    @property
    def stability_window(self) -> float:
        return self.stability_threshold_ms / 1000.0

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000.0

    @property
    def bridge_url(self) -> str:
        return f"ws://{self.host}:{self.bridge_port}"

    @property
    def web_url(self) -> str:
        return f"http://{self.host}:{self.web_port}"

    def validate(self):
        """Validate configuration values."""
        for name in ("web_port", "bridge_port"):
            port = getattr(self, name)
            if not isinstance(port, int) or not (1 <= port <= 65535):
                raise ConfigurationError(f"Invalid {name.replace('_', ' ')}: {port}")

        if self.web_port == self.bridge_port:
            raise ConfigurationError(f"Web and bridge ports must differ (both {self.web_port})")

        if not self.watch_file:
            raise ConfigurationError("Watch file must not be empty")

        if self.stability_threshold_ms <= 0 or self.poll_interval_ms <= 0:
            raise ConfigurationError(
                f"Watcher timings must be positive: stability={self.stability_threshold_ms}ms, "
                f"poll={self.poll_interval_ms}ms"
            )

        if self.publish_timeout <= 0:
            raise ConfigurationError(f"Publish timeout must be positive: {self.publish_timeout}")

        if self.reconnect_delay < 0 or self.max_reconnect_attempts < 0:
            raise ConfigurationError(
                f"Invalid reconnect settings: delay={self.reconnect_delay}, "
                f"attempts={self.max_reconnect_attempts}"
            )

        if self.probe_interval <= 0:
            raise ConfigurationError(f"Probe interval must be positive: {self.probe_interval}")
