import os
import yaml
from pathlib import Path
from typing import Optional, Dict, Any, Callable

from dotenv import load_dotenv

from .config import SireliaConfig
from .exceptions import ConfigurationError

DEFAULT_CONFIG_PATHS = [
    "~/.config/sirelia/sirelia.yaml",
    "./sirelia.yaml"
]

# env var -> (config field, converter)
ENV_OVERRIDES: Dict[str, tuple] = {
    "SIRELIA_HOST": ("host", str),
    "WEB_PORT": ("web_port", int),
    "BRIDGE_PORT": ("bridge_port", int),
    "WATCH_FILE": ("watch_file", str),
    "STABILITY_THRESHOLD": ("stability_threshold_ms", int),
    "POLL_INTERVAL": ("poll_interval_ms", int),
    "SIRELIA_PUBLISH_TIMEOUT": ("publish_timeout", float),
    "SIRELIA_STATIC_DIR": ("static_dir", str),
}

def _find_config_file(config_path: Optional[str]) -> Optional[Path]:
    if config_path:
        config_file = Path(os.path.expanduser(config_path))
        if not config_file.is_file():
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        return config_file

    for path in DEFAULT_CONFIG_PATHS:
        config_file = Path(os.path.expanduser(path))
        if config_file.is_file():
            return config_file
    return None

def _settings_from_yaml(data: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten the sectioned YAML layout into SireliaConfig keyword arguments."""
    server = data.get("server") or {}
    watcher = data.get("watcher") or {}
    client = data.get("client") or {}
    logging_config = data.get("logging") or {}

    settings: Dict[str, Any] = {}
    mapping = [
        (server, "host", "host"),
        (server, "web_port", "web_port"),
        (server, "bridge_port", "bridge_port"),
        (server, "static_dir", "static_dir"),
        (server, "theme", "theme"),
        (watcher, "file", "watch_file"),
        (watcher, "stability_threshold_ms", "stability_threshold_ms"),
        (watcher, "poll_interval_ms", "poll_interval_ms"),
        (watcher, "publish_timeout", "publish_timeout"),
        (client, "reconnect_delay", "reconnect_delay"),
        (client, "max_reconnect_attempts", "max_reconnect_attempts"),
        (client, "probe_interval", "probe_interval"),
    ]
    for section, key, field_name in mapping:
        if key in section:
            settings[field_name] = section[key]

    if "directory" in logging_config:
        settings["log_dir"] = Path(os.path.expanduser(logging_config["directory"]))
    return settings

def _apply_env_overrides(settings: Dict[str, Any], environ=None) -> None:
    environ = os.environ if environ is None else environ
    for env_name, (field_name, convert) in ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw is None or raw == "":
            continue
        try:
            settings[field_name] = convert(raw)
        except ValueError:
            raise ConfigurationError(f"Invalid value for {env_name}: {raw!r}")

def load_config(config_path: Optional[str] = None, environ=None) -> SireliaConfig:
    """Load configuration from YAML file and environment.

    Args:
        config_path: Path to configuration file, or None to search default locations
        environ: Mapping used for overrides; defaults to os.environ after loading .env

    Returns:
        SireliaConfig instance

    Raises:
        ConfigurationError: If configuration is invalid or cannot be loaded
    """
    if environ is None:
        load_dotenv()

    config_file = _find_config_file(config_path)

    settings: Dict[str, Any] = {}
    if config_file is not None:
        try:
            with open(config_file) as f:
                yaml_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse configuration file: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration: {e}")

        if not isinstance(yaml_config, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {config_file}")
        settings.update(_settings_from_yaml(yaml_config))

    _apply_env_overrides(settings, environ)

    try:
        config = SireliaConfig(**settings)
    except TypeError as e:
        raise ConfigurationError(f"Invalid configuration: {e}")

    config.validate()
    return config
