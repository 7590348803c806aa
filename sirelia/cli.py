"""Command-line interface for Sirelia."""
import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from .version import __version__
from .client import BridgeClient, ChannelState, ReconnectPolicy
from .config import SireliaConfig
from .config_loader import load_config
from .exceptions import ConfigurationError, SireliaError
from .mcp_bridge import MermaidBridgeMCP
from .models import ConnectionStatus, WatchTarget
from .publisher import RelayPublisher
from .relay import RelayServer
from .utils.logging import setup_logging
from .watcher import FileWatcher
from .web import WebServer

logger = logging.getLogger("sirelia.cli")

GITIGNORE_ENTRY = "\n# Sirelia\n{name}\n"

DIAGRAM_TEMPLATE = """%% Sirelia diagram: edit and save to see real-time updates
flowchart TD
    A[Start] --> B{Decision?}
    B -->|Yes| C[Do Something]
    B -->|No| D[Do Nothing]
    C --> E[End]
    D --> E
"""

MARKDOWN_TEMPLATE = """# Sirelia Diagram

This file contains your Mermaid diagrams. Edit this file and save to see real-time updates in the Sirelia web interface.

## Example Diagram

```mermaid
flowchart TD
    A[Start] --> B{Decision?}
    B -->|Yes| C[Do Something]
    B -->|No| D[Do Nothing]
    C --> E[End]
    D --> E
```

## Supported Diagram Types

- Flowcharts: `graph TD`, `flowchart LR`
- Sequence Diagrams: `sequenceDiagram`
- Class Diagrams: `classDiagram`
- State Diagrams: `stateDiagram-v2`
- Entity Relationship: `erDiagram`
- User Journey: `journey`
- Gantt Charts: `gantt`
- Pie Charts: `pie`
- Git Graphs: `gitGraph`
- Mind Maps: `mindmap`
- Timeline: `timeline`
"""

def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="sirelia",
        description="Real-time Mermaid diagram visualization bridge"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", dest="config_file", default=None, help="Path to configuration file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands", required=True)

    init_parser = subparsers.add_parser("init", help="Initialize Sirelia in the current project")
    init_parser.add_argument("-f", "--force", action="store_true", help="Overwrite an existing diagram file")
    init_parser.add_argument("-w", "--watch", default=None, help="Diagram file to create")

    start_parser = subparsers.add_parser("start", help="Start the web server, bridge server and file watcher")
    start_parser.add_argument("-p", "--port", type=int, default=None, help="Web server port (default: 3000)")
    start_parser.add_argument("-b", "--bridge-port", type=int, default=None, help="Bridge server port (default: 3001)")
    start_parser.add_argument("-w", "--watch", default=None, help="File to watch (default: .sirelia.mmd)")
    start_parser.add_argument("--static-dir", default=None, help="Directory with the built web interface")

    listen_parser = subparsers.add_parser("listen", help="Print diagrams pushed by the bridge server")
    listen_parser.add_argument("-p", "--port", type=int, default=None, help="Web server port to probe")
    listen_parser.add_argument("-b", "--bridge-port", type=int, default=None, help="Bridge server port")

    mcp_parser = subparsers.add_parser("mcp", help="Serve MCP tools that push diagrams to the bridge")
    mcp_parser.add_argument("-b", "--bridge-port", type=int, default=None, help="Bridge server port")

    return parser.parse_args(argv)

def update_config_from_args(config: SireliaConfig, args: argparse.Namespace) -> SireliaConfig:
    """Update configuration from command-line arguments."""
    if getattr(args, "port", None) is not None:
        config.web_port = args.port

    if getattr(args, "bridge_port", None) is not None:
        config.bridge_port = args.bridge_port

    if getattr(args, "watch", None):
        config.watch_file = args.watch

    if getattr(args, "static_dir", None):
        config.static_dir = Path(args.static_dir)

    config.validate()
    return config

def init_project(watch_file: str, force: bool = False, cwd: Optional[Path] = None) -> bool:
    """Create the diagram file and ignore it in git.

    Returns:
        False if the file exists and force is not set
    """
    cwd = Path(cwd or Path.cwd())
    diagram_file = cwd / watch_file

    print("Initializing Sirelia...")
    if diagram_file.exists() and not force:
        print(f"{watch_file} already exists. Use --force to overwrite.")
        return False

    template = MARKDOWN_TEMPLATE if diagram_file.suffix.lower() in (".md", ".mdd", ".markdown") else DIAGRAM_TEMPLATE
    diagram_file.parent.mkdir(parents=True, exist_ok=True)
    diagram_file.write_text(template, encoding="utf-8")
    print(f"Created {watch_file}")

    gitignore = cwd / ".gitignore"
    if gitignore.exists():
        existing = gitignore.read_text(encoding="utf-8")
        if watch_file in existing.splitlines():
            print(f"{watch_file} already in .gitignore")
        else:
            with open(gitignore, "a", encoding="utf-8") as f:
                f.write(GITIGNORE_ENTRY.format(name=watch_file))
            print(f"Added {watch_file} to .gitignore")
    else:
        gitignore.write_text(GITIGNORE_ENTRY.lstrip("\n").format(name=watch_file), encoding="utf-8")
        print(f"Created .gitignore with {watch_file}")

    print("\nSirelia initialized successfully!")
    print("\nNext steps:")
    print(f"1. Edit {watch_file} with your Mermaid diagrams")
    print("2. Run: sirelia start")
    print("3. Open http://localhost:3000 to view the web interface")
    return True

def _relay_host(host: str) -> str:
    # Wildcard binds are reached through loopback
    return "localhost" if host in ("", "0.0.0.0", "::") else host

async def _stop_all(services) -> None:
    for service in reversed(services):
        try:
            await service.stop()
        except Exception as e:
            logger.error(f"Error stopping {type(service).__name__}: {e}")

async def run_services(config: SireliaConfig, watch_path: Path, stop_event: Optional[asyncio.Event] = None) -> int:
    """Run web server, bridge server and file watcher until interrupted.

    Returns:
        Process exit code
    """
    services = []
    watcher = None
    try:
        print("Starting web server...")
        web_server = WebServer(config.static_dir, config.host, config.web_port)
        await web_server.start()
        services.append(web_server)

        print("Starting bridge server...")
        relay = RelayServer(config.host, config.bridge_port, default_theme=config.theme)
        await relay.start()
        services.append(relay)

        print("Starting file watcher...")
        watcher = FileWatcher(
            WatchTarget(watch_path, _relay_host(config.host), config.bridge_port),
            stability_window=config.stability_window,
            poll_interval=config.poll_interval,
            theme=config.theme,
            publish_timeout=config.publish_timeout
        )
        await watcher.start()
        services.append(watcher)
    except SireliaError as e:
        print(f"Error starting Sirelia: {e}", file=sys.stderr)
        if watcher is not None and watcher not in services:
            await watcher.publisher.close()
        await _stop_all(services)
        return 1

    print("\nSirelia is running!")
    print(f"Open {config.web_url} to view the web interface")
    print(f"Edit {config.watch_file} and save to see real-time updates")
    print("\nPress Ctrl+C to stop all services")

    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            pass

    try:
        await stop_event.wait()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass
        print("\nShutting down Sirelia...")
        await _stop_all(services)
    return 0

def start(config: SireliaConfig) -> int:
    """Start all services for the configured watch file."""
    watch_path = Path.cwd() / config.watch_file

    print("Starting Sirelia...")
    print(f"Web server: {config.web_url}")
    print(f"Bridge server: {config.bridge_url}")
    print(f"Watching: {config.watch_file}")

    if not watch_path.exists():
        print(f"{config.watch_file} not found. Run 'sirelia init' to create it.", file=sys.stderr)
        return 1

    return asyncio.run(run_services(config, watch_path))

async def run_listener(config: SireliaConfig) -> int:
    def on_diagram(code: str, theme: str):
        print(f"--- diagram (theme: {theme}) ---")
        print(code)
        sys.stdout.flush()

    def on_status(status: ConnectionStatus):
        relay = "connected" if status.relay_channel_open else "disconnected"
        server = "reachable" if status.static_server_reachable else "unreachable"
        print(f"[status] bridge {relay}, web server {server}", file=sys.stderr)

    client = BridgeClient(
        config.bridge_url,
        config.web_url,
        on_diagram,
        on_status,
        policy=ReconnectPolicy(config.reconnect_delay, config.max_reconnect_attempts),
        probe_interval=config.probe_interval
    )
    await client.connect()
    try:
        await client.wait_closed()
    finally:
        await client.disconnect()
    return 1 if client.state == ChannelState.GAVE_UP else 0

def listen(config: SireliaConfig) -> int:
    """Subscribe to the bridge server and print each diagram it pushes."""
    try:
        return asyncio.run(run_listener(config))
    except KeyboardInterrupt:
        return 0

def serve_mcp(config: SireliaConfig) -> int:
    """Serve the MCP bridge over stdio."""
    ingest_url = WatchTarget(Path(config.watch_file), _relay_host(config.host), config.bridge_port).ingest_url
    MermaidBridgeMCP(RelayPublisher(ingest_url, timeout=config.publish_timeout)).run()
    return 0

def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the CLI."""
    args = parse_arguments(argv)

    try:
        config = update_config_from_args(load_config(args.config_file), args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(debug=args.debug, log_dir=config.log_dir)

    if args.command == "init":
        code = 0 if init_project(config.watch_file, force=args.force) else 1
    elif args.command == "start":
        code = start(config)
    elif args.command == "listen":
        code = listen(config)
    else:
        code = serve_mcp(config)

    sys.exit(code)
