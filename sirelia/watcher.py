"""File watcher that pushes extracted diagrams to the relay on every settled save."""

import asyncio
import logging
import os
from enum import Enum
from typing import List, Optional

from watchdog.events import FileSystemEventHandler, FileSystemEvent
from watchdog.observers import Observer

from .exceptions import RelayError, WatcherError
from .extractor import extract
from .models import WatchTarget, DEFAULT_THEME
from .publisher import RelayPublisher

logger = logging.getLogger(__name__)

class WatcherState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    READY = "ready"
    PROCESSING = "processing"
    STOPPED = "stopped"

class _TargetEventHandler(FileSystemEventHandler):
    """Forwards events for the watched path from the observer thread to the loop."""

    def __init__(self, watcher: "FileWatcher", loop: asyncio.AbstractEventLoop):
        super().__init__()
        self.watcher = watcher
        self.loop = loop

    def on_any_event(self, event: FileSystemEvent):
        if event.is_directory or event.event_type not in ("modified", "created", "moved"):
            return

        # Editors often save by writing a temp file and renaming it over the target
        paths = [event.src_path, getattr(event, "dest_path", "")]
        target = str(self.watcher.target.path)
        if any(p and os.path.abspath(os.fsdecode(p)) == target for p in paths):
            self.loop.call_soon_threadsafe(self.watcher.notify_change)

class FileWatcher:
    """Watches one file and publishes each diagram it contains after it settles.

    States: IDLE -> ARMED -> READY (initial content) -> ARMED, then
    ARMED <-> PROCESSING on every settled change, STOPPED after stop().
    """

    def __init__(
        self,
        target: WatchTarget,
        publisher: Optional[RelayPublisher] = None,
        stability_window: float = 0.1,
        poll_interval: float = 0.1,
        theme: str = DEFAULT_THEME,
        publish_timeout: float = 5.0
    ):
        self.target = target
        self.publisher = publisher or RelayPublisher(target.ingest_url, timeout=publish_timeout)
        self.stability_window = stability_window
        self.poll_interval = poll_interval
        self.theme = theme
        self.state = WatcherState.IDLE

        self._observer: Optional[Observer] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._last_event: float = 0.0
        self._settle_task: Optional[asyncio.Task] = None
        self._process_lock = asyncio.Lock()

    async def start(self):
        """Register the filesystem observer and publish the initial content.

        Raises:
            WatcherError: If the path cannot be observed
        """
        if self.state != WatcherState.IDLE:
            raise WatcherError(f"Watcher already started (state: {self.state.value})")

        self._loop = asyncio.get_running_loop()
        directory = self.target.path.parent
        logger.info(f"Watching file: {self.target.path}")

        if not directory.is_dir():
            raise WatcherError(f"Cannot watch {self.target.path}: directory {directory} does not exist")

        observer = Observer()
        try:
            observer.schedule(_TargetEventHandler(self, self._loop), str(directory), recursive=False)
            observer.start()
        except (OSError, RuntimeError) as e:
            logger.error(f"File watcher error: {e}")
            raise WatcherError(f"Cannot watch {self.target.path}: {e}")

        self._observer = observer
        self.state = WatcherState.ARMED
        logger.debug(f"Observer registered on {directory}")

        self.state = WatcherState.READY
        logger.info("File watcher ready")
        await self.process()

    def notify_change(self):
        """Record a filesystem event; processing starts once the file settles."""
        if self.state == WatcherState.STOPPED or self._loop is None:
            return
        self._last_event = self._loop.time()
        if self._settle_task is None or self._settle_task.done():
            self._settle_task = self._loop.create_task(self._settle_then_process())

    async def _settle_then_process(self):
        await self.wait_until_settled()
        self._settle_task = None
        if self.state != WatcherState.STOPPED:
            await self.process()

    async def wait_until_settled(self):
        """Wait for a quiet stability window, then for the file size to stop changing."""
        loop = asyncio.get_running_loop()
        while True:
            remaining = self._last_event + self.stability_window - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(remaining)

        previous = self._file_size()
        while True:
            await asyncio.sleep(self.poll_interval)
            current = self._file_size()
            if current == previous:
                return
            previous = current

    def _file_size(self) -> Optional[int]:
        try:
            return self.target.path.stat().st_size
        except OSError:
            return None

    async def process(self) -> List[str]:
        """Read the file, extract diagrams and publish them in file order.

        Read and publish failures are logged; the watcher stays armed.

        Returns:
            The diagrams extracted from the file
        """
        async with self._process_lock:
            if self.state == WatcherState.STOPPED:
                return []
            initial = self.state == WatcherState.READY
            self.state = WatcherState.PROCESSING
            try:
                return await self._process_file(initial)
            finally:
                if self.state != WatcherState.STOPPED:
                    self.state = WatcherState.ARMED

    async def _process_file(self, initial: bool) -> List[str]:
        path = self.target.path
        if not initial:
            logger.info(f"File changed: {path}")

        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Error reading file {path}: {e}")
            return []

        diagrams = extract(content, path)
        if not diagrams:
            logger.info("No valid Mermaid diagrams found in file")
            return []

        suffix = " on startup" if initial else ""
        logger.info(f"Found {len(diagrams)} valid Mermaid diagram(s){suffix}")

        for i, code in enumerate(diagrams, 1):
            logger.info(f"Sending diagram {i}/{len(diagrams)}")
            try:
                await self.publisher.publish(code, self.theme)
            except RelayError as e:
                logger.error(f"Failed to send to bridge: {e}")
        return diagrams

    async def stop(self):
        """Stop observing the file. Safe to call more than once."""
        if self.state == WatcherState.STOPPED:
            return
        self.state = WatcherState.STOPPED

        if self._settle_task is not None and not self._settle_task.done():
            self._settle_task.cancel()
            try:
                await self._settle_task
            except asyncio.CancelledError:
                pass
        self._settle_task = None

        if self._observer is not None:
            observer, self._observer = self._observer, None
            observer.stop()
            await asyncio.to_thread(observer.join)

        await self.publisher.close()
        logger.info("File watcher stopped")
