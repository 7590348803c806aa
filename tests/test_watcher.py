"""Tests for the file watcher."""

import asyncio
import logging
from unittest.mock import AsyncMock, Mock

import pytest
from aiohttp import test_utils, web

from sirelia.exceptions import RelayError, WatcherError
from sirelia.models import WatchTarget
from sirelia.publisher import RelayPublisher
from sirelia.watcher import FileWatcher, WatcherState

MARKDOWN = """# Diagrams

```mermaid
flowchart TD
A-->B
```

```mermaid
sequenceDiagram
A->>B: hi
```
"""

@pytest.fixture
def publisher():
    """Create a publisher double that records what it is sent."""
    mock = Mock(spec=RelayPublisher)
    mock.publish = AsyncMock(return_value={"success": True, "message": "sent"})
    mock.close = AsyncMock()
    return mock

@pytest.fixture
def markdown_file(tmp_path):
    """Create a markdown file holding two diagrams."""
    path = tmp_path / "notes.md"
    path.write_text(MARKDOWN, encoding="utf-8")
    return path

def make_watcher(path, publisher):
    return FileWatcher(
        WatchTarget(path),
        publisher,
        stability_window=0.02,
        poll_interval=0.02
    )

@pytest.mark.asyncio
async def test_start_publishes_initial_content_in_order(markdown_file, publisher):
    """Test start publishes initial content in order."""
    watcher = make_watcher(markdown_file, publisher)
    assert watcher.state == WatcherState.IDLE
    try:
        await watcher.start()
        assert watcher.state == WatcherState.ARMED
        assert [c.args for c in publisher.publish.await_args_list] == [
            ("flowchart TD\nA-->B", "default"),
            ("sequenceDiagram\nA->>B: hi", "default"),
        ]
    finally:
        await watcher.stop()

@pytest.mark.asyncio
async def test_start_fails_for_missing_directory(tmp_path, publisher):
    """Test start fails for missing directory."""
    watcher = make_watcher(tmp_path / "missing" / "notes.md", publisher)
    with pytest.raises(WatcherError):
        await watcher.start()
    publisher.publish.assert_not_awaited()

@pytest.mark.asyncio
async def test_start_twice_is_rejected(markdown_file, publisher):
    """Test start twice is rejected."""
    watcher = make_watcher(markdown_file, publisher)
    try:
        await watcher.start()
        with pytest.raises(WatcherError):
            await watcher.start()
    finally:
        await watcher.stop()

@pytest.mark.asyncio
async def test_read_failure_keeps_watcher_armed(markdown_file, publisher):
    """Test read failure keeps watcher armed."""
    watcher = make_watcher(markdown_file, publisher)
    try:
        await watcher.start()
        publisher.publish.reset_mock()
        markdown_file.unlink()

        assert await watcher.process() == []
        assert watcher.state == WatcherState.ARMED
        publisher.publish.assert_not_awaited()
    finally:
        await watcher.stop()

@pytest.mark.asyncio
async def test_publish_failure_does_not_stop_later_diagrams(markdown_file, publisher):
    """Test publish failure does not stop later diagrams."""
    publisher.publish.side_effect = [RelayError("relay down"), {"success": True, "message": "sent"}]
    watcher = make_watcher(markdown_file, publisher)
    try:
        await watcher.start()
        assert publisher.publish.await_count == 2
        assert watcher.state == WatcherState.ARMED
    finally:
        await watcher.stop()

@pytest.mark.asyncio
async def test_file_without_diagrams_publishes_nothing(tmp_path, publisher):
    """Test file without diagrams publishes nothing."""
    path = tmp_path / "plain.md"
    path.write_text("Just prose.\n", encoding="utf-8")
    watcher = make_watcher(path, publisher)
    try:
        await watcher.start()
        publisher.publish.assert_not_awaited()
    finally:
        await watcher.stop()

@pytest.mark.asyncio
async def test_change_is_processed_after_settling(markdown_file, publisher, wait_for):
    """Test change is processed after settling."""
    watcher = make_watcher(markdown_file, publisher)
    try:
        await watcher.start()
        publisher.publish.reset_mock()

        # Bursts of events collapse into a single processing run
        watcher.notify_change()
        watcher.notify_change()
        watcher.notify_change()

        await wait_for(lambda: publisher.publish.await_count >= 2)
        await asyncio.sleep(0.1)
        assert publisher.publish.await_count == 2
    finally:
        await watcher.stop()

@pytest.mark.asyncio
async def test_settle_waits_for_quiet_window(markdown_file, publisher):
    """Test settle waits for quiet window."""
    watcher = make_watcher(markdown_file, publisher)
    watcher.stability_window = 0.2
    loop = asyncio.get_running_loop()
    watcher._last_event = loop.time()

    started = loop.time()
    await watcher.wait_until_settled()
    assert loop.time() - started >= 0.2

@pytest.mark.asyncio
async def test_filesystem_event_triggers_publish(markdown_file, publisher, wait_for):
    """Test filesystem event triggers publish."""
    watcher = make_watcher(markdown_file, publisher)
    try:
        await watcher.start()
        publisher.publish.reset_mock()

        markdown_file.write_text("```mermaid\njourney\ntitle Day\n```\n", encoding="utf-8")

        await wait_for(lambda: publisher.publish.await_count >= 1, timeout=5.0)
        assert publisher.publish.await_args.args == ("journey\ntitle Day", "default")
    finally:
        await watcher.stop()

@pytest.mark.asyncio
async def test_stop_is_idempotent(markdown_file, publisher):
    """Test stop is idempotent."""
    watcher = make_watcher(markdown_file, publisher)
    await watcher.start()
    await watcher.stop()
    await watcher.stop()
    assert watcher.state == WatcherState.STOPPED
    publisher.close.assert_awaited_once()

@pytest.mark.asyncio
async def test_changes_after_stop_are_ignored(markdown_file, publisher):
    """Test changes after stop are ignored."""
    watcher = make_watcher(markdown_file, publisher)
    await watcher.start()
    await watcher.stop()
    publisher.publish.reset_mock()

    watcher.notify_change()
    await asyncio.sleep(0.1)
    assert await watcher.process() == []
    publisher.publish.assert_not_awaited()

@pytest.mark.asyncio
async def test_initial_diagram_reaches_subscriber(relay_client, tmp_path, wait_for):
    """Test initial diagram reaches subscriber."""
    relay, client = relay_client
    path = tmp_path / ".sirelia.mmd"
    path.write_text("classDiagram\nclass Foo\n", encoding="utf-8")

    ws = await client.ws_connect("/")
    watcher = FileWatcher(
        WatchTarget(path),
        RelayPublisher(str(client.make_url("/mermaid"))),
        stability_window=0.02,
        poll_interval=0.02
    )
    try:
        await wait_for(lambda: len(relay.subscribers) == 1)
        await watcher.start()
        frame = await ws.receive_json(timeout=2)
        assert frame["code"] == "classDiagram\nclass Foo"
    finally:
        await watcher.stop()
        await ws.close()

@pytest.mark.asyncio
async def test_start_arms_observer_before_initial_processing(markdown_file, publisher, caplog):
    """Test the observer is registered before the initial content is published."""
    caplog.set_level(logging.DEBUG, logger="sirelia.watcher")
    watcher = make_watcher(markdown_file, publisher)
    states = []
    publisher.publish.side_effect = lambda code, theme: states.append(watcher.state)
    try:
        await watcher.start()
    finally:
        await watcher.stop()

    assert "Observer registered" in caplog.text
    assert states == [WatcherState.PROCESSING, WatcherState.PROCESSING]

@pytest.mark.asyncio
async def test_malformed_relay_response_does_not_stop_later_diagrams(markdown_file):
    """Test a garbled acknowledgement is logged and the next diagram still goes out."""
    received = []

    async def garbled(request):
        received.append((await request.json())["code"])
        return web.Response(text="{not json", content_type="application/json")

    app = web.Application()
    app.router.add_post("/mermaid", garbled)
    async with test_utils.TestServer(app) as server:
        watcher = FileWatcher(
            WatchTarget(markdown_file),
            RelayPublisher(str(server.make_url("/mermaid"))),
            stability_window=0.02,
            poll_interval=0.02
        )
        try:
            await watcher.start()
            assert received == ["flowchart TD\nA-->B", "sequenceDiagram\nA->>B: hi"]
            assert watcher.state == WatcherState.ARMED
        finally:
            await watcher.stop()
