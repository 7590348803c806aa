"""Test configuration and fixtures."""

import asyncio

import pytest
import pytest_asyncio
from aiohttp import test_utils

from sirelia.config import SireliaConfig
from sirelia.relay import RelayServer

async def _poll_until(predicate, timeout: float = 2.0, interval: float = 0.01):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(interval)

@pytest.fixture
def wait_for():
    """Poll a predicate until it is true or the timeout expires."""
    return _poll_until

@pytest.fixture
def config(tmp_path, unused_tcp_port_factory):
    """Create a test configuration."""
    return SireliaConfig(
        host="127.0.0.1",
        web_port=unused_tcp_port_factory(),
        bridge_port=unused_tcp_port_factory(),
        static_dir=tmp_path / "out",
        log_dir=tmp_path / "logs",
        stability_threshold_ms=20,
        poll_interval_ms=20,
        publish_timeout=2.0
    )

@pytest_asyncio.fixture
async def relay_client():
    """Run a relay in-process and yield it with a test client bound to it."""
    relay = RelayServer()
    async with test_utils.TestClient(test_utils.TestServer(relay.app)) as client:
        yield relay, client
