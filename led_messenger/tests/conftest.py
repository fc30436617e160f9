"""
Pytest configuration and fixtures for led_messenger tests.
"""

import pytest
import pytest_asyncio

from led_messenger.config import OscConfig, RetryPolicy
from led_messenger.transport import Transport

from .fakes import FakeOpener


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


@pytest.fixture
def fast_retry():
    """Retry timings short enough for unit tests."""
    return RetryPolicy(
        quick_start_delay=0.05,
        retry_delay=0.2,
        min_attempt_interval=0.1,
        startup_wait=0.3,
        steady_wait=0.2,
        poll_interval=0.01,
        connect_timeout=0.5,
    )


@pytest.fixture
def osc_config():
    """Layer 3, clips 1-3, clear clip 4, no auto-clear."""
    return OscConfig(
        host="127.0.0.1",
        port=2269,
        layer=3,
        start_slot=1,
        clip_count=3,
        text_delay=0.01,
        auto_clear_after=0,
    )


@pytest.fixture
def opener():
    return FakeOpener()


@pytest_asyncio.fixture
async def transport(osc_config, fast_retry, opener):
    """Transport wired to the fake opener, closed after the test."""
    transport = Transport(osc_config, fast_retry, opener=opener)
    yield transport
    await transport.close()


@pytest_asyncio.fixture
async def make_transport(osc_config, fast_retry):
    """
    Factory for transports with their own opener mode.

    Returns (transport, opener); every transport is closed after the test.
    """
    created = []

    def factory(mode="ok", config=None, retry=None):
        opener = FakeOpener(mode)
        transport = Transport(config or osc_config, retry or fast_retry, opener=opener)
        created.append(transport)
        return transport, opener

    yield factory
    for transport in created:
        await transport.close()
