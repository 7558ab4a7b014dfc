import sys
import threading
from pathlib import Path

import pytest
import pytest_asyncio
from playwright.async_api import Error as PlaywrightError
from werkzeug.serving import make_server

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from portal_tests.config import PortalTestConfig
from portal_tests.mock_portal_app import create_mock_portal_app, reset_mock_state
from portal_tests.playwright_client import PlaywrightClient


class MockPortalServer:
    """Runs the mock portal app in a background thread on a free port."""

    def __init__(self, host='127.0.0.1', **app_options):
        self.host = host
        self.app = create_mock_portal_app(**app_options)
        self.server = None
        self.thread = None

    def start(self):
        self.server = make_server(self.host, 0, self.app, threaded=True)
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()

    def stop(self):
        if self.server:
            self.server.shutdown()
            if self.thread:
                self.thread.join(timeout=5)

    @property
    def port(self) -> int:
        return self.server.server_port

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


@pytest.fixture(scope='function')
def start_mock_portal():
    """Factory fixture: start a mock portal with the given app options.

    Usage:
        def test_login_outage(start_mock_portal):
            server = start_mock_portal(failure_status=500)
    """
    servers = []
    reset_mock_state()

    def _start(**app_options) -> MockPortalServer:
        server = MockPortalServer(**app_options)
        server.start()
        servers.append(server)
        return server

    yield _start

    for server in servers:
        server.stop()
    reset_mock_state()


@pytest.fixture(scope='function')
def mock_portal_server(start_mock_portal):
    """A healthy mock portal that delivers the session as a cookie."""
    return start_mock_portal()


def make_config(server: MockPortalServer) -> PortalTestConfig:
    """Config pointed at a mock portal, with no settle delay."""
    return PortalTestConfig(
        web_url=server.base_url,
        login_timeout=5,
        settle_ms=0,
        nav_timeout_ms=15000,
        headless=True,
    )


@pytest.fixture(scope='function')
def portal_config(mock_portal_server):
    return make_config(mock_portal_server)


@pytest_asyncio.fixture()
async def playwright_client():
    """Launch a headless browser, skipping when Playwright browsers are missing."""
    client = PlaywrightClient(headless=True)
    try:
        await client.connect()
    except PlaywrightError as exc:
        pytest.skip(f"Playwright browser not available - run 'playwright install chromium' ({exc})")
    try:
        yield client
    finally:
        await client.close()


@pytest_asyncio.fixture()
async def fresh_page(playwright_client):
    """A page in its own isolated browser context."""
    context = await playwright_client.new_context()
    page = await context.new_page()
    yield page
    await context.close()


@pytest.fixture(scope='function')
def config_for():
    """Build a PortalTestConfig for any MockPortalServer."""
    return make_config


@pytest.fixture(scope='session')
def playwright_available():
    """Skip synchronous tests that launch their own browser when none is installed."""
    from playwright.sync_api import sync_playwright

    try:
        with sync_playwright() as pw:
            pw.chromium.launch(headless=True).close()
    except PlaywrightError as exc:
        pytest.skip(f"Playwright browser not available - run 'playwright install chromium' ({exc})")
    return True
