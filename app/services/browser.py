"""Headless Chromium sessions for Lighthouse, managed with Playwright."""

from __future__ import annotations

import asyncio
import logging
import socket
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from playwright.async_api import Browser, Page, async_playwright

from app.errors.exceptions import AuditError, PlaywrightBrowsersNotInstalledError

logger = logging.getLogger(__name__)

CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--no-zygote",
    "--proxy-bypass-list=*",
    "--ignore-certificate-errors",
    "--ignore-certificate-errors-spki-list",
]


def check_playwright_browsers_available() -> None:
    """
    Check if Playwright Chromium browser is installed.

    Raises:
        PlaywrightBrowsersNotInstalledError: If Chromium browser is not installed.
    """
    # Default: ~/.cache/ms-playwright on Linux/macOS, %USERPROFILE%\AppData\Local\ms-playwright on Windows
    playwright_cache = Path.home() / ".cache" / "ms-playwright"
    if sys.platform == "win32":
        playwright_cache = Path.home() / "AppData" / "Local" / "ms-playwright"

    if not playwright_cache.exists():
        raise PlaywrightBrowsersNotInstalledError(
            "Playwright browsers not installed. Run: playwright install chromium"
        )

    # chromium-* or chromium_headless_shell-*
    chromium_dirs = list(playwright_cache.glob("chromium*"))
    if not chromium_dirs:
        raise PlaywrightBrowsersNotInstalledError(
            "Playwright Chromium not installed. Run: playwright install chromium"
        )


# CDP ports held by sessions still open in this process
_ports_in_use: set[int] = set()

PORT_SEARCH_RANGE = 200


def _port_is_free(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind(("127.0.0.1", port))
        except OSError:
            return False
    return True


def reserve_debugging_port(base_port: int = 9222) -> int:
    """
    Reserve the first CDP port at or above base_port that no open session holds
    and nothing on the host is listening on.

    Raises:
        AuditError: If every port in the search range is taken.
    """
    for port in range(base_port, base_port + PORT_SEARCH_RANGE):
        if port not in _ports_in_use and _port_is_free(port):
            _ports_in_use.add(port)
            return port
    raise AuditError(
        f"No free Chrome debugging port in {base_port}-{base_port + PORT_SEARCH_RANGE - 1}"
    )


def release_debugging_port(port: int) -> None:
    _ports_in_use.discard(port)


def debugging_port(endpoint: str) -> int:
    """
    Extract the remote-debugging port from a CDP endpoint.

    Accepts both http://host:port and ws://host:port/devtools/browser/<id> forms.
    """
    port = urlparse(endpoint).port
    if port is None:
        raise ValueError(f"CDP endpoint has no port: {endpoint}")
    return port


@dataclass
class BrowserSession:
    """A launched Chromium instance exposing a CDP endpoint Lighthouse can attach to."""

    browser: Browser
    cdp_endpoint: str

    @property
    def port(self) -> int:
        return debugging_port(self.cdp_endpoint)

    @asynccontextmanager
    async def fresh_page(self) -> AsyncIterator[Page]:
        """Open a new page for a single audit and close it afterwards."""
        page = await self.browser.new_page()
        try:
            yield page
        finally:
            try:
                await page.close()
            except Exception as e:
                logger.warning(f"Error closing audit page: {e}")


@asynccontextmanager
async def launch_browser(base_port: int = 9222, launch_timeout: int = 30) -> AsyncIterator[BrowserSession]:
    """
    Launch a headless Chromium with remote debugging on a port of its own.

    Each launch reserves a distinct port, so concurrent sessions never attach
    Lighthouse to each other's browser. The browser lives for the duration of
    the context and is closed on exit, releasing the port.
    """
    check_playwright_browsers_available()

    port = reserve_debugging_port(base_port)
    try:
        async with async_playwright() as playwright:
            browser = await asyncio.wait_for(
                playwright.chromium.launch(
                    headless=True,
                    args=[f"--remote-debugging-port={port}", *CHROMIUM_ARGS],
                ),
                timeout=launch_timeout,
            )
            session = BrowserSession(browser=browser, cdp_endpoint=f"http://127.0.0.1:{port}")
            logger.info(f"Launched Chromium with CDP endpoint {session.cdp_endpoint}")
            try:
                yield session
            finally:
                try:
                    await browser.close()
                except Exception as e:
                    logger.error(f"Error closing browser: {e}")
    finally:
        release_debugging_port(port)
