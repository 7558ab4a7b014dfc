"""Thin wrapper around a Playwright page for the portal helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence

from playwright.async_api import Page, TimeoutError as PlaywrightTimeout


@dataclass
class ToolError(Exception):
    """Raised when a browser operation fails."""

    name: str
    payload: Dict[str, Any]
    message: str

    def __str__(self) -> str:  # pragma: no cover - human readable helper
        return f"{self.name} failed ({self.message}) with payload={self.payload}"


class Browser:
    """Convenience wrapper over a Playwright page."""

    def __init__(self, page: Page) -> None:
        self._page = page
        self.current_url: str | None = None
        self.current_title: str | None = None

    @property
    def page(self) -> Page:
        return self._page

    async def _update_state(self) -> None:
        self.current_url = self._page.url
        self.current_title = await self._page.title()

    async def goto(self, url: str, wait_until: str = "networkidle", timeout: int = 30000) -> Dict[str, Any]:
        """Navigate to URL and return the landing URL, title and status.

        "networkidle" never settles on pages that keep a long-poll or
        WebSocket open; when it times out the navigation is retried with
        "domcontentloaded".
        """
        try:
            response = await self._page.goto(url, wait_until=wait_until, timeout=timeout)
            await self._update_state()
            return {"url": self.current_url, "title": self.current_title, "status": response.status if response else None}
        except PlaywrightTimeout as exc:
            if wait_until == "networkidle":
                try:
                    response = await self._page.goto(url, wait_until="domcontentloaded", timeout=timeout)
                    await self._update_state()
                    return {"url": self.current_url, "title": self.current_title, "status": response.status if response else None}
                except PlaywrightTimeout:
                    pass
            raise ToolError(name="goto", payload={"url": url, "wait_until": wait_until}, message=str(exc))
        except Exception as exc:
            raise ToolError(name="goto", payload={"url": url, "wait_until": wait_until}, message=str(exc))

    async def settle(self, delay_ms: int) -> str:
        """Wait a fixed delay for client-side redirects, then return the URL.

        The page may navigate away during the wait, which destroys its
        execution context, so only the URL is read back afterwards.
        """
        try:
            if delay_ms > 0:
                await self._page.wait_for_timeout(delay_ms)
        except Exception as exc:
            raise ToolError(name="settle", payload={"delay_ms": delay_ms}, message=str(exc))
        self.current_url = self._page.url
        self.current_title = None
        return self.current_url

    async def set_extra_headers(self, headers: Mapping[str, str]) -> None:
        try:
            await self._page.set_extra_http_headers(dict(headers))
        except Exception as exc:
            raise ToolError(name="set_extra_headers", payload=dict(headers), message=str(exc))

    async def visible(self, selectors: Sequence[str]) -> List[str]:
        """Return the selectors that match at least one visible element."""
        found: List[str] = []
        try:
            for selector in selectors:
                if await self._page.locator(selector).first.is_visible():
                    found.append(selector)
        except Exception as exc:
            raise ToolError(name="visible", payload={"selectors": list(selectors)}, message=str(exc))
        return found
