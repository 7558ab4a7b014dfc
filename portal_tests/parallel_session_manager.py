"""
Parallel Session Manager for multi-actor portal tests.

Each simulated user (staff, customer, driver, admin) gets its own browser
context, so cookies and storage never leak between them. Logins of
different sessions are not serialized; races on shared backend records are
the application's concern.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, TypedDict, Union
import logging

import httpx
from playwright.async_api import Browser, BrowserContext, Page

from portal_tests.auth_state import SessionOutcome, establish_session
from portal_tests.config import PortalTestConfig, Role, resolve_role, settings

logger = logging.getLogger(__name__)


class ViewportSize(TypedDict):
    width: int
    height: int


@dataclass
class SessionHandle:
    """Handle to a parallel browser session."""
    session_id: str
    context: BrowserContext
    page: Page
    role: Optional[Role]  # None for anonymous sessions
    outcome: Optional[SessionOutcome] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        role = self.role.value if self.role else "anonymous"
        method = self.outcome.method.value if self.outcome else "none"
        return f"SessionHandle(id={self.session_id}, role={role}, session={method})"


class ParallelSessionManager:
    """
    Manages isolated browser sessions, one per persona.

    Usage:
        async with ParallelSessionManager(client.browser) as manager:
            staff = await manager.role_session("staff")
            driver = await manager.role_session("driver")
            await staff.page.goto("/staff/")
            await driver.page.goto("/driver/")
    """

    DEFAULT_VIEWPORT: ViewportSize = {'width': 1280, 'height': 720}
    DEFAULT_LOCALE = 'en-US'

    def __init__(
        self,
        browser: Browser,
        config: Optional[PortalTestConfig] = None,
        viewport: Optional[ViewportSize] = None,
        locale: str = DEFAULT_LOCALE,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            browser: Playwright Browser instance
            config: Target configuration (defaults to the global settings)
            viewport: Default viewport size
            locale: Browser locale setting
            client: HTTP client reused for backend logins
        """
        self.browser = browser
        self.config = config or settings
        self.viewport: ViewportSize = viewport or self.DEFAULT_VIEWPORT
        self.locale = locale
        self.client = client
        self.sessions: Dict[str, SessionHandle] = {}
        self._counter = 0

    async def __aenter__(self) -> 'ParallelSessionManager':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close_all()

    async def create_session(
        self,
        role: Optional[Role] = None,
        session_id: Optional[str] = None,
        viewport: Optional[ViewportSize] = None,
    ) -> SessionHandle:
        """
        Create a new isolated, unauthenticated browser session.

        Args:
            role: Persona the session will act as (None for anonymous)
            session_id: Custom session ID (auto-generated if not provided)
            viewport: Custom viewport size
        """
        if session_id is None:
            self._counter += 1
            session_id = f"{role.value if role else 'anonymous'}_{self._counter}"

        if session_id in self.sessions:
            raise ValueError(f"Session {session_id} already exists")

        context = await self.browser.new_context(
            viewport=viewport if viewport is not None else self.viewport,
            locale=self.locale,
            base_url=self.config.web_url,
        )
        page = await context.new_page()

        handle = SessionHandle(session_id=session_id, context=context, page=page, role=role)
        self.sessions[session_id] = handle

        logger.debug(f"Created session: {handle}")
        return handle

    async def close_session(self, session_id: str) -> None:
        """Close and remove a session."""
        if session_id in self.sessions:
            handle = self.sessions.pop(session_id)
            try:
                await handle.context.close()
                logger.debug(f"Closed session: {handle}")
            except Exception as e:
                logger.warning(f"Error closing session {session_id}: {e}")

    async def close_all(self) -> None:
        for session_id in list(self.sessions.keys()):
            await self.close_session(session_id)

    async def role_session(self, role: Union[Role, str], authenticate: bool = True) -> SessionHandle:
        """
        Get or create the session for a persona.

        Args:
            role: Persona name or Role; unknown roles raise ConfigurationError
            authenticate: Install a session cookie when the session is created
        """
        role = resolve_role(role)
        session_id = role.value

        if session_id not in self.sessions:
            handle = await self.create_session(role, session_id)
            if authenticate:
                handle.outcome = await establish_session(
                    handle.context,
                    role,
                    page=handle.page,
                    config=self.config,
                    client=self.client,
                )
                logger.debug(f"Session ready: {handle}")

        return self.sessions[session_id]

    async def anonymous_session(self) -> SessionHandle:
        """Get or create an unauthenticated session."""
        if 'anonymous' not in self.sessions:
            await self.create_session(None, 'anonymous')
        return self.sessions['anonymous']

    @property
    def session_count(self) -> int:
        return len(self.sessions)

    def list_sessions(self) -> list[str]:
        return list(self.sessions.keys())
