"""
Authentication bootstrap for portal tests.

Puts a browser context into a logged-in state for one persona:

1. Resolve the role (unknown roles raise ConfigurationError, nothing is touched).
2. Try the real backend login.
3. If that fails, build a synthetic development-only token instead.
4. Install the token as the session cookie, and best-effort into localStorage.

`navigate_and_verify` then opens the role's portal and classifies the URL it
lands on, then looks for the role's portal markers (or the login form when it
was bounced). Whether the session is real or synthetic is reported in the result
objects, so callers can tell "really authenticated" from "locally faked".
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union
from urllib.parse import unquote, urlparse

import httpx
from playwright.async_api import BrowserContext, Error as PlaywrightError, Page

from portal_tests.browser import Browser, ToolError
from portal_tests.config import PortalTestConfig, Role, resolve_role, settings
from portal_tests.session_tokens import (
    FallbackReason,
    SessionPath,
    build_synthetic_token,
    request_login_token,
)

logger = logging.getLogger(__name__)

LOGIN_SEGMENTS = frozenset({"login"})
UNAUTHORIZED_SEGMENTS = frozenset({"unauthorized", "denied", "access-denied"})
LOGIN_FORM_SELECTORS = ('input[type="email"]', 'input[type="password"]', 'button[type="submit"]')

_LOCAL_STORAGE_SCRIPT = """
(data) => {
    localStorage.setItem('token', data.token);
    localStorage.setItem('accessToken', data.token);
    localStorage.setItem('user', JSON.stringify(data.user));
}
"""


@dataclass
class SessionOutcome:
    """What `establish_session` installed and why."""

    role: Role
    token: str
    method: SessionPath
    reason: Optional[FallbackReason] = None
    status_code: Optional[int] = None
    detail: str = ""
    local_storage_written: bool = False

    @property
    def is_real(self) -> bool:
        return self.method is SessionPath.REAL


@dataclass
class PortalChecks:
    on_target_portal: bool
    not_login: bool
    not_unauthorized: bool

    @property
    def passed(self) -> bool:
        return self.on_target_portal and self.not_login and self.not_unauthorized

    def as_dict(self) -> Dict[str, bool]:
        return {
            "on_target_portal": self.on_target_portal,
            "not_login": self.not_login,
            "not_unauthorized": self.not_unauthorized,
        }


@dataclass
class ContentCheck:
    """Markers looked for on the page the browser landed on.

    On a portal page any one role marker counts; on the login page every
    form element must be present.
    """

    page_kind: str  # "portal" or "login"
    expected: Tuple[str, ...]
    found: List[str] = field(default_factory=list)

    @property
    def verified(self) -> bool:
        if self.page_kind == "login":
            return len(self.found) == len(self.expected)
        return bool(self.found)


@dataclass
class AuthResult:
    """Report of one `navigate_and_verify` attempt.

    `method` and `outcome` are None when the browser failed before a
    session could be installed.
    """

    success: bool
    final_url: str
    target_url: str
    role: Role
    method: Optional[SessionPath]
    checks: PortalChecks
    outcome: Optional[SessionOutcome]
    error: Optional[str] = None
    content: Optional[ContentCheck] = None

    @property
    def content_verified(self) -> Optional[bool]:
        return self.content.verified if self.content is not None else None


def build_session_cookie(token: str, config: Optional[PortalTestConfig] = None) -> Dict[str, object]:
    """Session cookie for the test host.

    Not httpOnly so tests can read it back, not secure because the targets
    are plain-HTTP dev hosts.
    """
    config = config or settings
    return {
        "name": config.cookie_name,
        "value": token,
        "domain": config.cookie_domain,
        "path": "/",
        "httpOnly": False,
        "secure": False,
        "sameSite": "Lax",
    }


def _origin(url: str) -> Tuple[str, str]:
    parsed = urlparse(url)
    return parsed.scheme, parsed.netloc


async def _write_local_storage(page: Page, token: str, user: Dict[str, str], config: PortalTestConfig) -> bool:
    # localStorage is per origin and denied on about:blank, so the page is
    # moved onto the application origin first.
    try:
        if _origin(page.url) != _origin(config.web_url):
            await page.goto(config.web_url, wait_until="domcontentloaded", timeout=config.nav_timeout_ms)
        await page.evaluate(_LOCAL_STORAGE_SCRIPT, {"token": token, "user": user})
    except PlaywrightError as exc:
        logger.debug(f"localStorage not writable on {page.url}: {exc}")
        return False
    return True


async def establish_session(
    context: BrowserContext,
    role: Union[Role, str],
    *,
    page: Optional[Page] = None,
    config: Optional[PortalTestConfig] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> SessionOutcome:
    """Install a session cookie for `role` into `context`.

    Always installs some token for a valid role: the real one when the
    backend login yields it, a synthetic one otherwise. Raises
    ConfigurationError for an unknown role before any side effect.

    When `page` is given the token is also written to localStorage on the
    application origin, navigating the page there if needed.
    """
    config = config or settings
    role = resolve_role(role)
    profile = config.profile(role)

    attempt = await request_login_token(profile, config, client=client)
    if attempt.succeeded:
        outcome = SessionOutcome(
            role=role,
            token=attempt.token,
            method=SessionPath.REAL,
            status_code=attempt.status_code,
        )
        logger.info(f"Real session obtained for {role.value}")
    else:
        outcome = SessionOutcome(
            role=role,
            token=build_synthetic_token(profile),
            method=SessionPath.FALLBACK,
            reason=attempt.reason,
            status_code=attempt.status_code,
            detail=attempt.detail,
        )
        logger.warning(
            f"Falling back to synthetic session for {role.value} "
            f"({attempt.reason.value}: {attempt.detail})"
        )

    await context.add_cookies([build_session_cookie(outcome.token, config)])

    if page is not None:
        user = {"email": profile.email, "role": role.value, "displayName": profile.display_name}
        outcome.local_storage_written = await _write_local_storage(page, outcome.token, user, config)

    return outcome


def _path_segments(path: str) -> List[str]:
    return [unquote(segment).lower() for segment in path.split("/") if segment]


def check_portal_url(final_url: str, portal_path: str) -> PortalChecks:
    """Classify the URL reached after navigating to a portal.

    Matching is by path segment, so "/staff/login-history" is neither a
    login page nor a different portal.
    """
    segments = _path_segments(urlparse(final_url).path)
    expected = _path_segments(portal_path)
    return PortalChecks(
        on_target_portal=bool(expected) and segments[: len(expected)] == expected,
        not_login=not any(segment in LOGIN_SEGMENTS for segment in segments),
        not_unauthorized=not any(segment in UNAUTHORIZED_SEGMENTS for segment in segments),
    )


async def check_page_content(browser: Browser, markers: Sequence[str], checks: PortalChecks) -> Optional[ContentCheck]:
    """Look for role markers on a portal page or the form on a login page.

    Returns None for any other page (unauthorized, foreign portal).
    """
    if checks.passed:
        selectors = {f"text={marker}": marker for marker in markers}
        found = await browser.visible(list(selectors))
        return ContentCheck("portal", tuple(markers), [selectors[s] for s in found])
    if not checks.not_login:
        found = await browser.visible(LOGIN_FORM_SELECTORS)
        return ContentCheck("login", LOGIN_FORM_SELECTORS, found)
    return None


def _failed_result(page: Page, role: Role, target_url: str, portal_path: str,
                   outcome: Optional[SessionOutcome], error: str) -> AuthResult:
    return AuthResult(
        success=False,
        final_url=page.url,
        target_url=target_url,
        role=role,
        method=outcome.method if outcome else None,
        checks=check_portal_url(page.url, portal_path),
        outcome=outcome,
        error=error,
    )


async def navigate_and_verify(
    page: Page,
    role: Union[Role, str],
    *,
    config: Optional[PortalTestConfig] = None,
    client: Optional[httpx.AsyncClient] = None,
    require_content: bool = False,
) -> AuthResult:
    """Establish a session, open the role's portal and verify where we landed.

    Browser failures (closed context, failed navigation) come back as a
    non-success result with `error` set; only ConfigurationError is raised.
    With `require_content` the role's portal markers must also be visible.
    """
    config = config or settings
    role = resolve_role(role)
    profile = config.profile(role)
    target_url = config.portal_url(role)

    try:
        outcome = await establish_session(page.context, role, page=page, config=config, client=client)
    except PlaywrightError as exc:
        logger.error(f"Could not install a session for {role.value}: {exc}")
        return _failed_result(page, role, target_url, profile.portal_path, None, str(exc))

    browser = Browser(page)
    try:
        await browser.set_extra_headers({
            "x-test-mode": "true",
            "x-test-role": role.value,
            "x-session-type": outcome.method.value,
        })
        await browser.goto(target_url, timeout=config.nav_timeout_ms)
        final_url = await browser.settle(config.settle_ms)
        checks = check_portal_url(final_url, profile.portal_path)
        content = await check_page_content(browser, profile.portal_markers, checks)
    except ToolError as exc:
        logger.error(f"Navigation to {target_url} failed for {role.value}: {exc}")
        return _failed_result(page, role, target_url, profile.portal_path, outcome, str(exc))

    success = checks.passed and (not require_content or bool(content and content.verified))
    logger.info(
        f"{role.value}: {'SUCCESS' if success else 'UNVERIFIED'} via {outcome.method.value} "
        f"session, final URL {final_url} checks={checks.as_dict()}"
    )
    return AuthResult(
        success=success,
        final_url=final_url,
        target_url=target_url,
        role=role,
        method=outcome.method,
        checks=checks,
        outcome=outcome,
        content=content,
    )


async def verify_all_portals(
    pairs: Iterable[Tuple[Page, Union[Role, str]]],
    *,
    config: Optional[PortalTestConfig] = None,
    client: Optional[httpx.AsyncClient] = None,
    require_content: bool = False,
) -> List[AuthResult]:
    """Run `navigate_and_verify` concurrently for several (page, role) pairs.

    Every page should belong to its own browser context. Results come back
    in input order; a role whose browser fails gets a failed result without
    affecting the others.
    """
    resolved = [(page, resolve_role(role)) for page, role in pairs]
    results = await asyncio.gather(*(
        navigate_and_verify(page, role, config=config, client=client, require_content=require_content)
        for page, role in resolved
    ))
    verified = sum(1 for result in results if result.success)
    logger.info(f"{verified}/{len(results)} portals verified")
    return list(results)
