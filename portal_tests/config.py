"""Shared configuration for the portal end-to-end helpers.

Roles, their credentials and their home portals live in one exhaustive
table (ROLE_PROFILES). Targets (web host, login endpoint, timeouts) are read
from the environment, then from `.env.defaults`, then from built-in values.

Environment:
    PORTAL_WEB_URL          web front-end base URL (default http://localhost:8849)
    PORTAL_LOGIN_URL        backend login endpoint (default <web>/api/auth/login)
    PORTAL_HEALTH_URL       backend health endpoint (default <web>/api/health)
    PORTAL_COOKIE_NAME      session cookie name (default "session")
    PORTAL_LOGIN_TIMEOUT    login round-trip timeout in seconds (default 10)
    PORTAL_SETTLE_MS        settle delay after navigation in ms (default 3000)
    PORTAL_NAV_TIMEOUT_MS   navigation timeout in ms (default 30000)
    PLAYWRIGHT_HEADLESS     "true"/"false" (default true)
    PORTAL_<ROLE>_EMAIL / PORTAL_<ROLE>_PASSWORD   credential overrides
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Optional, Tuple, Union
from urllib.parse import urljoin, urlparse

from portal_tests.env_defaults import env_value

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Raised for unknown roles or an unusable test configuration."""


class Role(str, Enum):
    STAFF = "staff"
    CUSTOMER = "customer"
    DRIVER = "driver"
    ADMIN = "admin"


@dataclass(frozen=True)
class RoleProfile:
    """Credential pair and home portal for one persona."""

    role: Role
    email: str
    password: str
    portal_path: str
    first_name: str = "Test"
    last_name: str = ""
    # Visible text expected somewhere on the portal once signed in.
    portal_markers: Tuple[str, ...] = ()

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


# Matches the seed users of the application under test. Admin has no portal
# of its own and lands on the staff portal.
ROLE_PROFILES: Dict[Role, RoleProfile] = {
    Role.STAFF: RoleProfile(
        Role.STAFF, "staff@shipnorth.com", "staff123", "/staff/", last_name="Staff",
        portal_markers=("Staff Dashboard", "Packages", "Customers", "Loads"),
    ),
    Role.CUSTOMER: RoleProfile(
        Role.CUSTOMER, "test@test.com", "test123", "/portal/", last_name="Customer",
        portal_markers=("Your Packages", "Track Package", "Account"),
    ),
    Role.DRIVER: RoleProfile(
        Role.DRIVER, "driver@shipnorth.com", "driver123", "/driver/", last_name="Driver",
        portal_markers=("My Loads", "Routes", "Deliveries"),
    ),
    Role.ADMIN: RoleProfile(
        Role.ADMIN, "admin@shipnorth.com", "admin123", "/staff/", last_name="Admin",
        portal_markers=("Admin Dashboard", "Staff Dashboard", "Users", "Settings"),
    ),
}


def _check_role_table() -> None:
    missing = [role.value for role in Role if role not in ROLE_PROFILES]
    if missing:
        raise ConfigurationError(f"ROLE_PROFILES has no entry for: {', '.join(missing)}")
    for role, profile in ROLE_PROFILES.items():
        if profile.role is not role:
            raise ConfigurationError(f"ROLE_PROFILES[{role.value}] describes {profile.role.value}")


_check_role_table()


def resolve_role(value: Union[Role, str]) -> Role:
    """Return the Role for `value` or raise ConfigurationError."""
    if isinstance(value, Role):
        return value
    if isinstance(value, str):
        try:
            return Role(value.strip().lower())
        except ValueError:
            pass
    known = ", ".join(role.value for role in Role)
    raise ConfigurationError(f"Unknown role {value!r} (expected one of: {known})")


def _int_setting(key: str, default: int) -> int:
    raw = env_value(key, str(default))
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from None


class PortalTestConfig:
    """Configuration for one run against a deployed application.

    Every value can be overridden through the constructor, which is how the
    test suite points the helpers at the local mock application.
    """

    def __init__(
        self,
        web_url: Optional[str] = None,
        login_url: Optional[str] = None,
        health_url: Optional[str] = None,
        cookie_name: Optional[str] = None,
        login_timeout: Optional[float] = None,
        settle_ms: Optional[int] = None,
        nav_timeout_ms: Optional[int] = None,
        headless: Optional[bool] = None,
    ) -> None:
        self.web_url: str = (web_url or env_value("PORTAL_WEB_URL", "http://localhost:8849")).rstrip("/")
        if not urlparse(self.web_url).hostname:
            raise ConfigurationError(f"PORTAL_WEB_URL is not an absolute URL: {self.web_url!r}")

        self.login_url: str = login_url or env_value("PORTAL_LOGIN_URL") or self.url("/api/auth/login")
        self.health_url: str = health_url or env_value("PORTAL_HEALTH_URL") or self.url("/api/health")
        self.cookie_name: str = cookie_name or env_value("PORTAL_COOKIE_NAME", "session")

        if login_timeout is None:
            login_timeout = float(_int_setting("PORTAL_LOGIN_TIMEOUT", 10))
        self.login_timeout: float = login_timeout
        self.settle_ms: int = settle_ms if settle_ms is not None else _int_setting("PORTAL_SETTLE_MS", 3000)
        self.nav_timeout_ms: int = (
            nav_timeout_ms if nav_timeout_ms is not None else _int_setting("PORTAL_NAV_TIMEOUT_MS", 30000)
        )

        if headless is None:
            headless = env_value("PLAYWRIGHT_HEADLESS", "true").lower() in {"true", "1"}
        self.playwright_headless: bool = headless

        self._profiles: Dict[Role, RoleProfile] = {}
        for role, profile in ROLE_PROFILES.items():
            prefix = f"PORTAL_{role.value.upper()}"
            self._profiles[role] = replace(
                profile,
                email=env_value(f"{prefix}_EMAIL", profile.email),
                password=env_value(f"{prefix}_PASSWORD", profile.password),
            )

        logger.debug(
            "[CONFIG] web=%s login=%s cookie=%s settle_ms=%s",
            self.web_url, self.login_url, self.cookie_name, self.settle_ms,
        )

    # ---- role helpers -----------------------------------------------------------
    def profile(self, role: Union[Role, str]) -> RoleProfile:
        return self._profiles[resolve_role(role)]

    def portal_url(self, role: Union[Role, str]) -> str:
        return self.url(self.profile(role).portal_path)

    # ---- utility helpers --------------------------------------------------------
    @property
    def cookie_domain(self) -> str:
        """Host the session cookie is scoped to."""
        return urlparse(self.web_url).hostname

    def url(self, path: str) -> str:
        """Return an absolute URL for the provided path."""
        return urljoin(self.web_url + "/", path.lstrip("/"))


settings = PortalTestConfig()
