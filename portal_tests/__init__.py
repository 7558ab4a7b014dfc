"""Authentication bootstrap helpers for the shipping portals' end-to-end tests."""

from portal_tests.auth_state import (
    AuthResult,
    ContentCheck,
    PortalChecks,
    SessionOutcome,
    establish_session,
    navigate_and_verify,
    verify_all_portals,
)
from portal_tests.config import ConfigurationError, Role, resolve_role, settings
from portal_tests.session_tokens import FallbackReason, SessionPath

__all__ = [
    "AuthResult",
    "ContentCheck",
    "ConfigurationError",
    "FallbackReason",
    "PortalChecks",
    "Role",
    "SessionOutcome",
    "SessionPath",
    "establish_session",
    "navigate_and_verify",
    "resolve_role",
    "settings",
    "verify_all_portals",
]
