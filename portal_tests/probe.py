#!/usr/bin/env python3
"""Probe portal logins against a running deployment.

For every requested role this opens a fresh browser context, runs the auth
bootstrap and reports where the browser landed. An optional health request
to the backend runs first so a dead API is reported as such instead of as a
wall of fallback sessions.

Exit status: 0 when every role verified, 1 otherwise, 2 for configuration
errors (unknown role, malformed settings).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional, Sequence

import httpx

from portal_tests.auth_state import AuthResult, verify_all_portals
from portal_tests.config import ConfigurationError, PortalTestConfig, Role, resolve_role
from portal_tests.playwright_client import PlaywrightClient

logger = logging.getLogger(__name__)


def check_health(config: PortalTestConfig) -> bool:
    try:
        with httpx.Client(timeout=config.login_timeout) as client:
            response = client.get(config.health_url)
    except httpx.HTTPError as exc:
        print(f"health    DOWN       {config.health_url} ({exc})")
        return False
    ok = response.is_success
    print(f"health    {'UP' if ok else 'DOWN':<10} {config.health_url} (HTTP {response.status_code})")
    return ok


def describe(result: AuthResult) -> str:
    """One-line human-readable summary of an AuthResult."""
    marks = " ".join(f"{name}={'ok' if ok else 'FAIL'}" for name, ok in result.checks.as_dict().items())
    method = result.method.value if result.method else "none"
    line = (
        f"{result.role.value:<9} {method:<9} "
        f"{'SUCCESS' if result.success else 'UNVERIFIED':<10} {result.final_url} [{marks}]"
    )
    if result.content is not None:
        line += f" {result.content.page_kind}-content={len(result.content.found)}/{len(result.content.expected)}"
    if result.outcome is not None and result.outcome.reason is not None:
        line += f" fallback={result.outcome.reason.value}"
    if result.error:
        line += f" error={result.error}"
    return line


def outcome_json(result: AuthResult) -> str:
    reason = result.outcome.reason if result.outcome else None
    return json.dumps({
        "role": result.role.value,
        "success": result.success,
        "method": result.method.value if result.method else None,
        "final_url": result.final_url,
        "target_url": result.target_url,
        "checks": result.checks.as_dict(),
        "content_verified": result.content_verified,
        "fallback_reason": reason.value if reason else None,
        "error": result.error,
    })


async def probe_roles(
    roles: Sequence[Role],
    config: PortalTestConfig,
    browser_type: str = "chromium",
    require_content: bool = False,
) -> List[AuthResult]:
    """Verify each role in its own browser context, concurrently."""
    async with PlaywrightClient(browser_type=browser_type, headless=config.playwright_headless) as pw:
        async with httpx.AsyncClient(timeout=config.login_timeout) as client:
            contexts = [await pw.new_context() for _ in roles]
            try:
                pages = [await context.new_page() for context in contexts]
                return await verify_all_portals(
                    zip(pages, roles), config=config, client=client, require_content=require_content
                )
            finally:
                for context in contexts:
                    await context.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.split("\n\n")[0])
    parser.add_argument(
        "--role",
        action="append",
        dest="roles",
        help="Role to probe (repeatable; default: all roles)",
    )
    parser.add_argument("--web-url", default=None, help="Override PORTAL_WEB_URL")
    parser.add_argument("--login-url", default=None, help="Override PORTAL_LOGIN_URL")
    parser.add_argument("--browser", default="chromium", choices=["chromium", "firefox", "webkit"])
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--skip-health", action="store_true", help="Do not probe the health endpoint")
    parser.add_argument("--json", action="store_true", help="Print one JSON object per role")
    parser.add_argument(
        "--require-content",
        action="store_true",
        help="Also require the role's portal markers to be visible",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        roles = [resolve_role(r) for r in args.roles] if args.roles else list(Role)
        config = PortalTestConfig(
            web_url=args.web_url,
            login_url=args.login_url,
            headless=False if args.headed else None,
        )
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    if not args.skip_health and not check_health(config):
        logger.warning("Backend health check failed; logins will likely fall back to synthetic sessions")

    results = asyncio.run(
        probe_roles(roles, config, browser_type=args.browser, require_content=args.require_content)
    )
    for result in results:
        print(outcome_json(result) if args.json else describe(result))

    verified = sum(1 for r in results if r.success)
    if not args.json:
        print(f"{verified}/{len(results)} portals verified")
    return 0 if verified == len(results) else 1


if __name__ == "__main__":
    sys.exit(main())
