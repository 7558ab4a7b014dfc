"""
Browser-level scenarios against the mock portal.

Each test runs a real headless browser (skipped when Playwright browsers are
not installed) against a mock portal served from a background thread.
"""
import base64
import json

import pytest

from portal_tests.auth_state import establish_session, navigate_and_verify, verify_all_portals
from portal_tests.config import ConfigurationError, Role
from portal_tests.parallel_session_manager import ParallelSessionManager
from portal_tests.session_tokens import FallbackReason, SessionPath

pytestmark = pytest.mark.asyncio


async def _session_cookie(context):
    cookies = [c for c in await context.cookies() if c["name"] == "session"]
    return cookies[0] if cookies else None


async def test_staff_with_healthy_backend_is_verified_via_real_session(fresh_page, portal_config):
    result = await navigate_and_verify(fresh_page, "staff", config=portal_config)

    assert result.success is True
    assert result.method is SessionPath.REAL
    assert "/staff" in result.final_url
    assert "/login" not in result.final_url
    assert result.checks.passed
    assert result.error is None
    assert result.content.found == ["Staff Dashboard", "Packages", "Customers", "Loads"]
    assert result.outcome.local_storage_written is True


async def test_installed_cookie_matches_contract(fresh_page, portal_config):
    outcome = await establish_session(fresh_page.context, Role.CUSTOMER, config=portal_config)

    cookie = await _session_cookie(fresh_page.context)
    assert cookie["value"] == outcome.token
    assert cookie["domain"] == "127.0.0.1"
    assert cookie["path"] == "/"
    assert cookie["httpOnly"] is False
    assert cookie["secure"] is False
    assert cookie["sameSite"] == "Lax"


async def test_driver_with_failing_backend_is_not_verified(fresh_page, start_mock_portal, config_for):
    server = start_mock_portal(failure_status=500)

    result = await navigate_and_verify(fresh_page, "driver", config=config_for(server))

    assert result.method is SessionPath.FALLBACK
    assert result.outcome.reason is FallbackReason.LOGIN_REJECTED
    assert result.success is False
    assert result.checks.not_login is False
    assert result.content.page_kind == "login"
    assert result.content_verified is True
    cookie = await _session_cookie(fresh_page.context)
    assert json.loads(base64.b64decode(cookie["value"]))["role"] == "driver"


async def test_driver_fallback_admitted_when_app_trusts_synthetic_tokens(fresh_page, start_mock_portal, config_for):
    server = start_mock_portal(failure_status=500, trust_synthetic_tokens=True)

    result = await navigate_and_verify(fresh_page, "driver", config=config_for(server))

    assert result.method is SessionPath.FALLBACK
    assert result.success is True


async def test_json_token_delivery_is_a_real_session(fresh_page, start_mock_portal, config_for):
    server = start_mock_portal(token_mode="body")

    result = await navigate_and_verify(fresh_page, Role.CUSTOMER, config=config_for(server))

    assert result.method is SessionPath.REAL
    assert result.success is True
    assert result.final_url.endswith("/portal/")


async def test_unreachable_backend_falls_back_without_raising(fresh_page, mock_portal_server, config_for):
    config = config_for(mock_portal_server)
    config.login_url = "http://127.0.0.1:1/api/auth/login"

    result = await navigate_and_verify(fresh_page, "staff", config=config)

    assert result.outcome.reason in {FallbackReason.TRANSPORT_ERROR, FallbackReason.TIMEOUT}
    assert result.success is False


async def test_unknown_role_installs_no_cookie(fresh_page, portal_config):
    with pytest.raises(ConfigurationError):
        await establish_session(fresh_page.context, "dispatcher", config=portal_config)

    assert await _session_cookie(fresh_page.context) is None


async def test_navigation_failure_is_reported_in_result(fresh_page, mock_portal_server, config_for):
    config = config_for(mock_portal_server)
    config.web_url = "http://127.0.0.1:1"

    result = await navigate_and_verify(fresh_page, "staff", config=config)

    assert result.success is False
    assert result.error


async def test_all_portals_verified_concurrently(playwright_client, portal_config):
    pages = []
    for _ in Role:
        context = await playwright_client.new_context()
        pages.append(await context.new_page())

    results = await verify_all_portals(list(zip(pages, Role)), config=portal_config)

    assert [r.role for r in results] == list(Role)
    assert all(r.success for r in results)
    assert all(r.method is SessionPath.REAL for r in results)
    tokens = {r.outcome.token for r in results}
    assert len(tokens) == len(results)
    for page in pages:
        await page.context.close()


async def test_parallel_sessions_are_isolated(playwright_client, portal_config):
    async with ParallelSessionManager(playwright_client.browser, config=portal_config) as manager:
        staff = await manager.role_session("staff")
        driver = await manager.role_session(Role.DRIVER)
        anonymous = await manager.anonymous_session()

        assert manager.session_count == 3
        assert set(manager.list_sessions()) == {"staff", "driver", "anonymous"}
        assert await manager.role_session("staff") is staff

        staff_cookie = await _session_cookie(staff.context)
        driver_cookie = await _session_cookie(driver.context)
        assert staff_cookie["value"] == staff.outcome.token
        assert driver_cookie["value"] == driver.outcome.token
        assert staff_cookie["value"] != driver_cookie["value"]
        assert staff.outcome.local_storage_written is True
        assert await _session_cookie(anonymous.context) is None

        await staff.page.goto("/staff/")
        await driver.page.goto("/driver/")
        await anonymous.page.goto("/driver/")
        assert staff.page.url.endswith("/staff/")
        assert driver.page.url.endswith("/driver/")
        assert "/login/" in anonymous.page.url

    assert manager.session_count == 0


async def test_unauthenticated_role_session_has_no_outcome(playwright_client, portal_config):
    async with ParallelSessionManager(playwright_client.browser, config=portal_config) as manager:
        handle = await manager.role_session("customer", authenticate=False)
        assert handle.outcome is None
        assert await _session_cookie(handle.context) is None

        with pytest.raises(ConfigurationError):
            await manager.role_session("dispatcher")


async def test_local_storage_is_written_on_the_app_origin(playwright_client, portal_config):
    page = playwright_client.page
    outcome = await establish_session(playwright_client.context, Role.CUSTOMER, page=page, config=portal_config)

    assert outcome.local_storage_written is True
    assert page.url.startswith(portal_config.web_url)
    assert await page.evaluate("localStorage.getItem('token')") == outcome.token
    user = json.loads(await page.evaluate("localStorage.getItem('user')"))
    assert user["role"] == "customer"


async def test_admin_content_is_verified_on_the_staff_portal(fresh_page, portal_config):
    result = await navigate_and_verify(fresh_page, Role.ADMIN, config=portal_config, require_content=True)

    assert result.success is True
    assert result.content.found == ["Staff Dashboard"]
