import pytest

from sitecompare.config.schema import LoginConfig
from sitecompare.crawler.login import LoginHandler, pick_session_cookie
from sitecompare.exceptions import LoginError
from sitecompare.types import Side

COOKIES = [
    {"name": ".AspNetCore.Antiforgery.abc", "value": "t"},
    {"name": "_ga", "value": "g"},
    {"name": "sid", "value": "s"},
]


@pytest.mark.unit
class TestPickSessionCookie:
    def test_first_not_excluded(self) -> None:
        assert pick_session_cookie(COOKIES)["name"] == "_ga"

    def test_custom_exclusions(self) -> None:
        cookie = pick_session_cookie(COOKIES, excluded=["antiforgery", "^_ga$"])
        assert cookie["name"] == "sid"

    def test_name_regex_wins(self) -> None:
        assert pick_session_cookie(COOKIES, name_regex="^SID$")["name"] == "sid"

    def test_nothing_left(self) -> None:
        assert pick_session_cookie(COOKIES[:1]) is None
        assert pick_session_cookie(COOKIES, name_regex="session") is None


@pytest.mark.unit
class TestLoginHandler:
    @pytest.fixture()
    def config(self) -> LoginConfig:
        return LoginConfig(
            path="/Account/Login",
            user_selector="#user",
            pass_selector="#pass",
            submit_selector="button[type=submit]",
            excluded_cookies=["Antiforgery"],
        )

    @pytest.fixture()
    def browser(self, fake_browser_class):
        return fake_browser_class(
            Side.REF,
            "http://ref.test",
            {
                "/Account/Login": (200, "<html><body><form></form></body></html>"),
                "/dashboard": (200, "<html><body>hi</body></html>"),
            },
        )

    @pytest.mark.asyncio
    async def test_log_in(self, config: LoginConfig, browser) -> None:
        handler = LoginHandler(config, timeout_s=0.5)
        cookie = await handler.log_in(browser, "http://ref.test", "alice", "pw")
        assert cookie == {"name": "sid", "value": "s3cr3t"}
        assert browser.navigations == ["/Account/Login", "/dashboard"]
        assert browser.filled == [("el:#user", "alice"), ("el:#pass", "pw")]

    @pytest.mark.asyncio
    async def test_missing_element(self, config: LoginConfig, browser) -> None:
        async def nothing(css: str):
            return None

        browser.find_element = nothing
        with pytest.raises(LoginError, match="#user"):
            await LoginHandler(config, timeout_s=0.1).log_in(browser, "http://ref.test", "a", "b")

    @pytest.mark.asyncio
    async def test_missing_cookie_is_not_fatal(self, config: LoginConfig, browser) -> None:
        async def no_cookies():
            return []

        browser.get_cookies = no_cookies
        cookie = await LoginHandler(config, timeout_s=0.1).log_in(
            browser, "http://ref.test", "a", "b"
        )
        assert cookie is None

    @pytest.mark.asyncio
    async def test_no_login_path(self, browser) -> None:
        handler = LoginHandler(LoginConfig(), timeout_s=0.1)
        assert await handler.log_in(browser, "http://ref.test", "a", "b") is None
        assert browser.navigations == []
