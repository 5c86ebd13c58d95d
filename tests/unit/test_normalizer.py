from pathlib import Path

import pytest

from sitecompare.browser.ready import PageReadySynchronizer
from sitecompare.capture.normalizer import CaptureNormalizer
from sitecompare.capture.sanitize import MarkupSanitizer
from sitecompare.storage.artifacts import RoleArtifacts
from sitecompare.types import Side

HOME = "<html><body><p>Welcome <script>var x=1;</script></p></body></html>"


@pytest.mark.unit
class TestCaptureNormalizer:
    @pytest.fixture()
    def browser(self, fake_browser_class):
        return fake_browser_class(
            Side.REF, "http://ref.test", {"/": (200, HOME), "/gone": (410, "<html><body>x</body></html>")}
        )

    @pytest.mark.asyncio
    async def test_navigate_and_capture(
        self, browser, fast_synchronizer: PageReadySynchronizer
    ) -> None:
        normalizer = CaptureNormalizer(fast_synchronizer, MarkupSanitizer(["script"]))
        capture = await normalizer.capture(browser, Side.REF, "00001_root", url="http://ref.test/")
        assert capture is not None
        assert capture.side == Side.REF
        assert capture.status == 200
        assert capture.content_type == "text/html"
        assert capture.final_url == "http://ref.test/"
        assert capture.raw_markup is None
        assert capture.screenshot_path is None
        assert browser.navigations == ["/"]

    @pytest.mark.asyncio
    async def test_error_status_is_captured(
        self, browser, fast_synchronizer: PageReadySynchronizer
    ) -> None:
        normalizer = CaptureNormalizer(fast_synchronizer, MarkupSanitizer())
        capture = await normalizer.capture(browser, Side.REF, "x", url="http://ref.test/gone")
        assert capture is not None
        assert capture.status == 410

    @pytest.mark.asyncio
    async def test_hash_ignores_excluded_elements(
        self, fake_browser_class, fast_synchronizer: PageReadySynchronizer
    ) -> None:
        ref = fake_browser_class(Side.REF, "http://ref.test", {"/": (200, HOME)})
        new = fake_browser_class(
            Side.NEW, "http://new.test", {"/": (200, HOME.replace("x=1", "x=2"))}
        )
        normalizer = CaptureNormalizer(fast_synchronizer, MarkupSanitizer(["script"]))
        a = await normalizer.capture(ref, Side.REF, "x", url="http://ref.test/")
        b = await normalizer.capture(new, Side.NEW, "x", url="http://new.test/")
        assert a is not None and b is not None
        assert a.markup_hash == b.markup_hash

    @pytest.mark.asyncio
    async def test_keep_markup_and_write_htmls(
        self, browser, fast_synchronizer: PageReadySynchronizer, tmp_path: Path
    ) -> None:
        artifacts = RoleArtifacts(tmp_path / "role")
        normalizer = CaptureNormalizer(
            fast_synchronizer,
            MarkupSanitizer(["script"]),
            artifacts=artifacts,
            write_htmls=True,
            keep_markup=True,
        )
        capture = await normalizer.capture(browser, Side.REF, "00001_root", url="http://ref.test/")
        assert capture is not None
        assert capture.raw_markup == HOME
        assert capture.markup_dump_path is not None
        dumped = Path(capture.markup_dump_path)
        assert dumped.name == "00001_root_ref.html"
        assert "script" not in dumped.read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_page_without_body(
        self, browser, fast_synchronizer: PageReadySynchronizer
    ) -> None:
        async def no_body(script: str, *args):
            return False

        browser.execute_script = no_body
        synchronizer = PageReadySynchronizer(
            timeout_s=0.0, network_quiet_ms=0, dom_quiet_ms=0, poll_interval_s=0
        )
        normalizer = CaptureNormalizer(synchronizer, MarkupSanitizer())
        assert await normalizer.capture(browser, Side.REF, "x", url="http://ref.test/") is None

    @pytest.mark.asyncio
    async def test_assume_ready_skips_gates(
        self, browser, fast_synchronizer: PageReadySynchronizer
    ) -> None:
        await browser.navigate("http://ref.test/")
        normalizer = CaptureNormalizer(fast_synchronizer, MarkupSanitizer())
        capture = await normalizer.capture(browser, Side.REF, "x", assume_ready=True)
        assert capture is not None
        assert capture.status == 200
        assert browser.navigations == ["/"]
