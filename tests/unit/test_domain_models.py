import pytest
from pydantic import ValidationError

from sitecompare.models.domain import Capture, NetworkEvent, SitemapRow
from sitecompare.types import Side


@pytest.mark.unit
class TestDomainModels:
    def test_capture_is_frozen(self) -> None:
        capture = Capture(
            side=Side.REF,
            status=200,
            content_type="text/html",
            final_url="http://ref.test/",
            response_url="http://ref.test/",
            markup_hash="abc",
        )
        with pytest.raises(ValidationError):
            capture.status = 500

    def test_sitemap_row_json_omits_none(self) -> None:
        row = SitemapRow(path="/", status_ref=200, status_new=200, links_found=0)
        assert row.to_json() == {
            "path": "/",
            "depth": 0,
            "full": True,
            "status_ref": 200,
            "status_new": 200,
            "links_found": 0,
            "errs": [],
        }

    def test_network_event_defaults(self) -> None:
        event = NetworkEvent(method="Page.loadEventFired")
        assert event.params == {}
        assert event.timestamp == 0.0
