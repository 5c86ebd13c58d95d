import itertools
from unittest.mock import AsyncMock, MagicMock

import pytest

from sitecompare.browser.ready import (
    BODY_JS,
    FINGERPRINT_JS,
    PageReadySynchronizer,
    wait_for_url_change,
    wait_until,
)
from sitecompare.exceptions import UnexpectedAlertError
from sitecompare.models.domain import NetworkEvent
from sitecompare.types import Side

DOC_EVENT = NetworkEvent(
    method="Network.responseReceived",
    params={"type": "Document", "response": {"url": "http://a/", "status": 200}},
)


def make_client() -> MagicMock:
    client = MagicMock()
    client.side = Side.REF
    client.execute_script = AsyncMock()
    client.drain_network_events = AsyncMock(return_value=[])
    client.alert_text = AsyncMock(return_value=None)
    client.accept_alert = AsyncMock()
    client.current_url = AsyncMock()
    return client


@pytest.fixture()
def synchronizer() -> PageReadySynchronizer:
    return PageReadySynchronizer(
        timeout_s=0.2, network_quiet_ms=0, dom_quiet_ms=0, poll_interval_s=0
    )


@pytest.mark.unit
class TestPageReadySynchronizer:
    @pytest.mark.asyncio
    async def test_ready_page(self, synchronizer: PageReadySynchronizer) -> None:
        client = make_client()

        async def script(js: str, *args: object) -> object:
            return True if js == BODY_JS else [120, 40]

        client.execute_script.side_effect = script
        client.drain_network_events.side_effect = [[DOC_EVENT], [], [], [], []]
        result = await synchronizer.await_ready(client)
        assert result.ready is True
        assert result.alerts == []
        assert DOC_EVENT in result.events

    @pytest.mark.asyncio
    async def test_body_never_appears(self, synchronizer: PageReadySynchronizer) -> None:
        client = make_client()
        client.execute_script.return_value = False
        result = await synchronizer.await_ready(client)
        assert result.ready is False

    @pytest.mark.asyncio
    async def test_alert_is_accepted_and_recorded(
        self, synchronizer: PageReadySynchronizer
    ) -> None:
        client = make_client()
        calls = {"body": 0}

        async def script(js: str, *args: object) -> object:
            if js == BODY_JS:
                calls["body"] += 1
                if calls["body"] == 1:
                    raise UnexpectedAlertError("dialog", "unexpected alert open")
                return True
            return [1, 1]

        client.execute_script.side_effect = script
        client.alert_text.side_effect = ["Session expired", None, None, None, None, None]
        client.drain_network_events.return_value = [DOC_EVENT]
        result = await synchronizer.await_ready(client)
        assert result.ready is True
        assert result.alerts == ["Session expired"]
        client.accept_alert.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_network_gate_needs_document(self, synchronizer: PageReadySynchronizer) -> None:
        client = make_client()
        client.drain_network_events.return_value = [
            NetworkEvent(method="Network.requestWillBeSent", params={})
        ]
        assert await synchronizer.wait_for_network_idle(client, [], []) is False

    @pytest.mark.asyncio
    async def test_network_gate_with_document_already_seen(
        self, synchronizer: PageReadySynchronizer
    ) -> None:
        client = make_client()
        assert await synchronizer.wait_for_network_idle(client, [DOC_EVENT], []) is True

    @pytest.mark.asyncio
    async def test_dom_never_stable(self, synchronizer: PageReadySynchronizer) -> None:
        client = make_client()
        counter = itertools.count()

        async def script(js: str, *args: object) -> object:
            assert js == FINGERPRINT_JS
            return [next(counter), 1]

        client.execute_script.side_effect = script
        assert await synchronizer.wait_for_dom_stable(client, []) is False

    @pytest.mark.asyncio
    async def test_unstable_dom_is_not_fatal(self, synchronizer: PageReadySynchronizer) -> None:
        client = make_client()
        counter = itertools.count()

        async def script(js: str, *args: object) -> object:
            return True if js == BODY_JS else [next(counter), 1]

        client.execute_script.side_effect = script
        client.drain_network_events.return_value = [DOC_EVENT]
        result = await synchronizer.await_ready(client)
        assert result.ready is True


@pytest.mark.unit
class TestWaitHelpers:
    @pytest.mark.asyncio
    async def test_wait_until_true(self) -> None:
        values = iter([False, False, True])

        async def predicate() -> bool:
            return next(values)

        assert await wait_until(predicate, timeout_s=1, poll_interval_s=0) is True

    @pytest.mark.asyncio
    async def test_wait_until_times_out(self) -> None:
        async def predicate() -> bool:
            return False

        assert await wait_until(predicate, timeout_s=0.05, poll_interval_s=0) is False

    @pytest.mark.asyncio
    async def test_wait_for_url_change(self) -> None:
        client = make_client()
        client.current_url.side_effect = ["http://a/login", "http://a/login", "http://a/home"]
        landed = await wait_for_url_change(client, "http://a/login", 1, poll_interval_s=0)
        assert landed == "http://a/home"

    @pytest.mark.asyncio
    async def test_wait_for_url_change_timeout(self) -> None:
        client = make_client()
        client.current_url.return_value = "http://a/login"
        assert await wait_for_url_change(client, "http://a/login", 0.05, poll_interval_s=0) is None
