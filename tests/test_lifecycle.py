"""
Unit tests for plugin lifecycle transitions and navigation.
"""

import asyncio
import json

import httpx
import pytest
import pytest_asyncio

from thunder_webkit.errors import (
    EventTimeoutError,
    NavigationError,
    NotConnectedError,
    RpcCallError,
)
from thunder_webkit.session import LifecycleController, ThunderClient

from conftest import controller_event, flush


@pytest_asyncio.fixture
async def client(server, thunder):
    c = ThunderClient(host="box", callsign="UX")
    await c.connect()
    yield c
    await c.disconnect()


def transition_calls(thunder) -> list[str]:
    return [c for c in thunder.calls if c not in ("Controller.1.register", "Controller.1.status")]


class TestStart:
    """Test LifecycleController.start."""

    @pytest.mark.asyncio
    async def test_start_from_deactivated(self, client, thunder):
        lifecycle = LifecycleController(client)

        await lifecycle.start()

        assert thunder.calls[-2:] == ["Controller.1.status", "Controller.1.activate"]
        assert thunder.state == "Activated"
        assert client.waiter_count == 0

    @pytest.mark.asyncio
    async def test_activate_carries_callsign(self, client, server, thunder):
        await LifecycleController(client).start()
        assert server.last.sent_json[-1]["params"] == {"callsign": "UX"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", ["Activated", "Resumed"])
    async def test_start_when_running_is_noop(self, client, thunder, state):
        thunder.state = state
        await LifecycleController(client).start()
        assert transition_calls(thunder) == []

    @pytest.mark.asyncio
    async def test_start_waits_for_confirmation(self, client, server, thunder):
        thunder.emit_events = False
        start = asyncio.create_task(LifecycleController(client).start())
        await flush()

        # The activate call was answered but the plugin has not confirmed yet.
        assert thunder.calls[-1] == "Controller.1.activate"
        assert not start.done()

        server.last.feed(controller_event("statechange", {"state": "activated"}))
        await asyncio.wait_for(start, 1)

    @pytest.mark.asyncio
    async def test_confirmation_before_acknowledgement(self, client, thunder):
        thunder.event_first = True
        await asyncio.wait_for(LifecycleController(client).start(), 1)
        assert client.waiter_count == 0

    @pytest.mark.asyncio
    async def test_confirm_timeout(self, client, thunder):
        thunder.emit_events = False
        lifecycle = LifecycleController(client, confirm_timeout=0.05)

        with pytest.raises(EventTimeoutError):
            await lifecycle.start()
        assert client.waiter_count == 0

    @pytest.mark.asyncio
    async def test_failed_request_cancels_waiter(self, client, thunder):
        thunder.errors["Controller.1.activate"] = {"code": 5, "message": "ERROR_ILLEGAL_STATE"}

        with pytest.raises(RpcCallError):
            await LifecycleController(client).start()
        assert client.waiter_count == 0

    @pytest.mark.asyncio
    async def test_overlapping_starts_activate_once(self, client, thunder):
        lifecycle = LifecycleController(client)
        await asyncio.gather(lifecycle.start(), lifecycle.start())
        assert transition_calls(thunder) == ["Controller.1.activate"]

    @pytest.mark.asyncio
    async def test_requires_connection(self):
        lifecycle = LifecycleController(ThunderClient(host="box", callsign="UX"))
        with pytest.raises(NotConnectedError):
            await lifecycle.start()


class TestStopResume:
    """Test LifecycleController.stop and resume."""

    @pytest.mark.asyncio
    async def test_stop_when_deactivated_is_noop(self, client, thunder):
        await LifecycleController(client).stop()
        assert transition_calls(thunder) == []

    @pytest.mark.asyncio
    async def test_stop_from_activated(self, client, thunder):
        thunder.state = "Activated"
        await LifecycleController(client).stop()

        assert transition_calls(thunder) == ["Controller.1.deactivate"]
        assert thunder.state == "Deactivated"

    @pytest.mark.asyncio
    async def test_resume_from_suspended(self, client, server, thunder):
        thunder.state = "Suspended"
        await LifecycleController(client).resume()

        assert transition_calls(thunder) == ["Controller.1.resume"]
        assert server.last.sent_json[-1]["params"] == {"callsign": "UX"}

    @pytest.mark.asyncio
    async def test_resume_ignores_unrelated_statechange(self, client, server, thunder):
        thunder.state = "Suspended"
        thunder.emit_events = False
        resume = asyncio.create_task(LifecycleController(client).resume())
        await flush()

        server.last.feed(controller_event("statechange", {"state": "activated"}))
        await flush()
        assert not resume.done()

        server.last.feed(controller_event("statechange", {"suspended": False}))
        await asyncio.wait_for(resume, 1)

    @pytest.mark.asyncio
    async def test_resume_when_activated_is_noop(self, client, thunder):
        thunder.state = "Activated"
        await LifecycleController(client).resume()
        assert transition_calls(thunder) == []

    @pytest.mark.asyncio
    async def test_stop_then_start(self, client, thunder):
        thunder.state = "Activated"
        lifecycle = LifecycleController(client)

        await lifecycle.stop()
        await lifecycle.start()

        assert transition_calls(thunder) == [
            "Controller.1.deactivate",
            "Controller.1.activate",
        ]


class TestSetURL:
    """Test LifecycleController.set_url."""

    @pytest.mark.asyncio
    async def test_http_navigation(self, client):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200)

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        lifecycle = LifecycleController(client, http_client=http)

        await lifecycle.set_url("https://example.com/")

        assert len(requests) == 1
        request = requests[0]
        assert request.method == "POST"
        assert request.url.host == "box"
        assert request.url.path == "/Service/UX/URL"
        assert json.loads(request.content) == {"url": "https://example.com/"}

        # An injected client is left open for its owner.
        await lifecycle.aclose()
        assert not http.is_closed
        await http.aclose()

    @pytest.mark.asyncio
    async def test_http_navigation_rejected(self, client):
        http = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(500))
        )
        lifecycle = LifecycleController(client, http_client=http)

        with pytest.raises(NavigationError, match="Failed to set URL"):
            await lifecycle.set_url("https://example.com/")
        await http.aclose()

    @pytest.mark.asyncio
    async def test_http_navigation_unreachable(self, client):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        lifecycle = LifecycleController(client, http_client=http, confirm_navigation=True)

        with pytest.raises(NavigationError):
            await lifecycle.set_url("https://example.com/")
        assert client.waiter_count == 0
        await http.aclose()

    @pytest.mark.asyncio
    async def test_confirm_navigation(self, client, server):
        def handler(request):
            server.last.feed(
                controller_event("urlchange", {"url": "https://example.com/", "loaded": True})
            )
            return httpx.Response(200)

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        lifecycle = LifecycleController(client, http_client=http, confirm_navigation=True)

        await asyncio.wait_for(lifecycle.set_url("https://example.com/"), 1)
        assert client.waiter_count == 0
        await http.aclose()

    @pytest.mark.asyncio
    async def test_missing_confirmation_is_not_fatal(self, client):
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        lifecycle = LifecycleController(
            client, http_client=http, confirm_navigation=True, confirm_timeout=0.05
        )

        await lifecycle.set_url("https://example.com/")
        assert client.waiter_count == 0
        await http.aclose()

    @pytest.mark.asyncio
    async def test_jsonrpc_navigation(self, client, server, thunder):
        lifecycle = LifecycleController(client, navigation="jsonrpc")

        await asyncio.wait_for(lifecycle.set_url("https://example.com/"), 1)

        request = server.last.sent_json[-1]
        assert request["method"] == "UX.1.url"
        assert request["params"] == "https://example.com/"

    @pytest.mark.asyncio
    async def test_jsonrpc_navigation_requires_connection(self):
        lifecycle = LifecycleController(
            ThunderClient(host="box", callsign="UX"), navigation="jsonrpc"
        )
        with pytest.raises(NotConnectedError):
            await lifecycle.set_url("https://example.com/")

    def test_unknown_navigation_mode(self):
        with pytest.raises(ValueError):
            LifecycleController(ThunderClient(host="box"), navigation="carrier-pigeon")

    def test_url_endpoint(self):
        lifecycle = LifecycleController(ThunderClient(host="10.0.0.2", callsign="UX"))
        assert lifecycle.url_endpoint == "http://10.0.0.2:80/Service/UX/URL"
