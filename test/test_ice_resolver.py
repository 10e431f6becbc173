"""Unit tests for IceServerResolver.

Covers the discovery happy path and every fallback trigger: HTTP errors,
non-JSON responses, transport failures and unusable bodies.
"""

import asyncio
from typing import Any

import aiohttp
import pytest

from livecast.shared.dto import IceServerDescriptor
from livecast.webrtc.ice_resolver import IceServerResolver, fallback_servers

from conftest import FakeHttpSession, FakeResponse

DISCOVERY_URL = "http://backend.test/api/ice"


def make_resolver(http_session, static=None) -> IceServerResolver:
    return IceServerResolver(
        discovery_url=DISCOVERY_URL,
        timeout=1.0,
        static=static or [],
        http_session=http_session,
    )


@pytest.mark.unit
async def test_resolve_returns_discovered_servers() -> None:
    """Valid JSON body yields the advertised servers."""
    body = {
        "iceServers": [
            {"urls": "stun:stun.example.org:3478"},
            {"urls": ["turn:turn.example.org:3478"], "username": "u", "credential": "p"},
        ]
    }
    http = FakeHttpSession(FakeResponse(body=body))

    servers = await make_resolver(http).resolve()

    assert len(servers) == 2
    assert servers[0].urls == "stun:stun.example.org:3478"
    assert servers[1].username == "u"
    assert servers[1].credential == "p"
    assert http.requests == [(DISCOVERY_URL, {"Accept": "application/json"})]


@pytest.mark.unit
async def test_json_content_type_with_charset_is_accepted() -> None:
    body = {"iceServers": [{"urls": "stun:stun.example.org:3478"}]}
    http = FakeHttpSession(FakeResponse(body=body, content_type="application/json; charset=utf-8"))

    servers = await make_resolver(http).resolve()

    assert [s.urls for s in servers] == ["stun:stun.example.org:3478"]


@pytest.mark.unit
async def test_http_500_falls_back() -> None:
    """Non-2xx status triggers the public STUN fallback."""
    http = FakeHttpSession(FakeResponse(status=500, body={"error": "boom"}))

    servers = await make_resolver(http).resolve()

    assert len(servers) >= 4
    assert servers == fallback_servers()


@pytest.mark.unit
async def test_html_response_falls_back() -> None:
    """A dev server answering with its index page is not a server list."""
    http = FakeHttpSession(
        FakeResponse(status=200, content_type="text/html", text="<!doctype html><html></html>")
    )

    servers = await make_resolver(http).resolve()

    assert len(servers) >= 4
    assert all(server.username is None for server in servers)


@pytest.mark.unit
@pytest.mark.parametrize(
    "error",
    [aiohttp.ClientConnectionError("refused"), asyncio.TimeoutError()],
)
async def test_transport_errors_fall_back(error: BaseException) -> None:
    servers = await make_resolver(FakeHttpSession(error=error)).resolve()

    assert servers == fallback_servers()


@pytest.mark.unit
@pytest.mark.parametrize(
    "body",
    [{"iceServers": []}, {"servers": []}, ["stun:stun.example.org"], {"iceServers": [{"username": "x"}]}],
)
async def test_unusable_bodies_fall_back(body: Any) -> None:
    servers = await make_resolver(FakeHttpSession(FakeResponse(body=body))).resolve()

    assert servers == fallback_servers()


@pytest.mark.unit
async def test_static_servers_are_prepended() -> None:
    turn = IceServerDescriptor(urls="turn:turn.local:3478", username="user", credential="secret")
    http = FakeHttpSession(FakeResponse(status=503))

    servers = await make_resolver(http, static=[turn]).resolve()

    assert servers[0] == turn
    assert servers[1:] == fallback_servers()


@pytest.mark.unit
def test_fallback_uses_independent_providers() -> None:
    hosts = {str(server.urls).split(":")[1] for server in fallback_servers()}
    providers = {host.split(".")[-2] for host in hosts}

    assert len(fallback_servers()) >= 4
    assert {"google", "twilio", "cloudflare", "nextcloud"} <= providers


@pytest.mark.unit
def test_descriptor_converts_to_rtc_ice_server() -> None:
    descriptor = IceServerDescriptor.model_validate(
        {"urls": "turn:turn.local:3478", "username": "user", "credential": "secret"}
    )

    rtc = descriptor.to_rtc()

    assert rtc.urls == "turn:turn.local:3478"
    assert rtc.username == "user"
    assert rtc.credential == "secret"
