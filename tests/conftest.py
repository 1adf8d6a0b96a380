"""
Shared fixtures: a fake renderer and a fake local proxy served with aiohttp,
plus an in-memory transport that records every command.
"""

import asyncio
from typing import Any

import aiohttp
import pytest
from aiohttp import web

from cast_config import CastConfig
from upnp_devices import AVTRANSPORT_SERVICE_TYPE, Device, ServiceEntry
from upnp_errors import SoapRequestFailed
from upnp_soap import Ack, TransportKind

DESCRIPTION_XML = """<?xml version="1.0"?>
<root xmlns="urn:schemas-upnp-org:device-1-0">
  <specVersion><major>1</major><minor>0</minor></specVersion>
  <device>
    <deviceType>urn:schemas-upnp-org:device:MediaRenderer:1</deviceType>
    <friendlyName>Living Room TV</friendlyName>
    <manufacturer>Acme</manufacturer>
    <modelName>TV-1000</modelName>
    <UDN>uuid:living-room-tv</UDN>
  </device>
</root>"""

DESCRIPTION_NO_UDN = """<?xml version="1.0"?>
<root xmlns="urn:schemas-upnp-org:device-1-0">
  <device>
    <friendlyName>Bedroom Box</friendlyName>
  </device>
</root>"""


def server_base(server) -> str:
    return f"http://{server.host}:{server.port}"


@pytest.fixture
async def http_session():
    async with aiohttp.ClientSession() as session:
        yield session


@pytest.fixture
async def renderer(aiohttp_server):
    """A renderer serving /description.xml and recording POSTs to /control."""
    state: dict[str, Any] = {"description": DESCRIPTION_XML, "status": 200, "control_status": 200, "requests": [],
                             "delay": 0.0}

    async def description(request: web.Request) -> web.Response:
        await asyncio.sleep(state["delay"])
        return web.Response(text=state["description"], status=state["status"], content_type="text/xml")

    async def control(request: web.Request) -> web.Response:
        await asyncio.sleep(state["delay"])
        state["requests"].append(
            {"soapaction": request.headers.get("SOAPACTION"), "content_type": request.headers.get("Content-Type"),
             "body": await request.text()}
        )
        return web.Response(text="<ok/>", status=state["control_status"], content_type="text/xml")

    app = web.Application()
    app.router.add_get("/description.xml", description)
    app.router.add_post("/control", control)
    server = await aiohttp_server(app)
    server.state = state
    return server


@pytest.fixture
async def proxy(aiohttp_server):
    """A local proxy with /status, /devices, /device/{id}/services and /soap."""
    state: dict[str, Any] = {
        "devices": [
            {"UDN": "uuid:proxy-tv", "friendlyName": "Proxy TV", "address": "192.168.1.20"},
            {"UDN": "uuid:proxy-speaker", "friendlyName": "Kitchen Speaker", "address": "192.168.1.21"},
        ],
        "services": {
            "uuid:proxy-tv": [{"serviceType": AVTRANSPORT_SERVICE_TYPE, "controlURL": "/AVTransport/control"}],
        },
        "soap_status": 200,
        "soap": [],
        "delay": 0.0,
    }

    async def status(request: web.Request) -> web.Response:
        return web.json_response({"ok": True})

    async def devices(request: web.Request) -> web.Response:
        await asyncio.sleep(state["delay"])
        return web.json_response(state["devices"])

    async def services(request: web.Request) -> web.Response:
        found = state["services"].get(request.match_info["udn"])
        if found is None:
            return web.json_response({"error": "unknown device"}, status=404)
        return web.json_response(found)

    async def soap(request: web.Request) -> web.Response:
        state["soap"].append(await request.json())
        return web.json_response({"success": True}, status=state["soap_status"])

    app = web.Application()
    app.router.add_get("/status", status)
    app.router.add_get("/devices", devices)
    app.router.add_get("/device/{udn}/services", services)
    app.router.add_post("/soap", soap)
    server = await aiohttp_server(app)
    server.state = state
    return server


@pytest.fixture
def unreachable_config() -> CastConfig:
    return CastConfig(proxy_base="http://127.0.0.1:1", timeout=2.0)


class FakeTransport:
    """Records (device id, action, args) into a shared call log."""

    kind = TransportKind.DIRECT

    def __init__(self, device: Device, log: list, fail_actions: set | None = None, delays: dict | None = None):
        self.device = device
        self.log = log
        self.fail_actions = fail_actions or set()
        self.delays = delays or {}

    async def send(self, service_type: str, action: str, args=None):
        self.log.append((self.device.id, action, dict(args or {})))
        if action in self.delays:
            await asyncio.sleep(self.delays[action])
        if action in self.fail_actions:
            raise SoapRequestFailed(500)
        return Ack()


class FakeSelector:
    def __init__(self, fail_connect: dict | None = None, fail_actions: set | None = None, delays: dict | None = None):
        self.log: list = []
        self.fail_connect = fail_connect or {}
        self.fail_actions = fail_actions or set()
        self.delays = delays or {}

    async def connect(self, device: Device) -> FakeTransport:
        if device.id in self.fail_connect:
            raise self.fail_connect[device.id]
        device.services = [ServiceEntry(AVTRANSPORT_SERVICE_TYPE, "http://fake/control")]
        return FakeTransport(device, self.log, self.fail_actions, self.delays)


@pytest.fixture
def selector() -> FakeSelector:
    return FakeSelector()


def make_device(udn: str, **kwargs) -> Device:
    return Device(id=udn, friendly_name=kwargs.pop("friendly_name", udn), **kwargs)
