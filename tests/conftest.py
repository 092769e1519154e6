"""Shared fixtures: a fake renderer HTTP app and a fake SSDP responder."""
from __future__ import annotations

import asyncio

import aiohttp
import pytest
from aiohttp import web

DESCRIPTION_XML = """<?xml version="1.0"?>
<root xmlns="urn:schemas-upnp-org:device-1-0">
  <specVersion><major>1</major><minor>0</minor></specVersion>
  <device>
    <deviceType>urn:schemas-upnp-org:device:MediaRenderer:1</deviceType>
    <friendlyName>Living Room TV</friendlyName>
    <manufacturer>Acme</manufacturer>
    <modelName>Screen 9000</modelName>
    <UDN>uuid:5f9ec1b3-ed59-1900-4530-00a0de7d1aa4</UDN>
    <serviceList>
      <service>
        <serviceType>urn:schemas-upnp-org:service:RenderingControl:1</serviceType>
        <serviceId>urn:upnp-org:serviceId:RenderingControl</serviceId>
        <controlURL>/ctl/RenderingControl</controlURL>
        <eventSubURL>/evt/RenderingControl</eventSubURL>
      </service>
      <service>
        <serviceType>urn:schemas-upnp-org:service:AVTransport:1</serviceType>
        <serviceId>urn:upnp-org:serviceId:AVTransport</serviceId>
        <controlURL>/ctl/AVTransport</controlURL>
        <eventSubURL>/evt/AVTransport</eventSubURL>
      </service>
    </serviceList>
  </device>
</root>"""

FAULT_BODY = """<?xml version="1.0"?>
<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/">
  <s:Body>
    <s:Fault>
      <faultcode>s:Client</faultcode>
      <faultstring>UPnPError</faultstring>
      <detail>
        <UPnPError xmlns="urn:schemas-upnp-org:control-1-0">
          <errorCode>714</errorCode>
          <errorDescription>Illegal MIME-type</errorDescription>
        </UPnPError>
      </detail>
    </s:Fault>
  </s:Body>
</s:Envelope>"""


def ssdp_reply(location: str | None, header: str = "LOCATION") -> bytes:
    lines = [
        "HTTP/1.1 200 OK",
        "CACHE-CONTROL: max-age=1800",
        "EXT:",
        "SERVER: Linux/4.9 UPnP/1.0 FakeRenderer/1.0",
        "ST: urn:schemas-upnp-org:device:MediaRenderer:1",
        "USN: uuid:5f9ec1b3-ed59-1900-4530-00a0de7d1aa4::urn:schemas-upnp-org:device:MediaRenderer:1",
    ]
    if location is not None:
        lines.insert(2, f"{header}: {location}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")


class FakeRenderer:
    """HTTP side of a renderer: serves /desc.xml and answers AVTransport actions."""

    def __init__(self, description: str = DESCRIPTION_XML):
        self.description = description
        self.description_requests = 0
        self.actions: list[str] = []
        self.bodies: dict[str, str] = {}
        self.headers: dict[str, dict[str, str]] = {}
        self.statuses: dict[str, int] = {}
        self.fault_actions: set[str] = set()

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/desc.xml", self.handle_description)
        app.router.add_post("/ctl/AVTransport", self.handle_control)
        return app

    async def handle_description(self, request: web.Request) -> web.Response:
        self.description_requests += 1
        return web.Response(text=self.description, content_type="text/xml")

    async def handle_control(self, request: web.Request) -> web.Response:
        action = request.headers["SOAPAction"].strip('"').split("#", 1)[1]
        self.actions.append(action)
        self.bodies[action] = await request.text()
        self.headers[action] = dict(request.headers)
        if action in self.fault_actions:
            return web.Response(text=FAULT_BODY, content_type="text/xml")
        status = self.statuses.get(action, 200)
        return web.Response(status=status, text=f"<u:{action}Response/>", content_type="text/xml")


class FakeSsdpResponder(asyncio.DatagramProtocol):
    """Answers every datagram it receives with a fixed list of replies."""

    def __init__(self, replies: list[bytes]):
        self.replies = replies
        self.requests: list[bytes] = []
        self.transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.requests.append(data)
        for reply in self.replies:
            self.transport.sendto(reply, addr)


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
async def renderer_server(aiohttp_server, renderer):
    return await aiohttp_server(renderer.app())


@pytest.fixture
async def ssdp_responder():
    loop = asyncio.get_running_loop()
    transports = []

    async def start(replies: list[bytes]) -> tuple[FakeSsdpResponder, int]:
        transport, protocol = await loop.create_datagram_endpoint(
            lambda: FakeSsdpResponder(replies), local_addr=("127.0.0.1", 0)
        )
        transports.append(transport)
        return protocol, transport.get_extra_info("sockname")[1]

    yield start
    for transport in transports:
        transport.close()


@pytest.fixture
async def client_session():
    async with aiohttp.ClientSession() as session:
        yield session
