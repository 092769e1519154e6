"""
UPnP discovery: M-SEARCH for MediaRenderers (and ssdp:all), then fetch the
description behind every unique LOCATION while still listening for replies.
"""
from __future__ import annotations

import asyncio
import logging
import socket
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Iterable

import aiohttp
from async_upnp_client.utils import CaseInsensitiveDict

from device_registry import DeviceRegistry
from upnp_description import fetch_device
from upnp_device import Device

logger = logging.getLogger(__name__)

SSDP_ADDR = "239.255.255.250"
SSDP_PORT = 1900
SSDP_ST_MEDIA_RENDERER = "urn:schemas-upnp-org:device:MediaRenderer:1"
SSDP_ST_ALL = "ssdp:all"
SSDP_MX = 3  # seconds responders may wait before answering
DISCOVERY_TIMEOUT = 8.0  # whole receive window, seconds
RECV_BUFFER_SIZE = 8192
USER_AGENT = "Python UPnP/1.0 dlna-cast/1.0"

DeviceCallback = Callable[[Device], None]


def build_msearch(search_target: str, mx: int = SSDP_MX) -> bytes:
    """M-SEARCH request; every line ends in CRLF and a blank line ends the message."""
    return (
        "M-SEARCH * HTTP/1.1\r\n"
        f"HOST: {SSDP_ADDR}:{SSDP_PORT}\r\n"
        'MAN: "ssdp:discover"\r\n'
        f"MX: {mx}\r\n"
        f"ST: {search_target}\r\n"
        f"USER-AGENT: {USER_AGENT}\r\n"
        "\r\n"
    ).encode("utf-8")


def parse_headers(response: str) -> CaseInsensitiveDict:
    """Headers of an SSDP response; the status line is skipped."""
    headers = CaseInsensitiveDict()
    for line in response.split("\r\n")[1:]:
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        key = key.strip()
        if key and key not in headers:
            headers[key] = value.strip()
    return headers


def parse_location(response: str) -> str | None:
    location = parse_headers(response).get("location")
    return location or None


@dataclass
class DiscoveryResult:
    """Outcome of one discovery run.

    error is None for a clean run, even one that found nothing; otherwise it
    is the socket error that ended the run.
    """

    devices: list[Device] = field(default_factory=list)
    responses: int = 0
    failed_locations: list[str] = field(default_factory=list)
    error: OSError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SsdpDiscovery:
    """
    One-shot SSDP search. Every call to discover() opens its own socket and
    starts with an empty set of seen locations, so runs can be repeated.

    Usage:
        discovery = SsdpDiscovery(on_device=registry.merge)
        result = await discovery.discover()
    """

    def __init__(
        self,
        on_device: DeviceCallback | None = None,
        *,
        address: str = SSDP_ADDR,
        port: int = SSDP_PORT,
        search_targets: Iterable[str] = (SSDP_ST_MEDIA_RENDERER, SSDP_ST_ALL),
        mx: int = SSDP_MX,
        timeout: float = DISCOVERY_TIMEOUT,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.on_device = on_device
        self.address = address
        self.port = port
        self.search_targets = list(search_targets)
        self.mx = mx
        self.timeout = timeout
        self._session = session

    @asynccontextmanager
    async def _client_session(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._session is not None:
            yield self._session
        else:
            async with aiohttp.ClientSession() as session:
                yield session

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 2)
            sock.bind(("", 0))
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise
        return sock

    async def discover(self, on_device: DeviceCallback | None = None) -> DiscoveryResult:
        """
        Run one discovery window and return once every description fetch it
        started has finished. Socket errors end up in DiscoveryResult.error.
        """
        callback = on_device or self.on_device
        result = DiscoveryResult()
        fetches: set[asyncio.Task] = set()

        async with self._client_session() as session:

            def on_location(location: str) -> None:
                fetches.add(asyncio.create_task(self._fetch(session, location, result, callback)))

            try:
                await self._search(result, on_location)
                if fetches:
                    await asyncio.gather(*fetches)
            finally:
                for task in fetches:
                    task.cancel()

        logger.info(
            "Discovery finished: %d response(s), %d device(s)", result.responses, len(result.devices)
        )
        return result

    async def iter_devices(self) -> AsyncIterator[Device]:
        """Yield devices as their descriptions are parsed."""
        queue: asyncio.Queue[Device | None] = asyncio.Queue()
        task = asyncio.create_task(self.discover(on_device=queue.put_nowait))
        task.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while (device := await queue.get()) is not None:
                yield device
        finally:
            if not task.done():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
            elif not task.cancelled():
                task.result()

    async def _search(self, result: DiscoveryResult, on_location: Callable[[str], None]) -> None:
        sock = None
        try:
            sock = self._create_socket()
            await self._send_searches(sock)
            await self._receive(sock, result, on_location)
        except OSError as err:
            logger.error("SSDP discovery failed: %r", err)
            result.error = err
        finally:
            if sock is not None:
                sock.close()

    async def _send_searches(self, sock: socket.socket) -> None:
        loop = asyncio.get_running_loop()
        last_error: OSError | None = None
        sent = 0
        for target in self.search_targets:
            message = build_msearch(target, self.mx)
            try:
                await loop.sock_sendto(sock, message, (self.address, self.port))
            except OSError as err:
                logger.warning("Sending M-SEARCH for %s failed: %r", target, err)
                last_error = err
                continue
            sent += 1
            logger.debug("Sent M-SEARCH for %s to %s:%s", target, self.address, self.port)
        if not sent and last_error is not None:
            raise last_error

    async def _receive(
        self, sock: socket.socket, result: DiscoveryResult, on_location: Callable[[str], None]
    ) -> None:
        loop = asyncio.get_running_loop()
        buffer = bytearray(RECV_BUFFER_SIZE)
        seen: set[str] = set()
        deadline = loop.time() + self.timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                nbytes, addr = await asyncio.wait_for(loop.sock_recvfrom_into(sock, buffer), remaining)
            except asyncio.TimeoutError:
                break
            result.responses += 1
            response = bytes(buffer[:nbytes]).decode("utf-8", errors="replace")
            location = parse_location(response)
            if location is None:
                logger.debug("Response from %s has no LOCATION header", addr[0])
                continue
            if location in seen:
                continue
            seen.add(location)
            logger.debug("New location from %s: %s", addr[0], location)
            on_location(location)

        if not result.responses:
            logger.warning("No SSDP responses within %.1fs", self.timeout)

    async def _fetch(
        self,
        session: aiohttp.ClientSession,
        location: str,
        result: DiscoveryResult,
        callback: DeviceCallback | None,
    ) -> None:
        try:
            device = await fetch_device(session, location)
        except Exception:
            logger.exception("Unexpected error fetching description %s", location)
            device = None
        if device is None:
            result.failed_locations.append(location)
            return
        result.devices.append(device)
        if callback is not None:
            callback(device)


async def discover_media_renderers(timeout: float = DISCOVERY_TIMEOUT, **options) -> list[Device]:
    """
    Run SSDP discovery and return the renderers that can be cast to,
    one per UDN. options are passed on to SsdpDiscovery.
    """
    registry = DeviceRegistry()
    await SsdpDiscovery(registry.merge, timeout=timeout, **options).discover()
    return registry.castable()
