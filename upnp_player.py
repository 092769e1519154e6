"""
Play a media URL on a UPnP MediaRenderer (AVTransport).
Cast sends Stop, SetAVTransportURI (with DIDL-Lite metadata) and Play to the
renderer's control URL, strictly one after the other.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

import aiohttp

from upnp_description import AVTRANSPORT_SERVICE_TYPE
from upnp_device import Device
from xml_fields import escape_xml, extract_xml_tag, has_xml_element

logger = logging.getLogger(__name__)

SOAP_ENVELOPE_NS = "http://schemas.xmlsoap.org/soap/envelope/"
SOAP_ENCODING = "http://schemas.xmlsoap.org/soap/encoding/"
# aiohttp has no write timeout; total bounds a stalled upload along with the rest of the action.
SOAP_TIMEOUT = aiohttp.ClientTimeout(total=30, connect=10, sock_read=10)
SOAP_USER_AGENT = "Python DLNA/1.0"

DEFAULT_TITLE = "DLNA Cast Video"
DIDL_PROTOCOL_INFO = (
    "http-get:*:video/mp4:DLNA.ORG_OP=01;DLNA.ORG_CI=0;DLNA.ORG_FLAGS=01700000000000000000000000000000"
)


def build_soap_envelope(action: str, arguments: list[tuple[str, str]]) -> str:
    """SOAP 1.1 envelope for one AVTransport action; argument values must already be escaped."""
    args = "".join(f"<{name}>{value}</{name}>" for name, value in arguments)
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        f'<s:Envelope xmlns:s="{SOAP_ENVELOPE_NS}" s:encodingStyle="{SOAP_ENCODING}">'
        "<s:Body>"
        f'<u:{action} xmlns:u="{AVTRANSPORT_SERVICE_TYPE}">{args}</u:{action}>'
        "</s:Body>"
        "</s:Envelope>"
    )


def build_didl_metadata(media_url: str, title: str = DEFAULT_TITLE) -> str:
    """
    Single-item DIDL-Lite document for media_url, escaped as a whole so it can
    be placed as text inside CurrentURIMetaData. Title and URL are escaped
    before they go into the document, so they end up escaped twice.
    """
    didl = (
        '<DIDL-Lite xmlns="urn:schemas-upnp-org:metadata-1-0/DIDL-Lite/" '
        'xmlns:dc="http://purl.org/dc/elements/1.1/" '
        'xmlns:upnp="urn:schemas-upnp-org:metadata-1-0/upnp/" '
        'xmlns:dlna="urn:schemas-dlna-org:metadata-1-0/">'
        '<item id="1" parentID="0" restricted="1">'
        f"<dc:title>{escape_xml(title)}</dc:title>"
        "<upnp:class>object.item.videoItem</upnp:class>"
        f'<res protocolInfo="{DIDL_PROTOCOL_INFO}">{escape_xml(media_url)}</res>'
        "</item>"
        "</DIDL-Lite>"
    )
    return escape_xml(didl)


@dataclass
class ActionResult:
    """Outcome of one SOAP action. status is None when no HTTP response arrived."""

    action: str
    status: int | None = None
    fault: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not None and 200 <= self.status < 300 and self.fault is None

    def __bool__(self) -> bool:
        return self.ok


@dataclass
class CastResult:
    """Outcome of a cast; truthy when playback was started."""

    success: bool
    actions: list[ActionResult] = field(default_factory=list)
    failed_action: str | None = None

    def __bool__(self) -> bool:
        return self.success


def _parse_fault(body: str) -> str | None:
    if not has_xml_element(body, "Fault"):
        return None
    code = extract_xml_tag(body, "errorCode")
    description = extract_xml_tag(body, "errorDescription")
    if code is None:
        return (extract_xml_tag(body, "faultstring") or "SOAP fault").strip()
    return f"UPnP error {code.strip()}: {(description or '').strip()}".rstrip(": ")


class AVTransportClient:
    """AVTransport actions against one control URL, InstanceID 0."""

    def __init__(self, session: aiohttp.ClientSession, control_url: str):
        self.session = session
        self.control_url = control_url

    async def call_action(self, action: str, arguments: list[tuple[str, str]]) -> ActionResult:
        body = build_soap_envelope(action, [("InstanceID", "0"), *arguments])
        headers = {
            "Content-Type": 'text/xml; charset="utf-8"',
            "SOAPAction": f'"{AVTRANSPORT_SERVICE_TYPE}#{action}"',
            "User-Agent": SOAP_USER_AGENT,
            "Connection": "close",
        }
        try:
            async with self.session.post(
                self.control_url, data=body.encode("utf-8"), headers=headers, timeout=SOAP_TIMEOUT
            ) as response:
                text = await response.text(errors="replace")
                result = ActionResult(action, status=response.status, fault=_parse_fault(text))
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as err:
            logger.warning("SOAP %s to %s failed: %r", action, self.control_url, err)
            return ActionResult(action, error=repr(err))

        logger.debug("SOAP %s response: HTTP %s", action, result.status)
        if not result.ok:
            logger.warning("SOAP %s rejected (HTTP %s): %s", action, result.status, result.fault or text[:200])
        return result

    async def stop(self) -> ActionResult:
        return await self.call_action("Stop", [])

    async def set_av_transport_uri(self, uri: str, metadata: str) -> ActionResult:
        """metadata must already be escaped (see build_didl_metadata)."""
        return await self.call_action(
            "SetAVTransportURI", [("CurrentURI", escape_xml(uri)), ("CurrentURIMetaData", metadata)]
        )

    async def play(self, speed: str = "1") -> ActionResult:
        return await self.call_action("Play", [("Speed", speed)])


async def cast(
    device: Device,
    media_url: str,
    title: str = DEFAULT_TITLE,
    session: aiohttp.ClientSession | None = None,
) -> CastResult:
    """
    Start playback of media_url on device.
    Returns a falsy CastResult without any network traffic when the device
    has no control endpoint. Stop is best-effort; a failed SetAVTransportURI
    ends the sequence before Play.
    """
    if device.control_endpoint is None:
        logger.error("Cannot cast: %s has no AVTransport control URL", device.friendly_name)
        return CastResult(False, failed_action="precondition")

    if session is None:
        async with aiohttp.ClientSession() as own_session:
            return await _cast(own_session, device, media_url, title)
    return await _cast(session, device, media_url, title)


async def _cast(session: aiohttp.ClientSession, device: Device, media_url: str, title: str) -> CastResult:
    avt = AVTransportClient(session, device.control_endpoint)
    logger.info("Casting %s to %s (%s)", media_url, device.friendly_name, device.control_endpoint)

    stopped = await avt.stop()
    set_uri = await avt.set_av_transport_uri(media_url, build_didl_metadata(media_url, title))
    if not set_uri:
        logger.error("SetAVTransportURI failed on %s", device.friendly_name)
        return CastResult(False, [stopped, set_uri], failed_action=set_uri.action)

    played = await avt.play()
    if not played:
        logger.error("Play failed on %s", device.friendly_name)
        return CastResult(False, [stopped, set_uri, played], failed_action=played.action)

    logger.info("Playback started on %s", device.friendly_name)
    return CastResult(True, [stopped, set_uri, played])


async def stop_media(device: Device, session: aiohttp.ClientSession | None = None) -> bool:
    """Stop playback on the renderer (AVTransport Stop)."""
    if device.control_endpoint is None:
        return False
    if session is None:
        async with aiohttp.ClientSession() as own_session:
            return bool(await AVTransportClient(own_session, device.control_endpoint).stop())
    return bool(await AVTransportClient(session, device.control_endpoint).stop())
