"""
Fetch a UPnP device description and turn it into a Device.
Only the identity fields and the AVTransport control URL are read.
"""
from __future__ import annotations

import asyncio
import logging
from urllib.parse import urlparse

import aiohttp

from upnp_device import (
    UNKNOWN_DEVICE_TYPE,
    UNKNOWN_FRIENDLY_NAME,
    UNKNOWN_MANUFACTURER,
    UNKNOWN_MODEL_NAME,
    UNKNOWN_UDN,
    Device,
)
from xml_fields import extract_xml_tag, find_xml_tag_after

logger = logging.getLogger(__name__)

AVTRANSPORT_SERVICE_TYPE = "urn:schemas-upnp-org:service:AVTransport:1"
DESCRIPTION_TIMEOUT = aiohttp.ClientTimeout(total=None, connect=5, sock_read=5)


def _field(xml: str, tag: str, default: str) -> str:
    value = extract_xml_tag(xml, tag)
    if value is None:
        return default
    return value.strip() or default


def resolve_control_url(location: str, control_url: str) -> str:
    """
    Make a controlURL absolute.
    "/x" is resolved against the scheme, host and port of location; anything
    else is joined onto the directory that holds the description document.
    """
    if control_url.startswith(("http://", "https://")):
        return control_url
    parsed = urlparse(location)
    origin = f"{parsed.scheme}://{parsed.netloc}"
    if control_url.startswith("/"):
        return origin + control_url
    directory = parsed.path.rsplit("/", 1)[0] if "/" in parsed.path else ""
    return f"{origin}{directory}/{control_url}"


def find_control_url(xml: str, location: str) -> str | None:
    """
    Absolute AVTransport control URL, or None.
    Takes the first <controlURL> after the AVTransport service type, so it relies
    on serviceType being listed before controlURL inside each <service> block.
    """
    offset = xml.find(AVTRANSPORT_SERVICE_TYPE)
    if offset == -1:
        return None
    control_url = find_xml_tag_after(xml, "controlURL", offset)
    if control_url is None or not control_url.strip():
        return None
    return resolve_control_url(location, control_url.strip())


def parse_device_description(xml: str, location: str) -> Device:
    """Build a Device from description XML; missing fields get their defaults."""
    control_endpoint = find_control_url(xml, location)
    if control_endpoint:
        logger.debug("AVTransport control URL for %s: %s", location, control_endpoint)
    return Device(
        location=location,
        unique_id=_field(xml, "UDN", UNKNOWN_UDN),
        friendly_name=_field(xml, "friendlyName", UNKNOWN_FRIENDLY_NAME),
        model_name=_field(xml, "modelName", UNKNOWN_MODEL_NAME),
        manufacturer=_field(xml, "manufacturer", UNKNOWN_MANUFACTURER),
        device_type=_field(xml, "deviceType", UNKNOWN_DEVICE_TYPE),
        control_endpoint=control_endpoint,
    )


async def fetch_device(session: aiohttp.ClientSession, location: str) -> Device | None:
    """
    GET the description at location and parse it.
    Returns None (and logs why) on a non-2xx status or any transport failure.
    There is no retry.
    """
    parsed = urlparse(location)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        logger.warning("Ignoring description location that is not an absolute http(s) URL: %r", location)
        return None
    try:
        async with session.get(location, timeout=DESCRIPTION_TIMEOUT) as response:
            if not 200 <= response.status < 300:
                logger.warning("Description request to %s failed: HTTP %s", location, response.status)
                return None
            xml = await response.text(errors="replace")
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as err:
        logger.warning("Could not fetch description %s: %r", location, err)
        return None

    device = parse_device_description(xml, location)
    logger.debug("Parsed %s: %s, udn=%s", location, device, device.unique_id)
    return device
