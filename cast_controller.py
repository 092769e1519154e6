"""
Entry points for a front end: scan for renderers, clear the list, cast.
"""
from __future__ import annotations

import logging

from device_registry import DeviceRegistry
from upnp_device import Device
from upnp_discovery import DeviceCallback, DiscoveryResult, SsdpDiscovery
from upnp_player import DEFAULT_TITLE, CastResult, cast

logger = logging.getLogger(__name__)


class CastController:
    """Owns a DeviceRegistry and feeds discovery results into it."""

    def __init__(self, registry: DeviceRegistry | None = None, discovery: SsdpDiscovery | None = None):
        self.registry = registry if registry is not None else DeviceRegistry()
        self.discovery = discovery if discovery is not None else SsdpDiscovery()

    @property
    def devices(self) -> list[Device]:
        return self.registry.devices()

    async def start_discovery(self, on_device: DeviceCallback | None = None) -> DiscoveryResult:
        """
        Run one discovery window, merging every device into the registry.
        on_device is called with each device the registry accepted.
        """

        def found(device: Device) -> None:
            if self.registry.merge(device) and on_device is not None:
                on_device(device)

        return await self.discovery.discover(on_device=found)

    def clear_devices(self) -> None:
        self.registry.clear()

    async def cast_to_device(self, device: Device, media_url: str, title: str = DEFAULT_TITLE) -> CastResult:
        return await cast(device, media_url, title)
