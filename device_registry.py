"""
In-memory set of discovered renderers, keyed by UDN.
"""
from __future__ import annotations

import logging
import threading

from upnp_device import Device

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """Thread-safe registry of Device records.

    Records are only ever enriched: a stored device is replaced by a newer
    record with the same unique_id only when the newer one has a control
    endpoint and the stored one does not.
    """

    def __init__(self) -> None:
        self._devices: dict[str, Device] = {}
        self._lock = threading.Lock()

    def merge(self, device: Device) -> bool:
        """Insert or enrich a device. Returns True if the registry changed."""
        with self._lock:
            current = self._devices.get(device.unique_id)
            if current is None:
                self._devices[device.unique_id] = device
                if device.castable:
                    logger.info("New device: %s (control: %s)", device.friendly_name, device.control_endpoint)
                else:
                    logger.info("New device without AVTransport control URL: %s", device.friendly_name)
                return True
            if device.castable and not current.castable:
                self._devices[device.unique_id] = device
                logger.info("Updated device: %s (control: %s)", device.friendly_name, device.control_endpoint)
                return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._devices.clear()

    def get(self, unique_id: str) -> Device | None:
        with self._lock:
            return self._devices.get(unique_id)

    def devices(self) -> list[Device]:
        """Snapshot of all devices in insertion order."""
        with self._lock:
            return list(self._devices.values())

    def castable(self) -> list[Device]:
        return [device for device in self.devices() if device.castable]

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    def __contains__(self, unique_id: object) -> bool:
        with self._lock:
            return unique_id in self._devices
