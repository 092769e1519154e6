"""
Discovered UPnP media renderer record.
"""
from __future__ import annotations

from dataclasses import dataclass

UNKNOWN_FRIENDLY_NAME = "Unknown Device"
UNKNOWN_MODEL_NAME = "Unknown Model"
UNKNOWN_MANUFACTURER = "Unknown"
UNKNOWN_UDN = "unknown-udn"
UNKNOWN_DEVICE_TYPE = "unknown"


@dataclass(frozen=True)
class Device:
    """A renderer built from one parsed device description.

    unique_id is the UDN and identifies the device in a DeviceRegistry.
    control_endpoint is the absolute AVTransport control URL, or None when
    the description had no AVTransport service (the device can't be cast to).
    """

    location: str
    unique_id: str = UNKNOWN_UDN
    friendly_name: str = UNKNOWN_FRIENDLY_NAME
    model_name: str = UNKNOWN_MODEL_NAME
    manufacturer: str = UNKNOWN_MANUFACTURER
    device_type: str = UNKNOWN_DEVICE_TYPE
    control_endpoint: str | None = None

    @property
    def castable(self) -> bool:
        return self.control_endpoint is not None

    def __str__(self) -> str:
        return f"{self.friendly_name} ({self.manufacturer} {self.model_name})"
