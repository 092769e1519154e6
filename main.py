#!/usr/bin/env python3
"""
DLNA cast: discover MediaRenderer devices, pick one, play a media URL on it.
Run: python main.py [--url URL]
"""
import argparse
import asyncio
import logging
import sys

from cast_controller import CastController
from upnp_device import Device
from upnp_discovery import DISCOVERY_TIMEOUT, SsdpDiscovery
from upnp_player import DEFAULT_TITLE, stop_media

DEFAULT_MEDIA_URL = "http://vjs.zencdn.net/v/oceans.mp4"


def prompt(text: str, default: str = "") -> str:
    """Read a line from stdin."""
    if default:
        sys.stdout.write(f"{text} [{default}]: ")
    else:
        sys.stdout.write(f"{text}: ")
    sys.stdout.flush()
    line = sys.stdin.readline()
    if not line:
        return default
    return line.strip() or default


def prompt_int(text: str, min_val: int, max_val: int) -> int | None:
    """Read an integer in range from stdin. None once stdin is exhausted."""
    while True:
        sys.stdout.write(f"{text}: ")
        sys.stdout.flush()
        line = sys.stdin.readline()
        if not line:
            print()
            return None
        raw = line.strip()
        try:
            n = int(raw)
            if min_val <= n <= max_val:
                return n
        except ValueError:
            pass
        print(f"Enter a number between {min_val} and {max_val}")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Cast a media URL to a DLNA/UPnP renderer on your network")
    parser.add_argument("--url", help="Media URL to play (prompted for if omitted)")
    parser.add_argument("--title", default=DEFAULT_TITLE, help=f"Title sent in the metadata (default: {DEFAULT_TITLE})")
    parser.add_argument(
        "--timeout",
        type=float,
        default=DISCOVERY_TIMEOUT,
        help=f"Discovery window in seconds (default: {DISCOVERY_TIMEOUT:g})",
    )
    parser.add_argument("--device", help="Pick the first renderer whose name contains this text")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log protocol details")
    return parser.parse_args(argv)


def _print_device(device: Device) -> None:
    marker = "" if device.castable else "  (no AVTransport, cannot cast)"
    print(f"  + {device.friendly_name} [{device.manufacturer} {device.model_name}]{marker}")


def choose_device(renderers: list[Device], name: str | None) -> Device | None:
    if name:
        for device in renderers:
            if name.lower() in device.friendly_name.lower():
                return device
        print(f"No renderer matching '{name}'")
        return None
    print(f"\nFound {len(renderers)} renderer(s):")
    for i, device in enumerate(renderers, 1):
        print(f"  {i}. {device.friendly_name}")
    idx = prompt_int("Select device", 1, len(renderers))
    if idx is None:
        return None
    return renderers[idx - 1]


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("DLNA Cast")
    print("Make sure this machine is on the same network as the TV/speaker.\n")

    controller = CastController(discovery=SsdpDiscovery(timeout=args.timeout))
    controller.clear_devices()
    print(f"Discovering UPnP devices ({args.timeout:g}s)...")
    result = await controller.start_discovery(on_device=_print_device)
    if not result.ok:
        print(f"Discovery failed: {result.error}")
        return 1

    renderers = controller.registry.castable()
    if not renderers:
        print("No MediaRenderer devices found. Check the network and try again.")
        return 1

    chosen = choose_device(renderers, args.device)
    if chosen is None:
        return 1
    print(f"Using: {chosen.friendly_name}\n")

    media_url = args.url or prompt("Enter media URL (http/https)", default=DEFAULT_MEDIA_URL)
    if not media_url.startswith(("http://", "https://")):
        print(f"Not an http(s) URL: {media_url}")
        return 1

    print("Sending to device and starting playback...")
    cast_result = await controller.cast_to_device(chosen, media_url, args.title)
    if not cast_result:
        print(f"Cast failed at {cast_result.failed_action}.")
        return 1

    print("Playing. Press Enter to stop.")
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, sys.stdin.readline)
    if await stop_media(chosen):
        print("Stopped.")
    else:
        print("Stop was not accepted by the device.")
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
