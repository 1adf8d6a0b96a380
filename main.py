#!/usr/bin/env python3
"""
DLNA cast from the terminal: find renderers (local proxy, SSDP or by IP), pick one,
cast a video URL and control playback.
Run: python main.py [--ssdp] [--verbose]
"""
import argparse
import asyncio
import logging
import sys

from cast_commands import CastController
from cast_config import CastConfig
from upnp_devices import is_valid_ip
from upnp_player import parse_time


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


def prompt_int(text: str, min_val: int, max_val: int) -> int:
    """Read an integer in range from stdin."""
    while True:
        raw = prompt(text)
        try:
            n = int(raw)
            if min_val <= n <= max_val:
                return n
        except ValueError:
            pass
        print(f"Enter a number between {min_val} and {max_val}")


async def ainput(text: str, default: str = "") -> str:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, prompt, text, default)


async def choose_device(ctl: CastController) -> dict:
    while True:
        devices = (await ctl.handle({"type": "GET_DEVICES"}))["devices"]
        if devices:
            print(f"\nFound {len(devices)} device(s):")
            for i, d in enumerate(devices, 1):
                print(f"  {i}. {d['friendlyName']}  {d['address']}")
        else:
            print("\nNo devices found yet.")
        print("  0. Add a device by IP address")
        idx = prompt_int("Select device", 0, len(devices))
        if idx:
            return devices[idx - 1]

        ip = prompt("Device IP address").strip()
        if not is_valid_ip(ip):
            print("Enter a valid IP address")
            continue
        response = await ctl.handle({"type": "ADD_MANUAL_DEVICE", "ip": ip})
        if not response["success"]:
            print(f"Adding device failed: {response['error']}")


async def control_loop(ctl: CastController) -> None:
    print("Commands: p = pause, r = resume, s <time> = seek (seconds or H:MM:SS), Enter = stop\n")
    while True:
        line = (await ainput(">")).strip()
        if not line or line == "q":
            break
        cmd, _, arg = line.partition(" ")
        if cmd == "p":
            state = {"eventType": "pause", "paused": True}
        elif cmd == "r":
            state = {"eventType": "play", "paused": False}
        elif cmd == "s":
            seconds = parse_time(arg)
            if seconds is None:
                print("Enter the time as seconds or H:MM:SS")
                continue
            state = {"eventType": "seeking", "currentTime": seconds}
        else:
            print("Unknown command")
            continue
        await ctl.handle({"type": "VIDEO_STATE_CHANGED", "state": state})
        await ctl.sessions.drain()


async def main(args: argparse.Namespace) -> None:
    print("DLNA Cast")
    print("Make sure this machine is on the same network as the TV/renderer.\n")

    async with CastController(CastConfig.from_env()) as ctl:
        if await ctl.initialize():
            print("Local server is running.")
        else:
            print("Local server not running; add devices by IP.")

        print("Discovering devices...")
        await ctl.handle({"type": "SEARCH_DEVICES", "ssdp": args.ssdp})
        device = await choose_device(ctl)
        print(f"Using: {device['friendlyName']}\n")

        src = prompt("Enter video URL (http/https)").strip()
        if not src:
            print("Nothing to play.")
            return
        title = prompt("Title", default=src.rsplit("/", 1)[-1])

        print("Sending to device and starting playback...")
        response = await ctl.handle({"type": "START_CASTING", "device": device, "video": {"src": src, "title": title}})
        if not response["success"]:
            print(f"Cast failed: {response['error']}")
            sys.exit(1)

        print("Casting.")
        await control_loop(ctl)

        response = await ctl.handle({"type": "STOP_CASTING"})
        if response["success"]:
            print("Stopped.")
        else:
            print(f"Stop failed: {response['error']}")


def run() -> None:
    parser = argparse.ArgumentParser(description="Cast a video URL to a DLNA renderer")
    parser.add_argument("--ssdp", action="store_true", help="also search the network with SSDP")
    parser.add_argument("-v", "--verbose", action="store_true", help="log protocol traffic")
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    asyncio.run(main(args))


if __name__ == "__main__":
    run()
