"""
AVTransport actions (set source, play, pause, stop, seek) sent over a connected transport.
"""
from __future__ import annotations

import re
from typing import Any

from upnp_devices import AVTRANSPORT_SERVICE_TYPE
from upnp_transport import Transport

INSTANCE_ID = 0


def format_time(seconds: float) -> str:
    """Convert seconds to the UPnP REL_TIME form HH:MM:SS (fractions dropped, no day rollover)."""
    total = int(seconds)
    h = total // 3600
    m = (total % 3600) // 60
    s = total % 60
    return f"{h:02d}:{m:02d}:{s:02d}"


def parse_time(text: str) -> float | None:
    """Parse "H:MM:SS", "MM:SS" or plain seconds. Returns None if it cannot be parsed."""
    text = (text or "").strip()
    m = re.match(r"^(?:(\d+):)?(\d{1,2}):(\d{2})$", text)
    if m:
        h, m_, sec = int(m.group(1) or 0), int(m.group(2)), int(m.group(3))
        return float(h * 3600 + m_ * 60 + sec)
    try:
        value = float(text)
    except ValueError:
        return None
    return value if value >= 0 else None


async def set_av_transport_uri(transport: Transport, uri: str, metadata: str = "") -> Any:
    return await transport.send(
        AVTRANSPORT_SERVICE_TYPE,
        "SetAVTransportURI",
        {"InstanceID": INSTANCE_ID, "CurrentURI": uri, "CurrentURIMetaData": metadata},
    )


async def play(transport: Transport, speed: str = "1") -> Any:
    return await transport.send(AVTRANSPORT_SERVICE_TYPE, "Play", {"InstanceID": INSTANCE_ID, "Speed": speed})


async def pause(transport: Transport) -> Any:
    return await transport.send(AVTRANSPORT_SERVICE_TYPE, "Pause", {"InstanceID": INSTANCE_ID})


async def stop(transport: Transport) -> Any:
    return await transport.send(AVTRANSPORT_SERVICE_TYPE, "Stop", {"InstanceID": INSTANCE_ID})


async def seek(transport: Transport, seconds: float) -> Any:
    """Seek to an absolute position, sent as REL_TIME HH:MM:SS."""
    return await transport.send(
        AVTRANSPORT_SERVICE_TYPE,
        "Seek",
        {"InstanceID": INSTANCE_ID, "Unit": "REL_TIME", "Target": format_time(seconds)},
    )
