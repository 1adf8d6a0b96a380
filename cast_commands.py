"""
Request/response command surface used by the UI and the page observer.

Every request is a dict with a "type" (START_CASTING, STOP_CASTING,
VIDEO_STATE_CHANGED, SEARCH_DEVICES, GET_DEVICES, ADD_MANUAL_DEVICE) and every
response is {"success": True, ...} or {"success": False, "error": message}.
"""
from __future__ import annotations

import logging
from typing import Any, Callable

import aiohttp

from cast_config import CastConfig
from upnp_devices import Device, DeviceProber, DeviceRegistry
from upnp_discovery import DiscoveryOrchestrator
from upnp_errors import CastError, NoActiveSession
from upnp_session import Media, PlaybackEvent, SessionManager
from upnp_transport import TransportSelector

logger = logging.getLogger(__name__)


def _failure(error: str) -> dict[str, Any]:
    return {"success": False, "error": error}


class CastController:
    """Wires registry, discovery and the session manager together around one HTTP session."""

    def __init__(
        self,
        config: CastConfig | None = None,
        session: aiohttp.ClientSession | None = None,
        on_device_found: Callable[[Device], None] | None = None,
    ) -> None:
        self.config = config or CastConfig()
        self._http = session
        self._owns_http = session is None
        self.registry = DeviceRegistry(on_device_found=on_device_found)
        self._build()

    def _build(self) -> None:
        self.discovery = DiscoveryOrchestrator(
            self.registry, self.config, self._http, DeviceProber(self.config, self._http)
        )
        self.sessions = SessionManager(TransportSelector(self.config, self._http), self.config)

    async def __aenter__(self) -> "CastController":
        if self._http is None:
            self._http = aiohttp.ClientSession()
            self._build()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.sessions.close()
        if self._owns_http and self._http is not None:
            await self._http.close()
            self._http = None

    async def initialize(self) -> bool:
        """Check the local proxy; returns False (manual mode) when it is not running."""
        return await self.discovery.check_local_server()

    async def handle(self, request: dict[str, Any]) -> dict[str, Any]:
        handlers = {
            "START_CASTING": self._start_casting,
            "STOP_CASTING": self._stop_casting,
            "VIDEO_STATE_CHANGED": self._video_state_changed,
            "SEARCH_DEVICES": self._search_devices,
            "GET_DEVICES": self._get_devices,
            "ADD_MANUAL_DEVICE": self._add_manual_device,
        }
        handler = handlers.get(request.get("type"))
        if handler is None:
            return _failure(f"Unknown request type: {request.get('type')!r}")
        try:
            return await handler(request)
        except CastError as err:
            return _failure(str(err))
        except (AttributeError, KeyError, TypeError, ValueError) as err:
            logger.warning("Malformed %s request: %r", request.get("type"), err)
            return _failure(f"Malformed request: {err}")

    async def _start_casting(self, request: dict[str, Any]) -> dict[str, Any]:
        record = request["device"]
        device = self.registry.get(record.get("UDN") or record.get("id") or "")
        if device is None:
            device = Device.from_record(record)
        media = Media.from_record(request["video"])
        await self.sessions.start_cast(device, media)
        return {"success": True}

    async def _stop_casting(self, request: dict[str, Any]) -> dict[str, Any]:
        try:
            await self.sessions.stop_cast()
        except NoActiveSession:
            pass
        return {"success": True}

    async def _video_state_changed(self, request: dict[str, Any]) -> dict[str, Any]:
        event = PlaybackEvent.from_record(request["state"])
        return {"success": True, "queued": self.sessions.on_playback_event(event)}

    async def _search_devices(self, request: dict[str, Any]) -> dict[str, Any]:
        found = await self.discovery.discover()
        if request.get("ssdp"):
            found += await self.discovery.discover_ssdp()
        return {"success": True, "found": found}

    async def _get_devices(self, request: dict[str, Any]) -> dict[str, Any]:
        return {"success": True, "devices": [d.to_dict() for d in self.registry.list()]}

    async def _add_manual_device(self, request: dict[str, Any]) -> dict[str, Any]:
        device = await self.discovery.add_manual(request["ip"])
        return {"success": True, "device": device.to_dict()}
