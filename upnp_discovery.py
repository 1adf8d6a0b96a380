"""
Discovery: ask the local proxy for its device list, run an SSDP search for
MediaRenderers, or probe a device by address. Results land in the DeviceRegistry.
"""
from __future__ import annotations

import asyncio
import json
import logging
from urllib.parse import urlparse

import aiohttp
from async_upnp_client.aiohttp import AiohttpSessionRequester
from async_upnp_client.client_factory import UpnpFactory
from async_upnp_client.exceptions import UpnpError
from async_upnp_client.search import async_search
from async_upnp_client.utils import CaseInsensitiveDict

from cast_config import CastConfig
from upnp_devices import (
    DEFAULT_FRIENDLY_NAME,
    DEFAULT_MANUFACTURER,
    DEFAULT_MODEL_NAME,
    MEDIA_RENDERER_DEVICE_TYPE,
    Device,
    DeviceProber,
    DeviceRegistry,
    is_valid_ip,
    synthesize_id,
)
from upnp_errors import CastError, InvalidDescription, ProbeFailed
from upnp_http import client_session, is_success, request_text

logger = logging.getLogger(__name__)

# SSDP search target: all MediaRenderers (we still check for AVTransport)
SSDP_ST_RENDERER = MEDIA_RENDERER_DEVICE_TYPE


class DiscoveryOrchestrator:
    def __init__(
        self,
        registry: DeviceRegistry,
        config: CastConfig | None = None,
        session: aiohttp.ClientSession | None = None,
        prober: DeviceProber | None = None,
    ) -> None:
        self.registry = registry
        self.config = config or CastConfig()
        self._session = session
        self.prober = prober or DeviceProber(self.config, session)

    async def check_local_server(self) -> bool:
        """Return whether the local proxy answers /status; manual mode remains usable if not."""
        url = f"{self.config.proxy_base}/status"
        try:
            async with client_session(self._session) as session:
                status, _ = await request_text(
                    session, "GET", url, timeout=self.config.client_timeout, on_error=CastError
                )
        except CastError as err:
            logger.warning("Local server not running, using manual mode: %s", err)
            return False
        if not is_success(status):
            logger.warning("Local server not running, using manual mode: HTTP %s", status)
            return False
        return True

    async def discover(self) -> int:
        """
        Register every device the local proxy knows about.
        Failures are logged, never raised. Returns how many devices were new.
        """
        url = f"{self.config.proxy_base}/devices"
        try:
            async with client_session(self._session) as session:
                status, body = await request_text(
                    session, "GET", url, timeout=self.config.client_timeout, on_error=CastError
                )
        except CastError as err:
            logger.warning("Fetching devices from local server failed: %s", err)
            return 0
        if not is_success(status):
            logger.warning("Fetching devices from local server failed: HTTP %s", status)
            return 0

        try:
            records = json.loads(body)
        except ValueError as err:
            logger.warning("Local server returned an invalid device list: %s", err)
            return 0
        if not isinstance(records, list):
            logger.warning("Local server returned an invalid device list: %r", records)
            return 0

        added = 0
        for record in records:
            try:
                device = Device.from_record(record)
            except (InvalidDescription, AttributeError) as err:
                logger.warning("Skipping device record: %s", err)
                continue
            added += self.registry.register(device)
        return added

    async def discover_ssdp(self, timeout: int | None = None) -> int:
        """
        Run SSDP discovery and register every MediaRenderer with an AVTransport service.
        Failures are logged, never raised. Returns how many devices were new.
        """
        seen_locations: set[str] = set()
        locations: list[str] = []

        async def collect(headers: CaseInsensitiveDict) -> None:
            location = (headers.get("location") or "").strip()
            if location and location not in seen_locations:
                seen_locations.add(location)
                locations.append(location)

        try:
            await async_search(
                async_callback=collect,
                timeout=timeout or self.config.ssdp_timeout,
                search_target=SSDP_ST_RENDERER,
            )
        except OSError as err:
            logger.warning("SSDP search failed: %s", err)
            return 0

        added = 0
        async with client_session(self._session) as session:
            requester = AiohttpSessionRequester(session)
            factory = UpnpFactory(requester, non_strict=True)
            for location in locations:
                try:
                    upnp_device = await factory.async_create_device(location)
                except (UpnpError, aiohttp.ClientError, asyncio.TimeoutError) as err:
                    logger.warning("Skipping %s: %s", location, err)
                    continue
                if not any("AVTransport" in (svc.service_type or "") for svc in upnp_device.all_services):
                    continue
                address = urlparse(location).hostname or ""
                udn = (upnp_device.udn or "").strip()
                synthesized = not udn
                if synthesized:
                    udn = synthesize_id(address)
                    logger.warning("Renderer at %s has no UDN; using unstable id %s", location, udn)
                device = Device(
                    id=udn,
                    friendly_name=(upnp_device.name or "").strip() or DEFAULT_FRIENDLY_NAME,
                    manufacturer=upnp_device.manufacturer or DEFAULT_MANUFACTURER,
                    model_name=upnp_device.model_name or DEFAULT_MODEL_NAME,
                    device_type=upnp_device.device_type or MEDIA_RENDERER_DEVICE_TYPE,
                    address=address,
                    description_url=location,
                    synthesized_id=synthesized,
                )
                added += self.registry.register(device)
        return added

    async def add_manual(self, address: str) -> Device:
        """
        Probe a device by IP and register it as manual.
        Returns the registered device, which is the existing one if its id was already known.
        Raises ProbeFailed, InvalidDescription or Timeout.
        """
        address = (address or "").strip()
        if not is_valid_ip(address):
            raise ProbeFailed(f"Invalid IP address: {address!r}")
        try:
            device = await self.prober.probe(address)
        except CastError as err:
            logger.error("Adding device %s failed: %s", address, err)
            raise
        device.is_manual = True
        self.registry.register(device)
        return self.registry.get(device.id)
