"""
Control channels to a renderer and the selector that picks one on connect.

Manual devices are driven directly over SOAP, devices found by SSDP are driven
directly at the control URLs from their description, and everything else is
relayed through the local proxy.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

import aiohttp
from async_upnp_client.aiohttp import AiohttpSessionRequester
from async_upnp_client.client_factory import UpnpFactory
from async_upnp_client.exceptions import UpnpError

from cast_config import CastConfig
from upnp_devices import AVTRANSPORT_SERVICE_TYPE, Device, ServiceEntry
from upnp_errors import NotConnected, ProxyRequestFailed, ServiceResolutionFailed, SoapRequestFailed, Timeout
from upnp_http import client_session, is_success, request_text
from upnp_soap import TransportKind, decode, encode

logger = logging.getLogger(__name__)

CONTROL_PATH = "/control"


class Transport:
    """Sends AVTransport actions to one connected device."""

    kind: TransportKind

    def __init__(self, device: Device, config: CastConfig, session: aiohttp.ClientSession | None = None) -> None:
        self.device = device
        self.config = config
        self._session = session

    def _service(self, service_type: str) -> ServiceEntry:
        if self.device.services is None:
            raise NotConnected(f"Device {self.device.friendly_name} is not connected")
        svc = self.device.find_service(service_type)
        if svc is None:
            raise NotConnected(f"Service unavailable: {service_type}")
        return svc

    async def send(self, service_type: str, action: str, args: Mapping[str, Any] | None = None) -> Any:
        svc = self._service(service_type)
        logger.debug("%s %s -> %s %s", self.kind.value, action, self.device.id, dict(args or {}))
        return await self._send(svc, action, dict(args or {}))

    async def _send(self, svc: ServiceEntry, action: str, args: dict[str, Any]) -> Any:
        raise NotImplementedError


class DirectTransport(Transport):
    kind = TransportKind.DIRECT

    async def _send(self, svc: ServiceEntry, action: str, args: dict[str, Any]) -> Any:
        headers = {
            "Content-Type": 'text/xml; charset="utf-8"',
            "SOAPACTION": f'"{svc.service_type}#{action}"',
        }
        async with client_session(self._session) as session:
            status, body = await request_text(
                session,
                "POST",
                svc.control_url,
                timeout=self.config.client_timeout,
                on_error=lambda msg: SoapRequestFailed(None, msg),
                data=encode(action, args, svc.service_type).encode("utf-8"),
                headers=headers,
            )
        return decode(status, body, self.kind)


class ProxiedTransport(Transport):
    kind = TransportKind.PROXIED

    async def _send(self, svc: ServiceEntry, action: str, args: dict[str, Any]) -> Any:
        payload = {
            "deviceId": self.device.id,
            "serviceType": svc.service_type,
            "action": action,
            "args": args,
        }
        async with client_session(self._session) as session:
            status, body = await request_text(
                session,
                "POST",
                f"{self.config.proxy_base}/soap",
                timeout=self.config.client_timeout,
                on_error=lambda msg: ProxyRequestFailed(None, msg),
                json=payload,
            )
        return decode(status, body, self.kind)


class TransportSelector:
    """
    Resolves a device's services on every connect and returns the transport to drive it with.
    On failure the device keeps whatever services it had before.
    """

    def __init__(self, config: CastConfig | None = None, session: aiohttp.ClientSession | None = None) -> None:
        self.config = config or CastConfig()
        self._session = session

    async def connect(self, device: Device) -> Transport:
        device.services = await self._resolve_services(device)
        if device.is_manual or device.description_url:
            return DirectTransport(device, self.config, self._session)
        return ProxiedTransport(device, self.config, self._session)

    async def _resolve_services(self, device: Device) -> list[ServiceEntry]:
        if device.is_manual:
            control_url = f"http://{device.address}:{self.config.device_port}{CONTROL_PATH}"
            return [ServiceEntry(AVTRANSPORT_SERVICE_TYPE, control_url)]
        if device.description_url:
            return await self._services_from_description(device.description_url)
        return await self._services_from_proxy(device)

    async def _services_from_proxy(self, device: Device) -> list[ServiceEntry]:
        url = f"{self.config.proxy_base}/device/{device.id}/services"
        async with client_session(self._session) as session:
            status, body = await request_text(
                session, "GET", url, timeout=self.config.client_timeout, on_error=ServiceResolutionFailed
            )
        if not is_success(status):
            raise ServiceResolutionFailed(f"Could not get services for {device.friendly_name}: HTTP {status}")
        try:
            records = decode(status, body, TransportKind.PROXIED)
        except ProxyRequestFailed as err:
            raise ServiceResolutionFailed(f"Invalid service list for {device.friendly_name}") from err
        if not isinstance(records, list):
            raise ServiceResolutionFailed(f"Invalid service list for {device.friendly_name}")
        return [ServiceEntry.from_record(r) for r in records]

    async def _services_from_description(self, description_url: str) -> list[ServiceEntry]:
        async with client_session(self._session) as session:
            requester = AiohttpSessionRequester(session)
            factory = UpnpFactory(requester, non_strict=True)
            try:
                upnp_device = await factory.async_create_device(description_url)
            except asyncio.TimeoutError as err:
                raise Timeout(f"GET {description_url} timed out") from err
            except (UpnpError, aiohttp.ClientError) as err:
                raise ServiceResolutionFailed(f"Could not read {description_url}: {err}") from err
        return [
            ServiceEntry(svc.service_type, svc.control_url)
            for svc in upnp_device.all_services
            if svc.service_type and svc.control_url
        ]
