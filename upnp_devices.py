"""
Renderer devices: the Device record, the in-memory registry, and the prober
that turns a device description document into a Device.
"""
from __future__ import annotations

import logging
import re
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Callable

import aiohttp

from cast_config import CastConfig
from upnp_errors import InvalidDescription, ProbeFailed
from upnp_http import client_session, is_success, request_text

logger = logging.getLogger(__name__)

AVTRANSPORT_SERVICE_TYPE = "urn:schemas-upnp-org:service:AVTransport:1"
MEDIA_RENDERER_DEVICE_TYPE = "urn:schemas-upnp-org:device:MediaRenderer:1"

DEFAULT_FRIENDLY_NAME = "unknown device"
DEFAULT_MANUFACTURER = "unknown manufacturer"
DEFAULT_MODEL_NAME = "unknown model"

DESCRIPTION_PATH = "/description.xml"

_IPV4_RE = re.compile(r"(\d{1,3}\.){3}\d{1,3}")


def _service_family(service_type: str) -> str:
    # "urn:schemas-upnp-org:service:AVTransport:2" -> "urn:schemas-upnp-org:service:AVTransport"
    return service_type.rsplit(":", 1)[0]


def is_valid_ip(text: str) -> bool:
    """True for a dotted-quad IPv4 address with every octet in 0..255."""
    if not _IPV4_RE.fullmatch(text or ""):
        return False
    return all(0 <= int(part) <= 255 for part in text.split("."))


@dataclass(frozen=True)
class ServiceEntry:
    service_type: str
    control_url: str

    def to_dict(self) -> dict[str, str]:
        return {"serviceType": self.service_type, "controlURL": self.control_url}

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "ServiceEntry":
        return cls(service_type=record.get("serviceType", ""), control_url=record.get("controlURL", ""))


@dataclass
class Device:
    """
    A discovered or manually added renderer.
    services stays None until the device is connected.
    """

    id: str
    friendly_name: str = DEFAULT_FRIENDLY_NAME
    manufacturer: str = DEFAULT_MANUFACTURER
    model_name: str = DEFAULT_MODEL_NAME
    device_type: str = MEDIA_RENDERER_DEVICE_TYPE
    address: str = ""
    is_manual: bool = False
    services: list[ServiceEntry] | None = None
    description_url: str | None = None
    synthesized_id: bool = field(default=False, compare=False)

    def find_service(self, service_type: str) -> ServiceEntry | None:
        """Exact match first, then any version of the same service (AVTransport:2 for AVTransport:1)."""
        services = self.services or ()
        for svc in services:
            if svc.service_type == service_type:
                return svc
        family = _service_family(service_type)
        for svc in services:
            if _service_family(svc.service_type) == family:
                return svc
        return None

    def to_dict(self) -> dict[str, Any]:
        """Shape used on the command surface and by the local proxy."""
        out: dict[str, Any] = {
            "UDN": self.id,
            "friendlyName": self.friendly_name,
            "manufacturer": self.manufacturer,
            "modelName": self.model_name,
            "deviceType": self.device_type,
            "address": self.address,
            "isManual": self.is_manual,
        }
        if self.services is not None:
            out["services"] = [svc.to_dict() for svc in self.services]
        return out

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Device":
        """Build a Device from a proxy / command-surface JSON record."""
        udn = record.get("UDN") or record.get("id")
        if not udn:
            raise InvalidDescription(f"Device record has no UDN: {record!r}")
        services = record.get("services")
        return cls(
            id=udn,
            friendly_name=record.get("friendlyName") or DEFAULT_FRIENDLY_NAME,
            manufacturer=record.get("manufacturer") or DEFAULT_MANUFACTURER,
            model_name=record.get("modelName") or DEFAULT_MODEL_NAME,
            device_type=record.get("deviceType") or MEDIA_RENDERER_DEVICE_TYPE,
            address=record.get("address") or "",
            is_manual=bool(record.get("isManual", False)),
            services=[ServiceEntry.from_record(s) for s in services] if services is not None else None,
        )


class DeviceRegistry:
    """Known devices keyed by id. First registration of an id wins."""

    def __init__(self, on_device_found: Callable[[Device], None] | None = None) -> None:
        self._devices: dict[str, Device] = {}
        self._on_device_found = on_device_found

    def register(self, device: Device) -> bool:
        if device.id in self._devices:
            return False
        self._devices[device.id] = device
        logger.info("Registered device %s (%s)", device.friendly_name, device.id)
        if self._on_device_found is not None:
            self._on_device_found(device)
        return True

    def list(self) -> list[Device]:
        return list(self._devices.values())

    def get(self, device_id: str) -> Device | None:
        return self._devices.get(device_id)

    def remove(self, device_id: str) -> bool:
        return self._devices.pop(device_id, None) is not None

    def __len__(self) -> int:
        return len(self._devices)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_description(xml_text: str) -> dict[str, str | None]:
    """
    Parse a UPnP device description into its display fields.
    UDN is None when the document has none; the other fields fall back to defaults.
    Raises InvalidDescription if the XML is malformed or has no device element.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as err:
        raise InvalidDescription(f"Malformed device description: {err}") from err

    device = next((el for el in root.iter() if _local_name(el.tag) == "device"), None)
    if device is None:
        raise InvalidDescription("Device description has no device element")

    def text(name: str) -> str:
        # UPnP does not always include XML namespaces uniformly; parse loosely
        return (device.findtext(f".//{{*}}{name}") or "").strip()

    return {
        "UDN": text("UDN") or None,
        "friendlyName": text("friendlyName") or DEFAULT_FRIENDLY_NAME,
        "manufacturer": text("manufacturer") or DEFAULT_MANUFACTURER,
        "modelName": text("modelName") or DEFAULT_MODEL_NAME,
        "deviceType": text("deviceType") or MEDIA_RENDERER_DEVICE_TYPE,
    }


def synthesize_id(address: str) -> str:
    return f"uuid:manual-{address}-{int(time.time() * 1000)}"


class DeviceProber:
    """Fetch http://{address}:{device_port}/description.xml and build a Device from it."""

    def __init__(self, config: CastConfig | None = None, session: aiohttp.ClientSession | None = None) -> None:
        self.config = config or CastConfig()
        self._session = session

    def description_url(self, address: str) -> str:
        return f"http://{address}:{self.config.device_port}{DESCRIPTION_PATH}"

    async def probe(self, address: str) -> Device:
        url = self.description_url(address)
        async with client_session(self._session) as session:
            status, body = await request_text(
                session, "GET", url, timeout=self.config.client_timeout, on_error=ProbeFailed
            )
        if not is_success(status):
            raise ProbeFailed(f"Could not reach device at {address}: HTTP {status}")

        info = parse_description(body)
        udn = info["UDN"]
        synthesized = udn is None
        if synthesized:
            udn = synthesize_id(address)
            logger.warning("Device at %s has no UDN; using unstable id %s", address, udn)

        return Device(
            id=udn,
            friendly_name=info["friendlyName"],
            manufacturer=info["manufacturer"],
            model_name=info["modelName"],
            device_type=info["deviceType"],
            address=address,
            synthesized_id=synthesized,
        )
