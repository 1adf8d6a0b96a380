"""
SOAP envelope encoding for AVTransport actions and response decoding for
both transport modes (direct to the device, or relayed by the local proxy).
"""
from __future__ import annotations

import enum
import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Mapping

from upnp_errors import ProxyRequestFailed, SoapRequestFailed
from upnp_http import is_success

AVTRANSPORT_CONTROL_NS = "urn:schemas-upnp-org:service:AVTransport:1"
SOAP_ENV = "http://schemas.xmlsoap.org/soap/envelope/"
SOAP_ENCODING = "http://schemas.xmlsoap.org/soap/encoding/"


class TransportKind(enum.Enum):
    DIRECT = "direct"
    PROXIED = "proxied"


@dataclass(frozen=True)
class Ack:
    """Bare acknowledgement of a direct SOAP command; the response body is not parsed."""

    success: bool = True


def _escape_xml(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def encode(action: str, args: Mapping[str, Any] | None = None, service_type: str = AVTRANSPORT_CONTROL_NS) -> str:
    """Build the SOAP 1.1 envelope for an action of service_type; args keep their insertion order."""
    args_xml = "".join(
        f"<{name}>{_escape_xml(str(value))}</{name}>" for name, value in (args or {}).items()
    )
    return f'''<?xml version="1.0" encoding="utf-8"?>
<s:Envelope xmlns:s="{SOAP_ENV}" s:encodingStyle="{SOAP_ENCODING}">
    <s:Body>
        <u:{action} xmlns:u="{service_type}">
            {args_xml}
        </u:{action}>
    </s:Body>
</s:Envelope>'''


def parse_fault(body: str) -> str:
    """
    Return a short description of a SOAP fault body, or "" if it is not one.
    Prefers the UPnP errorCode/errorDescription detail over faultstring.
    """
    if not body:
        return ""
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return ""
    fault = root.find(f".//{{{SOAP_ENV}}}Fault")
    if fault is None:
        return ""
    code = (fault.findtext(".//{*}errorCode") or "").strip()
    description = (fault.findtext(".//{*}errorDescription") or "").strip()
    if code:
        return f"UPnP error {code}: {description}" if description else f"UPnP error {code}"
    return (fault.findtext("faultstring") or fault.findtext("{*}faultstring") or "").strip()


def decode(status: int, body: str, mode: TransportKind) -> Any:
    """
    Validate a control response.
    Direct mode yields an Ack; proxied mode yields the JSON-decoded body.
    """
    if mode is TransportKind.DIRECT:
        if not is_success(status):
            raise SoapRequestFailed(status, parse_fault(body))
        return Ack()

    if not is_success(status):
        raise ProxyRequestFailed(status)
    try:
        return json.loads(body)
    except ValueError as err:
        raise ProxyRequestFailed(status, f"invalid JSON body: {err}") from err
