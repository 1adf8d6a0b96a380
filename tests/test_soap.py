"""
Tests for SOAP envelope encoding, response decoding and time formatting.

Run with: pytest tests/test_soap.py -v
"""

import xml.etree.ElementTree as ET

import pytest

from upnp_errors import ProxyRequestFailed, SoapRequestFailed
from upnp_player import format_time, parse_time
from upnp_soap import AVTRANSPORT_CONTROL_NS, SOAP_ENV, Ack, TransportKind, decode, encode, parse_fault

FAULT_BODY = f"""<?xml version="1.0"?>
<s:Envelope xmlns:s="{SOAP_ENV}">
  <s:Body>
    <s:Fault>
      <faultcode>s:Client</faultcode>
      <faultstring>UPnPError</faultstring>
      <detail>
        <UPnPError xmlns="urn:schemas-upnp-org:control-1-0">
          <errorCode>714</errorCode>
          <errorDescription>Illegal MIME-type</errorDescription>
        </UPnPError>
      </detail>
    </s:Fault>
  </s:Body>
</s:Envelope>"""


class TestEncode:
    def test_envelope_wraps_action_in_avtransport_namespace(self):
        root = ET.fromstring(encode("Play", {"InstanceID": 0, "Speed": "1"}))
        action = root.find(f"{{{SOAP_ENV}}}Body/{{{AVTRANSPORT_CONTROL_NS}}}Play")

        assert action is not None
        assert action.findtext("InstanceID") == "0"
        assert action.findtext("Speed") == "1"

    def test_arguments_keep_insertion_order(self):
        root = ET.fromstring(encode("Seek", {"InstanceID": 0, "Unit": "REL_TIME", "Target": "00:02:05"}))
        action = root.find(f"{{{SOAP_ENV}}}Body/{{{AVTRANSPORT_CONTROL_NS}}}Seek")

        assert [child.tag for child in action] == ["InstanceID", "Unit", "Target"]

    def test_values_are_escaped(self):
        uri = "http://host/video?a=1&b=<2>"
        root = ET.fromstring(encode("SetAVTransportURI", {"CurrentURI": uri}))

        assert root.findtext(f".//{{{AVTRANSPORT_CONTROL_NS}}}SetAVTransportURI/CurrentURI") == uri

    def test_no_arguments(self):
        root = ET.fromstring(encode("Stop"))
        action = root.find(f".//{{{AVTRANSPORT_CONTROL_NS}}}Stop")

        assert action is not None
        assert len(action) == 0

    def test_envelope_uses_given_service_type(self):
        service_type = "urn:schemas-upnp-org:service:AVTransport:2"
        root = ET.fromstring(encode("Pause", {"InstanceID": 0}, service_type))

        assert root.find(f"{{{SOAP_ENV}}}Body/{{{service_type}}}Pause") is not None
        assert root.find(f".//{{{AVTRANSPORT_CONTROL_NS}}}Pause") is None


class TestDecode:
    def test_direct_success_is_ack(self):
        assert decode(200, "<anything/>", TransportKind.DIRECT) == Ack()

    def test_direct_failure_carries_status_and_fault(self):
        with pytest.raises(SoapRequestFailed) as exc_info:
            decode(500, FAULT_BODY, TransportKind.DIRECT)

        assert exc_info.value.status == 500
        assert "714" in str(exc_info.value)

    def test_proxied_success_returns_json(self):
        assert decode(200, '{"success": true, "x": 1}', TransportKind.PROXIED) == {"success": True, "x": 1}

    def test_proxied_failure(self):
        with pytest.raises(ProxyRequestFailed) as exc_info:
            decode(502, "bad gateway", TransportKind.PROXIED)

        assert exc_info.value.status == 502

    def test_proxied_success_with_invalid_json(self):
        with pytest.raises(ProxyRequestFailed):
            decode(200, "not json", TransportKind.PROXIED)


class TestParseFault:
    def test_upnp_error_detail(self):
        assert parse_fault(FAULT_BODY) == "UPnP error 714: Illegal MIME-type"

    def test_not_a_fault(self):
        assert parse_fault("<ok/>") == ""
        assert parse_fault("") == ""
        assert parse_fault("<<<") == ""


class TestFormatTime:
    @pytest.mark.parametrize(
        "seconds, expected",
        [(3661, "01:01:01"), (59, "00:00:59"), (0, "00:00:00"), (125, "00:02:05"), (125.9, "00:02:05"),
         (90000, "25:00:00")],
    )
    def test_format_time(self, seconds, expected):
        assert format_time(seconds) == expected


class TestParseTime:
    @pytest.mark.parametrize(
        "text, expected",
        [("1:01:01", 3661.0), ("02:05", 125.0), ("42", 42.0), ("12.5", 12.5), ("", None), ("abc", None),
         ("-3", None)],
    )
    def test_parse_time(self, text, expected):
        assert parse_time(text) == expected
