from __future__ import annotations

import base64
import json
from typing import Any

import pytest

from smartmail.envelope import is_activation_topic, parse_data_rate, parse_uplink
from smartmail.exceptions import SmartmailEnvelopeError

TOPIC = "smartmail-app/devices/mailbox/up"


def _uplink(**overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "app_id": "smartmail-app",
        "dev_id": "mailbox",
        "hardware_serial": "0004A30B001C0530",
        "port": 102,
        "counter": 17,
        "payload_raw": base64.b64encode(bytes([0x01, 0x82, 0x01, 0x3D])).decode(),
        "metadata": {
            "time": "2018-06-04T18:12:42.181417318Z",
            "frequency": 868.1,
            "modulation": "LORA",
            "data_rate": "SF7BW125",
            "airtime": 46336000,
            "gateways": [],
        },
    }
    body.update(overrides)
    return body


def _encode(body: Any) -> bytes:
    return json.dumps(body).encode()


def test_parse_full_uplink() -> None:
    uplink = parse_uplink(TOPIC, _encode(_uplink()))

    assert uplink.port == 102
    assert uplink.counter == 17
    assert uplink.hardware_serial == "0004A30B001C0530"
    assert uplink.payload == bytes([0x01, 0x82, 0x01, 0x3D])
    assert uplink.metadata is not None
    assert uplink.metadata.airtime == 46336000
    assert uplink.metadata.spreading_factor == 7
    assert uplink.metadata.bandwidth == 125


def test_optional_fields_may_be_absent() -> None:
    body = _uplink()
    del body["counter"]
    del body["metadata"]
    uplink = parse_uplink(TOPIC, _encode(body))
    assert uplink.counter is None
    assert uplink.metadata is None


@pytest.mark.parametrize("missing", ["port", "payload_raw", "hardware_serial"])
def test_missing_required_field_is_rejected(missing: str) -> None:
    body = _uplink()
    del body[missing]
    with pytest.raises(SmartmailEnvelopeError) as excinfo:
        parse_uplink(TOPIC, _encode(body))
    assert excinfo.value.topic == TOPIC


@pytest.mark.parametrize(
    "overrides",
    [
        {"port": "102"},
        {"port": -1},
        {"counter": "17"},
        {"payload_raw": "not base64!"},
        {"payload_raw": 12},
    ],
)
def test_mistyped_field_is_rejected(overrides: dict[str, Any]) -> None:
    with pytest.raises(SmartmailEnvelopeError):
        parse_uplink(TOPIC, _encode(_uplink(**overrides)))


@pytest.mark.parametrize("payload", [b"", b"{", b"\xff\xfe", b"[1, 2]", b'"port"'])
def test_non_object_json_is_rejected(payload: bytes) -> None:
    with pytest.raises(SmartmailEnvelopeError):
        parse_uplink(TOPIC, payload)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("SF7BW125", (7, 125)),
        ("SF12BW500", (12, 500)),
        ("FSK", (None, None)),
        ("SF7", (None, None)),
        ("", (None, None)),
        (None, (None, None)),
    ],
)
def test_parse_data_rate(value: str | None, expected: tuple[int | None, int | None]) -> None:
    assert parse_data_rate(value) == expected


def test_unparseable_data_rate_is_not_an_error() -> None:
    body = _uplink(metadata={"data_rate": "FSK50", "airtime": 1})
    uplink = parse_uplink(TOPIC, _encode(body))
    assert uplink.metadata is not None
    assert uplink.metadata.spreading_factor is None
    assert uplink.metadata.bandwidth is None


def test_activation_topic() -> None:
    assert is_activation_topic("smartmail-app/devices/mailbox/activations")
    assert not is_activation_topic(TOPIC)
