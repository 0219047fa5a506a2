from __future__ import annotations

import dataclasses

from smartmail._redact import redact_for_log
from smartmail.config import InfluxConfig, SmartmailConfig


def test_redact_for_log_redacts_config_secrets() -> None:
    config = SmartmailConfig(
        ttn_app_id="app",
        ttn_access_key="ttn-account-v2.secret",
        threema_from="*SMARTMA",
        threema_to=("ECHOECHO",),
        threema_secret="s3cret",
        threema_private_key="private:" + "ab" * 32,
        influxdb=InfluxConfig(user="influx", password="pw", db="db", url="http://influx"),
    )

    redacted = redact_for_log(dataclasses.asdict(config))

    assert redacted["ttn_access_key"] == "<redacted>"
    assert redacted["threema_secret"] == "<redacted>"
    assert redacted["threema_private_key"] == "<redacted>"
    assert redacted["influxdb"]["password"] == "<redacted>"
    assert redacted["influxdb"]["user"] == "influx"
    assert redacted["threema_to"] == ["ECHOECHO"]


def test_redact_for_log_summarizes_payloads_by_size() -> None:
    uplink = {
        "hardware_serial": "0004A30B001C0530",
        "payload": b"\x01\x82\x01\x3d",
        "payload_raw": "AYIBPQ==",
        "box": "00" * 48,
    }

    assert redact_for_log(uplink) == {
        "hardware_serial": "0004A30B001C0530",
        "payload": "<payload:4b>",
        "payload_raw": "<payload_raw:8 chars>",
        "box": "<box:96 chars>",
    }


def test_redact_for_log_shows_other_bytes_as_hex() -> None:
    assert redact_for_log({"nonce": b"\x01\x82"}) == {"nonce": "<bytes:0182>"}
    assert redact_for_log(b"\x00" * 100) == "<bytes:100b>"


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]
