"""Uplink envelope parsing.

The network broker publishes one JSON document per uplink. Only the fields
the dispatcher needs are modelled; everything else is ignored.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from smartmail.exceptions import SmartmailEnvelopeError

_DATA_RATE_RE = re.compile(r"^SF(\d+)BW(\d+)$")


def parse_data_rate(value: str | None) -> tuple[int | None, int | None]:
    """Split a LoRa data rate such as ``"SF7BW125"`` into ``(7, 125)``.

    Strings that do not match yield ``(None, None)``.
    """
    if not value:
        return None, None
    match = _DATA_RATE_RE.match(value.strip())
    if match is None:
        return None, None
    return int(match.group(1)), int(match.group(2))


class UplinkMetadata(BaseModel):
    """Radio metadata attached to an uplink by the network."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    airtime: int | None = Field(default=None, strict=True, ge=0)
    """Time on air in nanoseconds."""

    data_rate: str | None = None
    """LoRa data rate, e.g. ``"SF7BW125"``."""

    @property
    def spreading_factor(self) -> int | None:
        return parse_data_rate(self.data_rate)[0]

    @property
    def bandwidth(self) -> int | None:
        return parse_data_rate(self.data_rate)[1]


class Uplink(BaseModel):
    """A single uplink message from a sensor device."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    app_id: str = ""
    dev_id: str = ""
    hardware_serial: str = Field(..., min_length=1)
    """Device EUI."""

    port: int = Field(..., strict=True, ge=0)
    counter: int | None = Field(default=None, strict=True, ge=0)
    payload: bytes = Field(..., validation_alias=AliasChoices("payload_raw", "payload"))
    """Raw application payload, Base64-decoded."""

    metadata: UplinkMetadata | None = None

    @field_validator("payload", mode="before")
    @classmethod
    def _decode_base64(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return base64.b64decode(value, validate=True)
            except binascii.Error as exc:
                raise ValueError("Raw payload is not valid Base64") from exc
        return value


def is_activation_topic(topic: str) -> bool:
    return topic.endswith("/activations")


def parse_uplink(topic: str, payload: bytes) -> Uplink:
    """Parse a broker PUBLISH body into an :class:`Uplink`.

    Raises
    ------
    SmartmailEnvelopeError
        The body is not a JSON object or lacks a required field.
    """
    try:
        decoded = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise SmartmailEnvelopeError(f"Uplink on {topic} is not valid JSON: {exc}", topic=topic) from exc

    if not isinstance(decoded, dict):
        raise SmartmailEnvelopeError(f"Uplink on {topic} is not a JSON object", topic=topic)

    try:
        return Uplink.model_validate(decoded)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in exc.errors())
        raise SmartmailEnvelopeError(f"Invalid uplink on {topic}: {fields}", topic=topic) from exc
