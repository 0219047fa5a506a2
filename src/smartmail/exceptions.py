"""Custom exception hierarchy for smartmail."""

from __future__ import annotations


class SmartmailError(Exception):
    """Base exception for all smartmail errors."""


class SmartmailConfigError(SmartmailError):
    """Invalid or missing configuration."""


class SmartmailEnvelopeError(SmartmailError):
    """Uplink message could not be parsed (missing field, bad JSON, bad Base64)."""

    def __init__(self, message: str, *, topic: str = "") -> None:
        self.topic = topic
        super().__init__(message)


class SmartmailTransportError(SmartmailError):
    """Could not establish the initial MQTT broker connection."""


class SmartmailGatewayError(SmartmailError):
    """Notification gateway rejected a request or could not be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        recipient: str = "",
    ) -> None:
        self.status_code = status_code
        self.recipient = recipient
        super().__init__(message)


class SmartmailTelemetryError(SmartmailError):
    """Writing a point to the time-series database failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        measurement: str = "",
    ) -> None:
        self.status_code = status_code
        self.measurement = measurement
        super().__init__(message)
