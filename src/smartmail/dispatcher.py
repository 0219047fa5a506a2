"""Uplink routing.

Turns one broker message into tracker updates, notifications and metric
points. Nothing raised while handling a single message escapes
:meth:`UplinkDispatcher.handle_message`; failures stay confined to that
message or to the one collaborator call that failed.

Tracker calls may wait on slot locks and run in a worker thread so the
event loop keeps serving the broker and outbound requests meanwhile.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from smartmail._constants import DEFAULT_DISTANCE_PORT, DEFAULT_KEEPALIVE_PORT
from smartmail._redact import redact_for_log
from smartmail.envelope import Uplink, is_activation_topic, parse_uplink
from smartmail.exceptions import SmartmailEnvelopeError, SmartmailGatewayError, SmartmailTelemetryError
from smartmail.lpp import AnalogInput, ChannelKind, Distance, LppDecoder, Temperature
from smartmail.notify import Notifier, compose_message
from smartmail.state.events import TransitionEvent
from smartmail.state.tracker import MailboxTracker
from smartmail.telemetry import NullTelemetry, TelemetrySink, format_tags

_logger = logging.getLogger(__name__)


def first_distance(payload: bytes) -> int | None:
    """Return the first distance-sensor distance in *payload*, if any."""
    for item in LppDecoder(payload):
        if item.channel.kind is ChannelKind.DISTANCE_SENSOR and isinstance(item.value, Distance):
            return item.value.millimeters
    return None


class UplinkDispatcher:
    """Routes uplinks by port to the tracker and the outbound collaborators.

    Parameters
    ----------
    tracker : MailboxTracker
        Owner of the shared mailbox state.
    notifier : Notifier
        Delivers transition messages.
    recipients : sequence of str
        Everyone notified on a transition.
    telemetry : TelemetrySink, optional
        Metric writer. Defaults to a sink that drops everything.
    keepalive_port, distance_port : int
        Uplink ports assigned by the sensor firmware.
    """

    def __init__(
        self,
        tracker: MailboxTracker,
        *,
        notifier: Notifier,
        recipients: Sequence[str],
        telemetry: TelemetrySink | None = None,
        keepalive_port: int = DEFAULT_KEEPALIVE_PORT,
        distance_port: int = DEFAULT_DISTANCE_PORT,
    ) -> None:
        self._tracker = tracker
        self._notifier = notifier
        self._recipients = tuple(recipients)
        self._telemetry: TelemetrySink = telemetry if telemetry is not None else NullTelemetry()
        self._keepalive_port = keepalive_port
        self._distance_port = distance_port

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_message(self, topic: str, payload: bytes) -> None:
        """Handle one raw PUBLISH from the broker."""
        _logger.debug("Received publish packet topic=%s bytes=%d", topic, len(payload))

        if is_activation_topic(topic):
            _logger.info("Device activation on %s", topic)
            return

        try:
            uplink = parse_uplink(topic, payload)
        except SmartmailEnvelopeError as exc:
            _logger.error("Dropping malformed uplink: %s", exc)
            return

        _logger.debug("Payload: %s", redact_for_log(uplink.model_dump()))
        await self.handle_envelope(uplink)

    async def handle_envelope(self, uplink: Uplink) -> None:
        """Emit envelope metrics, then process the payload by port."""
        tags = format_tags(deveui=uplink.hardware_serial, port=uplink.port)
        if uplink.counter is not None:
            await self._emit("counter", tags, uplink.counter)
        metadata = uplink.metadata
        if metadata is not None:
            if metadata.airtime is not None:
                await self._emit("airtime", tags, metadata.airtime)
            if metadata.spreading_factor is not None:
                await self._emit("sf", tags, metadata.spreading_factor)
            if metadata.bandwidth is not None:
                await self._emit("bw", tags, metadata.bandwidth)

        await self.handle_uplink(uplink.port, uplink.payload, device=uplink.hardware_serial)

    async def handle_uplink(self, port: int, raw_payload: bytes, *, device: str = "") -> None:
        """Decode *raw_payload* according to *port*."""
        if port == self._keepalive_port:
            await self._process_keepalive(raw_payload, device)
        elif port == self._distance_port:
            await self._process_distance(raw_payload, device)
        else:
            _logger.info("Received message on unknown port: %s", port)

    # ------------------------------------------------------------------
    # Port handlers
    # ------------------------------------------------------------------

    async def _process_keepalive(self, payload: bytes, device: str) -> None:
        _logger.info("Received keepalive message")
        tags = format_tags(deveui=device) if device else None
        for item in LppDecoder(payload):
            _logger.debug("Keepalive item: %s", item)
            kind = item.channel.kind
            value = item.value
            if kind is ChannelKind.DISTANCE_SENSOR and isinstance(value, Temperature):
                await asyncio.to_thread(self._tracker.observe_temperature, value.celsius)
                await self._emit("temperature", tags, value.celsius)
            elif kind is ChannelKind.ADC_INPUT and isinstance(value, AnalogInput):
                await asyncio.to_thread(self._tracker.observe_voltage, value.volts)
                await self._emit("voltage", tags, value.volts)

    async def _process_distance(self, payload: bytes, device: str) -> None:
        _logger.info("Received distance measurement")
        distance_mm = first_distance(payload)
        if distance_mm is None:
            return
        _logger.debug("Distance is %smm", distance_mm)

        event = await asyncio.to_thread(self._tracker.observe_distance, distance_mm)
        if event is not None:
            await self._notify(event)

        tags = format_tags(deveui=device) if device else None
        await self._emit("distance", tags, distance_mm)

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    async def _notify(self, event: TransitionEvent) -> None:
        _logger.info(
            "Mailbox %s: distance changed from %.1fcm to %.1fcm",
            event.kind.value,
            event.previous_cm,
            event.current_cm,
        )
        snapshot = await asyncio.to_thread(self._tracker.snapshot)
        text = compose_message(event, voltage=snapshot.voltage, temperature=snapshot.temperature)
        for recipient in self._recipients:
            try:
                await self._notifier.send(recipient, text)
            except SmartmailGatewayError as exc:
                _logger.error("Could not send message to %s: %s", recipient, exc)

    async def _emit(self, measurement: str, tags: str | None, value: float) -> None:
        try:
            await self._telemetry.write(measurement, tags, value)
        except SmartmailTelemetryError as exc:
            _logger.warning("Could not write %s: %s", measurement, exc)
