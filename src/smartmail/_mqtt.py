"""Internal MQTT runtime.

paho-mqtt runs its network loop on a background thread; every PUBLISH is
handed over to the asyncio loop untouched, where the listener processes
messages one at a time.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, cast

import paho.mqtt.client as mqtt

from smartmail._constants import ACTIVATION_TOPIC, UPLINK_TOPIC
from smartmail.config import SmartmailConfig
from smartmail.exceptions import SmartmailTransportError


@dataclass(frozen=True)
class MqttSettings:
    """Broker connection details."""

    host: str
    port: int
    client_id: str
    username: str
    password: str = field(repr=False)
    tls: bool = False
    keepalive: int = 60
    topics: tuple[str, ...] = (ACTIVATION_TOPIC, UPLINK_TOPIC)

    @classmethod
    def from_config(cls, config: SmartmailConfig) -> MqttSettings:
        return cls(
            host=config.mqtt_host,
            port=config.mqtt_port,
            client_id=f"smartmail-{int(time.time())}",
            username=config.ttn_app_id,
            password=config.ttn_access_key,
            tls=config.mqtt_tls,
            keepalive=config.mqtt_keepalive,
        )


@dataclass(frozen=True)
class InboundMessage:
    """A PUBLISH as received from the broker."""

    topic: str
    payload: bytes


class MqttRuntime:
    """Threaded paho-mqtt runtime that emits messages onto an asyncio loop."""

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        on_message: Callable[[InboundMessage], None],
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._on_message = on_message
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._topics: tuple[str, ...] = ()

    @property
    def is_running(self) -> bool:
        """Whether the MQTT runtime is actively running."""
        return self._running

    def _handle_connect(
        self,
        client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if reason_code.value != 0:
            self._logger.warning("MQTT connect failed: %s", reason_code)
            return
        self._logger.debug("MQTT connected successfully reason=%s", reason_code)
        # Subscriptions are not persisted across reconnects with a clean session.
        for topic in self._topics:
            self._logger.debug("MQTT subscribing topic=%s", topic)
            client.subscribe(topic, qos=0)

    def _handle_message(self, _client: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        self._logger.debug("Received PUBLISH topic=%s bytes=%d", msg.topic, len(msg.payload))
        message = InboundMessage(topic=msg.topic, payload=bytes(msg.payload))
        self._loop.call_soon_threadsafe(self._on_message, message)

    def _handle_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if self._running:
            self._logger.warning("MQTT disconnected: %s, reconnecting", reason_code)

    def start(self, settings: MqttSettings) -> None:
        """Connect and start the network loop.

        Raises
        ------
        SmartmailTransportError
            The broker could not be reached.
        """
        self.stop()
        self._logger.debug(
            "MQTT runtime start requested host=%s port=%s client_id=%s",
            settings.host,
            settings.port,
            settings.client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=settings.client_id,
            protocol=mqtt.MQTTv311,
        )
        client.enable_logger(self._logger)
        client.username_pw_set(settings.username, settings.password)
        if settings.tls:
            client.tls_set()
        client.reconnect_delay_set(min_delay=1, max_delay=3)

        self._topics = settings.topics
        client.on_connect = self._handle_connect
        client.on_message = self._handle_message
        client.on_disconnect = self._handle_disconnect

        try:
            client.connect(settings.host, settings.port, keepalive=settings.keepalive)
        except (OSError, ValueError) as exc:
            raise SmartmailTransportError(f"Could not connect to {settings.host}:{settings.port}: {exc}") from exc
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Stop and disconnect current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._topics = ()

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")
