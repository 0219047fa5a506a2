"""Long-lived uplink listener.

Broker messages are queued in arrival order and handled by a single worker
task, so each message runs to completion, including its notification and
telemetry calls, before the next one starts.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from smartmail._mqtt import InboundMessage, MqttRuntime, MqttSettings

_logger = logging.getLogger(__name__)


class MessageHandler(Protocol):
    async def handle_message(self, topic: str, payload: bytes) -> None:
        ...


class Runtime(Protocol):
    def start(self, settings: MqttSettings) -> None:
        ...

    def stop(self) -> None:
        ...


RuntimeFactory = Callable[[asyncio.AbstractEventLoop, Callable[[InboundMessage], None]], Runtime]


def _default_runtime(loop: asyncio.AbstractEventLoop, on_message: Callable[[InboundMessage], None]) -> Runtime:
    return MqttRuntime(loop=loop, on_message=on_message, logger=logging.getLogger("smartmail.mqtt"))


class Listener:
    """Feeds broker messages to a handler one at a time."""

    def __init__(
        self,
        handler: MessageHandler,
        *,
        runtime_factory: RuntimeFactory = _default_runtime,
    ) -> None:
        self._handler = handler
        self._runtime_factory = runtime_factory
        self._runtime: Runtime | None = None
        self._queue: asyncio.Queue[InboundMessage] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._stop_requested = asyncio.Event()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def submit(self, message: InboundMessage) -> None:
        """Queue *message* for handling. Must be called on the loop thread."""
        self._queue.put_nowait(message)

    def request_stop(self) -> None:
        self._stop_requested.set()

    async def _work(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self._handler.handle_message(message.topic, message.payload)
            except Exception:
                _logger.exception("Unhandled error while processing message on %s", message.topic)
            finally:
                self._queue.task_done()

    def start_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._work(), name="smartmail-worker")

    async def start(self, settings: MqttSettings) -> None:
        """Start the worker and connect to the broker.

        Raises
        ------
        SmartmailTransportError
            The initial broker connection failed.
        """
        loop = asyncio.get_running_loop()
        self.start_worker()
        runtime = self._runtime_factory(loop, self.submit)
        try:
            await loop.run_in_executor(None, runtime.start, settings)
        except BaseException:
            await self._cancel_worker()
            raise
        self._runtime = runtime

    async def run(self) -> None:
        """Block until :meth:`request_stop` is called, then shut down."""
        await self._stop_requested.wait()
        await self.stop()

    async def stop(self) -> None:
        """Disconnect, let queued messages finish, and stop the worker."""
        runtime = self._runtime
        self._runtime = None
        if runtime is not None:
            try:
                await asyncio.get_running_loop().run_in_executor(None, runtime.stop)
            except Exception:
                _logger.debug("MQTT runtime stop failed", exc_info=True)

        if self._worker is not None and not self._worker.done():
            await self._queue.join()
        await self._cancel_worker()

    async def _cancel_worker(self) -> None:
        worker = self._worker
        self._worker = None
        if worker is None:
            return
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass
