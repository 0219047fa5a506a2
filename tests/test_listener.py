from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import pytest

from smartmail._mqtt import InboundMessage, MqttSettings
from smartmail.exceptions import SmartmailTransportError
from smartmail.listener import Listener

SETTINGS = MqttSettings(host="broker.test", port=1883, client_id="c", username="u", password="p")


class _RecordingHandler:
    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.active = 0
        self.max_active = 0
        self.handled: list[str] = []

    async def handle_message(self, topic: str, payload: bytes) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if topic == self.fail_on:
                raise RuntimeError("boom")
            self.handled.append(topic)
        finally:
            self.active -= 1


class _FakeRuntime:
    def __init__(self, on_message: Callable[[InboundMessage], None], fail: bool = False) -> None:
        self.on_message = on_message
        self.fail = fail
        self.started_with: MqttSettings | None = None
        self.stopped = False

    def start(self, settings: MqttSettings) -> None:
        if self.fail:
            raise SmartmailTransportError("unreachable")
        self.started_with = settings

    def stop(self) -> None:
        self.stopped = True


@pytest.mark.asyncio
async def test_messages_are_handled_one_at_a_time_in_order() -> None:
    handler = _RecordingHandler()
    listener = Listener(handler)
    listener.start_worker()

    for i in range(5):
        listener.submit(InboundMessage(topic=f"t{i}", payload=b""))
    await listener.stop()

    assert handler.handled == ["t0", "t1", "t2", "t3", "t4"]
    assert handler.max_active == 1
    assert listener.pending == 0


@pytest.mark.asyncio
async def test_handler_error_does_not_stop_the_worker(caplog: pytest.LogCaptureFixture) -> None:
    handler = _RecordingHandler(fail_on="bad")
    listener = Listener(handler)
    listener.start_worker()

    with caplog.at_level(logging.ERROR, logger="smartmail.listener"):
        for topic in ("a", "bad", "b"):
            listener.submit(InboundMessage(topic=topic, payload=b""))
        await listener.stop()

    assert handler.handled == ["a", "b"]
    assert "Unhandled error while processing message on bad" in caplog.text


@pytest.mark.asyncio
async def test_run_until_stop_requested() -> None:
    runtimes: list[_FakeRuntime] = []

    def factory(_loop: asyncio.AbstractEventLoop, on_message: Callable[[InboundMessage], None]) -> _FakeRuntime:
        runtime = _FakeRuntime(on_message)
        runtimes.append(runtime)
        return runtime

    handler = _RecordingHandler()
    listener = Listener(handler, runtime_factory=factory)
    await listener.start(SETTINGS)

    runtime = runtimes[0]
    assert runtime.started_with is SETTINGS
    runtime.on_message(InboundMessage(topic="up", payload=b"{}"))

    task = asyncio.create_task(listener.run())
    await asyncio.sleep(0)
    assert not task.done()

    listener.request_stop()
    await asyncio.wait_for(task, timeout=1.0)

    assert runtime.stopped
    assert handler.handled == ["up"]


@pytest.mark.asyncio
async def test_start_failure_propagates_and_cancels_worker() -> None:
    listener = Listener(
        _RecordingHandler(),
        runtime_factory=lambda _loop, on_message: _FakeRuntime(on_message, fail=True),
    )

    with pytest.raises(SmartmailTransportError):
        await listener.start(SETTINGS)
    assert listener._worker is None  # noqa: SLF001
