from __future__ import annotations

from typing import Any

import aiohttp
import pytest

from smartmail.config import InfluxConfig
from smartmail.exceptions import SmartmailTelemetryError
from smartmail.telemetry import InfluxTelemetry, NullTelemetry, format_line, format_tags


class _FakeResponse:
    def __init__(self, status: int, text: str = "") -> None:
        self.status = status
        self._text = text

    async def text(self) -> str:
        return self._text

    async def __aenter__(self) -> _FakeResponse:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None


class _FakeSession:
    def __init__(self, status: int = 204, text: str = "", error: Exception | None = None) -> None:
        self.status = status
        self.text = text
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def post(self, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append({"url": url, **kwargs})
        if self.error is not None:
            raise self.error
        return _FakeResponse(self.status, self.text)


_CONFIG = InfluxConfig(user="influx", password="hunter2", db="smartmail", url="http://influx:8086")


def test_format_tags_keeps_order_without_escaping() -> None:
    assert format_tags(deveui="0004A30B001C0530", port=101) == "deveui=0004A30B001C0530,port=101"


def test_format_line() -> None:
    assert format_line("distance", "deveui=abc", 317) == "distance,deveui=abc value=317"
    assert format_line("voltage", None, 3.78) == "voltage value=3.78"
    assert format_line("voltage", "", 3.78) == "voltage value=3.78"


@pytest.mark.asyncio
async def test_write_posts_line_protocol() -> None:
    session = _FakeSession()
    sink = InfluxTelemetry(_CONFIG, session)  # type: ignore[arg-type]

    await sink.write("temperature", "deveui=abc", 23.0)

    call = session.calls[0]
    assert call["url"] == "http://influx:8086/write"
    assert call["params"] == {"db": "smartmail"}
    assert call["data"] == b"temperature,deveui=abc value=23.0"
    assert call["auth"] == aiohttp.BasicAuth("influx", "hunter2")


@pytest.mark.asyncio
async def test_unexpected_status_raises() -> None:
    sink = InfluxTelemetry(_CONFIG, _FakeSession(status=401, text="unauthorized"))  # type: ignore[arg-type]

    with pytest.raises(SmartmailTelemetryError) as excinfo:
        await sink.write("distance", None, 1)
    assert excinfo.value.status_code == 401
    assert excinfo.value.measurement == "distance"


@pytest.mark.asyncio
async def test_client_error_is_wrapped() -> None:
    session = _FakeSession(error=aiohttp.ClientConnectionError("refused"))
    sink = InfluxTelemetry(_CONFIG, session)  # type: ignore[arg-type]

    with pytest.raises(SmartmailTelemetryError) as excinfo:
        await sink.write("counter", None, 3)
    assert excinfo.value.status_code is None
    assert isinstance(excinfo.value.__cause__, aiohttp.ClientError)


@pytest.mark.asyncio
async def test_null_telemetry_accepts_everything() -> None:
    await NullTelemetry().write("distance", None, 1)
