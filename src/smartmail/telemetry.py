"""Time-series telemetry via the InfluxDB 1.x HTTP write endpoint."""

from __future__ import annotations

import logging
from typing import Protocol

import aiohttp

from smartmail.config import InfluxConfig
from smartmail.exceptions import SmartmailTelemetryError

_logger = logging.getLogger(__name__)


def format_tags(**pairs: object) -> str:
    """Join tag pairs as ``key=value,key=value``. Values are not escaped."""
    return ",".join(f"{key}={value}" for key, value in pairs.items())


def format_line(measurement: str, tags: str | None, value: float) -> str:
    """Render a single line-protocol point with one ``value`` field."""
    if tags:
        return f"{measurement},{tags} value={value}"
    return f"{measurement} value={value}"


class TelemetrySink(Protocol):
    """Structural interface for metric writers.

    Lets the dispatcher take test doubles as well as the HTTP writer.
    """

    async def write(self, measurement: str, tags: str | None, value: float) -> None:
        ...


class NullTelemetry:
    """Sink used when no database is configured."""

    async def write(self, measurement: str, tags: str | None, value: float) -> None:
        _logger.debug("Telemetry disabled, dropping %s=%s", measurement, value)


class InfluxTelemetry:
    """Writes points to ``<url>/write?db=<db>`` with basic auth."""

    def __init__(self, config: InfluxConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._auth = aiohttp.BasicAuth(config.user, config.password)

    @property
    def write_url(self) -> str:
        return f"{self._config.url}/write"

    async def write(self, measurement: str, tags: str | None, value: float) -> None:
        """Send one point.

        Raises
        ------
        SmartmailTelemetryError
            The request failed or the server did not answer ``204 No Content``.
        """
        body = format_line(measurement, tags, value)
        _logger.debug("Sending %s to InfluxDB...", measurement)

        try:
            async with self._http.post(
                self.write_url,
                params={"db": self._config.db},
                data=body.encode("utf-8"),
                auth=self._auth,
            ) as resp:
                if resp.status != 204:
                    text = await resp.text()
                    raise SmartmailTelemetryError(
                        f"Unexpected status when writing {measurement} to InfluxDB: {resp.status} {text[:200]}",
                        status_code=resp.status,
                        measurement=measurement,
                    )
        except SmartmailTelemetryError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise SmartmailTelemetryError(
                f"Error when writing {measurement} to InfluxDB: {exc}",
                measurement=measurement,
            ) from exc

        _logger.debug("Sent %s to InfluxDB (db=%s)", measurement, self._config.db)
