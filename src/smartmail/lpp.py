"""Partial Cayenne LPP decoder for the mailbox distance sensor.

A payload is a run of records laid out as ``[channel][type][payload]``
with no overall length prefix. Only the three data types the sensor
emits are understood:

==========  ===========  ==========================================
Type id     Name         Payload (2 bytes, big-endian)
==========  ===========  ==========================================
``0x02``    analog in    signed 16-bit, hundredths of a volt
``0x67``    temperature  signed 16-bit, tenths of a degree Celsius
``0x82``    distance     unsigned 16-bit, millimeters
==========  ===========  ==========================================

Because payload widths are implied by the type id, an unknown type id
makes the rest of the buffer unreadable. Decoding stops there, as it does
on a truncated record, and the anomaly is only logged. Records decoded
before that point are still yielded.
"""

from __future__ import annotations

import enum
import logging
import struct
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import NoReturn

_logger = logging.getLogger(__name__)

TYPE_ANALOG_INPUT = 0x02
TYPE_TEMPERATURE = 0x67
TYPE_DISTANCE = 0x82

_PAYLOAD_WIDTH = 2
_SIGNED_16 = struct.Struct(">h")
_UNSIGNED_16 = struct.Struct(">H")


class ChannelKind(enum.IntEnum):
    """Channels the sensor firmware assigns.

    Any channel id without a mapped member resolves to ``OTHER``.
    """

    OTHER = -1
    DISTANCE_SENSOR = 1
    ADC_INPUT = 4

    @classmethod
    def _missing_(cls, value: object) -> ChannelKind:
        return cls.OTHER


@dataclass(frozen=True, slots=True)
class Channel:
    """Source of a measurement within one payload, keyed by its raw byte."""

    raw_id: int

    @property
    def kind(self) -> ChannelKind:
        return ChannelKind(self.raw_id)

    def __str__(self) -> str:
        kind = self.kind
        if kind is ChannelKind.OTHER:
            return f"other({self.raw_id})"
        return kind.name.lower()


DISTANCE_SENSOR = Channel(ChannelKind.DISTANCE_SENSOR.value)
ADC_INPUT = Channel(ChannelKind.ADC_INPUT.value)


@dataclass(frozen=True, slots=True)
class AnalogInput:
    volts: float


@dataclass(frozen=True, slots=True)
class Temperature:
    celsius: float


@dataclass(frozen=True, slots=True)
class Distance:
    millimeters: int


MeasurementValue = AnalogInput | Temperature | Distance


@dataclass(frozen=True, slots=True)
class Measurement:
    """A single decoded reading."""

    channel: Channel
    value: MeasurementValue


def _decode_analog_input(payload: bytes) -> AnalogInput:
    return AnalogInput(_SIGNED_16.unpack(payload)[0] / 100.0)


def _decode_temperature(payload: bytes) -> Temperature:
    return Temperature(_SIGNED_16.unpack(payload)[0] / 10.0)


def _decode_distance(payload: bytes) -> Distance:
    return Distance(_UNSIGNED_16.unpack(payload)[0])


_TYPE_DECODERS: dict[int, tuple[str, Callable[[bytes], MeasurementValue]]] = {
    TYPE_ANALOG_INPUT: ("analog input", _decode_analog_input),
    TYPE_TEMPERATURE: ("temperature", _decode_temperature),
    TYPE_DISTANCE: ("distance", _decode_distance),
}


class _LppCursor:
    """Single pass over a buffer; exhausted for good after the first stop."""

    __slots__ = ("_data", "_pos", "_done")

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0
        self._done = False

    def __iter__(self) -> _LppCursor:
        return self

    def _take(self) -> int | None:
        if self._pos >= len(self._data):
            return None
        value = self._data[self._pos]
        self._pos += 1
        return value

    def _stop(self) -> NoReturn:
        self._done = True
        raise StopIteration

    def __next__(self) -> Measurement:
        if self._done:
            raise StopIteration

        channel_id = self._take()
        if channel_id is None:
            self._stop()
        channel = Channel(channel_id)

        type_id = self._take()
        if type_id is None:
            _logger.warning("Received incomplete data from channel %s", channel)
            self._stop()

        entry = _TYPE_DECODERS.get(type_id)
        if entry is None:
            _logger.warning("Received data from channel %s with unknown data type: %s", channel, type_id)
            self._stop()
        name, decode = entry

        end = self._pos + _PAYLOAD_WIDTH
        if end > len(self._data):
            _logger.warning("Received incomplete %s data from channel %s", name, channel)
            self._stop()
        value = decode(self._data[self._pos : end])
        self._pos = end
        return Measurement(channel, value)


class LppDecoder:
    """Lazy iterable of :class:`Measurement` over a fixed buffer.

    Every call to ``iter()`` starts again from the first byte, so the same
    decoder may be scanned more than once.
    """

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        self._data = bytes(data)

    def __iter__(self) -> Iterator[Measurement]:
        return _LppCursor(self._data)

    def __repr__(self) -> str:
        return f"LppDecoder({self._data.hex()})"


def decode(data: bytes | bytearray | memoryview) -> list[Measurement]:
    """Decode every readable record in *data*."""
    return list(LppDecoder(data))
