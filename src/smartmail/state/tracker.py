"""Single-slot mailbox state and threshold-crossing detection.

The tracker remembers only the most recent distance, temperature and
voltage. Each slot has its own lock and every read-modify-write happens
with that lock held, so two concurrent distance readings can never both
compare against the same previous value.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Generic, TypeVar

from smartmail._constants import DEFAULT_THRESHOLD_MM
from smartmail.state.events import TransitionEvent, TransitionKind

_logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_DISTANCE_MM = 0xFFFF


class Slot(Generic[T]):
    """A lock-guarded holder for one optional value."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.lock = threading.Lock()
        self.value: T | None = None

    def __repr__(self) -> str:
        return f"Slot({self.name}={self.value!r})"


@dataclass(frozen=True, slots=True)
class StateSnapshot:
    distance_mm: int | None = None
    temperature: float | None = None
    voltage: float | None = None


class MailboxState:
    """Process-wide sensor state, shared by reference between components.

    Starts out with every slot unknown and lives as long as the process.
    """

    def __init__(self) -> None:
        self.distance: Slot[int] = Slot("distance")
        self.temperature: Slot[float] = Slot("temperature")
        self.voltage: Slot[float] = Slot("voltage")


def classify(previous_mm: int | None, current_mm: int, threshold_mm: int) -> TransitionKind | None:
    """Classify a distance change against a single threshold.

    The first reading only establishes a baseline. A reading of exactly
    ``threshold_mm`` sits on the empty side.
    """
    if previous_mm is None:
        return None
    if previous_mm < threshold_mm and current_mm >= threshold_mm:
        return TransitionKind.BECAME_FULL
    if previous_mm >= threshold_mm and current_mm < threshold_mm:
        return TransitionKind.BECAME_EMPTY
    return None


class MailboxTracker:
    """Updates :class:`MailboxState` and reports threshold crossings.

    Parameters
    ----------
    state : MailboxState
        Shared state the tracker mutates.
    threshold_mm : int
        Boundary used for both directions.
    lock_timeout : float
        Seconds to wait for a slot. When the wait runs out the observation
        is dropped and logged. ``0`` or less waits forever.

    All methods block on slot locks, so async callers should run them off
    the event loop (see :class:`smartmail.dispatcher.UplinkDispatcher`).
    """

    def __init__(
        self,
        state: MailboxState,
        *,
        threshold_mm: int = DEFAULT_THRESHOLD_MM,
        lock_timeout: float = 5.0,
    ) -> None:
        self._state = state
        self._threshold_mm = threshold_mm
        self._lock_timeout = lock_timeout

    @property
    def state(self) -> MailboxState:
        return self._state

    @property
    def threshold_mm(self) -> int:
        return self._threshold_mm

    def _acquire(self, slot: Slot[T]) -> bool:
        timeout = self._lock_timeout if self._lock_timeout > 0 else -1
        if slot.lock.acquire(timeout=timeout):
            return True
        _logger.error("Could not lock %s slot within %.1fs, dropping observation", slot.name, self._lock_timeout)
        return False

    def _store(self, slot: Slot[T], value: T) -> bool:
        if not self._acquire(slot):
            return False
        try:
            slot.value = value
        finally:
            slot.lock.release()
        _logger.debug("Stored %s=%s", slot.name, value)
        return True

    def _read(self, slot: Slot[T]) -> T | None:
        if not self._acquire(slot):
            return None
        try:
            return slot.value
        finally:
            slot.lock.release()

    def observe_distance(self, distance_mm: int) -> TransitionEvent | None:
        """Record a distance reading and return the transition it caused, if any.

        Raises
        ------
        ValueError
            *distance_mm* is outside ``0..65535``. The state is left untouched.
        """
        if not 0 <= distance_mm <= MAX_DISTANCE_MM:
            raise ValueError(f"Distance out of range: {distance_mm}mm")
        slot = self._state.distance
        if not self._acquire(slot):
            return None
        try:
            previous = slot.value
            if previous is None:
                _logger.debug("No previous distance stored")
            else:
                _logger.debug("Previous distance was %smm", previous)
            kind = classify(previous, distance_mm, self._threshold_mm)
            slot.value = distance_mm
        finally:
            slot.lock.release()

        if kind is None or previous is None:
            return None
        return TransitionEvent(kind=kind, previous_mm=previous, current_mm=distance_mm)

    def observe_temperature(self, celsius: float) -> bool:
        """Record a temperature reading. Returns ``False`` if it was dropped."""
        return self._store(self._state.temperature, celsius)

    def observe_voltage(self, volts: float) -> bool:
        """Record a supply voltage reading. Returns ``False`` if it was dropped."""
        return self._store(self._state.voltage, volts)

    def last_distance(self) -> int | None:
        return self._read(self._state.distance)

    def last_temperature(self) -> float | None:
        return self._read(self._state.temperature)

    def last_voltage(self) -> float | None:
        return self._read(self._state.voltage)

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            distance_mm=self.last_distance(),
            temperature=self.last_temperature(),
            voltage=self.last_voltage(),
        )
