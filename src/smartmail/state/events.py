"""Mailbox transition events.

Events are derived from two consecutive distance readings and live only as
long as it takes to hand them to the notifier.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class TransitionKind(StrEnum):
    BECAME_FULL = "became_full"
    BECAME_EMPTY = "became_empty"


class TransitionEvent(BaseModel):
    """A distance change that crossed the threshold."""

    model_config = ConfigDict(frozen=True)

    kind: TransitionKind
    previous_mm: int = Field(..., ge=0, le=0xFFFF, description="Distance before the change")
    current_mm: int = Field(..., ge=0, le=0xFFFF, description="Distance after the change")
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def previous_cm(self) -> float:
        return self.previous_mm / 10.0

    @property
    def current_cm(self) -> float:
        return self.current_mm / 10.0
