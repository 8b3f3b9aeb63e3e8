"""Reconnect pacing for the controller session."""

from __future__ import annotations

DEFAULT_FLOOR = 0.5
DEFAULT_CEILING = 5.0
DEFAULT_FACTOR = 1.5


class ReconnectBackoff:
    """Exponential delay bounded by a floor and a ceiling.

    ``next_delay()`` returns the delay for the upcoming attempt and grows
    the stored value for the one after it, so the Nth consecutive call
    yields ``min(floor * factor ** (N - 1), ceiling)``.
    """

    def __init__(
        self,
        floor: float = DEFAULT_FLOOR,
        ceiling: float = DEFAULT_CEILING,
        factor: float = DEFAULT_FACTOR,
    ) -> None:
        if floor <= 0 or ceiling < floor:
            raise ValueError(f"Invalid backoff bounds: floor={floor} ceiling={ceiling}")
        if factor < 1:
            raise ValueError(f"Backoff factor must be >= 1, got {factor}")
        self.floor = floor
        self.ceiling = ceiling
        self.factor = factor
        self._current = floor

    @property
    def current(self) -> float:
        return self._current

    def next_delay(self) -> float:
        delay = self._current
        self._current = min(self._current * self.factor, self.ceiling)
        return delay

    def reset(self) -> None:
        self._current = self.floor

    def __repr__(self) -> str:
        return (
            f"ReconnectBackoff(floor={self.floor}, ceiling={self.ceiling}, "
            f"factor={self.factor}, current={self._current})"
        )
