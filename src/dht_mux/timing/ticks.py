"""
Shared time base and tick arithmetic.

Every component in dht-mux advances one micro-step per tick of a single
monotonic counter. TimeBase owns that counter and fans each tick out to its
subscribers in subscription order, so the order components are subscribed
in is the order they observe each other's outputs within one quantum.

Usage:
    time_base = TimeBase(tick_rate_hz=12_000_000)
    time_base.subscribe(sensor)
    time_base.subscribe(decoder)
    time_base.tick(1000)
"""

import logging
from typing import List, Protocol

from .dht_constants import MICROSECONDS_PER_SECOND, MILLISECONDS_PER_SECOND

logger = logging.getLogger(__name__)


class Tickable(Protocol):
    """Anything that advances one micro-step per tick."""

    def tick(self) -> None:
        ...


def us_to_ticks(tick_rate_hz: int, microseconds: float) -> int:
    """Convert a microsecond window to a whole number of ticks (floor)."""
    return int(tick_rate_hz * microseconds // MICROSECONDS_PER_SECOND)


def ms_to_ticks(tick_rate_hz: int, milliseconds: float) -> int:
    """Convert a millisecond window to a whole number of ticks (floor)."""
    return int(tick_rate_hz * milliseconds // MILLISECONDS_PER_SECOND)


def bit_period_ticks(tick_rate_hz: int, baud_rate: int) -> int:
    """
    Ticks a single serial bit is held for.

    Args:
        tick_rate_hz: Time base rate
        baud_rate: Serial bit rate

    Returns:
        tick_rate_hz // baud_rate

    Raises:
        ValueError: If the baud rate is not positive or faster than the tick rate
    """
    if baud_rate <= 0:
        raise ValueError(f"Baud rate must be positive, got {baud_rate}")
    period = tick_rate_hz // baud_rate
    if period < 1:
        raise ValueError(
            f"Baud rate {baud_rate} is faster than tick rate {tick_rate_hz} Hz"
        )
    if tick_rate_hz % baud_rate:
        actual = tick_rate_hz / period
        logger.debug(
            f"Bit period {period} ticks gives {actual:.1f} baud "
            f"({(actual - baud_rate) / baud_rate * 100:+.2f}% from {baud_rate})"
        )
    return period


def check_tick_rate(tick_rate_hz: int) -> bool:
    """
    Check that protocol thresholds derived from this rate are reproducible.

    Returns:
        True if the rate is an exact multiple of 1 MHz
    """
    if tick_rate_hz <= 0:
        raise ValueError(f"Tick rate must be positive, got {tick_rate_hz}")
    if tick_rate_hz % MICROSECONDS_PER_SECOND == 0:
        return True
    if tick_rate_hz % MILLISECONDS_PER_SECOND == 0:
        logger.warning(
            f"Tick rate {tick_rate_hz} Hz is not a multiple of 1 MHz; "
            f"microsecond thresholds are rounded down"
        )
    else:
        logger.warning(
            f"Tick rate {tick_rate_hz} Hz is not a multiple of 1 kHz; "
            f"all thresholds are rounded down"
        )
    return False


class TimeBase:
    """Monotonic tick counter driving all subscribed components."""

    def __init__(self, tick_rate_hz: int):
        check_tick_rate(tick_rate_hz)
        self.tick_rate_hz = tick_rate_hz
        self._ticks = 0
        self._subscribers: List[Tickable] = []

    @property
    def ticks(self) -> int:
        """Total ticks elapsed since construction or reset."""
        return self._ticks

    @property
    def seconds(self) -> float:
        return self._ticks / self.tick_rate_hz

    def subscribe(self, component: Tickable) -> None:
        if component in self._subscribers:
            raise ValueError(f"{component!r} is already subscribed")
        self._subscribers.append(component)

    def unsubscribe(self, component: Tickable) -> None:
        self._subscribers.remove(component)

    def tick(self, cycles: int = 1) -> None:
        """Advance the time base and every subscriber by `cycles` ticks."""
        subscribers = tuple(self._subscribers)
        for _ in range(cycles):
            for component in subscribers:
                component.tick()
            self._ticks += 1

    def reset(self) -> None:
        """Reset the tick counter (subscribers keep their own state)."""
        self._ticks = 0
