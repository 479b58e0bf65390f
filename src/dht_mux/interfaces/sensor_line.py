"""
Sensor Line Interface

Defines the contract between a ProtocolDecoder and the single bidirectional
wire it shares with one sensor. Board wiring is out of scope: anything that
can switch direction, drive a level and sample the line satisfies it, which
makes it the mock point for tests (see timing.sensor_simulator).
"""

from abc import ABC, abstractmethod
from enum import Enum


class Direction(str, Enum):
    """Host-side direction of the line."""
    OUTPUT = "OUTPUT"   # Host drives the level written with write()
    INPUT = "INPUT"     # High impedance, sensor or pull-up sets the level


class SensorLine(ABC):
    """
    Interface for one mode-switchable sensor wire.

    Semantics:
        - write() only has an effect while the direction is OUTPUT
        - read() returns the level currently on the wire (0 or 1); with the
          host in OUTPUT mode that is the host's own level
        - levels are plain ints, never bools, so they shift straight into
          an accumulator
    """

    @abstractmethod
    def set_direction(self, direction: Direction) -> None:
        """Switch the host side between driving and listening."""
        pass

    @abstractmethod
    def write(self, bit: int) -> None:
        """Drive the line to `bit` (0 or 1) while in OUTPUT mode."""
        pass

    @abstractmethod
    def read(self) -> int:
        """Sample the line level (0 or 1)."""
        pass
