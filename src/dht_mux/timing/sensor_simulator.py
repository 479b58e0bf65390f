#!/usr/bin/env python3
"""
Simulated Single-Wire Sensor

================================================================================
PURPOSE
================================================================================
Behavioural model of the sensor end of one line, used wherever real hardware
is not attached: the test suite, the CLI and bench checks of the decoder
thresholds. It implements SensorLine for the host and ticks on the same time
base as the decoder, so the host sees exactly the pulse widths synthesized
here.

================================================================================
LINE MODEL
================================================================================
    host OUTPUT      → line = host level (host overrides the sensor)
    host INPUT       → line = current sample of the response train,
                       or 1 (pull-up) when nothing is being emitted

The sensor arms after the host has held the line low for at least
SENSOR_MIN_START_LOW_MS, and starts emitting on the first tick the host is in
INPUT mode. A host low seen mid-emission aborts the emission.

================================================================================
RESPONSE TRAIN
================================================================================
    [high  RESPONSE_DELAY_US]
    [low   RESPONSE_LOW_US ][high RESPONSE_HIGH_US]
    40 × [low BIT_LOW_US][high BIT_ZERO_HIGH_US | BIT_ONE_HIGH_US]
    [low   END_LOW_US]
    → released (pull-up)

The train is synthesized once per response as a numpy array of levels, one
element per tick, in the same way the BCD encoder builds its envelope.

Usage:
    sensor = SimulatedSensor(tick_rate_hz=1_000_000, reading=0x1A2B3C4D)
    decoder = ProtocolDecoder(sensor, DecoderTiming.from_tick_rate(1_000_000))
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, List, Tuple

import numpy as np

from .dht_constants import (
    SENSOR_MIN_START_LOW_MS,
    RESPONSE_DELAY_US,
    RESPONSE_LOW_US,
    RESPONSE_HIGH_US,
    BIT_LOW_US,
    BIT_ZERO_HIGH_US,
    BIT_ONE_HIGH_US,
    END_LOW_US,
)
from .protocol_decoder import reading_checksum
from .ticks import us_to_ticks, ms_to_ticks
from ..interfaces.sensor_line import Direction, SensorLine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SensorTiming:
    """Sensor-side pulse widths in microseconds."""
    response_delay_us: float = RESPONSE_DELAY_US
    response_low_us: float = RESPONSE_LOW_US
    response_high_us: float = RESPONSE_HIGH_US
    bit_low_us: float = BIT_LOW_US
    zero_high_us: float = BIT_ZERO_HIGH_US
    one_high_us: float = BIT_ONE_HIGH_US
    end_low_us: float = END_LOW_US
    jitter_us: float = 0.0   # Uniform ± jitter applied to bit pulses only


def reading_bits(value: int, width: int = 32, with_checksum: bool = True) -> List[int]:
    """
    MSB-first bit list for a sensor word.

    Args:
        value: Data word
        width: Data width in bits
        with_checksum: Append the checksum byte (32-bit words only)
    """
    bits = [(value >> (width - 1 - i)) & 1 for i in range(width)]
    if with_checksum:
        checksum = reading_checksum(value)
        bits.extend((checksum >> (7 - i)) & 1 for i in range(8))
    return bits


def levels_from_pulses(pulses: Sequence[Tuple[int, int]]) -> np.ndarray:
    """
    Expand (level, ticks) pairs into one level per tick.

    Example:
        levels_from_pulses([(1, 2), (0, 3)]) → [1, 1, 0, 0, 0]
    """
    if not pulses:
        return np.zeros(0, dtype=np.uint8)
    levels, durations = zip(*pulses)
    durations = np.asarray(durations, dtype=np.int64)
    if np.any(durations < 0):
        raise ValueError("Pulse durations must be non-negative")
    return np.repeat(np.asarray(levels, dtype=np.uint8), durations)


def synthesize_response(
    bits: Sequence[int],
    tick_rate_hz: int,
    timing: Optional[SensorTiming] = None,
    rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """
    Build the level-per-tick train a sensor sends for `bits`.

    Args:
        bits: Bits to send, MSB first
        tick_rate_hz: Time base rate
        timing: Pulse widths (defaults to nominal)
        rng: Random generator for jitter (required if timing.jitter_us > 0)

    Returns:
        numpy uint8 array, one element per tick
    """
    timing = timing or SensorTiming()

    def ticks(us: float) -> int:
        return us_to_ticks(tick_rate_hz, us)

    def jittered(us: float) -> int:
        if timing.jitter_us <= 0:
            return ticks(us)
        if rng is None:
            raise ValueError("Jitter needs a random generator")
        return max(1, ticks(us + rng.uniform(-timing.jitter_us, timing.jitter_us)))

    pulses = [
        (1, ticks(timing.response_delay_us)),
        (0, ticks(timing.response_low_us)),
        (1, ticks(timing.response_high_us)),
    ]
    for bit in bits:
        pulses.append((0, jittered(timing.bit_low_us)))
        pulses.append((1, jittered(timing.one_high_us if bit else timing.zero_high_us)))
    pulses.append((0, ticks(timing.end_low_us)))

    return levels_from_pulses(pulses)


class SimulatedSensor(SensorLine):
    """
    Sensor model that doubles as the host's SensorLine.

    Attributes:
        reading: 32-bit word reported on the next response
        responsive: False models a dead sensor (never answers)
        corrupt_checksum: Send a checksum off by one
        bits: Explicit bit list, overrides reading/checksum when set
        pulses: Explicit response train, overrides everything when set
    """

    def __init__(
        self,
        tick_rate_hz: int,
        reading: int = 0,
        timing: Optional[SensorTiming] = None,
        responsive: bool = True,
        corrupt_checksum: bool = False,
        bits: Optional[Sequence[int]] = None,
        pulses: Optional[np.ndarray] = None,
        seed: Optional[int] = None,
        name: str = "sim0"
    ):
        if not 0 <= reading <= 0xFFFFFFFF:
            raise ValueError(f"Reading 0x{reading:X} does not fit in 32 bits")

        self.tick_rate_hz = tick_rate_hz
        self.reading = reading
        self.timing = timing or SensorTiming()
        self.responsive = responsive
        self.corrupt_checksum = corrupt_checksum
        self.bits = list(bits) if bits is not None else None
        self.pulses = pulses
        self.name = name
        self._rng = np.random.default_rng(seed)
        self._min_start = ms_to_ticks(tick_rate_hz, SENSOR_MIN_START_LOW_MS)

        self.responses = 0
        self.aborted = 0

        self._direction = Direction.INPUT
        self._host_level = 1
        self._low_ticks = 0
        self._armed = False
        self._train: Optional[np.ndarray] = None
        self._pos = 0

    # -------------------------------------------------------------------------
    # SensorLine (host side)
    # -------------------------------------------------------------------------

    def set_direction(self, direction: Direction) -> None:
        self._direction = direction

    def write(self, bit: int) -> None:
        if self._direction is Direction.OUTPUT:
            self._host_level = 1 if bit else 0

    def read(self) -> int:
        if self._direction is Direction.OUTPUT:
            return self._host_level
        if self._train is not None and self._pos < len(self._train):
            return int(self._train[self._pos])
        return 1

    @property
    def host_direction(self) -> Direction:
        return self._direction

    @property
    def emitting(self) -> bool:
        return self._train is not None and self._pos < len(self._train)

    # -------------------------------------------------------------------------
    # Sensor behaviour
    # -------------------------------------------------------------------------

    def response_bits(self) -> List[int]:
        """Bits the next response will carry."""
        if self.bits is not None:
            return list(self.bits)
        bits = reading_bits(self.reading, 32, with_checksum=True)
        if self.corrupt_checksum:
            checksum = (reading_checksum(self.reading) + 1) & 0xFF
            bits[32:] = [(checksum >> (7 - i)) & 1 for i in range(8)]
        return bits

    def tick(self):
        """Advance one quantum, observing what the host left on the line."""
        if self._direction is Direction.OUTPUT:
            if self._host_level == 0:
                if self.emitting:
                    self.aborted += 1
                    logger.debug(f"{self.name}: host pulled low mid-response, aborting")
                self._train = None
                self._armed = False
                self._low_ticks += 1
            else:
                self._arm_if_started()
            return

        self._arm_if_started()

        if self._armed:
            self._armed = False
            if not self.responsive:
                return
            if self.pulses is not None:
                self._train = np.asarray(self.pulses, dtype=np.uint8)
            else:
                self._train = synthesize_response(
                    self.response_bits(), self.tick_rate_hz, self.timing, self._rng
                )
            self._pos = 0
            self.responses += 1
            return

        if self._train is not None:
            self._pos += 1
            if self._pos >= len(self._train):
                self._train = None

    def _arm_if_started(self):
        if self._low_ticks:
            if self._low_ticks >= self._min_start:
                self._armed = True
            else:
                logger.debug(
                    f"{self.name}: ignoring short start pulse "
                    f"({self._low_ticks} < {self._min_start} ticks)"
                )
            self._low_ticks = 0
