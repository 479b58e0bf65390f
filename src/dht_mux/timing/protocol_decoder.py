#!/usr/bin/env python3
"""
Single-Wire Sensor Protocol Decoder

Runs the host side of the humidity/temperature sensor handshake on one
SensorLine and decodes the reply by pulse width, one tick at a time.
One instance per sensor; instances share nothing.

Handshake and Decode:
---------------------
    IDLE ──▶ STARTING ──▶ RELEASING_LINE ──▶ AWAITING_RESPONSE_LOW
    (drive low)  (hold low T_START)  (drive high T_RELEASE, then input)
                                                   │ line low
                                                   ▼
    DONE ◀── MEASURING_BIT_HIGH ◀──▶ AWAITING_BIT_START ◀── AWAITING_RESPONSE_HIGH
    (latch)   (high >= threshold → 1)  (low >= T_LOW_BIT - margin)  (high >= MIN_HIGH)

Pulse widths are counted in ticks. The tick an edge is observed on is the
first tick of the new phase, so a pulse lasting N ticks measures exactly N.

Faults:
-------
- TIMING_VIOLATION: bit-start low shorter than T_LOW_BIT - margin
- STALL: no expected edge within stall_timeout ticks of entering a wait state
- CHECKSUM_MISMATCH: fifth byte disagrees (only with verify_checksum)

All three reset the decoder to IDLE, discard the partial word and leave
`ready` clear; the next tick starts a fresh acquisition.

Usage:
    timing = DecoderTiming.from_tick_rate(12_000_000)
    decoder = ProtocolDecoder(line, timing, bits_per_reading=32)
    while not decoder.ready:
        line.tick(); decoder.tick()
    print(f"0x{decoder.value:08X}")
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict

from .dht_constants import (
    START_LOW_MS,
    RELEASE_US,
    RESPONSE_MIN_HIGH_US,
    BIT_LOW_US,
    BIT_LOW_MARGIN_US,
    BIT_THRESHOLD_US,
    STALL_TIMEOUT_US,
    READING_WIDTHS,
    DEFAULT_BITS_PER_READING,
    CHECKSUM_BITS,
)
from .ticks import us_to_ticks, ms_to_ticks
from ..interfaces.readings import RawReading
from ..interfaces.sensor_line import Direction, SensorLine

logger = logging.getLogger(__name__)


class DecoderState(str, Enum):
    """Acquisition state of one decoder."""
    IDLE = "IDLE"
    STARTING = "STARTING"
    RELEASING_LINE = "RELEASING_LINE"
    AWAITING_RESPONSE_LOW = "AWAITING_RESPONSE_LOW"
    AWAITING_RESPONSE_HIGH = "AWAITING_RESPONSE_HIGH"
    AWAITING_BIT_START = "AWAITING_BIT_START"
    MEASURING_BIT_HIGH = "MEASURING_BIT_HIGH"
    DONE = "DONE"


class DecoderFault(str, Enum):
    """Why the last acquisition was abandoned."""
    TIMING_VIOLATION = "TIMING_VIOLATION"
    STALL = "STALL"
    CHECKSUM_MISMATCH = "CHECKSUM_MISMATCH"


@dataclass(frozen=True)
class DecoderTiming:
    """Protocol windows expressed in ticks of one time base."""
    start_low: int
    release: int
    min_response_high: int
    min_bit_low: int
    bit_threshold: int
    stall_timeout: Optional[int] = None   # None = wait forever
    idle_holdoff: int = 0

    def __post_init__(self):
        for name in ('start_low', 'release', 'min_response_high', 'min_bit_low', 'bit_threshold'):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1 tick, got {getattr(self, name)}")
        if self.stall_timeout is not None and self.stall_timeout < 1:
            raise ValueError(f"stall_timeout must be at least 1 tick, got {self.stall_timeout}")
        if self.idle_holdoff < 0:
            raise ValueError(f"idle_holdoff must be >= 0, got {self.idle_holdoff}")

    @classmethod
    def from_tick_rate(
        cls,
        tick_rate_hz: int,
        start_low_ms: float = START_LOW_MS,
        release_us: float = RELEASE_US,
        min_response_high_us: float = RESPONSE_MIN_HIGH_US,
        bit_low_us: float = BIT_LOW_US,
        bit_low_margin_us: float = BIT_LOW_MARGIN_US,
        bit_threshold_us: float = BIT_THRESHOLD_US,
        stall_timeout_us: Optional[float] = STALL_TIMEOUT_US,
        idle_holdoff_ms: float = 0.0
    ) -> "DecoderTiming":
        """
        Convert protocol windows into tick counts.

        Args:
            tick_rate_hz: Time base rate
            stall_timeout_us: Bounded wait per state, None or 0 for unbounded
            idle_holdoff_ms: Pause in IDLE before each start pulse

        Returns:
            DecoderTiming with every window floored to whole ticks
        """
        stall = None
        if stall_timeout_us:
            stall = us_to_ticks(tick_rate_hz, stall_timeout_us)

        return cls(
            start_low=ms_to_ticks(tick_rate_hz, start_low_ms),
            release=us_to_ticks(tick_rate_hz, release_us),
            min_response_high=us_to_ticks(tick_rate_hz, min_response_high_us),
            min_bit_low=us_to_ticks(tick_rate_hz, bit_low_us - bit_low_margin_us),
            bit_threshold=us_to_ticks(tick_rate_hz, bit_threshold_us),
            stall_timeout=stall,
            idle_holdoff=ms_to_ticks(tick_rate_hz, idle_holdoff_ms),
        )


def reading_checksum(value: int) -> int:
    """Low 8 bits of the sum of a 32-bit word's four bytes."""
    return sum(value.to_bytes(4, 'big')) & 0xFF


class ProtocolDecoder:
    """
    Host-side decoder for one sensor line.

    Outputs:
        ready: latched True once a full reading is decoded, until reset()
        value: the decoded word while ready, else None
    """

    def __init__(
        self,
        line: SensorLine,
        timing: DecoderTiming,
        bits_per_reading: int = DEFAULT_BITS_PER_READING,
        verify_checksum: bool = False,
        name: str = "sensor0",
        sensor_index: int = 0
    ):
        """
        Args:
            line: The sensor wire this decoder owns
            timing: Protocol windows in ticks
            bits_per_reading: Accumulator width, 16 or 32
            verify_checksum: Also read the checksum byte and reject mismatches
                             (32-bit readings only)
            name: Label for logs
            sensor_index: Position in the aggregator's output order
        """
        if bits_per_reading not in READING_WIDTHS:
            raise ValueError(f"bits_per_reading must be one of {READING_WIDTHS}, got {bits_per_reading}")
        if verify_checksum and bits_per_reading != 32:
            raise ValueError("Checksum verification needs 32-bit readings")

        self.line = line
        self.timing = timing
        self.bits_per_reading = bits_per_reading
        self.verify_checksum = verify_checksum
        self.name = name
        self.sensor_index = sensor_index
        self._total_bits = bits_per_reading + (CHECKSUM_BITS if verify_checksum else 0)

        self.last_fault: Optional[DecoderFault] = None
        self.readings = 0
        self.timing_violations = 0
        self.stalls = 0
        self.checksum_errors = 0

        self.reset()

    # -------------------------------------------------------------------------
    # Outputs
    # -------------------------------------------------------------------------

    @property
    def state(self) -> DecoderState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def value(self) -> Optional[int]:
        return self._value

    @property
    def bits_received(self) -> int:
        return self._bits

    def reading(self) -> Optional[RawReading]:
        """The latched word as a RawReading, or None if not ready."""
        if not self._ready:
            return None
        return RawReading(value=self._value, width=self.bits_per_reading, sensor_index=self.sensor_index)

    @property
    def stats(self) -> Dict[str, int]:
        return {
            'readings': self.readings,
            'timing_violations': self.timing_violations,
            'stalls': self.stalls,
            'checksum_errors': self.checksum_errors,
        }

    # -------------------------------------------------------------------------
    # Control
    # -------------------------------------------------------------------------

    def reset(self):
        """Clear the ready latch and return to IDLE with the line released."""
        self.line.set_direction(Direction.INPUT)
        self._state = DecoderState.IDLE
        self._ready = False
        self._value: Optional[int] = None
        self._count = 0
        self._elapsed = 0
        self._bits = 0
        self._accumulator = 0

    def tick(self):
        """Advance one quantum."""
        state = self._state
        timing = self.timing

        if state is DecoderState.DONE:
            return

        if state is DecoderState.IDLE:
            if self._count < timing.idle_holdoff:
                self._count += 1
                return
            self.line.set_direction(Direction.OUTPUT)
            self.line.write(0)
            self._enter(DecoderState.STARTING)

        elif state is DecoderState.STARTING:
            self._count += 1
            if self._count >= timing.start_low:
                self.line.write(1)
                self._enter(DecoderState.RELEASING_LINE)

        elif state is DecoderState.RELEASING_LINE:
            self._count += 1
            if self._count >= timing.release:
                self.line.set_direction(Direction.INPUT)
                self._enter(DecoderState.AWAITING_RESPONSE_LOW)

        else:
            self._elapsed += 1
            if timing.stall_timeout is not None and self._elapsed > timing.stall_timeout:
                self.stalls += 1
                self._abort(
                    DecoderFault.STALL,
                    f"no edge for {timing.stall_timeout} ticks in {state.value} "
                    f"(bit {self._bits}/{self._total_bits})",
                    level=logging.WARNING
                )
                return
            self._sample(state, self.line.read())

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _sample(self, state: DecoderState, level: int):
        timing = self.timing

        if state is DecoderState.AWAITING_RESPONSE_LOW:
            if not level:
                self._enter(DecoderState.AWAITING_RESPONSE_HIGH)

        elif state is DecoderState.AWAITING_RESPONSE_HIGH:
            if level:
                self._count += 1
            elif self._count:
                if self._count >= timing.min_response_high:
                    self._bits = 0
                    self._accumulator = 0
                    self._enter(DecoderState.AWAITING_BIT_START, count=1)
                else:
                    # Glitch before the real response high
                    self._count = 0

        elif state is DecoderState.AWAITING_BIT_START:
            if not level:
                self._count += 1
            elif self._count >= timing.min_bit_low:
                self._enter(DecoderState.MEASURING_BIT_HIGH, count=1)
            else:
                self.timing_violations += 1
                self._abort(
                    DecoderFault.TIMING_VIOLATION,
                    f"bit {self._bits} low phase {self._count} ticks < {timing.min_bit_low}"
                )

        elif state is DecoderState.MEASURING_BIT_HIGH:
            if level:
                self._count += 1
                return
            bit = 1 if self._count >= timing.bit_threshold else 0
            self._accumulator = (self._accumulator << 1) | bit
            self._bits += 1
            if self._bits >= self._total_bits:
                self._finish()
            else:
                self._enter(DecoderState.AWAITING_BIT_START, count=1)

    def _enter(self, state: DecoderState, count: int = 0):
        self._state = state
        self._count = count
        self._elapsed = 0

    def _finish(self):
        word = self._accumulator
        if self.verify_checksum:
            received = word & 0xFF
            word >>= CHECKSUM_BITS
            expected = reading_checksum(word)
            if received != expected:
                self.checksum_errors += 1
                self._abort(
                    DecoderFault.CHECKSUM_MISMATCH,
                    f"checksum 0x{received:02X} != 0x{expected:02X} for 0x{word:08X}"
                )
                return

        self._value = word
        self._ready = True
        self._enter(DecoderState.DONE)
        self.readings += 1
        self.last_fault = None
        logger.debug(f"{self.name}: reading 0x{word:0{self.bits_per_reading // 4}X}")

    def _abort(self, fault: DecoderFault, detail: str, level: int = logging.DEBUG):
        logger.log(level, f"{self.name}: {fault.value}: {detail}")
        self.last_fault = fault
        self.line.set_direction(Direction.INPUT)
        self._enter(DecoderState.IDLE)
        self._bits = 0
        self._accumulator = 0
        self._ready = False
        self._value = None
