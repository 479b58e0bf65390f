"""
Serial Line Capture

Records the transmitter's line level and busy flag once per tick and slices
the recording back into 8-N-1 frames, the way a receiver on the far end of
the wire would: find the start-bit falling edge, sample each bit in the
middle of its period, check the stop bit.

This is the receive side used by the end-to-end tests and by the CLI to show
what actually went over the wire, rather than trusting what was handed to
send().
"""

import logging
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from ..timing.dht_constants import UART_FRAME_BITS
from .uart_transmitter import ByteTransmitter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UartFrame:
    """One received frame."""
    byte: int
    start_tick: int
    framing_ok: bool   # Start bit low and stop bit high at mid-bit


class SerialCapture:
    """
    Per-tick recorder for one ByteTransmitter.

    Subscribe it to the time base after the transmitter so each sample is the
    line level at the end of that tick.
    """

    def __init__(self, transmitter: ByteTransmitter, capacity: int = 1 << 16):
        self.transmitter = transmitter
        self.bit_period = transmitter.bit_period
        self._levels = np.ones(capacity, dtype=np.uint8)
        self._busy = np.zeros(capacity, dtype=bool)
        self._n = 0

    def __len__(self) -> int:
        return self._n

    def tick(self):
        if self._n >= len(self._levels):
            self._grow()
        self._levels[self._n] = self.transmitter.line
        self._busy[self._n] = self.transmitter.busy
        self._n += 1

    def _grow(self):
        size = len(self._levels)
        self._levels = np.concatenate([self._levels, np.ones(size, dtype=np.uint8)])
        self._busy = np.concatenate([self._busy, np.zeros(size, dtype=bool)])

    @property
    def levels(self) -> np.ndarray:
        return self._levels[:self._n]

    @property
    def busy(self) -> np.ndarray:
        return self._busy[:self._n]

    def clear(self):
        self._n = 0

    def busy_intervals(self) -> List[Tuple[int, int]]:
        """(first_tick, n_ticks) for every run of busy samples."""
        busy = self.busy.astype(np.int8)
        if busy.size == 0:
            return []
        edges = np.diff(np.concatenate([[0], busy, [0]]))
        starts = np.flatnonzero(edges == 1)
        ends = np.flatnonzero(edges == -1)
        return [(int(s), int(e - s)) for s, e in zip(starts, ends)]

    def frames(self) -> List[UartFrame]:
        """Slice the recording into frames; a trailing partial frame is ignored."""
        levels = self.levels
        n = len(levels)
        period = self.bit_period
        frame_len = UART_FRAME_BITS * period

        falling = np.flatnonzero(np.diff(levels.astype(np.int8)) == -1) + 1
        if n and levels[0] == 0:
            falling = np.concatenate([[0], falling])

        weights = 1 << np.arange(8)
        offsets = period // 2 + np.arange(UART_FRAME_BITS) * period

        frames: List[UartFrame] = []
        next_free = 0
        for start in falling:
            if start < next_free:
                continue
            if start + frame_len > n:
                break
            bits = levels[start + offsets]
            byte = int(np.dot(bits[1:9].astype(np.int64), weights))
            framing_ok = bool(bits[0] == 0 and bits[-1] == 1)
            if not framing_ok:
                logger.debug(f"Framing error at tick {start}: bits={bits.tolist()}")
            frames.append(UartFrame(byte=byte, start_tick=int(start), framing_ok=framing_ok))
            next_free = start + (UART_FRAME_BITS - 1) * period + period // 2

        return frames

    @property
    def data(self) -> bytes:
        """Bytes of every well-framed frame, in line order."""
        return bytes(f.byte for f in self.frames() if f.framing_ok)
