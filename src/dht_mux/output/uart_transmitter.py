"""
UART Byte Transmitter

Serializes one byte at a time onto the shared serial output with 8-N-1
framing and a `busy` flag the aggregator handshakes on.

Frame (each bit held bit_period = tick_rate // baud_rate ticks):

    idle ─┐     ┌─┬─┬─┬─┬─┬─┬─┬─┐     ┌─ idle
          │start│0│1│2│3│4│5│6│7│stop │
          └─────┴─┴─┴─┴─┴─┴─┴─┴─┘
          ◀──────────── busy: 10 × bit_period ──────────▶

send() latches the byte; the start bit goes out on the next tick(), which is
also when busy rises. busy falls exactly 10 bit periods later.

Usage:
    tx = ByteTransmitter(tick_rate_hz=12_000_000, baud_rate=115200)
    tx.send(0x1A)
    while tx.busy or tx.state is UartState.LOADING:
        tx.tick()
"""

import logging
from enum import Enum
from typing import Callable, List, Optional

from ..timing.dht_constants import UART_FRAME_BITS
from ..timing.ticks import bit_period_ticks

logger = logging.getLogger(__name__)


class TransmitterBusyError(RuntimeError):
    """send() called while a frame is pending or on the wire."""


class UartState(str, Enum):
    IDLE = "IDLE"                  # Line high, accepting send()
    LOADING = "LOADING"            # Byte latched, start bit goes out next tick
    TRANSMITTING = "TRANSMITTING"  # Frame on the wire, busy asserted


def frame_bits(byte: int) -> List[int]:
    """Line levels of one 8-N-1 frame: start, data LSB first, stop."""
    return [0] + [(byte >> i) & 1 for i in range(8)] + [1]


class ByteTransmitter:
    """Single shared 8-N-1 serializer."""

    def __init__(
        self,
        tick_rate_hz: int,
        baud_rate: int,
        on_byte: Optional[Callable[[int], None]] = None
    ):
        """
        Args:
            tick_rate_hz: Time base rate
            baud_rate: Serial bit rate
            on_byte: Called with each byte once its stop bit has completed

        Raises:
            ValueError: If the bit period would be shorter than one tick
        """
        self.tick_rate_hz = tick_rate_hz
        self.baud_rate = baud_rate
        self.bit_period = bit_period_ticks(tick_rate_hz, baud_rate)
        self.on_byte = on_byte

        self.line = 1
        self.bytes_sent = 0
        self._state = UartState.IDLE
        self._busy = False
        self._frame = 0
        self._bit_index = 0
        self._count = 0

        logger.debug(
            f"ByteTransmitter: {baud_rate} baud at {tick_rate_hz} Hz, "
            f"{self.bit_period} ticks/bit"
        )

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def state(self) -> UartState:
        return self._state

    @property
    def bit_index(self) -> int:
        """0 = start bit, 1-8 = data bits, 9 = stop bit."""
        return self._bit_index

    @property
    def frame_ticks(self) -> int:
        return UART_FRAME_BITS * self.bit_period

    def send(self, byte: int):
        """
        Latch a byte for transmission.

        Raises:
            ValueError: If byte is outside 0-255
            TransmitterBusyError: If a frame is already pending or in progress
        """
        if not 0 <= byte <= 0xFF:
            raise ValueError(f"Byte must be 0-255, got {byte}")
        if self._state is not UartState.IDLE:
            raise TransmitterBusyError(
                f"send(0x{byte:02X}) while transmitter is {self._state.value} "
                f"(bit {self._bit_index} of 0x{self._frame:02X})"
            )
        self._frame = byte
        self._state = UartState.LOADING

    def tick(self):
        """Advance one quantum."""
        if self._state is UartState.IDLE:
            return

        if self._state is UartState.LOADING:
            self._state = UartState.TRANSMITTING
            self._busy = True
            self._bit_index = 0
            self._count = 0
            self.line = 0
            return

        self._count += 1
        if self._count < self.bit_period:
            return

        self._count = 0
        self._bit_index += 1

        if self._bit_index < UART_FRAME_BITS - 1:
            self.line = (self._frame >> (self._bit_index - 1)) & 1
        elif self._bit_index == UART_FRAME_BITS - 1:
            self.line = 1
        else:
            self._state = UartState.IDLE
            self._busy = False
            self.bytes_sent += 1
            if self.on_byte is not None:
                self.on_byte(self._frame)
