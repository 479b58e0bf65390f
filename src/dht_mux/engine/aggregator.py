#!/usr/bin/env python3
"""
Aggregator - N decoders onto one serial output

Barrier-waits on every ProtocolDecoder, latches their words in sensor
order and walks the ByteTransmitter through every byte, one micro-step per
tick.

Cycle:
    WAITING ──(all ready | barrier timeout)──▶ PRE_DELAY ──▶ TRANSMITTING
       ▲                                                      │  ▲
       │                                    (block done)      ▼  │
       │                                            INTER_SENSOR_DELAY
       │                                                      │
       └──── CONTINUOUS: reset decoders ◀── last byte sent ───┘
             FREEZE: FROZEN forever

Per-byte handshake (TxState):
    LOADING          wait until transmitter !busy, then send(byte)
    SENDING          wait for busy to rise (frame started)
    WAITING_COMPLETE wait for busy to fall (frame complete)
    FINISHED         advance to next byte / sensor

Barrier policy for sensors that never become ready:
    WAIT  wait forever (no timeout)
    SKIP  after barrier_timeout_ticks, leave their bytes out
    FILL  after barrier_timeout_ticks, send fill_value in their place so the
          downstream fixed-length framing holds
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence

from ..interfaces.readings import Packet, RawReading
from ..output.uart_transmitter import ByteTransmitter
from ..timing.dht_constants import (
    READING_WIDTHS,
    DEFAULT_BITS_PER_READING,
    DEFAULT_PRE_DELAY_TICKS,
    DEFAULT_INTER_SENSOR_DELAY_TICKS,
    DEFAULT_INTER_BYTE_DELAY_TICKS,
)

logger = logging.getLogger(__name__)


class AggregatorState(str, Enum):
    WAITING = "WAITING"
    PRE_DELAY = "PRE_DELAY"
    TRANSMITTING = "TRANSMITTING"
    INTER_BYTE_DELAY = "INTER_BYTE_DELAY"
    INTER_SENSOR_DELAY = "INTER_SENSOR_DELAY"
    FROZEN = "FROZEN"


class TxState(str, Enum):
    """Per-byte busy/idle handshake with the transmitter."""
    IDLE = "IDLE"
    LOADING = "LOADING"
    SENDING = "SENDING"
    WAITING_COMPLETE = "WAITING_COMPLETE"
    FINISHED = "FINISHED"


class RearmPolicy(str, Enum):
    """What happens after the last byte of a cycle."""
    CONTINUOUS = "continuous"   # Reset all decoders and wait again
    FREEZE = "freeze"           # Stop for good, decoders keep their latches


class BarrierPolicy(str, Enum):
    """What to do about sensors that miss the all-ready barrier."""
    WAIT = "wait"
    SKIP = "skip"
    FILL = "fill"


@dataclass
class AggregatorConfig:
    bits_per_reading: int = DEFAULT_BITS_PER_READING
    pre_delay_ticks: int = DEFAULT_PRE_DELAY_TICKS
    inter_sensor_delay_ticks: int = DEFAULT_INTER_SENSOR_DELAY_TICKS
    inter_byte_delay_ticks: int = DEFAULT_INTER_BYTE_DELAY_TICKS
    rearm: RearmPolicy = RearmPolicy.CONTINUOUS
    barrier: BarrierPolicy = BarrierPolicy.WAIT
    barrier_timeout_ticks: Optional[int] = None
    fill_value: int = 0

    def __post_init__(self):
        self.rearm = RearmPolicy(self.rearm)
        self.barrier = BarrierPolicy(self.barrier)
        if self.bits_per_reading not in READING_WIDTHS:
            raise ValueError(f"bits_per_reading must be one of {READING_WIDTHS}, got {self.bits_per_reading}")
        for name in ('pre_delay_ticks', 'inter_sensor_delay_ticks', 'inter_byte_delay_ticks'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        if self.barrier is not BarrierPolicy.WAIT:
            if not self.barrier_timeout_ticks or self.barrier_timeout_ticks < 1:
                raise ValueError(f"Barrier policy '{self.barrier.value}' needs a positive barrier_timeout_ticks")
        if not 0 <= self.fill_value < (1 << self.bits_per_reading):
            raise ValueError(f"fill_value 0x{self.fill_value:X} does not fit in {self.bits_per_reading} bits")

    @property
    def bytes_per_reading(self) -> int:
        return self.bits_per_reading // 8


class Aggregator:
    """
    Scheduler that multiplexes N decoders onto one ByteTransmitter.

    Decoders only need `ready`, `value` and `reset()`. The aggregator is the
    transmitter's only writer and never calls send() while it is busy.
    """

    def __init__(
        self,
        decoders: Sequence,
        transmitter: ByteTransmitter,
        config: Optional[AggregatorConfig] = None,
        on_packet: Optional[Callable[[Packet], None]] = None
    ):
        if not decoders:
            raise ValueError("Aggregator needs at least one decoder")
        self.decoders = list(decoders)
        self.transmitter = transmitter
        self.config = config or AggregatorConfig()
        self.on_packet = on_packet

        self.packets_sent = 0
        self.bytes_sent = 0
        self.barrier_timeouts = 0
        self.last_packet: Optional[Packet] = None

        self._state = AggregatorState.WAITING
        self._tx_state = TxState.IDLE
        self._ticks = 0
        self._elapsed = 0
        self._count = 0
        self._delay = 0
        self._packet: Optional[Packet] = None
        self._blocks: List[bytes] = []
        self._block_index = 0
        self._byte_index = 0

    @property
    def state(self) -> AggregatorState:
        return self._state

    @property
    def tx_state(self) -> TxState:
        return self._tx_state

    @property
    def frozen(self) -> bool:
        return self._state is AggregatorState.FROZEN

    def tick(self):
        """Advance one quantum."""
        self._ticks += 1
        state = self._state

        if state is AggregatorState.FROZEN:
            return

        if state is AggregatorState.WAITING:
            self._elapsed += 1
            if all(d.ready for d in self.decoders):
                self._latch()
            elif (self.config.barrier is not BarrierPolicy.WAIT
                  and self._elapsed >= self.config.barrier_timeout_ticks):
                self.barrier_timeouts += 1
                self._latch()

        elif state in (AggregatorState.PRE_DELAY,
                       AggregatorState.INTER_SENSOR_DELAY,
                       AggregatorState.INTER_BYTE_DELAY):
            self._count += 1
            if self._count >= self._delay:
                self._start_byte()

        elif state is AggregatorState.TRANSMITTING:
            self._handshake()

    # -------------------------------------------------------------------------
    # Barrier
    # -------------------------------------------------------------------------

    def _latch(self):
        """Take every ready decoder's word, in sensor order."""
        cfg = self.config
        packet = Packet(sequence=self.packets_sent, latched_at_tick=self._ticks)
        blocks: List[bytes] = []

        for index, decoder in enumerate(self.decoders):
            if decoder.ready:
                reading = RawReading(value=decoder.value, width=cfg.bits_per_reading, sensor_index=index)
            elif cfg.barrier is BarrierPolicy.FILL:
                reading = RawReading(value=cfg.fill_value, width=cfg.bits_per_reading, sensor_index=index)
                packet.filled.append(index)
            else:
                packet.skipped.append(index)
                continue
            packet.readings.append(reading)
            blocks.append(reading.to_bytes())

        if not packet.complete:
            logger.warning(
                f"Barrier timeout after {self._elapsed} ticks: "
                f"filled={packet.filled} skipped={packet.skipped}"
            )

        self._packet = packet
        self._blocks = blocks
        self._block_index = 0
        self._byte_index = 0

        if not blocks:
            self._complete()
            return

        self._wait(AggregatorState.PRE_DELAY, cfg.pre_delay_ticks)

    # -------------------------------------------------------------------------
    # Transmission
    # -------------------------------------------------------------------------

    def _wait(self, state: AggregatorState, ticks: int):
        if ticks <= 0:
            self._start_byte()
            return
        self._state = state
        self._delay = ticks
        self._count = 0

    def _start_byte(self):
        self._state = AggregatorState.TRANSMITTING
        self._tx_state = TxState.LOADING

    def _handshake(self):
        tx = self.transmitter

        if self._tx_state is TxState.LOADING:
            if tx.busy:
                return
            tx.send(self._blocks[self._block_index][self._byte_index])
            self._tx_state = TxState.SENDING

        elif self._tx_state is TxState.SENDING:
            if tx.busy:
                self._tx_state = TxState.WAITING_COMPLETE

        elif self._tx_state is TxState.WAITING_COMPLETE:
            if not tx.busy:
                self.bytes_sent += 1
                self._tx_state = TxState.FINISHED

        elif self._tx_state is TxState.FINISHED:
            self._advance()

    def _advance(self):
        cfg = self.config
        self._tx_state = TxState.IDLE
        self._byte_index += 1

        if self._byte_index < len(self._blocks[self._block_index]):
            self._wait(AggregatorState.INTER_BYTE_DELAY, cfg.inter_byte_delay_ticks)
            return

        self._block_index += 1
        self._byte_index = 0
        if self._block_index < len(self._blocks):
            self._wait(AggregatorState.INTER_SENSOR_DELAY, cfg.inter_sensor_delay_ticks)
            return

        self._complete()

    def _complete(self):
        packet = self._packet
        self.packets_sent += 1
        self.last_packet = packet
        logger.info(
            f"Packet #{packet.sequence}: {len(packet)} bytes from "
            f"{len(packet.readings) - len(packet.filled)}/{len(self.decoders)} sensors "
            f"[{packet.to_bytes().hex(' ').upper()}]"
        )
        if self.on_packet is not None:
            self.on_packet(packet)

        self._tx_state = TxState.IDLE
        if self.config.rearm is RearmPolicy.CONTINUOUS:
            for decoder in self.decoders:
                decoder.reset()
            self._state = AggregatorState.WAITING
            self._elapsed = 0
        else:
            self._state = AggregatorState.FROZEN
            logger.info("Aggregator frozen after final packet")
