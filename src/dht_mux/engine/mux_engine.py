#!/usr/bin/env python3
"""
Mux Engine - wires decoders, aggregator and transmitter onto one time base

Architecture:
    ┌─────────────────────────────────────────────────────────────────┐
    │                         TimeBase (ticks)                        │
    │                                                                 │
    │  line 0 ──▶ ProtocolDecoder 0 ─┐                                │
    │  line 1 ──▶ ProtocolDecoder 1 ─┼──▶ Aggregator ──▶ ByteTransmitter ──▶ serial
    │  line N ──▶ ProtocolDecoder N ─┘    (barrier)        (8-N-1)     │
    │                                                                 │
    └─────────────────────────────────────────────────────────────────┘

Tick order within one quantum:
    1. sensor lines that tick (simulated sensors)
    2. decoders, in sensor order
    3. aggregator
    4. transmitter
    5. serial capture (samples what the transmitter left on the line)

Configuration is a MuxConfig, usually built from the TOML sections loaded
by main.load_config().
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..interfaces.readings import Packet
from ..interfaces.sensor_line import SensorLine
from ..output.serial_capture import SerialCapture
from ..output.uart_transmitter import ByteTransmitter
from ..timing.dht_constants import (
    DEFAULT_TICK_RATE_HZ,
    DEFAULT_BAUD_RATE,
    DEFAULT_SENSOR_COUNT,
    DEFAULT_BITS_PER_READING,
    DEFAULT_PRE_DELAY_TICKS,
    DEFAULT_INTER_SENSOR_DELAY_TICKS,
    DEFAULT_INTER_BYTE_DELAY_TICKS,
    STALL_TIMEOUT_US,
)
from ..timing.protocol_decoder import DecoderTiming, ProtocolDecoder
from ..timing.sensor_simulator import SensorTiming, SimulatedSensor
from ..timing.ticks import TimeBase, bit_period_ticks, ms_to_ticks
from .aggregator import Aggregator, AggregatorConfig, BarrierPolicy, RearmPolicy

logger = logging.getLogger(__name__)


@dataclass
class MuxConfig:
    """Every tunable of one mux, all explicit."""
    tick_rate_hz: int = DEFAULT_TICK_RATE_HZ
    baud_rate: int = DEFAULT_BAUD_RATE
    sensor_count: int = DEFAULT_SENSOR_COUNT
    bits_per_reading: int = DEFAULT_BITS_PER_READING
    verify_checksum: bool = False

    # Decoder
    stall_timeout_us: Optional[float] = STALL_TIMEOUT_US
    idle_holdoff_ms: float = 0.0

    # Aggregator
    pre_delay_ticks: int = DEFAULT_PRE_DELAY_TICKS
    inter_sensor_delay_ticks: int = DEFAULT_INTER_SENSOR_DELAY_TICKS
    inter_byte_delay_ticks: int = DEFAULT_INTER_BYTE_DELAY_TICKS
    rearm: RearmPolicy = RearmPolicy.CONTINUOUS
    barrier: BarrierPolicy = BarrierPolicy.WAIT
    barrier_timeout_ms: float = 0.0
    fill_value: int = 0

    def __post_init__(self):
        self.rearm = RearmPolicy(self.rearm)
        self.barrier = BarrierPolicy(self.barrier)
        if self.tick_rate_hz <= 0:
            raise ValueError(f"tick_rate_hz must be positive, got {self.tick_rate_hz}")
        if self.sensor_count < 1:
            raise ValueError(f"sensor_count must be at least 1, got {self.sensor_count}")
        # Derived windows and periods raise here rather than at engine build
        self.decoder_timing()
        self.aggregator_config()
        bit_period_ticks(self.tick_rate_hz, self.baud_rate)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "MuxConfig":
        """
        Build from a loaded TOML configuration.

        Sections: [timing], [serial], [sensors], [decoder], [aggregator].
        Missing keys take their defaults.
        """
        timing = config.get('timing', {})
        serial = config.get('serial', {})
        sensors = config.get('sensors', {})
        decoder = config.get('decoder', {})
        aggregator = config.get('aggregator', {})

        return cls(
            tick_rate_hz=int(timing.get('tick_rate_hz', DEFAULT_TICK_RATE_HZ)),
            baud_rate=int(serial.get('baud_rate', DEFAULT_BAUD_RATE)),
            sensor_count=int(sensors.get('count', DEFAULT_SENSOR_COUNT)),
            bits_per_reading=int(sensors.get('bits_per_reading', DEFAULT_BITS_PER_READING)),
            verify_checksum=bool(sensors.get('verify_checksum', False)),
            stall_timeout_us=decoder.get('stall_timeout_us', STALL_TIMEOUT_US) or None,
            idle_holdoff_ms=float(decoder.get('idle_holdoff_ms', 0.0)),
            pre_delay_ticks=int(aggregator.get('pre_delay_ticks', DEFAULT_PRE_DELAY_TICKS)),
            inter_sensor_delay_ticks=int(aggregator.get('inter_sensor_delay_ticks', DEFAULT_INTER_SENSOR_DELAY_TICKS)),
            inter_byte_delay_ticks=int(aggregator.get('inter_byte_delay_ticks', DEFAULT_INTER_BYTE_DELAY_TICKS)),
            rearm=aggregator.get('rearm', RearmPolicy.CONTINUOUS.value),
            barrier=aggregator.get('barrier', BarrierPolicy.WAIT.value),
            barrier_timeout_ms=float(aggregator.get('barrier_timeout_ms', 0.0)),
            fill_value=int(aggregator.get('fill_value', 0)),
        )

    def decoder_timing(self) -> DecoderTiming:
        return DecoderTiming.from_tick_rate(
            self.tick_rate_hz,
            stall_timeout_us=self.stall_timeout_us,
            idle_holdoff_ms=self.idle_holdoff_ms,
        )

    def aggregator_config(self) -> AggregatorConfig:
        timeout = None
        if self.barrier is not BarrierPolicy.WAIT:
            timeout = ms_to_ticks(self.tick_rate_hz, self.barrier_timeout_ms)
        return AggregatorConfig(
            bits_per_reading=self.bits_per_reading,
            pre_delay_ticks=self.pre_delay_ticks,
            inter_sensor_delay_ticks=self.inter_sensor_delay_ticks,
            inter_byte_delay_ticks=self.inter_byte_delay_ticks,
            rearm=self.rearm,
            barrier=self.barrier,
            barrier_timeout_ticks=timeout,
            fill_value=self.fill_value,
        )


class MuxEngine:
    """
    One complete mux: N decoders, one aggregator, one transmitter.

    Usage:
        engine = MuxEngine.simulated(MuxConfig(tick_rate_hz=1_000_000),
                                     readings=[0x1A2B3C4D, 0, 0xFFFFFFFF],
                                     capture=True)
        packets = engine.run_packets(1, max_ticks=200_000)
        print(engine.capture.data.hex())
    """

    def __init__(
        self,
        config: MuxConfig,
        lines: Sequence[SensorLine],
        on_packet: Optional[Callable[[Packet], None]] = None,
        capture: bool = False
    ):
        """
        Args:
            config: Mux configuration
            lines: One SensorLine per sensor, in output order
            on_packet: Called with each transmitted Packet
            capture: Record the serial line for later frame decoding. The
                     recording grows by one sample per tick, so leave it off
                     for long-running engines.
        """
        if len(lines) != config.sensor_count:
            raise ValueError(
                f"Configured for {config.sensor_count} sensors but got {len(lines)} lines"
            )

        self.config = config
        self.lines = list(lines)
        self.on_packet = on_packet
        self.packets: List[Packet] = []

        timing = config.decoder_timing()

        self.time_base = TimeBase(config.tick_rate_hz)
        self.decoders = [
            ProtocolDecoder(
                line,
                timing,
                bits_per_reading=config.bits_per_reading,
                verify_checksum=config.verify_checksum,
                name=f"sensor{i}",
                sensor_index=i,
            )
            for i, line in enumerate(self.lines)
        ]
        self.transmitter = ByteTransmitter(config.tick_rate_hz, config.baud_rate)
        self.aggregator = Aggregator(
            self.decoders,
            self.transmitter,
            config.aggregator_config(),
            on_packet=self._on_packet,
        )
        self.capture: Optional[SerialCapture] = SerialCapture(self.transmitter) if capture else None

        for line in self.lines:
            if callable(getattr(line, 'tick', None)):
                self.time_base.subscribe(line)
        for decoder in self.decoders:
            self.time_base.subscribe(decoder)
        self.time_base.subscribe(self.aggregator)
        self.time_base.subscribe(self.transmitter)
        if self.capture is not None:
            self.time_base.subscribe(self.capture)

        logger.info("=" * 60)
        logger.info("dht-mux initializing")
        logger.info(f"  Tick rate: {config.tick_rate_hz} Hz")
        logger.info(f"  Serial: {config.baud_rate} baud, {self.transmitter.bit_period} ticks/bit")
        logger.info(f"  Sensors: {config.sensor_count} × {config.bits_per_reading} bits"
                    f"{' + checksum' if config.verify_checksum else ''}")
        logger.info(f"  Delays: pre={config.pre_delay_ticks} inter-sensor={config.inter_sensor_delay_ticks} "
                    f"inter-byte={config.inter_byte_delay_ticks} ticks")
        logger.info(f"  Policy: rearm={config.rearm.value} barrier={config.barrier.value}")
        logger.info("=" * 60)

    @classmethod
    def simulated(
        cls,
        config: MuxConfig,
        readings: Sequence[int],
        timing: Optional[SensorTiming] = None,
        seed: Optional[int] = None,
        **kwargs
    ) -> "MuxEngine":
        """Build an engine over SimulatedSensors reporting `readings`."""
        sensors = [
            SimulatedSensor(
                config.tick_rate_hz,
                reading=reading,
                timing=timing,
                seed=None if seed is None else seed + i,
                name=f"sim{i}",
            )
            for i, reading in enumerate(readings)
        ]
        return cls(config, sensors, **kwargs)

    def _on_packet(self, packet: Packet):
        self.packets.append(packet)
        if self.on_packet is not None:
            self.on_packet(packet)

    @property
    def ticks(self) -> int:
        return self.time_base.ticks

    def run(self, ticks: int):
        """Advance everything by `ticks` ticks."""
        self.time_base.tick(ticks)

    def run_until(self, predicate: Callable[[], bool], max_ticks: int) -> bool:
        """
        Tick until predicate() is true or max_ticks elapse.

        Returns:
            True if the predicate was met
        """
        for _ in range(max_ticks):
            if predicate():
                return True
            self.time_base.tick()
        return predicate()

    def run_packets(self, count: int, max_ticks: int) -> List[Packet]:
        """
        Run until `count` more packets have been fully transmitted.

        Returns:
            The packets sent during this call (fewer if max_ticks ran out)
        """
        start = len(self.packets)
        target = start + count
        if not self.run_until(lambda: len(self.packets) >= target, max_ticks):
            logger.warning(
                f"Tick budget of {max_ticks} exhausted after "
                f"{len(self.packets) - start}/{count} packets"
            )
        return self.packets[start:]

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            'ticks': self.ticks,
            'seconds': self.time_base.seconds,
            'packets_sent': self.aggregator.packets_sent,
            'bytes_sent': self.transmitter.bytes_sent,
            'barrier_timeouts': self.aggregator.barrier_timeouts,
            'aggregator_state': self.aggregator.state.value,
            'decoders': {d.name: d.stats for d in self.decoders},
        }
