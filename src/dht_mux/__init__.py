"""
dht-mux: Multi-sensor humidity/temperature serial multiplexer

This package decodes readings from single-wire humidity/temperature sensors
and streams them, byte-framed, over one shared serial output. Every piece
advances on one monotonic tick time base, so decode thresholds, serial bit
periods and scheduler delays all agree to the tick.

Architecture:
    sensor lines → ProtocolDecoder × N → Aggregator (barrier) → ByteTransmitter → serial

Components:
    1. ProtocolDecoder: host handshake + pulse-width bit decode, per sensor
    2. ByteTransmitter: 8-N-1 serializer with a busy/idle handshake
    3. Aggregator: all-ready barrier, fixed-order byte scheduling, re-arm policy

Consumers read bits_per_reading / 8 bytes per sensor, in sensor order, with
no delimiters (see output.packet_stream.PacketReader).

Version: 1.0.0
"""

__version__ = "1.0.0"

# timing first: interfaces.readings pulls its constants from timing
from .timing import ProtocolDecoder, DecoderTiming, DecoderState, TimeBase
from .interfaces.readings import RawReading, Packet
from .interfaces.sensor_line import SensorLine, Direction

__all__ = [
    "ProtocolDecoder",
    "DecoderTiming",
    "DecoderState",
    "TimeBase",
    "RawReading",
    "Packet",
    "SensorLine",
    "Direction",
    "__version__",
]
