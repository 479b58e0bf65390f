"""
Sensor timing for dht-mux.

Tick arithmetic, the host-side protocol decoder and the simulated sensor.
"""

from .ticks import TimeBase, us_to_ticks, ms_to_ticks, bit_period_ticks
from .protocol_decoder import ProtocolDecoder, DecoderTiming, DecoderState, DecoderFault
from .sensor_simulator import SimulatedSensor, SensorTiming

__all__ = [
    'TimeBase', 'us_to_ticks', 'ms_to_ticks', 'bit_period_ticks',
    'ProtocolDecoder', 'DecoderTiming', 'DecoderState', 'DecoderFault',
    'SimulatedSensor', 'SensorTiming',
]
