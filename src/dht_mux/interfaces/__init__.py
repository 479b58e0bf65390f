"""Interface definitions and data contracts."""

from .readings import RawReading, Packet
from .sensor_line import SensorLine, Direction

__all__ = ['RawReading', 'Packet', 'SensorLine', 'Direction']
