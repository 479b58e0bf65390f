"""Output side - UART transmitter, serial line capture, packet stream."""

from .uart_transmitter import ByteTransmitter, TransmitterBusyError, UartState
from .serial_capture import SerialCapture, UartFrame
from .packet_stream import PacketWriter, PacketReader

__all__ = [
    'ByteTransmitter', 'TransmitterBusyError', 'UartState',
    'SerialCapture', 'UartFrame', 'PacketWriter', 'PacketReader',
]
