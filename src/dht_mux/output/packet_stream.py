"""
Packet Stream Writer and Reader

PacketWriter appends each packet's bytes to a raw stream file (exactly what
went over the serial line) and keeps a JSON snapshot of the latest packet
for anything that wants to poll current values.

The snapshot is updated atomically (write to temp, rename) to prevent
partial reads.

PacketReader is the consumer side of the serial byte contract: it reads
exactly bytes_per_reading bytes per sensor, in sensor order, with no
delimiters, and turns each reading into keyed telemetry the way the
downstream relay does (integer byte + fraction byte / 100).

Usage:
    writer = PacketWriter('/tmp/dht-mux.bin', '/tmp/dht-mux.json')
    writer.write(packet)

    reader = PacketReader(sensor_count=3, bits_per_reading=32)
    for telemetry in reader.feed(serial_bytes):
        print(telemetry['sensor0.humidity'])
"""

import json
import os
import tempfile
import logging
from pathlib import Path
from typing import Dict, List, Optional

from ..interfaces.readings import Packet, RawReading
from ..timing.dht_constants import READING_WIDTHS

logger = logging.getLogger(__name__)


class PacketWriter:
    """
    Writes packets to a raw byte stream and a JSON snapshot.

    Either path may be None to skip that output.
    """

    def __init__(self, stream_path: Optional[str] = None, summary_path: Optional[str] = None):
        self.stream_path = Path(stream_path) if stream_path else None
        self.summary_path = Path(summary_path) if summary_path else None
        self.write_count = 0

        for path in (self.stream_path, self.summary_path):
            if path is not None:
                path.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"PacketWriter initialized: stream={self.stream_path} summary={self.summary_path}")

    def write(self, packet: Packet) -> bool:
        """
        Append the packet to the stream and replace the snapshot.

        Returns:
            True if successful, False on error
        """
        try:
            if self.stream_path is not None:
                with open(self.stream_path, 'ab') as f:
                    f.write(packet.to_bytes())

            if self.summary_path is not None:
                self._write_summary(packet.to_json())

            self.write_count += 1
            return True

        except OSError as e:
            logger.error(f"Failed to write packet #{packet.sequence}: {e}")
            return False

    def _write_summary(self, json_data: str):
        # Temp file in the same directory, required for atomic rename
        fd, temp_path = tempfile.mkstemp(
            dir=self.summary_path.parent,
            prefix='.dht_mux_',
            suffix='.tmp'
        )
        try:
            with os.fdopen(fd, 'w') as f:
                f.write(json_data)
            os.replace(temp_path, self.summary_path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def read_summary(self) -> Optional[Packet]:
        """
        Read back the latest snapshot.

        Returns:
            Packet or None if there is no snapshot or it is invalid
        """
        if self.summary_path is None or not self.summary_path.exists():
            return None
        try:
            return Packet.from_json(self.summary_path.read_text())
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Failed to read packet snapshot: {e}")
            return None


class PacketReader:
    """
    Reassembles readings from the delimiter-free serial byte stream.

    Bytes may arrive in arbitrary chunks; anything short of a full packet is
    buffered until the next feed().
    """

    def __init__(self, sensor_count: int, bits_per_reading: int = 32):
        if sensor_count < 1:
            raise ValueError(f"sensor_count must be at least 1, got {sensor_count}")
        if bits_per_reading not in READING_WIDTHS:
            raise ValueError(f"bits_per_reading must be one of {READING_WIDTHS}, got {bits_per_reading}")
        self.sensor_count = sensor_count
        self.bits_per_reading = bits_per_reading
        self.bytes_per_reading = bits_per_reading // 8
        self.packet_size = sensor_count * self.bytes_per_reading
        self._buffer = bytearray()
        self.packets_read = 0

    @property
    def pending(self) -> int:
        """Bytes buffered towards the next packet."""
        return len(self._buffer)

    def feed(self, data: bytes) -> List[Dict[str, float]]:
        """
        Consume bytes and return telemetry for every completed packet.

        Returns:
            One dict per packet, keyed 'sensor<i>.humidity' and (for 32-bit
            readings) 'sensor<i>.temperature'
        """
        self._buffer.extend(data)
        results = []
        while len(self._buffer) >= self.packet_size:
            chunk = bytes(self._buffer[:self.packet_size])
            del self._buffer[:self.packet_size]
            results.append(self.telemetry(self.parse(chunk)))
            self.packets_read += 1
        return results

    def parse(self, chunk: bytes) -> List[RawReading]:
        """Split one packet's bytes into readings, in sensor order."""
        if len(chunk) != self.packet_size:
            raise ValueError(f"Expected {self.packet_size} bytes, got {len(chunk)}")
        n = self.bytes_per_reading
        return [
            RawReading(
                value=int.from_bytes(chunk[i * n:(i + 1) * n], 'big'),
                width=self.bits_per_reading,
                sensor_index=i,
            )
            for i in range(self.sensor_count)
        ]

    @staticmethod
    def telemetry(readings: List[RawReading]) -> Dict[str, float]:
        result = {}
        for reading in readings:
            key = f"sensor{reading.sensor_index}"
            result[f"{key}.humidity"] = reading.humidity
            if reading.temperature is not None:
                result[f"{key}.temperature"] = reading.temperature
        return result
