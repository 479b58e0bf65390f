"""
Reading and Packet Data Models

These dataclasses define the contract between the decoders, the aggregator
and whatever consumes the serial stream. A Packet is what one aggregation
cycle puts on the wire: the latched readings in ascending sensor order,
MSB first within each reading, with no delimiters.

Contract Version: 1.0.0
"""

from dataclasses import dataclass, field, asdict
from typing import Optional, List, Tuple
import json
import time

from ..timing.dht_constants import READING_WIDTHS


@dataclass(frozen=True)
class RawReading:
    """
    One latched sensor word.

    Semantically four 8-bit fields (humidity int/frac, temperature int/frac),
    or the humidity pair alone in 16-bit configurations.
    """
    value: int
    width: int = 32
    sensor_index: int = 0

    def __post_init__(self):
        if self.width not in READING_WIDTHS:
            raise ValueError(f"Reading width must be one of {READING_WIDTHS}, got {self.width}")
        if not 0 <= self.value < (1 << self.width):
            raise ValueError(f"Value 0x{self.value:X} does not fit in {self.width} bits")

    @property
    def n_bytes(self) -> int:
        return self.width // 8

    @property
    def fields(self) -> Tuple[int, ...]:
        """8-bit fields, most significant first."""
        return tuple(self.to_bytes())

    def to_bytes(self) -> bytes:
        return self.value.to_bytes(self.n_bytes, 'big')

    @property
    def humidity(self) -> float:
        return self.fields[0] + self.fields[1] / 100.0

    @property
    def temperature(self) -> Optional[float]:
        if self.width < 32:
            return None
        return self.fields[2] + self.fields[3] / 100.0

    @classmethod
    def from_fields(
        cls,
        humidity_int: int,
        humidity_frac: int,
        temperature_int: int = 0,
        temperature_frac: int = 0,
        sensor_index: int = 0
    ) -> "RawReading":
        """Build a 32-bit reading from its four byte fields."""
        for name, b in (('humidity_int', humidity_int), ('humidity_frac', humidity_frac),
                        ('temperature_int', temperature_int), ('temperature_frac', temperature_frac)):
            if not 0 <= b <= 0xFF:
                raise ValueError(f"{name} must be 0-255, got {b}")
        value = (humidity_int << 24) | (humidity_frac << 16) | (temperature_int << 8) | temperature_frac
        return cls(value=value, width=32, sensor_index=sensor_index)

    def to_dict(self) -> dict:
        result = asdict(self)
        result['humidity'] = self.humidity
        if self.temperature is not None:
            result['temperature'] = self.temperature
        return result


@dataclass
class Packet:
    """
    Bytes sent by one aggregation cycle.

    `readings` holds one entry per transmitted sensor block, in the order the
    blocks went out. Sensors that missed the barrier are listed in `filled`
    (sent as the configured fill word) or `skipped` (not sent at all).
    """
    sequence: int = 0
    latched_at_tick: int = 0
    readings: List[RawReading] = field(default_factory=list)
    filled: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    generated_at: float = field(default_factory=time.time)

    def to_bytes(self) -> bytes:
        return b''.join(r.to_bytes() for r in self.readings)

    def __len__(self) -> int:
        return sum(r.n_bytes for r in self.readings)

    @property
    def complete(self) -> bool:
        """True if every sensor contributed a real reading."""
        return not self.filled and not self.skipped

    def to_json(self) -> str:
        """Serialize to JSON for the summary snapshot."""
        data = {
            "sequence": self.sequence,
            "latched_at_tick": self.latched_at_tick,
            "generated_at": self.generated_at,
            "bytes": self.to_bytes().hex(),
            "readings": [r.to_dict() for r in self.readings],
            "filled": list(self.filled),
            "skipped": list(self.skipped),
        }
        return json.dumps(data, indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> "Packet":
        """Deserialize from JSON."""
        data = json.loads(json_str)

        readings = [
            RawReading(
                value=r["value"],
                width=r.get("width", 32),
                sensor_index=r.get("sensor_index", 0),
            )
            for r in data.get("readings", [])
        ]

        return cls(
            sequence=data.get("sequence", 0),
            latched_at_tick=data.get("latched_at_tick", 0),
            readings=readings,
            filled=data.get("filled", []),
            skipped=data.get("skipped", []),
            generated_at=data.get("generated_at", time.time()),
        )
