"""
Pytest configuration and fixtures for dht-mux tests.
"""

import pytest
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))


@pytest.fixture
def tick_rate():
    """1 MHz keeps tests fast: one tick per microsecond."""
    return 1_000_000


@pytest.fixture
def decoder_timing(tick_rate):
    """Nominal protocol windows at the test tick rate."""
    from dht_mux.timing.protocol_decoder import DecoderTiming
    return DecoderTiming.from_tick_rate(tick_rate)


@pytest.fixture
def end_to_end_readings():
    """Three sensors covering a mixed word, all zeros and all ones."""
    return [0x1A2B3C4D, 0x00000000, 0xFFFFFFFF]


class FakeDecoder:
    """Decoder stand-in exposing only what the aggregator uses."""

    def __init__(self, value=None, ready=True):
        self.value = value
        self.ready = ready
        self.resets = 0

    def reset(self):
        self.resets += 1
        self.ready = False
        self.value = None


@pytest.fixture
def fake_decoder_factory():
    return FakeDecoder
