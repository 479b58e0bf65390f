"""
Unit tests for the simulated sensor and its pulse synthesis.
"""

import numpy as np
import pytest


def start_pulse(sensor, low_ticks):
    """Drive the host side of a start pulse, then release."""
    from dht_mux.interfaces.sensor_line import Direction

    sensor.set_direction(Direction.OUTPUT)
    sensor.write(0)
    for _ in range(low_ticks):
        sensor.tick()
    sensor.write(1)
    sensor.tick()
    sensor.set_direction(Direction.INPUT)
    sensor.tick()


class TestSynthesis:

    def test_levels_from_pulses(self):
        from dht_mux.timing.sensor_simulator import levels_from_pulses

        levels = levels_from_pulses([(1, 2), (0, 3), (1, 1)])

        assert levels.tolist() == [1, 1, 0, 0, 0, 1]
        assert levels.dtype == np.uint8

    def test_negative_duration(self):
        from dht_mux.timing.sensor_simulator import levels_from_pulses

        with pytest.raises(ValueError):
            levels_from_pulses([(1, -1)])

    def test_reading_bits_msb_first_with_checksum(self):
        from dht_mux.timing.sensor_simulator import reading_bits

        bits = reading_bits(0x80000001)

        assert len(bits) == 40
        assert bits[0] == 1 and bits[31] == 1
        assert sum(bits[1:31]) == 0
        # checksum 0x81
        assert bits[32:] == [1, 0, 0, 0, 0, 0, 0, 1]

    def test_response_length(self):
        from dht_mux.timing.sensor_simulator import synthesize_response

        bits = [0] * 20 + [1] * 20
        train = synthesize_response(bits, 1_000_000)

        assert len(train) == 30 + 80 + 80 + 20 * (50 + 27) + 20 * (50 + 70) + 50
        assert train[0] == 1 and train[30] == 0 and train[-1] == 0

    def test_jitter_needs_rng(self):
        from dht_mux.timing.sensor_simulator import synthesize_response, SensorTiming

        with pytest.raises(ValueError):
            synthesize_response([1], 1_000_000, SensorTiming(jitter_us=2.0))


class TestSimulatedSensor:

    def test_responds_after_long_start(self):
        from dht_mux.timing.sensor_simulator import SimulatedSensor

        sensor = SimulatedSensor(1_000_000, reading=0x1234)
        start_pulse(sensor, 18_000)

        assert sensor.emitting
        assert sensor.responses == 1
        assert sensor.read() == 1

    def test_ignores_short_start(self):
        from dht_mux.timing.sensor_simulator import SimulatedSensor

        sensor = SimulatedSensor(1_000_000)
        start_pulse(sensor, 17_999)

        assert not sensor.emitting
        assert sensor.responses == 0

    def test_dead_sensor_never_emits(self):
        from dht_mux.timing.sensor_simulator import SimulatedSensor

        sensor = SimulatedSensor(1_000_000, responsive=False)
        start_pulse(sensor, 18_000)
        for _ in range(100):
            sensor.tick()
            assert sensor.read() == 1

        assert sensor.responses == 0

    def test_host_low_aborts_emission(self):
        from dht_mux.interfaces.sensor_line import Direction
        from dht_mux.timing.sensor_simulator import SimulatedSensor

        sensor = SimulatedSensor(1_000_000)
        start_pulse(sensor, 18_000)
        sensor.set_direction(Direction.OUTPUT)
        sensor.write(0)
        sensor.tick()

        assert not sensor.emitting
        assert sensor.aborted == 1
        assert sensor.read() == 0

    def test_write_ignored_in_input_mode(self):
        from dht_mux.timing.sensor_simulator import SimulatedSensor

        sensor = SimulatedSensor(1_000_000)
        sensor.write(0)

        assert sensor.read() == 1

    def test_reading_must_fit(self):
        from dht_mux.timing.sensor_simulator import SimulatedSensor

        with pytest.raises(ValueError):
            SimulatedSensor(1_000_000, reading=1 << 32)

    def test_corrupt_checksum(self):
        from dht_mux.timing.protocol_decoder import reading_checksum
        from dht_mux.timing.sensor_simulator import SimulatedSensor

        sensor = SimulatedSensor(1_000_000, reading=0x1A2B3C4D, corrupt_checksum=True)
        bits = sensor.response_bits()
        checksum = int(''.join(str(b) for b in bits[32:]), 2)

        assert checksum == (reading_checksum(0x1A2B3C4D) + 1) & 0xFF
