"""
End-to-end tests for MuxEngine.

Simulated sensors → decoders → aggregator → transmitter → captured serial
line, decoded back the way a receiver would.
"""

import pytest


EXPECTED = bytes.fromhex("1A2B3C4D" "00000000" "FFFFFFFF")


class TestMuxConfig:
    """Test configuration mapping from TOML sections."""

    def test_defaults(self):
        from dht_mux.engine.mux_engine import MuxConfig
        from dht_mux.engine.aggregator import BarrierPolicy, RearmPolicy

        config = MuxConfig()

        assert config.tick_rate_hz == 12_000_000
        assert config.baud_rate == 115200
        assert config.sensor_count == 3
        assert config.bits_per_reading == 32
        assert config.rearm is RearmPolicy.CONTINUOUS
        assert config.barrier is BarrierPolicy.WAIT

    def test_from_dict(self):
        from dht_mux.engine.mux_engine import MuxConfig
        from dht_mux.engine.aggregator import BarrierPolicy, RearmPolicy

        config = MuxConfig.from_dict({
            'timing': {'tick_rate_hz': 1_000_000},
            'serial': {'baud_rate': 9600},
            'sensors': {'count': 2, 'bits_per_reading': 16},
            'decoder': {'stall_timeout_us': 0},
            'aggregator': {
                'pre_delay_ticks': 5,
                'rearm': 'freeze',
                'barrier': 'fill',
                'barrier_timeout_ms': 30,
                'fill_value': 0xFFFF,
            },
        })

        assert config.tick_rate_hz == 1_000_000
        assert config.baud_rate == 9600
        assert config.sensor_count == 2
        assert config.bits_per_reading == 16
        assert config.stall_timeout_us is None
        assert config.rearm is RearmPolicy.FREEZE
        assert config.barrier is BarrierPolicy.FILL

        agg = config.aggregator_config()
        assert agg.barrier_timeout_ticks == 30_000
        assert agg.pre_delay_ticks == 5
        assert agg.fill_value == 0xFFFF

        assert config.decoder_timing().stall_timeout is None

    def test_wait_policy_has_no_timeout(self):
        from dht_mux.engine.mux_engine import MuxConfig

        config = MuxConfig(tick_rate_hz=1_000_000, barrier_timeout_ms=30)

        assert config.aggregator_config().barrier_timeout_ticks is None

    def test_invalid_policy(self):
        from dht_mux.engine.mux_engine import MuxConfig

        with pytest.raises(ValueError):
            MuxConfig.from_dict({'aggregator': {'rearm': 'never'}})

    def test_invalid_sensor_count(self):
        from dht_mux.engine.mux_engine import MuxConfig

        with pytest.raises(ValueError):
            MuxConfig(sensor_count=0)

    @pytest.mark.parametrize("kwargs", [
        {'tick_rate_hz': 1_000_000, 'baud_rate': 2_000_000},
        {'tick_rate_hz': 100_000},
        {'barrier': 'skip'},
        {'barrier': 'fill', 'barrier_timeout_ms': 0},
    ])
    def test_derived_settings_validated_up_front(self, kwargs):
        """Bad bit periods, sub-tick windows and timeout-less policies fail at config time."""
        from dht_mux.engine.mux_engine import MuxConfig

        with pytest.raises(ValueError):
            MuxConfig(**kwargs)


class TestEngineConstruction:

    def test_line_count_must_match(self):
        from dht_mux.engine.mux_engine import MuxConfig, MuxEngine
        from dht_mux.timing.sensor_simulator import SimulatedSensor

        config = MuxConfig(tick_rate_hz=1_000_000, sensor_count=3)
        lines = [SimulatedSensor(1_000_000) for _ in range(2)]

        with pytest.raises(ValueError):
            MuxEngine(config, lines)

    def test_capture_is_opt_in(self, end_to_end_readings):
        from dht_mux.engine.mux_engine import MuxConfig, MuxEngine

        config = MuxConfig(tick_rate_hz=1_000_000)
        engine = MuxEngine.simulated(config, end_to_end_readings)

        engine.run(1000)

        assert engine.capture is None
        # sensors, decoders, aggregator, transmitter
        assert len(engine.time_base._subscribers) == 3 + 3 + 1 + 1

    def test_lines_without_tick_are_not_subscribed(self):
        """A passive SensorLine (real hardware) is only read and written."""
        from dht_mux.engine.mux_engine import MuxConfig, MuxEngine
        from dht_mux.interfaces.sensor_line import SensorLine

        class PulledUpLine(SensorLine):
            def set_direction(self, direction):
                pass

            def write(self, bit):
                pass

            def read(self):
                return 1

        config = MuxConfig(tick_rate_hz=1_000_000, sensor_count=1)
        engine = MuxEngine(config, [PulledUpLine()], capture=False)

        engine.run(20_000)

        assert engine.capture is None
        assert engine.ticks == 20_000
        assert engine.decoders[0].stalls == 1
        assert engine.packets == []


class TestEndToEnd:
    """Known readings in, known bytes out on the wire."""

    def test_three_sensors_one_packet(self, end_to_end_readings):
        from dht_mux.engine.mux_engine import MuxConfig, MuxEngine

        config = MuxConfig(tick_rate_hz=1_000_000, baud_rate=9600, rearm='freeze')
        engine = MuxEngine.simulated(config, end_to_end_readings, capture=True)

        packets = engine.run_packets(1, max_ticks=100_000)

        assert len(packets) == 1
        assert packets[0].to_bytes() == EXPECTED
        assert engine.capture.data == EXPECTED

    def test_frames_are_well_formed_and_spaced(self, end_to_end_readings):
        from dht_mux.engine.mux_engine import MuxConfig, MuxEngine

        config = MuxConfig(tick_rate_hz=1_000_000, baud_rate=9600, rearm='freeze')
        engine = MuxEngine.simulated(config, end_to_end_readings, capture=True)
        engine.run_packets(1, max_ticks=100_000)

        frames = engine.capture.frames()
        period = engine.transmitter.bit_period

        assert len(frames) == 12
        assert all(f.framing_ok for f in frames)
        starts = [f.start_tick for f in frames]
        assert all(b - a >= 10 * period for a, b in zip(starts, starts[1:]))

        intervals = engine.capture.busy_intervals()
        assert all(length == 10 * period for _, length in intervals)

    def test_continuous_mode_repeats(self, end_to_end_readings):
        from dht_mux.engine.mux_engine import MuxConfig, MuxEngine

        config = MuxConfig(tick_rate_hz=1_000_000, baud_rate=115200)
        engine = MuxEngine.simulated(config, end_to_end_readings, capture=True)

        packets = engine.run_packets(2, max_ticks=150_000)

        assert len(packets) == 2
        assert [p.sequence for p in packets] == [0, 1]
        assert engine.capture.data == EXPECTED * 2
        assert all(d.readings == 2 for d in engine.decoders)

    def test_freeze_sends_exactly_once(self, end_to_end_readings):
        from dht_mux.engine.mux_engine import MuxConfig, MuxEngine

        config = MuxConfig(tick_rate_hz=1_000_000, baud_rate=115200, rearm='freeze')
        engine = MuxEngine.simulated(config, end_to_end_readings, capture=True)

        packets = engine.run_packets(2, max_ticks=120_000)

        assert len(packets) == 1
        assert engine.aggregator.frozen
        assert engine.capture.data == EXPECTED
        assert all(d.ready for d in engine.decoders)

    def test_dead_sensor_filled(self):
        from dht_mux.engine.mux_engine import MuxConfig, MuxEngine
        from dht_mux.timing.sensor_simulator import SimulatedSensor

        config = MuxConfig(
            tick_rate_hz=1_000_000,
            baud_rate=115200,
            rearm='freeze',
            barrier='fill',
            barrier_timeout_ms=30,
            fill_value=0,
        )
        lines = [
            SimulatedSensor(1_000_000, reading=0x1A2B3C4D),
            SimulatedSensor(1_000_000, responsive=False),
            SimulatedSensor(1_000_000, reading=0xFFFFFFFF),
        ]
        engine = MuxEngine(config, lines, capture=True)

        packets = engine.run_packets(1, max_ticks=60_000)

        assert len(packets) == 1
        assert packets[0].filled == [1]
        assert engine.capture.data == EXPECTED
        assert engine.decoders[1].stalls >= 1
        assert engine.stats['barrier_timeouts'] == 1

    def test_jittered_sensors(self, end_to_end_readings):
        from dht_mux.engine.mux_engine import MuxConfig, MuxEngine
        from dht_mux.timing.sensor_simulator import SensorTiming

        config = MuxConfig(tick_rate_hz=1_000_000, baud_rate=115200, rearm='freeze')
        engine = MuxEngine.simulated(
            config, end_to_end_readings, timing=SensorTiming(jitter_us=5.0), seed=42, capture=True
        )

        engine.run_packets(1, max_ticks=60_000)

        assert engine.capture.data == EXPECTED

    def test_on_packet_callback(self, end_to_end_readings):
        from dht_mux.engine.mux_engine import MuxConfig, MuxEngine

        received = []
        config = MuxConfig(tick_rate_hz=1_000_000, baud_rate=115200, rearm='freeze')
        engine = MuxEngine.simulated(config, end_to_end_readings, on_packet=received.append)

        engine.run_packets(1, max_ticks=60_000)

        assert len(received) == 1
        assert received[0] is engine.packets[0]

    def test_budget_exhausted(self, end_to_end_readings):
        from dht_mux.engine.mux_engine import MuxConfig, MuxEngine

        config = MuxConfig(tick_rate_hz=1_000_000, baud_rate=115200)
        engine = MuxEngine.simulated(config, end_to_end_readings, capture=True)

        packets = engine.run_packets(1, max_ticks=1000)

        assert packets == []
        assert engine.ticks == 1000

    def test_stats(self, end_to_end_readings):
        from dht_mux.engine.mux_engine import MuxConfig, MuxEngine

        config = MuxConfig(tick_rate_hz=1_000_000, baud_rate=115200, rearm='freeze')
        engine = MuxEngine.simulated(config, end_to_end_readings, capture=True)
        engine.run_packets(1, max_ticks=60_000)

        stats = engine.stats

        assert stats['packets_sent'] == 1
        assert stats['bytes_sent'] == 12
        assert stats['aggregator_state'] == 'FROZEN'
        assert set(stats['decoders']) == {'sensor0', 'sensor1', 'sensor2'}
        assert stats['seconds'] == pytest.approx(stats['ticks'] / 1_000_000)

    def test_board_clock(self, end_to_end_readings):
        """Default 12 MHz / 115200 baud configuration."""
        from dht_mux.engine.mux_engine import MuxConfig, MuxEngine

        config = MuxConfig(rearm='freeze')
        engine = MuxEngine.simulated(config, end_to_end_readings, capture=True)

        packets = engine.run_packets(1, max_ticks=400_000)

        assert len(packets) == 1
        assert engine.capture.data == EXPECTED
