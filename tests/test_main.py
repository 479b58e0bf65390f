"""
Tests for configuration loading and the command-line entry point.
"""

import json
import sys

import pytest


class TestLoadConfig:

    def test_defaults(self):
        from dht_mux.main import load_config

        config = load_config()

        assert config['timing']['tick_rate_hz'] == 12_000_000
        assert config['serial']['baud_rate'] == 115200
        assert config['sensors']['count'] == 3
        assert config['aggregator']['rearm'] == 'continuous'
        assert config['aggregator']['barrier'] == 'wait'

    def test_missing_file_falls_back(self, tmp_path, caplog):
        from dht_mux.main import load_config

        config = load_config(str(tmp_path / "nope.toml"))

        assert config['serial']['baud_rate'] == 115200
        assert "not found" in caplog.text

    def test_toml_file(self, tmp_path):
        from dht_mux.main import load_config
        from dht_mux.engine.mux_engine import MuxConfig

        path = tmp_path / "config.toml"
        path.write_text(
            "[timing]\n"
            "tick_rate_hz = 1000000\n"
            "\n"
            "[serial]\n"
            "baud_rate = 9600\n"
            "\n"
            "[sensors]\n"
            "count = 2\n"
            "readings = [287454020, 1432778632]\n"
            "\n"
            "[aggregator]\n"
            "inter_sensor_delay_ticks = 250\n"
            "rearm = \"freeze\"\n"
        )

        config = load_config(str(path))
        mux_config = MuxConfig.from_dict(config)

        assert config['sensors']['readings'] == [0x11223344, 0x55667788]
        assert mux_config.tick_rate_hz == 1_000_000
        assert mux_config.baud_rate == 9600
        assert mux_config.inter_sensor_delay_ticks == 250
        assert mux_config.pre_delay_ticks == 10


class TestParseReadings:

    def test_hex_words(self):
        from dht_mux.main import parse_readings

        assert parse_readings(["1A2B3C4D", "0x00000000", "ffffffff"]) == [0x1A2B3C4D, 0, 0xFFFFFFFF]

    @pytest.mark.parametrize("bad", ["xyz", "100000000"])
    def test_rejects(self, bad):
        from dht_mux.main import parse_readings

        with pytest.raises(ValueError):
            parse_readings([bad])

    def test_error_hides_int_parse_chain(self):
        from dht_mux.main import parse_readings

        with pytest.raises(ValueError) as exc:
            parse_readings(["xyz"])

        assert exc.value.__cause__ is None
        assert exc.value.__suppress_context__


class TestMain:

    def test_one_packet_to_stream_and_stdout(self, tmp_path, monkeypatch, capsys):
        from dht_mux.main import main

        stream = tmp_path / "mux.bin"
        summary = tmp_path / "mux.json"
        monkeypatch.setattr(sys, 'argv', [
            'dht-mux',
            '--tick-rate', '1000000',
            '--readings', '1A2B3C4D', '00000000', 'FFFFFFFF',
            '--freeze',
            '--stream', str(stream),
            '--summary', str(summary),
        ])

        main()

        assert stream.read_bytes() == bytes.fromhex("1A2B3C4D00000000FFFFFFFF")
        assert json.loads(summary.read_text())['bytes'] == "1a2b3c4d00000000ffffffff"

        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 1
        telemetry = json.loads(lines[0])
        assert telemetry['packet'] == 0
        assert telemetry['sensor0.humidity'] == pytest.approx(26.43)
        assert telemetry['sensor2.temperature'] == pytest.approx(257.55)

    def test_random_readings(self, monkeypatch, capsys):
        from dht_mux.main import main

        monkeypatch.setattr(sys, 'argv', [
            'dht-mux', '--tick-rate', '1000000', '--random', '--seed', '3', '--freeze',
        ])

        main()

        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 1
        assert set(json.loads(lines[0])) >= {'sensor0.humidity', 'sensor2.temperature'}

    def test_tick_budget_exhausted_exits_1(self, monkeypatch):
        from dht_mux.main import main

        monkeypatch.setattr(sys, 'argv', [
            'dht-mux', '--tick-rate', '1000000', '--max-ticks', '100',
        ])

        with pytest.raises(SystemExit) as exc:
            main()

        assert exc.value.code == 1

    def test_bad_readings_exit_2(self, monkeypatch):
        from dht_mux.main import main

        monkeypatch.setattr(sys, 'argv', ['dht-mux', '--readings', 'nothex'])

        with pytest.raises(SystemExit) as exc:
            main()

        assert exc.value.code == 2

    @pytest.mark.parametrize("flags", [
        ['--tick-rate', '1000000', '--baud', '2000000'],
        ['--tick-rate', '100000'],
    ])
    def test_bad_timing_exit_2(self, flags, monkeypatch):
        from dht_mux.main import main

        monkeypatch.setattr(sys, 'argv', ['dht-mux'] + flags)

        with pytest.raises(SystemExit) as exc:
            main()

        assert exc.value.code == 2

    def test_policy_without_timeout_exit_2(self, tmp_path, monkeypatch):
        from dht_mux.main import main

        path = tmp_path / "config.toml"
        path.write_text("[timing]\ntick_rate_hz = 1000000\n\n[aggregator]\nbarrier = \"skip\"\n")
        monkeypatch.setattr(sys, 'argv', ['dht-mux', '--config', str(path)])

        with pytest.raises(SystemExit) as exc:
            main()

        assert exc.value.code == 2
