#!/usr/bin/env python3
"""
dht-mux: Multi-sensor humidity/temperature serial multiplexer

Main entry point. Builds a mux over simulated sensors and runs it on the
shared tick time base:
1. Each ProtocolDecoder runs the single-wire handshake with its sensor
2. The Aggregator waits for every decoder, then latches their readings
3. Readings go out over one 8-N-1 serial line, in sensor order
4. The captured serial line is decoded the way the downstream relay reads it

Usage:
    # Run with a config file
    dht-mux --config /etc/dht-mux/config.toml

    # Three sensors, one packet, known readings
    dht-mux --tick-rate 1000000 --readings 1A2B3C4D 00000000 FFFFFFFF

Serial contract:
    sensor 0 bytes │ sensor 1 bytes │ ... │ sensor N-1 bytes
    (MSB first, bits_per_reading / 8 bytes each, no delimiters)
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import toml

# Set up logging before imports that use it
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger('dht-mux')

from .engine.mux_engine import MuxConfig, MuxEngine
from .output.packet_stream import PacketReader, PacketWriter

DEFAULT_READINGS = [0x1A2B3C4D, 0x00000000, 0xFFFFFFFF]


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from TOML file."""
    if config_path and Path(config_path).exists():
        with open(config_path, 'r') as f:
            return toml.load(f)

    if config_path:
        logger.warning(f"Config file {config_path} not found, using defaults")

    # Default configuration
    return {
        'timing': {
            'tick_rate_hz': 12_000_000,
        },
        'serial': {
            'baud_rate': 115200,
        },
        'sensors': {
            'count': 3,
            'bits_per_reading': 32,
            'verify_checksum': False,
            'readings': list(DEFAULT_READINGS),
        },
        'decoder': {
            'stall_timeout_us': 1000,
            'idle_holdoff_ms': 0,
        },
        'aggregator': {
            'pre_delay_ticks': 10,
            'inter_sensor_delay_ticks': 100,
            'inter_byte_delay_ticks': 0,
            'rearm': 'continuous',
            'barrier': 'wait',
            'barrier_timeout_ms': 0,
            'fill_value': 0,
        },
        'output': {
            'stream_path': '',
            'summary_path': '',
        },
    }


def parse_readings(values: List[str]) -> List[int]:
    """Parse hex words like '1A2B3C4D' or '0x1A2B3C4D'."""
    readings = []
    for v in values:
        try:
            word = int(v, 16)
        except ValueError:
            raise ValueError(f"Not a hex reading: {v!r}") from None
        if not 0 <= word <= 0xFFFFFFFF:
            raise ValueError(f"Reading {v!r} does not fit in 32 bits")
        readings.append(word)
    return readings


def estimate_packet_ticks(config: MuxConfig, engine: MuxEngine) -> int:
    """Rough upper bound on ticks for one acquisition plus transmission."""
    timing = config.decoder_timing()
    acquisition = timing.idle_holdoff + timing.start_low + timing.release
    # 40 bits at < 150 us each plus the response preamble
    acquisition += int(config.tick_rate_hz * 0.0065)
    n_bytes = config.sensor_count * config.bits_per_reading // 8
    transmission = (
        config.pre_delay_ticks
        + n_bytes * (engine.transmitter.frame_ticks + config.inter_byte_delay_ticks + 4)
        + config.sensor_count * config.inter_sensor_delay_ticks
    )
    return 2 * (acquisition + transmission)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='dht-mux: Multi-sensor humidity/temperature serial multiplexer',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Start with config file
    dht-mux --config /etc/dht-mux/config.toml

    # Random readings, 3 packets, raw stream to a file
    dht-mux --random --seed 7 --packets 3 --stream /tmp/dht-mux.bin

    # Stop after the first packet
    dht-mux --freeze
        """
    )

    parser.add_argument(
        '--config', '-c',
        help='Path to TOML configuration file'
    )
    parser.add_argument(
        '--packets', '-n',
        type=int,
        default=1,
        help='Number of packets to transmit (default: 1)'
    )
    parser.add_argument(
        '--max-ticks',
        type=int,
        help='Tick budget (default: estimated from the configuration)'
    )
    parser.add_argument(
        '--readings',
        nargs='+',
        help='Simulated sensor readings as 32-bit hex words (one per sensor)'
    )
    parser.add_argument(
        '--random',
        action='store_true',
        help='Use random simulated readings'
    )
    parser.add_argument(
        '--seed',
        type=int,
        help='Random seed for --random and pulse jitter'
    )
    parser.add_argument(
        '--tick-rate',
        type=int,
        help='Time base rate in Hz (overrides config)'
    )
    parser.add_argument(
        '--baud',
        type=int,
        help='Serial baud rate (overrides config)'
    )
    parser.add_argument(
        '--freeze',
        action='store_true',
        help='Freeze after the first packet instead of re-arming'
    )
    parser.add_argument(
        '--stream',
        help='Append the raw serial byte stream to this file'
    )
    parser.add_argument(
        '--summary',
        help='Write a JSON snapshot of the latest packet to this file'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    # Load configuration
    config = load_config(args.config)

    # Apply command-line overrides
    if args.tick_rate:
        config.setdefault('timing', {})['tick_rate_hz'] = args.tick_rate
    if args.baud:
        config.setdefault('serial', {})['baud_rate'] = args.baud
    if args.freeze:
        config.setdefault('aggregator', {})['rearm'] = 'freeze'
    if args.stream:
        config.setdefault('output', {})['stream_path'] = args.stream
    if args.summary:
        config.setdefault('output', {})['summary_path'] = args.summary

    sensors_config = config.setdefault('sensors', {})
    try:
        if args.readings:
            readings = parse_readings(args.readings)
        elif args.random:
            rng = np.random.default_rng(args.seed)
            count = int(sensors_config.get('count', len(DEFAULT_READINGS)))
            readings = [int(w) for w in rng.integers(0, 1 << 32, size=count, dtype=np.uint64)]
        else:
            readings = [int(w) for w in sensors_config.get('readings', DEFAULT_READINGS)]
        sensors_config['count'] = len(readings)
        mux_config = MuxConfig.from_dict(config)

        output_config = config.get('output', {})
        writer = None
        if output_config.get('stream_path') or output_config.get('summary_path'):
            writer = PacketWriter(
                output_config.get('stream_path') or None,
                output_config.get('summary_path') or None,
            )

        engine = MuxEngine.simulated(
            mux_config,
            readings,
            seed=args.seed,
            on_packet=writer.write if writer else None,
            capture=True,
        )
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    max_ticks = args.max_ticks or args.packets * estimate_packet_ticks(mux_config, engine)
    logger.info(f"Running for up to {max_ticks} ticks ({max_ticks / mux_config.tick_rate_hz:.3f} s)")

    packets = engine.run_packets(args.packets, max_ticks)

    # Decode what actually went over the wire
    reader = PacketReader(mux_config.sensor_count, mux_config.bits_per_reading)
    wire = engine.capture.data if engine.capture is not None else b''
    for i, telemetry in enumerate(reader.feed(wire)):
        print(json.dumps({'packet': i, **telemetry}))

    logger.info(f"Stats: {json.dumps(engine.stats)}")

    if len(packets) < args.packets:
        logger.error(f"Only {len(packets)}/{args.packets} packets transmitted")
        sys.exit(1)


if __name__ == '__main__':
    main()
