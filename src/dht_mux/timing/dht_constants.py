#!/usr/bin/env python3
"""
Single-Wire Humidity/Temperature Sensor Constants

================================================================================
PURPOSE
================================================================================
Single source of truth for the protocol timing windows, serial defaults and
scheduler defaults used across the decoder, the sensor model and the
aggregator. Values are in microseconds or milliseconds; every consumer turns
them into tick counts with timing.ticks, never the other way round.

================================================================================
SENSOR LINE PROTOCOL
================================================================================
    HOST                                SENSOR
    ────                                ──────
    drive low  >= 18 ms
    drive high ~8 us, then input
                                        wait 20-40 us (line pulled high)
                                        low  ~80 us   (response low)
                                        high ~80 us   (response high)
                                        40 × [low ~50 us][high 26-28 / 70 us]
                                        low ~50 us, release

    ┌──────────────┬──────────┬──────────────────────────────────┐
    │ Symbol       │ High     │ Decision                         │
    ├──────────────┼──────────┼──────────────────────────────────┤
    │ Binary 0     │ 26-28 us │ high <  BIT_THRESHOLD_US         │
    │ Binary 1     │ 70 us    │ high >= BIT_THRESHOLD_US         │
    └──────────────┴──────────┴──────────────────────────────────┘

Data arrives MSB first: humidity int, humidity frac, temperature int,
temperature frac, checksum (low 8 bits of the sum of the four data bytes).

================================================================================
TICK ARITHMETIC
================================================================================
Thresholds become tick counts with floor(tick_rate × us / 1,000,000) (or
/ 1,000 for ms). Only tick rates that are exact multiples of 1 kHz give
reproducible millisecond thresholds; exact multiples of 1 MHz are needed for
the microsecond ones.
"""

# =============================================================================
# TIME BASE
# =============================================================================

DEFAULT_TICK_RATE_HZ = 12_000_000    # 12 MHz board oscillator
MICROSECONDS_PER_SECOND = 1_000_000
MILLISECONDS_PER_SECOND = 1_000

# =============================================================================
# HOST SIDE (ProtocolDecoder)
# =============================================================================

START_LOW_MS = 18                    # Host start pulse
RELEASE_US = 8                       # Host drives high before going input
RESPONSE_MIN_HIGH_US = 80            # Qualifying response-high pulse
BIT_LOW_US = 50                      # Nominal bit-start low phase
BIT_LOW_MARGIN_US = 10               # Shortest accepted = BIT_LOW_US - margin
BIT_THRESHOLD_US = 50                # High >= threshold decodes as 1
STALL_TIMEOUT_US = 1000              # Bounded wait for any expected edge

# =============================================================================
# SENSOR SIDE (SimulatedSensor)
# =============================================================================

SENSOR_MIN_START_LOW_MS = 18         # Sensor ignores shorter host lows
RESPONSE_DELAY_US = 30               # Pull-up time before the response low
RESPONSE_LOW_US = 80
RESPONSE_HIGH_US = 80
BIT_ZERO_HIGH_US = 27
BIT_ONE_HIGH_US = 70
END_LOW_US = 50

# =============================================================================
# READING LAYOUT
# =============================================================================

READING_WIDTHS = (16, 32)            # Supported accumulator widths
DEFAULT_BITS_PER_READING = 32
CHECKSUM_BITS = 8
SENSOR_FRAME_BITS = 40               # What the sensor always sends
FIELD_NAMES = (
    'humidity_int',
    'humidity_frac',
    'temperature_int',
    'temperature_frac',
)

# =============================================================================
# SERIAL OUTPUT
# =============================================================================

DEFAULT_BAUD_RATE = 115200           # Also seen: 9600
UART_FRAME_BITS = 10                 # 1 start + 8 data + 1 stop

# =============================================================================
# AGGREGATOR
# =============================================================================

DEFAULT_SENSOR_COUNT = 3
DEFAULT_PRE_DELAY_TICKS = 10
DEFAULT_INTER_SENSOR_DELAY_TICKS = 100
DEFAULT_INTER_BYTE_DELAY_TICKS = 0
