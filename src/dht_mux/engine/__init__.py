"""Scheduling engine - barrier aggregation onto the shared serial output.

Contains:
- Aggregator: all-ready barrier and fixed-order byte scheduling
- MuxEngine: decoders, aggregator and transmitter on one time base
"""

from .aggregator import Aggregator, AggregatorConfig, RearmPolicy, BarrierPolicy, TxState
from .mux_engine import MuxEngine, MuxConfig

__all__ = [
    'Aggregator', 'AggregatorConfig', 'RearmPolicy', 'BarrierPolicy', 'TxState',
    'MuxEngine', 'MuxConfig',
]
