"""
Market Farmer

An autonomous forecasting-and-betting agent for binary prediction markets on
two venues: Manifold (pooled liquidity, play money) and Polymarket (order
book, real money).

Each run is a pipeline:
1. Filter markets down to the ones worth estimating
2. Ask the estimator for a probability and a confidence label
3. Size the stake with fractional Kelly (slippage-aware on pooled markets)
4. Place the bet, journal everything under one trace id
5. Reconcile resolutions and feed calibration back into the next estimate
"""

from .services import (
    Farmer,
    Journal,
    ExecutionDispatcher,
    ResolutionService,
    ExitService,
)
from .api import router

__all__ = [
    'Farmer',
    'Journal',
    'ExecutionDispatcher',
    'ResolutionService',
    'ExitService',
    'router',
]
