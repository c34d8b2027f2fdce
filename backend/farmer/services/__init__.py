"""
Farmer Services
"""
from .journal import Journal
from .eligibility import EligibilityConfig, filter_markets, filter_polymarket_markets, is_eligible
from .sizing import SizingConfig, SizingResult, kelly_fraction, size_plain, size_with_slippage
from .strategy_engine import StrategyConfig, make_decision, error_decision
from .execution_service import ExecutionDispatcher
from .resolution_service import ResolutionService, open_positions
from .evaluation_service import CalibrationConfig, compute_calibration, format_feedback
from .exit_service import ExitService, MonitorReport
from .market_data_service import ManifoldClient, PolymarketClient
from .pipeline import Farmer

__all__ = [
    'Journal',
    'EligibilityConfig', 'filter_markets', 'filter_polymarket_markets', 'is_eligible',
    'SizingConfig', 'SizingResult', 'kelly_fraction', 'size_plain', 'size_with_slippage',
    'StrategyConfig', 'make_decision', 'error_decision',
    'ExecutionDispatcher',
    'ResolutionService', 'open_positions',
    'CalibrationConfig', 'compute_calibration', 'format_feedback',
    'ExitService', 'MonitorReport',
    'ManifoldClient', 'PolymarketClient',
    'Farmer',
]
