"""Calculation engine for grids of trades x measures.

This package intentionally contains only dispatch and execution:
- Pricing, market data and reporting rules resolve what each cell runs.
- Market data arrives as a prebuilt, read-only environment.
- No market data sourcing or persistence lives here.
"""

from .config import (
    CalculationRules,
    FunctionGroup,
    MarketDataRule,
    MarketDataRules,
    PricingRule,
    PricingRules,
    ReportingRules,
)
from .function import CalculationFunction
from .market_data import (
    CalculationEnvironment,
    CalculationMarketData,
    FunctionRequirements,
    MarketDataFeed,
    MarketDataMappings,
    MarketDataRequirements,
    MarketEnvironment,
    NoMatchingRuleId,
    ScenarioValues,
)
from .models import (
    CalculationResult,
    Column,
    Currency,
    CurrencyAmount,
    FailureReason,
    Measure,
    Result,
    ScenarioResult,
)
from .results import Results, build_run_report
from .runner import CalculationListener, CalculationTaskRunner, ResultsListener
from .tasks import CalculationTask, CalculationTasks

# Import built-in functions so they self-register with the global registry.
from . import functions as _builtin_functions  # noqa: F401
