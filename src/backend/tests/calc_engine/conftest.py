import os
import sys


# Ensure `src/backend` and this directory are on sys.path so `import common...`
# and `import sample_functions` work.
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
TESTS_DIR = os.path.abspath(os.path.dirname(__file__))
for _path in (BACKEND_DIR, TESTS_DIR):
    if _path not in sys.path:
        sys.path.insert(0, _path)

from datetime import date

import pytest
from loguru import logger

from common.calc_engine.config import CalculationRules, MarketDataRules, PricingRules, ReportingRules
from common.calc_engine.market_data import MarketDataMappings, MarketEnvironment
from common.calc_engine.models import Column, Measure
from common.calc_engine.runner import CalculationTaskRunner
from common.calc_engine.tasks import CalculationTask, CalculationTasks


@pytest.fixture(autouse=True)
def silence_logger():
    logger.remove()
    logger.add(lambda msg: None)
    yield


@pytest.fixture
def valuation_date() -> date:
    return date(2011, 3, 8)


@pytest.fixture
def make_environment(valuation_date):
    def _make(*, values=None, time_series=None, scenario_count: int = 1) -> MarketEnvironment:
        return MarketEnvironment(
            valuation_date,
            values=values or {},
            time_series=time_series or {},
            scenario_count=scenario_count,
        )

    return _make


@pytest.fixture
def make_single_task_grid():
    def _make(
        function,
        *,
        target=None,
        measure: Measure = Measure.PRESENT_VALUE,
        mappings: MarketDataMappings | None = None,
        reporting_rules: ReportingRules | None = None,
    ) -> CalculationTasks:
        task = CalculationTask.of(
            target if target is not None else object(),
            measure,
            0,
            0,
            function,
            mappings or MarketDataMappings.empty(),
            reporting_rules or ReportingRules.empty(),
        )
        return CalculationTasks.from_tasks([task], [Column.of(measure)])

    return _make


@pytest.fixture
def make_rules():
    def _make(
        *,
        pricing_rules: PricingRules | None = None,
        market_data_rules: MarketDataRules | None = None,
        reporting_rules: ReportingRules | None = None,
    ) -> CalculationRules:
        return CalculationRules.of(
            pricing_rules or PricingRules.empty(),
            market_data_rules or MarketDataRules.empty(),
            reporting_rules or ReportingRules.empty(),
        )

    return _make


@pytest.fixture
def direct_runner() -> CalculationTaskRunner:
    # The direct executor needs no shutdown.
    return CalculationTaskRunner.direct()
