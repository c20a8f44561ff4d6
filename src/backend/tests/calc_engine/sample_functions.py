"""Targets, keys and functions shared by the calculation engine tests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from common.calc_engine.function import CalculationFunction
from common.calc_engine.market_data import (
    CalculationMarketData,
    FunctionRequirements,
    MarketDataFeed,
    MarketDataId,
    MarketDataKey,
    ObservableId,
    ObservableKey,
)
from common.calc_engine.models import Currency, CurrencyAmount, ScenarioResult


class SampleTarget:
    pass


class OtherTarget:
    pass


@dataclass(frozen=True)
class SampleKey(MarketDataKey):
    name: str


@dataclass(frozen=True)
class SampleId(MarketDataId):
    name: str


@dataclass(frozen=True)
class SampleObservableKey(ObservableKey):
    name: str

    def to_market_data_id(self, feed: MarketDataFeed) -> ObservableId:
        return ObservableId(self.name, feed)


class RequirementsFunction(CalculationFunction):
    """Needs one key of each kind and returns a plain string."""

    def requirements(self, target: Any) -> FunctionRequirements:
        return FunctionRequirements.of(
            single_values=[SampleKey("1"), SampleObservableKey("2")],
            time_series=[SampleObservableKey("3")],
        )

    def execute(self, target: Any, market_data: CalculationMarketData) -> Any:
        return "bar"


class ConstantFunction(CalculationFunction):
    def __init__(self, value: Any = "foo"):
        self.value = value

    def requirements(self, target: Any) -> FunctionRequirements:
        return FunctionRequirements.empty()

    def execute(self, target: Any, market_data: CalculationMarketData) -> Any:
        return self.value


class OtherConstantFunction(ConstantFunction):
    def __init__(self):
        super().__init__("other")


class ScenarioResultFunction(CalculationFunction):
    def __init__(self, result: ScenarioResult):
        self.result = result

    def requirements(self, target: Any) -> FunctionRequirements:
        return FunctionRequirements.empty()

    def execute(self, target: Any, market_data: CalculationMarketData) -> ScenarioResult:
        return self.result


class FailingFunction(CalculationFunction):
    def requirements(self, target: Any) -> FunctionRequirements:
        return FunctionRequirements.empty()

    def execute(self, target: Any, market_data: CalculationMarketData) -> Any:
        raise ZeroDivisionError("boom")


class QuoteFunction(CalculationFunction):
    """Reads a single non-observable value."""

    def requirements(self, target: Any) -> FunctionRequirements:
        return FunctionRequirements.of(single_values=[SampleKey("quote")])

    def execute(self, target: Any, market_data: CalculationMarketData) -> Any:
        return market_data.get_value(SampleKey("quote"))


class UndeclaredDataFunction(CalculationFunction):
    """Reads market data it never declared."""

    def requirements(self, target: Any) -> FunctionRequirements:
        return FunctionRequirements.empty()

    def execute(self, target: Any, market_data: CalculationMarketData) -> Any:
        return market_data.get_value(SampleKey("quote"))


class EurAmountFunction(CalculationFunction):
    """Returns 100 EUR per scenario, declaring EUR as its output currency."""

    def __init__(self, declare_currency: bool = True):
        self.declare_currency = declare_currency

    def requirements(self, target: Any) -> FunctionRequirements:
        if not self.declare_currency:
            return FunctionRequirements.empty()
        return FunctionRequirements.of(output_currencies=[Currency("EUR")])

    def execute(self, target: Any, market_data: CalculationMarketData) -> ScenarioResult:
        return ScenarioResult(tuple(CurrencyAmount(Currency("EUR"), 100.0) for _ in range(market_data.scenario_count)))
