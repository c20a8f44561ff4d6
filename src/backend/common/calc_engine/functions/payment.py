from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date

from ..function import CalculationFunction
from ..market_data import (
    CalculationMarketData,
    FunctionRequirements,
    MarketDataFeed,
    MarketDataId,
    MarketDataKey,
    MarketDataMappings,
)
from ..models import Currency, CurrencyAmount, Measure, ScenarioResult
from ..registry import register_function


@dataclass(frozen=True)
class Payment:
    trade_id: str
    currency: Currency
    amount: float
    payment_date: date


@dataclass(frozen=True)
class DiscountRateKey(MarketDataKey):
    currency: Currency


@dataclass(frozen=True)
class DiscountCurveId(MarketDataId):
    curve_group: str
    currency: Currency

    def __str__(self) -> str:
        return f"{self.curve_group}/{self.currency}"


@dataclass(frozen=True)
class _CurveGroupMapping:
    curve_group: str

    def __call__(self, key: DiscountRateKey) -> DiscountCurveId:
        return DiscountCurveId(self.curve_group, key.currency)


def discount_curve_mappings(curve_group: str, feed: MarketDataFeed = MarketDataFeed.NONE) -> MarketDataMappings:
    """Mappings resolving discount rate keys to the curves of `curve_group`."""
    return MarketDataMappings.of(feed, {DiscountRateKey: _CurveGroupMapping(curve_group)})


def _year_fraction(start: date, end: date) -> float:
    return (end - start).days / 365.0


@register_function
class PaymentPvFunction(CalculationFunction):
    """Present value of a single payment, discounted at a continuously compounded zero rate."""

    function_id = "payment-present-value"
    target_type = Payment
    measure = Measure.PRESENT_VALUE

    def requirements(self, target: Payment) -> FunctionRequirements:
        return FunctionRequirements.of(
            single_values=[DiscountRateKey(target.currency)],
            output_currencies=[target.currency],
        )

    def execute(self, target: Payment, market_data: CalculationMarketData) -> ScenarioResult:
        t = _year_fraction(market_data.valuation_date, target.payment_date)
        if t < 0:
            return ScenarioResult(tuple(CurrencyAmount(target.currency, 0.0) for _ in range(market_data.scenario_count)))
        rates = market_data.get_values(DiscountRateKey(target.currency))
        return ScenarioResult(
            tuple(CurrencyAmount(target.currency, target.amount * math.exp(-float(r) * t)) for r in rates)
        )


@register_function
class PaymentForecastValueFunction(CalculationFunction):
    """Undiscounted amount of a payment still to be made."""

    function_id = "payment-forecast-value"
    target_type = Payment
    measure = Measure.FORECAST_VALUE

    def requirements(self, target: Payment) -> FunctionRequirements:
        return FunctionRequirements.of(output_currencies=[target.currency])

    def execute(self, target: Payment, market_data: CalculationMarketData) -> CurrencyAmount:
        if target.payment_date < market_data.valuation_date:
            return CurrencyAmount(target.currency, 0.0)
        return CurrencyAmount(target.currency, target.amount)
