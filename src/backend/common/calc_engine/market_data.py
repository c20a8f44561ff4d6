"""Market data keys, ids and the read-only views handed to calculation functions.

Keys are abstract (what a function needs), ids are concrete (where the data lives).
`MarketDataMappings` turns one into the other. Keys that cannot be mapped become
sentinel ids so the missing mapping is reported per requirement at execution time.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Any, Callable, ClassVar, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Type

from .models import Currency, CurrencyConversionError


class MarketDataError(RuntimeError):
    pass


class NoMatchingRuleError(MarketDataError):
    pass


class MissingMarketDataError(MarketDataError):
    pass


@dataclass(frozen=True)
class MarketDataFeed:
    name: str

    NONE: ClassVar["MarketDataFeed"]
    NO_RULE: ClassVar["MarketDataFeed"]

    @classmethod
    def of(cls, name: str) -> "MarketDataFeed":
        return cls(name)

    def __str__(self) -> str:
        return self.name


MarketDataFeed.NONE = MarketDataFeed("None")
MarketDataFeed.NO_RULE = MarketDataFeed("NoMatchingMarketDataRule")


class MarketDataKey:
    """A non-observable requirement resolved through a key-type mapping."""


class MarketDataId:
    """A concrete identifier the environment can look up."""


class SimpleMarketDataKey(MarketDataKey):
    """A key that converts to its id without any market data rule."""

    def to_market_data_id(self) -> MarketDataId:  # pragma: no cover
        raise NotImplementedError


class ObservableKey(MarketDataKey):
    """A key for data observed in a feed (quotes, fixings)."""

    def to_market_data_id(self, feed: MarketDataFeed) -> "ObservableId":  # pragma: no cover
        raise NotImplementedError


@dataclass(frozen=True)
class ObservableId(MarketDataId):
    standard_id: str
    feed: MarketDataFeed
    field_name: str = "MarketValue"

    def __str__(self) -> str:
        return f"{self.standard_id}/{self.field_name}@{self.feed}"


@dataclass(frozen=True)
class QuoteKey(ObservableKey):
    standard_id: str
    field_name: str = "MarketValue"

    def to_market_data_id(self, feed: MarketDataFeed) -> ObservableId:
        return ObservableId(self.standard_id, feed, self.field_name)


@dataclass(frozen=True)
class NoMatchingRuleId(MarketDataId):
    key: MarketDataKey

    @classmethod
    def of(cls, key: MarketDataKey) -> "NoMatchingRuleId":
        return cls(key)

    def __str__(self) -> str:
        return f"NoMatchingRuleId[{self.key}]"


@dataclass(frozen=True)
class FxRateId(MarketDataId):
    base: Currency
    counter: Currency

    def inverse(self) -> "FxRateId":
        return FxRateId(self.counter, self.base)

    def __str__(self) -> str:
        return f"{self.base}/{self.counter}"


@dataclass(frozen=True)
class FxRateKey(SimpleMarketDataKey):
    base: Currency
    counter: Currency

    def to_market_data_id(self) -> FxRateId:
        return FxRateId(self.base, self.counter)


@dataclass(frozen=True)
class FunctionRequirements:
    single_values: FrozenSet[MarketDataKey] = frozenset()
    time_series: FrozenSet[ObservableKey] = frozenset()
    output_currencies: FrozenSet[Currency] = frozenset()

    @classmethod
    def of(
        cls,
        single_values: Iterable[MarketDataKey] = (),
        time_series: Iterable[ObservableKey] = (),
        output_currencies: Iterable[Currency] = (),
    ) -> "FunctionRequirements":
        return cls(frozenset(single_values), frozenset(time_series), frozenset(output_currencies))

    @classmethod
    def empty(cls) -> "FunctionRequirements":
        return cls()


@dataclass(frozen=True)
class MarketDataRequirements:
    non_observables: FrozenSet[MarketDataId] = frozenset()
    observables: FrozenSet[ObservableId] = frozenset()
    time_series: FrozenSet[ObservableId] = frozenset()

    @classmethod
    def combine(cls, requirements: Iterable["MarketDataRequirements"]) -> "MarketDataRequirements":
        non_observables: set = set()
        observables: set = set()
        time_series: set = set()
        for req in requirements:
            non_observables.update(req.non_observables)
            observables.update(req.observables)
            time_series.update(req.time_series)
        return cls(frozenset(non_observables), frozenset(observables), frozenset(time_series))

    def is_empty(self) -> bool:
        return not (self.non_observables or self.observables or self.time_series)


KeyMapping = Callable[[Any], MarketDataId]


@dataclass(frozen=True)
class MarketDataMappings:
    feed: MarketDataFeed = MarketDataFeed.NONE
    mappings: Mapping[Type[MarketDataKey], KeyMapping] = field(default_factory=dict)

    @classmethod
    def of(
        cls,
        feed: MarketDataFeed,
        mappings: Optional[Mapping[Type[MarketDataKey], KeyMapping]] = None,
    ) -> "MarketDataMappings":
        return cls(feed, MappingProxyType(dict(mappings or {})))

    @classmethod
    def empty(cls) -> "MarketDataMappings":
        return cls.of(MarketDataFeed.NONE)

    @classmethod
    def no_rule(cls) -> "MarketDataMappings":
        """Mappings bound to targets that no market data rule matched."""
        return cls.of(MarketDataFeed.NO_RULE)

    def id_for_key(self, key: MarketDataKey) -> MarketDataId:
        if isinstance(key, ObservableKey):
            return key.to_market_data_id(self.feed)
        if isinstance(key, SimpleMarketDataKey):
            return key.to_market_data_id()
        for key_type in type(key).__mro__:
            mapping = self.mappings.get(key_type)
            if mapping is not None:
                return mapping(key)
        return NoMatchingRuleId.of(key)

    def observable_id(self, key: ObservableKey) -> ObservableId:
        return key.to_market_data_id(self.feed)

    def requirements_for(self, requirements: FunctionRequirements) -> MarketDataRequirements:
        non_observables = set()
        observables = set()
        for key in requirements.single_values:
            market_data_id = self.id_for_key(key)
            if isinstance(market_data_id, ObservableId):
                observables.add(market_data_id)
            else:
                non_observables.add(market_data_id)
        time_series = {self.observable_id(key) for key in requirements.time_series}
        return MarketDataRequirements(frozenset(non_observables), frozenset(observables), frozenset(time_series))


@dataclass(frozen=True)
class ScenarioValues:
    """A market data value that differs per scenario."""

    values: Tuple[Any, ...]

    @classmethod
    def of(cls, *values: Any) -> "ScenarioValues":
        return cls(tuple(values))


def _check_resolvable(market_data_id: MarketDataId) -> None:
    if isinstance(market_data_id, NoMatchingRuleId):
        raise NoMatchingRuleError(
            f"No market data rules were available to build the market data for key {market_data_id.key}"
        )
    if isinstance(market_data_id, ObservableId) and market_data_id.feed == MarketDataFeed.NO_RULE:
        raise NoMatchingRuleError(
            f"No market data rules were available to build the market data for {market_data_id.standard_id}"
        )


class CalculationEnvironment:
    """Read-only market data snapshot covering one or more scenarios."""

    valuation_date: date
    scenario_count: int

    def contains(self, market_data_id: MarketDataId) -> bool:  # pragma: no cover
        raise NotImplementedError

    def get_value(self, market_data_id: MarketDataId, scenario_index: int = 0) -> Any:  # pragma: no cover
        raise NotImplementedError

    def get_time_series(self, market_data_id: ObservableId) -> Mapping[date, float]:  # pragma: no cover
        raise NotImplementedError


class MarketEnvironment(CalculationEnvironment):
    def __init__(
        self,
        valuation_date: date,
        *,
        values: Optional[Mapping[MarketDataId, Any]] = None,
        time_series: Optional[Mapping[ObservableId, Mapping[date, float]]] = None,
        scenario_count: int = 1,
    ):
        if scenario_count < 1:
            raise ValueError("scenario_count must be at least 1")
        values = dict(values or {})
        for market_data_id, value in values.items():
            if isinstance(value, ScenarioValues) and len(value.values) != scenario_count:
                raise ValueError(
                    f"Market data {market_data_id} has {len(value.values)} scenario values "
                    f"but the environment has {scenario_count} scenarios"
                )
        self.valuation_date = valuation_date
        self.scenario_count = scenario_count
        self._values = MappingProxyType(values)
        self._time_series = MappingProxyType(
            {k: MappingProxyType(dict(v)) for k, v in (time_series or {}).items()}
        )

    def contains(self, market_data_id: MarketDataId) -> bool:
        return market_data_id in self._values or market_data_id in self._time_series

    def get_value(self, market_data_id: MarketDataId, scenario_index: int = 0) -> Any:
        _check_resolvable(market_data_id)
        if not 0 <= scenario_index < self.scenario_count:
            raise MissingMarketDataError(
                f"Scenario index {scenario_index} out of range for {self.scenario_count} scenarios"
            )
        if market_data_id not in self._values:
            raise MissingMarketDataError(f"No market data available for {market_data_id}")
        value = self._values[market_data_id]
        if isinstance(value, ScenarioValues):
            return value.values[scenario_index]
        return value

    def get_time_series(self, market_data_id: ObservableId) -> Mapping[date, float]:
        _check_resolvable(market_data_id)
        series = self._time_series.get(market_data_id)
        if series is None:
            raise MissingMarketDataError(f"No time series available for {market_data_id}")
        return series

    def __repr__(self) -> str:
        return (
            f"MarketEnvironment(valuation_date={self.valuation_date.isoformat()}, "
            f"scenario_count={self.scenario_count}, values={len(self._values)}, "
            f"time_series={len(self._time_series)})"
        )


class CalculationMarketData:
    """Market data visible to a single task.

    Only keys the function declared (plus FX rates into the reporting currency) can
    be read. In single scenario mode only the environment's first scenario is visible.
    """

    def __init__(
        self,
        environment: CalculationEnvironment,
        requirements: FunctionRequirements,
        mappings: MarketDataMappings,
        *,
        reporting_currency: Optional[Currency] = None,
        single_scenario: bool = False,
    ):
        self._environment = environment
        self._requirements = requirements
        self._mappings = mappings
        self._fx_keys = frozenset(fx_rate_keys(requirements.output_currencies, reporting_currency)) | frozenset(
            key for key in requirements.single_values if isinstance(key, FxRateKey)
        )
        self.reporting_currency = reporting_currency
        self.scenario_count = 1 if single_scenario else environment.scenario_count

    @property
    def valuation_date(self) -> date:
        return self._environment.valuation_date

    def get_value(self, key: MarketDataKey, scenario_index: int = 0) -> Any:
        if key not in self._requirements.single_values and key not in self._fx_keys:
            raise MissingMarketDataError(f"Market data for {key} was not requested by the function")
        self._check_scenario(scenario_index)
        return self._environment.get_value(self._mappings.id_for_key(key), scenario_index)

    def get_values(self, key: MarketDataKey) -> List[Any]:
        return [self.get_value(key, i) for i in range(self.scenario_count)]

    def get_time_series(self, key: ObservableKey) -> Mapping[date, float]:
        if key not in self._requirements.time_series:
            raise MissingMarketDataError(f"Time series for {key} was not requested by the function")
        return self._environment.get_time_series(self._mappings.observable_id(key))

    def fx_rate(self, base: Currency, counter: Currency, scenario_index: int = 0) -> float:
        if base == counter:
            return 1.0
        pair = FxRateId(base, counter)
        if FxRateKey(base, counter) not in self._fx_keys and FxRateKey(counter, base) not in self._fx_keys:
            raise CurrencyConversionError(f"FX rate {pair} was not requested; cannot convert {base} to {counter}")
        try:
            self._check_scenario(scenario_index)
            if self._environment.contains(pair):
                rate = float(self._environment.get_value(pair, scenario_index))
            elif self._environment.contains(pair.inverse()):
                inverse = float(self._environment.get_value(pair.inverse(), scenario_index))
                rate = 1.0 / inverse if inverse else 0.0
            else:
                raise CurrencyConversionError(f"No FX rate available for {pair}")
        except (MarketDataError, ValueError, TypeError) as exc:
            if isinstance(exc, CurrencyConversionError):
                raise
            raise CurrencyConversionError(f"Unable to convert {base} to {counter}: {exc}") from exc
        if not math.isfinite(rate) or rate <= 0:
            raise CurrencyConversionError(f"FX rate for {pair} is unusable: {rate}")
        return rate

    def _check_scenario(self, scenario_index: int) -> None:
        if not 0 <= scenario_index < self.scenario_count:
            raise MissingMarketDataError(
                f"Scenario index {scenario_index} out of range for {self.scenario_count} scenarios"
            )


def fx_rate_keys(currencies: Iterable[Currency], reporting_currency: Optional[Currency]) -> List[FxRateKey]:
    """FX rate keys needed to convert each currency into the reporting currency."""
    if reporting_currency is None:
        return []
    return [FxRateKey(ccy, reporting_currency) for ccy in sorted(set(currencies), key=str) if ccy != reporting_currency]
