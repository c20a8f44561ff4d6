"""Rules that decide how each cell of a calculation grid is computed.

- Pricing rules pick the function for a (target, measure) pair.
- Market data rules pick the key-to-id mappings for a target.
- Reporting rules pick the currency results are reported in.

Every rule set is an ordered list evaluated first-match-wins, so later rules
act as fallbacks for earlier ones.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Tuple, Type

from .function import CalculationFunction
from .market_data import MarketDataMappings
from .models import Currency, Measure


@dataclass(frozen=True)
class FunctionGroup:
    name: str
    target_type: Type[Any]
    functions: Mapping[Measure, Type[CalculationFunction]] = field(default_factory=dict)
    # Keyword arguments passed to every function constructor in the group.
    arguments: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def of(
        cls,
        name: str,
        target_type: Type[Any],
        functions: Mapping[Measure, Type[CalculationFunction]],
        **arguments: Any,
    ) -> "FunctionGroup":
        return cls(name, target_type, MappingProxyType(dict(functions)), MappingProxyType(dict(arguments)))

    @property
    def measures(self) -> frozenset:
        return frozenset(self.functions)

    def supports(self, target: Any, measure: Measure) -> bool:
        return isinstance(target, self.target_type) and measure in self.functions

    def function(self, target: Any, measure: Measure) -> Optional[CalculationFunction]:
        if not self.supports(target, measure):
            return None
        return self.functions[measure](**self.arguments)


@dataclass(frozen=True)
class PricingRule:
    target_type: Type[Any]
    function_group: FunctionGroup
    # Empty means every measure the group supports.
    measures: frozenset = frozenset()

    @classmethod
    def of(cls, target_type: Type[Any], function_group: FunctionGroup, *measures: Measure) -> "PricingRule":
        return cls(target_type, function_group, frozenset(measures))

    def resolve(self, target: Any, measure: Measure) -> Optional[FunctionGroup]:
        if not isinstance(target, self.target_type):
            return None
        if self.measures and measure not in self.measures:
            return None
        if not self.function_group.supports(target, measure):
            return None
        return self.function_group


class PricingRules(ABC):
    @abstractmethod
    def function_group(self, target: Any, measure: Measure) -> Optional[FunctionGroup]:  # pragma: no cover
        raise NotImplementedError

    def function(self, target: Any, measure: Measure) -> Optional[CalculationFunction]:
        group = self.function_group(target, measure)
        if group is None:
            return None
        return group.function(target, measure)

    def combined_with(self, other: "PricingRules") -> "PricingRules":
        return CompositePricingRules((self, other))

    @staticmethod
    def of(*rules: PricingRule) -> "DefaultPricingRules":
        return DefaultPricingRules(tuple(rules))

    @staticmethod
    def empty() -> "DefaultPricingRules":
        return DefaultPricingRules(())


@dataclass(frozen=True)
class DefaultPricingRules(PricingRules):
    rules: Tuple[PricingRule, ...] = ()

    def function_group(self, target: Any, measure: Measure) -> Optional[FunctionGroup]:
        for rule in self.rules:
            group = rule.resolve(target, measure)
            if group is not None:
                return group
        return None

    def combined_with(self, other: PricingRules) -> PricingRules:
        if isinstance(other, DefaultPricingRules):
            return DefaultPricingRules(self.rules + other.rules)
        return super().combined_with(other)


@dataclass(frozen=True)
class CompositePricingRules(PricingRules):
    delegates: Tuple[PricingRules, ...] = ()

    def function_group(self, target: Any, measure: Measure) -> Optional[FunctionGroup]:
        for delegate in self.delegates:
            group = delegate.function_group(target, measure)
            if group is not None:
                return group
        return None


TargetPredicate = Callable[[Any], bool]


@dataclass(frozen=True)
class MarketDataRule:
    mappings: MarketDataMappings
    predicate: TargetPredicate
    description: str = ""

    @classmethod
    def of(cls, mappings: MarketDataMappings, *target_types: Type[Any]) -> "MarketDataRule":
        if not target_types:
            raise ValueError("MarketDataRule.of requires at least one target type")
        types = tuple(target_types)
        names = ", ".join(t.__name__ for t in types)
        return cls(mappings, lambda target: isinstance(target, types), f"targets of type {names}")

    @classmethod
    def any_target(cls, mappings: MarketDataMappings) -> "MarketDataRule":
        return cls(mappings, lambda target: True, "any target")

    @classmethod
    def matching(cls, mappings: MarketDataMappings, predicate: TargetPredicate, description: str = "") -> "MarketDataRule":
        return cls(mappings, predicate, description or getattr(predicate, "__name__", "custom predicate"))

    def resolve(self, target: Any) -> Optional[MarketDataMappings]:
        return self.mappings if self.predicate(target) else None


@dataclass(frozen=True)
class MarketDataRules:
    rules: Tuple[MarketDataRule, ...] = ()

    @classmethod
    def of(cls, *rules: MarketDataRule) -> "MarketDataRules":
        return cls(tuple(rules))

    @classmethod
    def empty(cls) -> "MarketDataRules":
        return cls(())

    def mappings(self, target: Any) -> Optional[MarketDataMappings]:
        for rule in self.rules:
            mappings = rule.resolve(target)
            if mappings is not None:
                return mappings
        return None

    def combined_with(self, other: "MarketDataRules") -> "MarketDataRules":
        return MarketDataRules(self.rules + other.rules)


class ReportingRules(ABC):
    @abstractmethod
    def reporting_currency(self, target: Any) -> Optional[Currency]:  # pragma: no cover
        raise NotImplementedError

    def combined_with(self, other: "ReportingRules") -> "ReportingRules":
        if isinstance(other, EmptyReportingRules):
            return self
        if isinstance(self, EmptyReportingRules):
            return other
        return CompositeReportingRules((self, other))

    @staticmethod
    def fixed_currency(currency: Currency) -> "ReportingRules":
        return FixedReportingRules(currency)

    @staticmethod
    def computed(resolver: Callable[[Any], Optional[Currency]]) -> "ReportingRules":
        return ComputedReportingRules(resolver)

    @staticmethod
    def empty() -> "ReportingRules":
        return EmptyReportingRules()


@dataclass(frozen=True)
class FixedReportingRules(ReportingRules):
    currency: Currency

    def reporting_currency(self, target: Any) -> Optional[Currency]:
        return self.currency


@dataclass(frozen=True)
class ComputedReportingRules(ReportingRules):
    resolver: Callable[[Any], Optional[Currency]]

    def reporting_currency(self, target: Any) -> Optional[Currency]:
        return self.resolver(target)


@dataclass(frozen=True)
class EmptyReportingRules(ReportingRules):
    def reporting_currency(self, target: Any) -> Optional[Currency]:
        return None


@dataclass(frozen=True)
class CompositeReportingRules(ReportingRules):
    delegates: Tuple[ReportingRules, ...] = ()

    def reporting_currency(self, target: Any) -> Optional[Currency]:
        for delegate in self.delegates:
            currency = delegate.reporting_currency(target)
            if currency is not None:
                return currency
        return None


@dataclass(frozen=True)
class CalculationRules:
    pricing_rules: PricingRules = field(default_factory=PricingRules.empty)
    market_data_rules: MarketDataRules = field(default_factory=MarketDataRules.empty)
    reporting_rules: ReportingRules = field(default_factory=ReportingRules.empty)

    @classmethod
    def of(
        cls,
        pricing_rules: PricingRules,
        market_data_rules: MarketDataRules,
        reporting_rules: Optional[ReportingRules] = None,
    ) -> "CalculationRules":
        return cls(pricing_rules, market_data_rules, reporting_rules or ReportingRules.empty())


def column_reporting_rules(column_currency: Optional[Currency], rules: ReportingRules) -> ReportingRules:
    """Reporting rules for one column: the column's own currency wins over the shared rules."""
    if column_currency is None:
        return rules
    return ReportingRules.fixed_currency(column_currency).combined_with(rules)

