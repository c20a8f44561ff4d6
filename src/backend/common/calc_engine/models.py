from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Iterator, Optional, Protocol, Tuple, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

_CURRENCY_CODE = re.compile(r"^[A-Z]{3}$")


class CurrencyConversionError(ValueError):
    pass


@dataclass(frozen=True)
class Currency:
    code: str

    def __post_init__(self) -> None:
        if not _CURRENCY_CODE.match(self.code or ""):
            raise ValueError(f"Invalid currency code: {self.code!r}")

    @classmethod
    def of(cls, code: str) -> "Currency":
        return cls(code.strip().upper())

    def __str__(self) -> str:
        return self.code


USD = Currency("USD")
EUR = Currency("EUR")
GBP = Currency("GBP")
JPY = Currency("JPY")

FxRateLookup = Callable[[Currency, Currency], float]


@runtime_checkable
class CurrencyConvertible(Protocol):
    def convert_to(self, currency: Currency, fx_rate: FxRateLookup) -> Any:
        """Return an equivalent value expressed in `currency`."""
        ...


@dataclass(frozen=True)
class CurrencyAmount:
    currency: Currency
    amount: float

    def convert_to(self, currency: Currency, fx_rate: FxRateLookup) -> "CurrencyAmount":
        if currency == self.currency:
            return self
        return CurrencyAmount(currency, self.amount * fx_rate(self.currency, currency))

    def __str__(self) -> str:
        return f"{self.currency} {self.amount}"


@dataclass(frozen=True)
class MultiCurrencyAmount:
    amounts: Tuple[CurrencyAmount, ...] = ()

    def __post_init__(self) -> None:
        currencies = [a.currency for a in self.amounts]
        if len(set(currencies)) != len(currencies):
            raise ValueError("MultiCurrencyAmount must not contain duplicate currencies")

    @classmethod
    def of(cls, *amounts: CurrencyAmount) -> "MultiCurrencyAmount":
        totals: Dict[Currency, float] = {}
        for amount in amounts:
            totals[amount.currency] = totals.get(amount.currency, 0.0) + amount.amount
        return cls(tuple(CurrencyAmount(ccy, total) for ccy, total in totals.items()))

    def get_amount(self, currency: Currency) -> Optional[CurrencyAmount]:
        for amount in self.amounts:
            if amount.currency == currency:
                return amount
        return None

    def convert_to(self, currency: Currency, fx_rate: FxRateLookup) -> CurrencyAmount:
        total = sum(a.convert_to(currency, fx_rate).amount for a in self.amounts)
        return CurrencyAmount(currency, total)


@dataclass(frozen=True)
class Measure:
    """Named kind of output, interned by name."""

    name: str

    _interned: ClassVar[Dict[str, "Measure"]] = {}
    _lock: ClassVar[threading.Lock] = threading.Lock()

    PRESENT_VALUE: ClassVar["Measure"]
    FORECAST_VALUE: ClassVar["Measure"]

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Measure name must not be empty")

    @classmethod
    def of(cls, name: str) -> "Measure":
        with cls._lock:
            measure = cls._interned.get(name)
            if measure is None:
                measure = cls(name)
                cls._interned[name] = measure
            return measure

    def __str__(self) -> str:
        return self.name


Measure.PRESENT_VALUE = Measure.of("PresentValue")
Measure.FORECAST_VALUE = Measure.of("ForecastValue")


@dataclass(frozen=True)
class Column:
    measure: Measure
    # Takes precedence over the calculation-wide reporting rules.
    reporting_currency: Optional[Currency] = None

    @classmethod
    def of(cls, measure: Measure, reporting_currency: Optional[Currency] = None) -> "Column":
        return cls(measure, reporting_currency)

    @property
    def name(self) -> str:
        return self.measure.name


@dataclass(frozen=True)
class ScenarioResult:
    """Per-scenario values returned by a calculation function."""

    values: Tuple[Any, ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, *values: Any) -> "ScenarioResult":
        return cls(tuple(values))

    @property
    def scenario_count(self) -> int:
        return len(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values)

    def __getitem__(self, index: int) -> Any:
        return self.values[index]


class ExecutionMode(str, Enum):
    SINGLE_SCENARIO = "SINGLE_SCENARIO"
    MULTIPLE_SCENARIOS = "MULTIPLE_SCENARIOS"


class FailureReason(str, Enum):
    NO_MATCHING_RULE = "NO_MATCHING_RULE"
    CALCULATION_FAILED = "CALCULATION_FAILED"
    INVALID_RESULT = "INVALID_RESULT"
    CURRENCY_CONVERSION = "CURRENCY_CONVERSION"
    MISSING_DATA = "MISSING_DATA"


class Failure(BaseModel):
    model_config = ConfigDict(frozen=True)

    reason: FailureReason
    message: str
    exception_type: Optional[str] = None


class Result(BaseModel):
    """Outcome of one cell: a value or a failure, never both."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    value: Any = None
    failure: Optional[Failure] = None

    @classmethod
    def success(cls, value: Any) -> "Result":
        return cls(value=value)

    @classmethod
    def failed(
        cls,
        reason: FailureReason,
        message: str,
        exc: Optional[BaseException] = None,
    ) -> "Result":
        exception_type = type(exc).__name__ if exc is not None else None
        return cls(failure=Failure(reason=reason, message=message, exception_type=exception_type))

    @property
    def is_success(self) -> bool:
        return self.failure is None

    @property
    def is_failure(self) -> bool:
        return self.failure is not None

    def get_value(self) -> Any:
        if self.failure is not None:
            raise ValueError(f"Result is a failure ({self.failure.reason.value}): {self.failure.message}")
        return self.value


class CalculationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    row_index: int = Field(ge=0)
    column_index: int = Field(ge=0)
    result: Result


class CalculationRunReport(BaseModel):
    run_id: str
    generated_at: datetime
    row_count: int
    column_count: int

    success_count: int = 0
    failures: Dict[FailureReason, int] = Field(default_factory=dict)
