from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import Any, List, Optional, Sequence, Tuple

from loguru import logger

from .config import CalculationRules, ReportingRules, column_reporting_rules
from .function import CalculationFunction, MissingConfigFunction
from .market_data import (
    CalculationEnvironment,
    CalculationMarketData,
    MarketDataMappings,
    MarketDataRequirements,
    MissingMarketDataError,
    NoMatchingRuleError,
    fx_rate_keys,
)
from .models import (
    CalculationResult,
    Column,
    Currency,
    CurrencyConversionError,
    CurrencyConvertible,
    ExecutionMode,
    FailureReason,
    Measure,
    Result,
    ScenarioResult,
)


@dataclass(frozen=True)
class CalculationTask:
    """One cell of the grid: a target, a measure and everything needed to compute it."""

    target: Any
    measure: Measure
    row_index: int
    column_index: int
    function: CalculationFunction
    mappings: MarketDataMappings
    reporting_rules: ReportingRules

    @classmethod
    def of(
        cls,
        target: Any,
        measure: Measure,
        row_index: int,
        column_index: int,
        function: CalculationFunction,
        mappings: MarketDataMappings,
        reporting_rules: ReportingRules,
    ) -> "CalculationTask":
        if row_index < 0 or column_index < 0:
            raise ValueError("Task row and column indices must not be negative")
        return cls(target, measure, row_index, column_index, function, mappings, reporting_rules)

    def requirements(self) -> MarketDataRequirements:
        fn_requirements = self.function.requirements(self.target)
        requirements = self.mappings.requirements_for(fn_requirements)
        fx_keys = fx_rate_keys(fn_requirements.output_currencies, self.reporting_rules.reporting_currency(self.target))
        if not fx_keys:
            return requirements
        fx_ids = frozenset(self.mappings.id_for_key(key) for key in fx_keys)
        return MarketDataRequirements(
            requirements.non_observables | fx_ids,
            requirements.observables,
            requirements.time_series,
        )

    def execute(self, environment: CalculationEnvironment, mode: ExecutionMode) -> CalculationResult:
        """Run the function against `environment`; never raises."""
        try:
            reporting_currency = self.reporting_rules.reporting_currency(self.target)
            fn_requirements = self.function.requirements(self.target)
            market_data = CalculationMarketData(
                environment,
                fn_requirements,
                self.mappings,
                reporting_currency=reporting_currency,
                single_scenario=mode == ExecutionMode.SINGLE_SCENARIO,
            )
            value = self.function.execute(self.target, market_data)
        except NoMatchingRuleError as exc:
            result = Result.failed(FailureReason.NO_MATCHING_RULE, str(exc), exc)
        except MissingMarketDataError as exc:
            result = Result.failed(FailureReason.MISSING_DATA, str(exc), exc)
        except CurrencyConversionError as exc:
            result = Result.failed(FailureReason.CURRENCY_CONVERSION, str(exc), exc)
        except Exception as exc:
            result = Result.failed(
                FailureReason.CALCULATION_FAILED,
                f"Error when invoking function '{type(self.function).__name__}' "
                f"for measure '{self.measure}': {exc}",
                exc,
            )
        else:
            result = self._finish(value, market_data, mode, reporting_currency)

        if result.is_failure:
            logger.debug(
                "Cell ({}, {}) failed with {}: {}",
                self.row_index,
                self.column_index,
                result.failure.reason.value,
                result.failure.message,
            )
        return CalculationResult(row_index=self.row_index, column_index=self.column_index, result=result)

    def _finish(
        self,
        value: Any,
        market_data: CalculationMarketData,
        mode: ExecutionMode,
        reporting_currency: Optional[Currency],
    ) -> Result:
        if isinstance(value, ScenarioResult) and mode == ExecutionMode.SINGLE_SCENARIO:
            if len(value) != 1:
                return Result.failed(
                    FailureReason.INVALID_RESULT,
                    f"Expected a single value but found {len(value)} for measure '{self.measure}'",
                )
            value = value[0]

        if reporting_currency is None:
            return Result.success(value)
        try:
            return Result.success(convert_currency(value, reporting_currency, market_data))
        except (CurrencyConversionError, MissingMarketDataError, NoMatchingRuleError) as exc:
            return Result.failed(FailureReason.CURRENCY_CONVERSION, str(exc), exc)
        except Exception as exc:
            return Result.failed(
                FailureReason.CURRENCY_CONVERSION,
                f"Error converting result for measure '{self.measure}' to {reporting_currency}: {exc}",
                exc,
            )

    def __repr__(self) -> str:
        return (
            f"CalculationTask(row={self.row_index}, column={self.column_index}, "
            f"measure={self.measure}, function={self.function!r})"
        )


def convert_currency(value: Any, currency: Currency, market_data: CalculationMarketData) -> Any:
    """Convert a value, or each scenario of a `ScenarioResult`, into `currency`."""
    if isinstance(value, ScenarioResult):
        return ScenarioResult(tuple(_convert(v, currency, market_data, i) for i, v in enumerate(value)))
    return _convert(value, currency, market_data, 0)


def _convert(value: Any, currency: Currency, market_data: CalculationMarketData, scenario_index: int) -> Any:
    if not isinstance(value, CurrencyConvertible):
        return value
    return value.convert_to(currency, lambda base, counter: market_data.fx_rate(base, counter, scenario_index))


class CalculationTasks:
    """The full task grid for targets x columns, in row-major order."""

    def __init__(
        self,
        tasks: Sequence[CalculationTask],
        columns: Sequence[Column],
        targets: Optional[Sequence[Any]] = None,
    ):
        tasks = list(tasks)
        columns = list(columns)
        _check_columns(columns)
        derived = _targets_from_tasks(tasks, len(columns))
        if targets is None:
            targets = derived
        elif len(tasks) != len(targets) * len(columns):
            raise ValueError(f"Expected {len(targets) * len(columns)} tasks but got {len(tasks)}")
        self._targets = tuple(targets)
        self._columns = tuple(columns)
        self._tasks = tuple(sorted(tasks, key=lambda t: (t.row_index, t.column_index)))

    @classmethod
    def of(cls, rules: CalculationRules, targets: Sequence[Any], columns: Sequence[Column]) -> "CalculationTasks":
        if isinstance(targets, (str, bytes)) or not isinstance(targets, Sequence):
            raise TypeError("targets must be a sequence")
        if isinstance(columns, (str, bytes)) or not isinstance(columns, Sequence):
            raise TypeError("columns must be a sequence")
        _check_columns(columns)

        tasks = [
            _create_task(rules, target, column, row_index, column_index)
            for row_index, target in enumerate(targets)
            for column_index, column in enumerate(columns)
        ]
        logger.debug("Created {} calculation tasks for {} targets and {} columns", len(tasks), len(targets), len(columns))
        return cls(tasks, columns, targets)

    @classmethod
    def from_tasks(cls, tasks: Sequence[CalculationTask], columns: Sequence[Column]) -> "CalculationTasks":
        return cls(tasks, columns)

    @property
    def targets(self) -> Tuple[Any, ...]:
        return self._targets

    @property
    def columns(self) -> Tuple[Column, ...]:
        return self._columns

    @property
    def tasks(self) -> Tuple[CalculationTask, ...]:
        return self._tasks

    @property
    def row_count(self) -> int:
        return len(self._targets)

    @property
    def column_count(self) -> int:
        return len(self._columns)

    @cached_property
    def _requirements(self) -> MarketDataRequirements:
        return MarketDataRequirements.combine(task.requirements() for task in self._tasks)

    def get_requirements(self) -> MarketDataRequirements:
        return self._requirements

    def __len__(self) -> int:
        return len(self._tasks)

    def __str__(self) -> str:
        return f"CalculationTasks[grid={self.row_count}x{self.column_count}]"

    __repr__ = __str__


def _create_task(rules: CalculationRules, target: Any, column: Column, row_index: int, column_index: int) -> CalculationTask:
    function: Optional[CalculationFunction] = rules.pricing_rules.function(target, column.measure)
    if function is None:
        logger.debug("No pricing rule for {} and measure {}", type(target).__name__, column.measure)
        function = MissingConfigFunction(type(target), column.measure)

    mappings = rules.market_data_rules.mappings(target)
    if mappings is None:
        mappings = MarketDataMappings.no_rule()

    reporting_rules = column_reporting_rules(column.reporting_currency, rules.reporting_rules)
    return CalculationTask.of(target, column.measure, row_index, column_index, function, mappings, reporting_rules)


def _check_columns(columns: Sequence[Any]) -> None:
    for column in columns:
        if not isinstance(column, Column):
            raise TypeError(f"Expected a Column but got {type(column).__name__}")


def _targets_from_tasks(tasks: List[CalculationTask], column_count: int) -> List[Any]:
    if column_count == 0:
        if tasks:
            raise ValueError("Tasks supplied without any columns")
        return []
    if len(tasks) % column_count != 0:
        raise ValueError(f"{len(tasks)} tasks cannot form a grid with {column_count} columns")

    row_count = len(tasks) // column_count
    cells = {}
    for task in tasks:
        if task.row_index >= row_count or task.column_index >= column_count:
            raise ValueError(
                f"Task at ({task.row_index}, {task.column_index}) is outside a {row_count}x{column_count} grid"
            )
        cell = (task.row_index, task.column_index)
        if cell in cells:
            raise ValueError(f"Duplicate task for cell {cell}")
        cells[cell] = task
    return [cells[(row, 0)].target for row in range(row_count)]
