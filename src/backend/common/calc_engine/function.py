from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional, Type

from .market_data import CalculationMarketData, FunctionRequirements, NoMatchingRuleError
from .models import Measure


class CalculationFunction(ABC):
    """Calculates one measure for one kind of target.

    Functions must not assume single or multiple scenario execution; the runner
    decides how a `ScenarioResult` is presented to callers.
    """

    function_id: str = ""
    target_type: Optional[Type[Any]] = None
    measure: Optional[Measure] = None

    @abstractmethod
    def requirements(self, target: Any) -> FunctionRequirements:  # pragma: no cover
        raise NotImplementedError

    @abstractmethod
    def execute(self, target: Any, market_data: CalculationMarketData) -> Any:  # pragma: no cover
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class MissingConfigFunction(CalculationFunction):
    """Bound to cells no pricing rule matched; always fails with an attributable message."""

    function_id = "missing-config"

    def __init__(self, target_type: Type[Any], measure: Measure):
        self.target_type = target_type
        self.measure = measure

    def requirements(self, target: Any) -> FunctionRequirements:
        return FunctionRequirements.empty()

    def execute(self, target: Any, market_data: CalculationMarketData) -> Any:
        raise NoMatchingRuleError(
            f"No pricing rule matched measure '{self.measure}' for target type {self.target_type.__name__}"
        )

    def __repr__(self) -> str:
        return f"MissingConfigFunction({self.target_type.__name__}, {self.measure})"
