from __future__ import annotations

from typing import Any, Dict, Iterable, Type

from .config import FunctionGroup
from .function import CalculationFunction


class FunctionRegistry:
    def __init__(self):
        self._functions: Dict[str, Type[CalculationFunction]] = {}

    def register(self, function_cls: Type[CalculationFunction]) -> None:
        function_id = getattr(function_cls, "function_id", None)
        if not function_id:
            raise ValueError("Calculation function class missing function_id")
        if getattr(function_cls, "target_type", None) is None or getattr(function_cls, "measure", None) is None:
            raise ValueError(f"Calculation function {function_id} must declare target_type and measure")
        if function_id in self._functions:
            raise ValueError(f"Duplicate function_id registered: {function_id}")
        self._functions[function_id] = function_cls

    def get(self, function_id: str) -> Type[CalculationFunction]:
        return self._functions[function_id]

    def ids(self) -> Iterable[str]:
        return self._functions.keys()

    def function_group(self, name: str, target_type: Type[Any], **arguments: Any) -> FunctionGroup:
        """Group every registered function for `target_type` (or a superclass of it)."""
        functions = {}
        for function_cls in self._functions.values():
            if issubclass(target_type, function_cls.target_type):
                if function_cls.measure in functions:
                    raise ValueError(
                        f"Multiple functions registered for {target_type.__name__} and measure {function_cls.measure}"
                    )
                functions[function_cls.measure] = function_cls
        return FunctionGroup.of(name, target_type, functions, **arguments)


registry = FunctionRegistry()


def register_function(function_cls: Type[CalculationFunction]) -> Type[CalculationFunction]:
    registry.register(function_cls)
    return function_cls
