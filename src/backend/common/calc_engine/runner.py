from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, List, Optional

from loguru import logger

from .market_data import CalculationEnvironment
from .models import CalculationResult, ExecutionMode, FailureReason, Result
from .results import Results, count_outcomes
from .settings import EngineSettings, get_engine_settings
from .tasks import CalculationTask, CalculationTasks


class CalculationListener(ABC):
    """Receives results as cells complete.

    `result_received` is called once per cell, in any order. `calculations_complete`
    is called exactly once, after the last result. Calls are never concurrent.
    """

    @abstractmethod
    def result_received(self, result: CalculationResult) -> None:  # pragma: no cover
        raise NotImplementedError

    @abstractmethod
    def calculations_complete(self) -> None:  # pragma: no cover
        raise NotImplementedError


class ListenerWrapper(CalculationListener):
    """Serializes delivery to a listener and fires completion once all cells have reported."""

    def __init__(self, delegate: CalculationListener, expected_count: int):
        self._delegate = delegate
        self._expected_count = expected_count
        self._received = 0
        self._completed = False
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self._expected_count == 0:
                self._complete()

    def result_received(self, result: CalculationResult) -> None:
        with self._lock:
            if self._completed or self._received >= self._expected_count:
                logger.warning(
                    "Ignoring unexpected result for cell ({}, {}); all {} cells already reported",
                    result.row_index,
                    result.column_index,
                    self._expected_count,
                )
                return
            self._received += 1
            try:
                self._delegate.result_received(result)
            except Exception:
                logger.exception(
                    "Listener failed handling result for cell ({}, {})", result.row_index, result.column_index
                )
            if self._received == self._expected_count:
                self._complete()

    def calculations_complete(self) -> None:
        # Completion is driven by the result count.
        pass

    def _complete(self) -> None:
        self._completed = True
        try:
            self._delegate.calculations_complete()
        except Exception:
            logger.exception("Listener failed handling calculation completion")


class ResultsListener(CalculationListener):
    """Collects cells into a `Results` grid; `result()` blocks until all have arrived."""

    def __init__(self, tasks: CalculationTasks):
        self._targets = tasks.targets
        self._columns = tasks.columns
        self._items: List[Optional[Result]] = [None] * len(tasks)
        self._done = threading.Event()

    def result_received(self, result: CalculationResult) -> None:
        index = result.row_index * len(self._columns) + result.column_index
        self._items[index] = result.result

    def calculations_complete(self) -> None:
        self._done.set()

    def result(self, timeout: Optional[float] = None) -> Results:
        if not self._done.wait(timeout):
            raise TimeoutError(f"Calculations did not complete within {timeout} seconds")
        missing = [i for i, item in enumerate(self._items) if item is None]
        if missing:
            raise RuntimeError(f"Calculations completed without results for {len(missing)} cells")
        return Results.of(self._targets, self._columns, self._items)


class DirectExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


class CalculationTaskRunner:
    def __init__(self, executor: Executor):
        self._executor = executor

    @classmethod
    def of(cls, executor: Executor) -> "CalculationTaskRunner":
        return cls(executor)

    @classmethod
    def direct(cls) -> "CalculationTaskRunner":
        return cls(DirectExecutor())

    @classmethod
    def multi_threaded(cls, settings: Optional[EngineSettings] = None) -> "CalculationTaskRunner":
        settings = settings or get_engine_settings()
        return cls(ThreadPoolExecutor(max_workers=settings.max_workers, thread_name_prefix="calc-engine"))

    def calculate_single_scenario(self, tasks: CalculationTasks, environment: CalculationEnvironment) -> Results:
        return self._calculate(tasks, environment, ExecutionMode.SINGLE_SCENARIO)

    def calculate_multiple_scenarios(self, tasks: CalculationTasks, environment: CalculationEnvironment) -> Results:
        return self._calculate(tasks, environment, ExecutionMode.MULTIPLE_SCENARIOS)

    def calculate_single_scenario_async(
        self,
        tasks: CalculationTasks,
        environment: CalculationEnvironment,
        listener: CalculationListener,
    ) -> None:
        self._calculate_async(tasks, environment, listener, ExecutionMode.SINGLE_SCENARIO)

    def calculate_multiple_scenarios_async(
        self,
        tasks: CalculationTasks,
        environment: CalculationEnvironment,
        listener: CalculationListener,
    ) -> None:
        self._calculate_async(tasks, environment, listener, ExecutionMode.MULTIPLE_SCENARIOS)

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "CalculationTaskRunner":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _calculate(self, tasks: CalculationTasks, environment: CalculationEnvironment, mode: ExecutionMode) -> Results:
        listener = ResultsListener(tasks)
        self._calculate_async(tasks, environment, listener, mode)
        results = listener.result()

        successes, failures = count_outcomes(results.items)
        logger.info(
            "Calculated {} ({}): {} succeeded, {} failed",
            results,
            mode.value,
            successes,
            sum(failures.values()),
        )
        return results

    def _calculate_async(
        self,
        tasks: CalculationTasks,
        environment: CalculationEnvironment,
        listener: CalculationListener,
        mode: ExecutionMode,
    ) -> None:
        wrapper = ListenerWrapper(listener, len(tasks))
        logger.debug("Dispatching {} tasks for {} ({})", len(tasks), tasks, mode.value)
        wrapper.start()
        for task in tasks.tasks:
            future = self._executor.submit(task.execute, environment, mode)
            future.add_done_callback(partial(_deliver, wrapper, task))


def _deliver(listener: CalculationListener, task: CalculationTask, future: Future) -> None:
    exc = future.exception()
    if exc is None:
        listener.result_received(future.result())
        return
    # Task.execute is total; this covers errors raised by the executor itself.
    logger.opt(exception=exc).error("Task for cell ({}, {}) raised outside its failure boundary", task.row_index, task.column_index)
    result = Result.failed(FailureReason.CALCULATION_FAILED, f"Unexpected error executing task: {exc}", exc)
    listener.result_received(CalculationResult(row_index=task.row_index, column_index=task.column_index, result=result))
