from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any


def _ensure_backend_on_path() -> None:
    backend_dir = Path(__file__).resolve().parents[1]
    if str(backend_dir) not in sys.path:
        sys.path.insert(0, str(backend_dir))


_ensure_backend_on_path()

from common.calc_engine import (  # noqa: E402
    CalculationRules,
    CalculationTaskRunner,
    CalculationTasks,
    Column,
    Currency,
    MarketDataRule,
    MarketDataRules,
    MarketEnvironment,
    Measure,
    PricingRule,
    PricingRules,
    ReportingRules,
    Results,
    ScenarioResult,
    ScenarioValues,
    build_run_report,
)
from common.calc_engine.functions import DiscountCurveId, Payment, discount_curve_mappings  # noqa: E402
from common.calc_engine.log import configure_logging  # noqa: E402
from common.calc_engine.market_data import FxRateId  # noqa: E402
from common.calc_engine.registry import registry  # noqa: E402


@dataclass(frozen=True)
class CalculationRequest:
    tasks: CalculationTasks
    environment: MarketEnvironment


def _load_json(path: Path):
    with path.open() as handle:
        return json.load(handle)


def _scenario_count(payload: dict) -> int:
    counts = {1}
    for section in ("discount_rates", "fx_rates"):
        for value in (payload.get(section) or {}).values():
            if isinstance(value, list):
                counts.add(len(value))
    counts.discard(1)
    if len(counts) > 1:
        raise ValueError(f"Inconsistent scenario counts in market data: {sorted(counts)}")
    return counts.pop() if counts else 1


def _market_value(value: Any, scenario_count: int) -> Any:
    if isinstance(value, list):
        if len(value) == 1 and scenario_count == 1:
            return float(value[0])
        return ScenarioValues(tuple(float(v) for v in value))
    return float(value)


def _parse_pair(pair: str) -> FxRateId:
    base, sep, counter = pair.partition("/")
    if not sep:
        raise ValueError(f"FX rate pair must look like 'EUR/USD', got {pair!r}")
    return FxRateId(Currency.of(base), Currency.of(counter))


def build_calculation_request(payload: dict) -> CalculationRequest:
    valuation_date = date.fromisoformat(payload["valuation_date"])
    curve_group = payload.get("curve_group", "Default")
    scenario_count = _scenario_count(payload)

    payments = [
        Payment(
            trade_id=str(item["trade_id"]),
            currency=Currency.of(item["currency"]),
            amount=float(item["amount"]),
            payment_date=date.fromisoformat(item["payment_date"]),
        )
        for item in payload.get("payments", [])
    ]
    columns = [
        Column.of(
            Measure.of(item["measure"]),
            Currency.of(item["reporting_currency"]) if item.get("reporting_currency") else None,
        )
        for item in payload.get("columns", [])
    ]

    reporting_currency = payload.get("reporting_currency")
    rules = CalculationRules.of(
        PricingRules.of(PricingRule.of(Payment, registry.function_group("payments", Payment))),
        MarketDataRules.of(MarketDataRule.of(discount_curve_mappings(curve_group), Payment)),
        ReportingRules.fixed_currency(Currency.of(reporting_currency)) if reporting_currency else ReportingRules.empty(),
    )

    values: dict = {}
    for ccy, rate in (payload.get("discount_rates") or {}).items():
        values[DiscountCurveId(curve_group, Currency.of(ccy))] = _market_value(rate, scenario_count)
    for pair, rate in (payload.get("fx_rates") or {}).items():
        values[_parse_pair(pair)] = _market_value(rate, scenario_count)

    environment = MarketEnvironment(valuation_date, values=values, scenario_count=scenario_count)
    return CalculationRequest(CalculationTasks.of(rules, payments, columns), environment)


def _format_value(value: Any) -> str:
    if isinstance(value, ScenarioResult):
        return "[" + ", ".join(_format_value(v) for v in value) + "]"
    amount = getattr(value, "amount", None)
    currency = getattr(value, "currency", None)
    if isinstance(amount, float) and currency is not None:
        return f"{currency} {amount:,.2f}"
    return str(value)


def _results_payload(results: Results) -> dict:
    rows = []
    for row_index, target in enumerate(results.targets):
        cells = {}
        for column_index, column in enumerate(results.columns):
            result = results.get(row_index, column_index)
            if result.is_success:
                cells[column.name] = {"value": _format_value(result.value)}
            else:
                cells[column.name] = {
                    "failure": result.failure.reason.value,
                    "message": result.failure.message,
                }
        rows.append({"target": getattr(target, "trade_id", str(target)), "cells": cells})
    report = build_run_report(results)
    return {"report": json.loads(report.model_dump_json()), "rows": rows}


def _write_markdown(results: Results) -> str:
    report = build_run_report(results)
    lines = [
        f"# Calculation results {results.row_count}x{results.column_count}",
        "",
        f"Generated at: {report.generated_at.isoformat()}",
        "",
        f"Succeeded: {report.success_count}",
    ]
    for reason, count in sorted(report.failures.items(), key=lambda item: item[0].value):
        lines.append(f"Failed ({reason.value}): {count}")
    lines.append("")
    lines.append("| Target | " + " | ".join(c.name for c in results.columns) + " |")
    lines.append("|---" * (results.column_count + 1) + "|")
    for row_index, target in enumerate(results.targets):
        cells = []
        for result in results.row(row_index):
            if result.is_success:
                cells.append(_format_value(result.value))
            else:
                cells.append(f"FAILED {result.failure.reason.value}: {result.failure.message}")
        lines.append(f"| {getattr(target, 'trade_id', target)} | " + " | ".join(cells) + " |")
    return "\n".join(lines) + "\n"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run a grid of payment calculations from a JSON request.")
    parser.add_argument("--input", required=True, type=Path, help="Path to the JSON request.")
    parser.add_argument(
        "--multiple-scenarios",
        action="store_true",
        help="Keep per-scenario results instead of requiring a single scenario.",
    )
    parser.add_argument("--format", choices=("json", "markdown"), default="markdown")
    parser.add_argument("--out", type=Path, default=None, help="Write output to this file instead of stdout.")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    request = build_calculation_request(_load_json(args.input))

    with CalculationTaskRunner.multi_threaded() as runner:
        if args.multiple_scenarios:
            results = runner.calculate_multiple_scenarios(request.tasks, request.environment)
        else:
            results = runner.calculate_single_scenario(request.tasks, request.environment)

    if args.format == "json":
        output = json.dumps(_results_payload(results), indent=2, sort_keys=True)
    else:
        output = _write_markdown(results)

    if args.out:
        args.out.write_text(output)
    else:
        print(output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
