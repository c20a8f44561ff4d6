import pytest

from common.calc_engine.config import (
    CalculationRules,
    FunctionGroup,
    MarketDataRule,
    MarketDataRules,
    PricingRule,
    PricingRules,
    ReportingRules,
)
from common.calc_engine.function import MissingConfigFunction
from common.calc_engine.market_data import (
    FxRateId,
    FunctionRequirements,
    MarketDataFeed,
    MarketDataMappings,
    NoMatchingRuleId,
)
from common.calc_engine.models import Column, Currency, Measure
from common.calc_engine.tasks import CalculationTask, CalculationTasks

from sample_functions import (
    EurAmountFunction,
    RequirementsFunction,
    SampleId,
    SampleKey,
    SampleObservableKey,
    SampleTarget,
)

PV = Measure.of("PV")
PV2 = Measure.of("PV2")
USD = Currency("USD")

TARGET1 = SampleTarget()
TARGET2 = SampleTarget()


def _pricing_rules(function_cls=RequirementsFunction, *measures):
    group = FunctionGroup.of("DefaultGroup", SampleTarget, {PV: function_cls})
    return PricingRules.of(PricingRule.of(SampleTarget, group, *measures))


def test_tasks_are_created_in_row_major_order(make_rules):
    rules = make_rules(
        pricing_rules=_pricing_rules(RequirementsFunction, PV),
        market_data_rules=MarketDataRules.of(
            MarketDataRule.of(MarketDataMappings.of(MarketDataFeed.of("MarketDataFeed")), SampleTarget)
        ),
        reporting_rules=ReportingRules.fixed_currency(USD),
    )
    columns = [Column.of(PV), Column.of(PV2)]

    tasks = CalculationTasks.of(rules, [TARGET1, TARGET2], columns)

    assert tasks.targets == (TARGET1, TARGET2)
    assert tasks.columns == (Column.of(PV), Column.of(PV2))
    assert len(tasks.tasks) == 4
    assert [t.target for t in tasks.tasks] == [TARGET1, TARGET1, TARGET2, TARGET2]
    assert [(t.row_index, t.column_index) for t in tasks.tasks] == [(0, 0), (0, 1), (1, 0), (1, 1)]
    assert isinstance(tasks.tasks[0].function, RequirementsFunction)
    # PV2 has no pricing rule
    assert isinstance(tasks.tasks[1].function, MissingConfigFunction)


def test_grid_size_is_targets_times_columns(make_rules):
    targets = [SampleTarget() for _ in range(3)]
    columns = [Column.of(PV), Column.of(PV2), Column.of(PV)]
    tasks = CalculationTasks.of(make_rules(), targets, columns)
    assert len(tasks) == 9
    assert tasks.row_count == 3
    assert tasks.column_count == 3
    assert [t.target for t in tasks.tasks] == [targets[0]] * 3 + [targets[1]] * 3 + [targets[2]] * 3


def test_no_matching_market_data_rules_produces_sentinel_ids(make_rules):
    rules = make_rules(
        pricing_rules=_pricing_rules(RequirementsFunction, PV),
        market_data_rules=MarketDataRules.empty(),
        reporting_rules=ReportingRules.fixed_currency(USD),
    )

    tasks = CalculationTasks.of(rules, [TARGET1], [Column.of(PV)])
    requirements = tasks.get_requirements()

    assert requirements.non_observables == {NoMatchingRuleId.of(SampleKey("1"))}
    assert requirements.observables == {SampleObservableKey("2").to_market_data_id(MarketDataFeed.NO_RULE)}
    assert requirements.time_series == {SampleObservableKey("3").to_market_data_id(MarketDataFeed.NO_RULE)}


def test_requirements_are_translated_through_the_matching_feed(make_rules):
    feed = MarketDataFeed.of("Bloomberg")
    mappings = MarketDataMappings.of(feed, {SampleKey: lambda key: SampleId(key.name)})
    rules = make_rules(
        pricing_rules=_pricing_rules(RequirementsFunction),
        market_data_rules=MarketDataRules.of(MarketDataRule.any_target(mappings)),
    )

    requirements = CalculationTasks.of(rules, [TARGET1, TARGET2], [Column.of(PV)]).get_requirements()

    # Deduplicated across both targets.
    assert requirements.observables == {SampleObservableKey("2").to_market_data_id(feed)}
    assert requirements.time_series == {SampleObservableKey("3").to_market_data_id(feed)}
    assert requirements.non_observables == {SampleId("1")}


def test_requirements_include_fx_rates_into_reporting_currency(make_rules):
    rules = make_rules(
        pricing_rules=_pricing_rules(EurAmountFunction),
        market_data_rules=MarketDataRules.of(MarketDataRule.any_target(MarketDataMappings.empty())),
        reporting_rules=ReportingRules.fixed_currency(USD),
    )

    requirements = CalculationTasks.of(rules, [TARGET1], [Column.of(PV)]).get_requirements()

    assert requirements.non_observables == {FxRateId(Currency("EUR"), USD)}
    assert not requirements.observables


def test_column_reporting_currency_overrides_rules(make_rules):
    rules = make_rules(
        pricing_rules=_pricing_rules(EurAmountFunction),
        reporting_rules=ReportingRules.fixed_currency(USD),
    )
    gbp = Currency("GBP")

    tasks = CalculationTasks.of(rules, [TARGET1], [Column.of(PV, gbp)])

    assert tasks.tasks[0].reporting_rules.reporting_currency(TARGET1) == gbp
    assert tasks.get_requirements().non_observables == {FxRateId(Currency("EUR"), gbp)}


def test_missing_pricing_rule_requires_no_market_data(make_rules):
    tasks = CalculationTasks.of(make_rules(), [TARGET1], [Column.of(PV)])
    assert tasks.get_requirements().is_empty()
    assert tasks.tasks[0].function.requirements(TARGET1) == FunctionRequirements.empty()


def test_to_string():
    rules_tasks = CalculationTasks.of(
        CalculationRules.of(
            PricingRules.empty(),
            MarketDataRules.of(MarketDataRule.any_target(MarketDataMappings.of(MarketDataFeed.NONE))),
            ReportingRules.fixed_currency(USD),
        ),
        [TARGET1, TARGET1],
        [Column.of(PV), Column.of(PV), Column.of(PV)],
    )
    assert str(rules_tasks) == "CalculationTasks[grid=2x3]"


def test_from_tasks_derives_targets_by_row():
    column = Column.of(PV)
    tasks = [
        CalculationTask.of(TARGET2, PV, 1, 0, RequirementsFunction(), MarketDataMappings.empty(), ReportingRules.empty()),
        CalculationTask.of(TARGET1, PV, 0, 0, RequirementsFunction(), MarketDataMappings.empty(), ReportingRules.empty()),
    ]
    grid = CalculationTasks.from_tasks(tasks, [column])
    assert grid.targets == (TARGET1, TARGET2)
    assert [t.row_index for t in grid.tasks] == [0, 1]


def test_from_tasks_rejects_incomplete_grid():
    tasks = [
        CalculationTask.of(TARGET1, PV, 0, 0, RequirementsFunction(), MarketDataMappings.empty(), ReportingRules.empty()),
    ]
    with pytest.raises(ValueError):
        CalculationTasks.from_tasks(tasks, [Column.of(PV), Column.of(PV2)])


def test_from_tasks_rejects_duplicate_cells():
    task = CalculationTask.of(TARGET1, PV, 0, 0, RequirementsFunction(), MarketDataMappings.empty(), ReportingRules.empty())
    other = CalculationTask.of(TARGET1, PV, 0, 0, RequirementsFunction(), MarketDataMappings.empty(), ReportingRules.empty())
    with pytest.raises(ValueError):
        CalculationTasks.from_tasks([task, other], [Column.of(PV)])


def test_malformed_columns_raise(make_rules):
    with pytest.raises(TypeError):
        CalculationTasks.of(make_rules(), [TARGET1], [PV])


def test_targets_must_be_a_sequence(make_rules):
    with pytest.raises(TypeError):
        CalculationTasks.of(make_rules(), {TARGET1}, [Column.of(PV)])


def test_negative_task_index_rejected():
    with pytest.raises(ValueError):
        CalculationTask.of(TARGET1, PV, -1, 0, RequirementsFunction(), MarketDataMappings.empty(), ReportingRules.empty())


def test_grid_without_columns_keeps_targets(make_rules):
    tasks = CalculationTasks.of(make_rules(), [TARGET1, TARGET2], [])
    assert str(tasks) == "CalculationTasks[grid=2x0]"
    assert len(tasks) == 0


def _task(row_index, column_index, target=TARGET1):
    return CalculationTask.of(
        target, PV, row_index, column_index, RequirementsFunction(), MarketDataMappings.empty(), ReportingRules.empty()
    )


def test_explicit_targets_reject_duplicate_cells():
    with pytest.raises(ValueError, match="Duplicate"):
        CalculationTasks([_task(0, 0), _task(0, 0)], [Column.of(PV)], [TARGET1, TARGET2])


def test_explicit_targets_reject_out_of_grid_cells():
    with pytest.raises(ValueError):
        CalculationTasks([_task(0, 0), _task(0, 1)], [Column.of(PV)], [TARGET1, TARGET2])


def test_explicit_targets_reject_missing_cells():
    with pytest.raises(ValueError):
        CalculationTasks([_task(0, 0)], [Column.of(PV)], [TARGET1, TARGET2])


def test_explicit_targets_accept_complete_grid():
    grid = CalculationTasks([_task(1, 0, TARGET2), _task(0, 0)], [Column.of(PV)], [TARGET1, TARGET2])
    assert [(t.row_index, t.column_index) for t in grid.tasks] == [(0, 0), (1, 0)]
    assert grid.targets == (TARGET1, TARGET2)
