from typing import List, Optional

import pandas as pd
import pytest

from aggregation import PercentilePoint, ProjectionResult, aggregate
from config import SimulationConfig
from simulation import Trial, TrialPoint


def make_trial(
    balances: List[int],
    start_age: int = 60,
    inflation_pct: float = 2.0,
    coverage: Optional[List[float]] = None,
) -> Trial:
    trial = []
    for offset, balance in enumerate(balances):
        factor = (1 + inflation_pct / 100) ** offset
        trial.append(
            TrialPoint(
                age=start_age + offset,
                real_balance=balance,
                nominal_balance=round(balance * factor),
                inflation_factor=factor,
                safe_assets_value=balance * 0.3,
                safe_assets_years_coverage=coverage[offset] if coverage else balance * 0.3 / 1000,
                safe_assets_percentage=30,
            )
        )
    return trial


def test_nearest_rank_percentiles():
    trials = [make_trial([value]) for value in [7, 3, 10, 1, 5, 9, 2, 8, 4, 6]]
    points, _ = aggregate(trials, show_nominal=False, safe_assets_percentage=30)
    assert len(points) == 1
    point = points[0]
    # sorted 1..10; indices floor(10*0.9)=9, floor(10*0.5)=5, floor(10*0.1)=1
    assert point.optimistic == 10
    assert point.likely == 6
    assert point.conservative == 2


def test_single_trial_collapses_bands():
    points, success = aggregate(
        [make_trial([100, 200, 300])], show_nominal=False, safe_assets_percentage=30
    )
    assert [p.age for p in points] == [60, 61, 62]
    for point in points:
        assert point.optimistic == point.likely == point.conservative
    assert success == 100.0


def test_coverage_is_median_across_trials():
    trials = [
        make_trial([1], coverage=[c]) for c in [4.0, 1.0, 3.0, 2.0, 5.0]
    ]
    points, _ = aggregate(trials, show_nominal=False, safe_assets_percentage=30)
    # sorted 1..5, floor(5*0.5)=2
    assert points[0].safe_assets_years_coverage == 3.0


def test_success_uses_clamped_real_balance():
    trials = [
        make_trial([100, 0, 100]),
        make_trial([100, 100, 100]),
        make_trial([100, 100, 0]),
        make_trial([100, 100, 100]),
    ]
    _, success = aggregate(trials, show_nominal=False, safe_assets_percentage=30)
    assert success == 50.0
    _, success_nominal = aggregate(trials, show_nominal=True, safe_assets_percentage=30)
    assert success_nominal == 50.0


def test_show_nominal_ranks_nominal_balances():
    trials = [make_trial([1000, 1000], inflation_pct=10.0)]
    real_points, _ = aggregate(trials, show_nominal=False, safe_assets_percentage=30)
    nominal_points, _ = aggregate(trials, show_nominal=True, safe_assets_percentage=30)
    assert real_points[1].likely == 1000
    assert nominal_points[1].likely == 1100
    assert nominal_points[1].inflation_factor == pytest.approx(1.1)


def test_safe_assets_percentage_is_passed_through():
    points, _ = aggregate(
        [make_trial([1, 2, 3])], show_nominal=False, safe_assets_percentage=55
    )
    assert {p.safe_assets_percentage for p in points} == {55}


def test_empty_trials_rejected():
    with pytest.raises(ValueError, match="empty"):
        aggregate([], show_nominal=False, safe_assets_percentage=30)


def test_unequal_trials_rejected():
    with pytest.raises(ValueError, match="same age range"):
        aggregate(
            [make_trial([1, 2]), make_trial([1])],
            show_nominal=False,
            safe_assets_percentage=30,
        )


@pytest.fixture
def result() -> ProjectionResult:
    points, success = aggregate(
        [make_trial([100, 250, 180], start_age=63), make_trial([90, 150, 0], start_age=63)],
        show_nominal=False,
        safe_assets_percentage=30,
    )
    return ProjectionResult(points=points, success_rate_pct=success, trial_count=2)


def test_point_at_uses_age_offset(result):
    assert result.ages == [63, 64, 65]
    assert result.point_at(64).age == 64
    with pytest.raises(KeyError):
        result.point_at(62)
    with pytest.raises(KeyError):
        result.point_at(66)


def test_to_dataframe(result):
    df = result.to_dataframe()
    assert isinstance(df, pd.DataFrame)
    assert list(df.index) == [63, 64, 65]
    assert {"optimistic", "likely", "conservative", "inflation_factor"} <= set(df.columns)
    assert df.loc[64, "likely"] == 250


def test_summarize(result):
    config = SimulationConfig(
        current_age=63,
        retirement_age=64,
        life_expectancy=65,
        current_savings=100,
        desired_retirement_income=10,
    )
    summary = result.summarize(config)
    assert summary.portfolio_at_retirement == 250
    assert summary.annual_withdrawal == 10
    assert summary.success_rate_pct == 50
    assert summary.years_to_retirement == 1


def test_percentile_point_model():
    point = PercentilePoint(
        age=70,
        optimistic=3,
        likely=2,
        conservative=1,
        safe_assets_years_coverage=4.5,
        safe_assets_percentage=30,
        inflation_factor=1.3,
    )
    assert point.model_dump()["likely"] == 2
