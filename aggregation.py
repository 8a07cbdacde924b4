import math
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field

from config import SimulationConfig
from constants import CONSERVATIVE_RANK, LIKELY_RANK, OPTIMISTIC_RANK
from utils import round_half_up


class PercentilePoint(BaseModel):
    """Cross-trial outcome band for a single age."""

    age: int
    optimistic: float
    likely: float
    conservative: float
    safe_assets_years_coverage: float
    safe_assets_percentage: float
    inflation_factor: float


class PortfolioSummary(BaseModel):
    portfolio_at_retirement: float
    annual_withdrawal: float
    success_rate_pct: float
    years_to_retirement: int


class ProjectionResult(BaseModel):
    """Percentile bands for every simulated age plus the overall success rate."""

    points: List[PercentilePoint]
    success_rate_pct: float = Field(..., ge=0.0, le=100.0)
    trial_count: int
    show_nominal: bool = False
    seed: Optional[int] = None

    @property
    def ages(self) -> List[int]:
        return [p.age for p in self.points]

    def point_at(self, age: int) -> PercentilePoint:
        """Returns the band for ``age`` by offset from the first simulated age."""
        offset = age - self.points[0].age
        if offset < 0 or offset >= len(self.points):
            raise KeyError(
                f"Age {age} is outside the projected range {self.points[0].age}-{self.points[-1].age}"
            )
        return self.points[offset]

    def to_dataframe(self) -> pd.DataFrame:
        """One row per age, indexed by age."""
        df = pd.DataFrame([p.model_dump() for p in self.points])
        return df.set_index("age")

    def summarize(self, config: SimulationConfig) -> PortfolioSummary:
        """Headline figures: median balance at retirement, withdrawal and success rate."""
        return PortfolioSummary(
            portfolio_at_retirement=self.point_at(config.retirement_age).likely,
            annual_withdrawal=config.desired_retirement_income,
            success_rate_pct=round_half_up(self.success_rate_pct),
            years_to_retirement=config.retirement_age - config.current_age,
        )


def _nearest_rank(sorted_values: np.ndarray, rank: float) -> Any:
    return sorted_values[math.floor(len(sorted_values) * rank)]


def aggregate(
    trials: Sequence[Sequence[Any]],
    show_nominal: bool,
    safe_assets_percentage: float,
) -> Tuple[List[PercentilePoint], float]:
    """
    Reduces many trials to per-age percentile bands and a success rate.

    Percentiles use the nearest-rank rule (index ``floor(n * rank)`` into the
    ascending sort) with no interpolation, so small trial counts collapse the
    bands together. Success means the clamped real balance stayed above zero
    at every age, whichever balance series is being ranked.

    Args:
        trials: Trials of equal length, each indexed by age offset.
        show_nominal: Rank nominal balances instead of real balances.
        safe_assets_percentage: Safe-asset share reported on every point.

    Returns:
        The ordered percentile points and the success rate in percent.
    """
    if not trials:
        raise ValueError("Cannot aggregate an empty set of trials.")
    num_ages = len(trials[0])
    if any(len(trial) != num_ages for trial in trials):
        raise ValueError("All trials must cover the same age range.")

    real_balances = np.array(
        [[point.real_balance for point in trial] for trial in trials]
    )
    if show_nominal:
        ranked_balances = np.array(
            [[point.nominal_balance for point in trial] for trial in trials]
        )
    else:
        ranked_balances = real_balances
    coverage = np.array(
        [[point.safe_assets_years_coverage for point in trial] for trial in trials],
        dtype=float,
    )

    sorted_balances = np.sort(ranked_balances, axis=0)
    sorted_coverage = np.sort(coverage, axis=0)

    points: List[PercentilePoint] = []
    for offset in range(num_ages):
        balances_at_age = sorted_balances[:, offset]
        first_point = trials[0][offset]
        points.append(
            PercentilePoint(
                age=first_point.age,
                optimistic=float(_nearest_rank(balances_at_age, OPTIMISTIC_RANK)),
                likely=float(_nearest_rank(balances_at_age, LIKELY_RANK)),
                conservative=float(
                    _nearest_rank(balances_at_age, CONSERVATIVE_RANK)
                ),
                safe_assets_years_coverage=float(
                    _nearest_rank(sorted_coverage[:, offset], LIKELY_RANK)
                ),
                safe_assets_percentage=safe_assets_percentage,
                inflation_factor=first_point.inflation_factor,
            )
        )

    successful_trials = int(np.all(real_balances > 0, axis=1).sum())
    success_rate_pct = 100.0 * successful_trials / len(trials)
    return points, success_rate_pct
