import math
import multiprocessing
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
from loguru import logger

from aggregation import ProjectionResult, aggregate
from allocations import DEFAULT_CATALOG, AllocationCatalog, AllocationProfile
from config import SimulationConfig, parse_simulation_config, validate_simulation_config
from constants import MONTHS_PER_YEAR
from returns import calculate_real_return_pct, sample_annual_return
from utils import _generate_seed_from_timestamp, round_half_up


class NumericOverflow(ArithmeticError):
    """Raised when a simulated balance leaves the representable float range."""


@dataclass(frozen=True)
class TrialPoint:
    age: int
    real_balance: int
    nominal_balance: int
    inflation_factor: float
    safe_assets_value: float
    safe_assets_years_coverage: float
    safe_assets_percentage: float


Trial = List[TrialPoint]


def run_trial(
    config: SimulationConfig,
    rng: np.random.Generator,
    profile: Optional[AllocationProfile] = None,
) -> Trial:
    """
    Runs one stochastic realisation of the plan from current age to life expectancy.

    The running balance is kept unclamped between years: a year can record a
    balance of zero and a later year can still recover if the underlying
    value grows back above zero. Only the recorded balances are clamped.

    Args:
        config: A configuration that has passed validate_simulation_config.
        rng: Generator supplying this trial's uniform draws, one per age.
        profile: Resolved allocation; looked up in the default catalog if omitted.

    Returns:
        One TrialPoint per age; index ``i`` holds age ``current_age + i``.
    """
    if profile is None:
        profile = config.resolve_profile()

    real_return_pct = calculate_real_return_pct(profile, config.inflation_rate_pct)
    safe_assets_pct = profile.safe_assets_pct
    annual_contribution = config.monthly_contribution * MONTHS_PER_YEAR
    income = config.desired_retirement_income

    balance = config.current_savings
    trial: Trial = []
    for age in range(config.current_age, config.life_expectancy + 1):
        is_retired = age >= config.retirement_age
        years_from_now = age - config.current_age
        try:
            inflation_factor = (1 + config.inflation_rate_pct / 100) ** years_from_now
        except OverflowError as e:
            raise NumericOverflow(
                f"Inflation factor overflowed at age {age} for scenario '{config.nickname}'."
            ) from e

        annual_return = sample_annual_return(profile, real_return_pct, rng)
        balance = balance * (1 + annual_return) + (
            -income if is_retired else annual_contribution
        )
        nominal_balance = balance * inflation_factor
        if not (math.isfinite(balance) and math.isfinite(nominal_balance)):
            raise NumericOverflow(
                f"Balance became non-finite at age {age} for scenario '{config.nickname}'."
            )

        safe_assets_value = max(0.0, balance * (safe_assets_pct / 100))
        trial.append(
            TrialPoint(
                age=age,
                real_balance=max(0, round_half_up(balance)),
                nominal_balance=max(0, round_half_up(nominal_balance)),
                inflation_factor=inflation_factor,
                safe_assets_value=safe_assets_value,
                safe_assets_years_coverage=safe_assets_value / income,
                safe_assets_percentage=safe_assets_pct,
            )
        )
    return trial


def _run_trial_job(
    config: SimulationConfig, profile: AllocationProfile, rng: np.random.Generator
) -> Trial:
    return run_trial(config, rng, profile)


class ProjectionEngine:
    """
    Monte Carlo projection of a retirement plan.

    Validates a configuration, runs independent trials, and reduces them to
    percentile bands and a success rate. The engine holds no state between
    calls; the same configuration and seed always give the same result.
    """

    def __init__(self, catalog: AllocationCatalog = DEFAULT_CATALOG):
        self.catalog = catalog

    def _resolve_rng(
        self,
        config: SimulationConfig,
        rng: Optional[Union[int, np.random.Generator]],
    ) -> Tuple[np.random.Generator, Optional[int]]:
        if isinstance(rng, np.random.Generator):
            return rng, None
        if rng is not None:
            seed = int(rng)
        elif config.seed is not None:
            seed = config.seed
        else:
            seed = _generate_seed_from_timestamp()
        return np.random.default_rng(seed), seed

    def _run_trials(
        self,
        config: SimulationConfig,
        profile: AllocationProfile,
        trial_rngs: List[np.random.Generator],
    ) -> List[Trial]:
        num_procs_to_use = config.num_processes if config.num_processes is not None else 1

        if num_procs_to_use <= 1:
            logger.debug(
                f"Running {len(trial_rngs)} trials sequentially for ages "
                f"{config.current_age}-{config.life_expectancy}."
            )
            return [run_trial(config, trial_rng, profile) for trial_rng in trial_rngs]

        logger.debug(
            f"Running {len(trial_rngs)} trials in parallel using {num_procs_to_use} processes."
        )
        args_for_starmap = [(config, profile, trial_rng) for trial_rng in trial_rngs]
        try:
            with multiprocessing.Pool(processes=num_procs_to_use) as pool:
                return pool.starmap(_run_trial_job, args_for_starmap)
        except ArithmeticError:
            raise
        except Exception as e:
            logger.error(
                f"Multiprocessing pool error: {e}. Falling back to sequential execution."
            )
            return [run_trial(config, trial_rng, profile) for trial_rng in trial_rngs]

    def project(
        self,
        config: Union[SimulationConfig, Dict[str, Any]],
        trial_count: Optional[int] = None,
        rng: Optional[Union[int, np.random.Generator]] = None,
    ) -> ProjectionResult:
        """
        Projects a retirement plan.

        Args:
            config: The plan, as a SimulationConfig or a plain dictionary.
            trial_count: Number of trials; defaults to ``config.trial_count``.
            rng: A numpy Generator, an integer seed, or None to use
                ``config.seed`` (or a timestamp-derived seed when that is unset).

        Returns:
            Percentile bands per age and the success rate.

        Raises:
            InvalidConfiguration: Before any trial runs, if the plan is invalid.
            NumericOverflow: If a balance stops being finite.
        """
        if not isinstance(config, SimulationConfig):
            config = parse_simulation_config(config)

        profile = validate_simulation_config(config, self.catalog, trial_count)
        num_trials = config.trial_count if trial_count is None else trial_count

        generator, seed = self._resolve_rng(config, rng)
        if seed is not None:
            logger.info(
                f"Projecting scenario '{config.nickname}' with {num_trials} trials and seed: {seed}"
            )
        else:
            logger.info(
                f"Projecting scenario '{config.nickname}' with {num_trials} trials and a caller-supplied generator"
            )

        # One child generator per trial so results do not depend on execution order
        trial_rngs = generator.spawn(num_trials)
        trials = self._run_trials(config, profile, trial_rngs)

        points, success_rate_pct = aggregate(
            trials, config.show_nominal, profile.safe_assets_pct
        )
        logger.debug(
            f"Scenario '{config.nickname}': success rate {success_rate_pct:.2f}% over {num_trials} trials."
        )
        return ProjectionResult(
            points=points,
            success_rate_pct=success_rate_pct,
            trial_count=num_trials,
            show_nominal=config.show_nominal,
            seed=seed,
        )


def project(
    config: Union[SimulationConfig, Dict[str, Any]],
    trial_count: Optional[int] = None,
    rng: Optional[Union[int, np.random.Generator]] = None,
    catalog: AllocationCatalog = DEFAULT_CATALOG,
) -> ProjectionResult:
    """Runs a projection with a fresh ProjectionEngine."""
    return ProjectionEngine(catalog).project(config, trial_count, rng)
