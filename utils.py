import sys
import math
import datetime as _dt
import hashlib
from typing import TYPE_CHECKING, Optional
from loguru import logger

from allocations import AllocationProfile
from config import SimulationConfig

if TYPE_CHECKING:
    from aggregation import ProjectionResult


def _generate_seed_from_timestamp() -> int:
    ts = _dt.datetime.now(_dt.timezone.utc).isoformat()
    return int.from_bytes(hashlib.sha256(ts.encode()).digest()[:8], "big") % (2**32 - 1)


def round_half_up(value: float) -> int:
    """Rounds to the nearest integer with halves going towards +inf."""
    return math.floor(value + 0.5)


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Replaces loguru's default handler with the project's stderr (and optional file) sinks."""
    logger.remove()
    logger.add(
        sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        level=level,
        colorize=True,
    )
    if log_file:
        logger.add(
            log_file,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}",
            level=level,
            rotation="10 MB",
        )
        logger.info(f"Logging initialized. Log file: {log_file}")


def log_input_parameters(config: SimulationConfig, profile: AllocationProfile) -> None:
    """Logs the input parameters for the projection."""
    logger.info(f"--- Input Parameters For Scenario: {config.nickname} ---")
    config_as_dict_for_logging = config.model_dump(by_alias=False, exclude={"allocation"})
    for key, value in config_as_dict_for_logging.items():
        if key == "nickname":
            continue
        label = key.replace("_", " ").title()
        if key.endswith("_pct"):
            logger.info(f"{label}: {value:.2f}%")
        elif isinstance(value, (float, int)) and any(
            curr_kw in key for curr_kw in ["savings", "contribution", "income"]
        ):
            logger.info(f"{label}: ${value:,.2f}")
        else:
            logger.info(f"{label}: {value}")
    logger.info(
        f"Allocation: {profile.name} ({profile.equity_pct:.0f}% equities, "
        f"{profile.fixed_income_pct:.0f}% fixed income, {profile.cash_pct:.0f}% cash), "
        f"expected return {profile.expected_nominal_return_pct:.2f}%, "
        f"volatility {profile.volatility_pct:.2f}%"
    )
    logger.info("--- End of Input Parameters ---")


def log_projection_results(
    config: SimulationConfig, result: "ProjectionResult"
) -> None:
    """Logs the headline figures and the final-age percentile bands."""
    unit = "future $" if result.show_nominal else "today's $"
    summary = result.summarize(config)
    logger.info(f"--- Projection Results for Scenario: '{config.nickname}' ---")
    logger.info(
        f"Probability of Never Running Out of Money: {result.success_rate_pct:.2f}% "
        f"({result.trial_count:,} trials)"
    )
    logger.info(
        f"Median Portfolio at Retirement (age {config.retirement_age}): "
        f"${summary.portfolio_at_retirement:,.0f} ({unit})"
    )
    logger.info(f"Annual Withdrawal: ${summary.annual_withdrawal:,.0f}")
    logger.info(f"Years to Retirement: {summary.years_to_retirement}")

    df = result.to_dataframe()
    final_age = int(df.index[-1])
    final_row = df.loc[final_age]
    logger.info(f"Balance Bands at Age {final_age} ({unit}):")
    for band in ["optimistic", "likely", "conservative"]:
        logger.info(f"  {band.title()}: {max(0.0, final_row[band]):,.0f}")
    logger.info(
        f"Median Safe-Asset Coverage Across Ages: {df['safe_assets_years_coverage'].median():.1f} yrs"
    )
