import os
import json
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field, ValidationError, field_validator, ValidationInfo
from loguru import logger

from allocations import (
    DEFAULT_CATALOG,
    AllocationCatalog,
    AllocationProfile,
    UnknownAllocation,
)
from constants import (
    DEFAULT_ALLOCATION,
    DEFAULT_INFLATION_RATE_PCT,
    DEFAULT_TRIAL_COUNT,
    HIGH_INFLATION_WARNING_PCT,
    MAX_LIFE_EXPECTANCY,
    MIN_CURRENT_AGE,
)


class ConfigurationError(Exception):
    """Raised when the configuration file cannot be loaded or parsed."""


class InvalidConfiguration(ConfigurationError):
    """Raised when a configuration cannot be projected. No simulation work has been done."""


class SimulationConfig(BaseModel):
    """Inputs for a single retirement projection."""

    nickname: str = Field(
        "DefaultScenario",
        alias="scenario",
        description="A nickname for this projection scenario.",
    )
    current_age: int = Field(..., description="Age today, in whole years.")
    retirement_age: int = Field(
        ..., description="First age at which the annual income is withdrawn."
    )
    life_expectancy: int = Field(
        ..., description="Last age simulated (inclusive)."
    )

    current_savings: float = Field(..., ge=0)
    monthly_contribution: float = Field(
        0.0, ge=0, description="Contribution per month while working, in today's terms."
    )
    desired_retirement_income: float = Field(
        ...,
        ge=0,
        description="Annual withdrawal once retired, in today's (real) terms. Must be positive to project.",
    )
    inflation_rate_pct: float = Field(DEFAULT_INFLATION_RATE_PCT)

    allocation: Union[str, AllocationProfile] = Field(
        DEFAULT_ALLOCATION,
        description="Catalog key of the allocation, or an inline allocation profile.",
    )
    show_nominal: bool = Field(
        False,
        description="Rank future (nominal) balances instead of today's (real) balances.",
    )

    trial_count: int = Field(DEFAULT_TRIAL_COUNT)
    seed: Optional[int] = Field(None)
    num_processes: Optional[int] = Field(1, ge=1)

    model_config = {"validate_by_name": True, "validate_assignment": True}

    @field_validator("inflation_rate_pct")
    @classmethod
    def check_inflation_rate(cls, v: float, info: ValidationInfo) -> float:
        if abs(v) > HIGH_INFLATION_WARNING_PCT:
            scen_name = info.data.get("nickname", "N/A")
            logger.warning(
                f"Inflation rate ({v:.1f}%) is unusually high for scenario '{scen_name}'."
            )
        return v

    @property
    def years_to_retirement(self) -> int:
        return self.retirement_age - self.current_age

    @property
    def num_ages(self) -> int:
        """Number of simulated ages, current age through life expectancy inclusive."""
        return self.life_expectancy - self.current_age + 1

    def resolve_profile(
        self, catalog: AllocationCatalog = DEFAULT_CATALOG
    ) -> AllocationProfile:
        """Returns the selected profile, looking catalog keys up in ``catalog``."""
        if isinstance(self.allocation, AllocationProfile):
            return self.allocation
        return catalog.get(self.allocation)


def validate_simulation_config(
    config: SimulationConfig,
    catalog: AllocationCatalog = DEFAULT_CATALOG,
    trial_count: Optional[int] = None,
) -> AllocationProfile:
    """
    Checks the rules a configuration must satisfy before any trial is run.

    Every violation is collected and reported in a single InvalidConfiguration.
    Returns the resolved allocation profile when the configuration is valid.
    """
    problems: List[str] = []

    if config.current_age < MIN_CURRENT_AGE:
        problems.append(
            f"current age {config.current_age} is below the minimum of {MIN_CURRENT_AGE}"
        )
    if config.current_age > config.retirement_age:
        problems.append(
            f"current age {config.current_age} is after retirement age {config.retirement_age}"
        )
    if config.retirement_age > config.life_expectancy:
        problems.append(
            f"retirement age {config.retirement_age} is after life expectancy {config.life_expectancy}"
        )
    if config.life_expectancy > MAX_LIFE_EXPECTANCY:
        problems.append(
            f"life expectancy {config.life_expectancy} exceeds the maximum of {MAX_LIFE_EXPECTANCY}"
        )
    if config.inflation_rate_pct <= -100:
        problems.append(
            f"inflation rate {config.inflation_rate_pct}% must be greater than -100%"
        )
    if config.desired_retirement_income <= 0:
        problems.append("desired retirement income must be greater than zero")

    effective_trials = config.trial_count if trial_count is None else trial_count
    if effective_trials <= 0:
        problems.append(f"trial count must be positive, got {effective_trials}")

    profile: Optional[AllocationProfile] = None
    try:
        profile = config.resolve_profile(catalog)
    except UnknownAllocation as e:
        problems.append(str(e.args[0]))

    if problems:
        message = (
            f"Invalid configuration for scenario '{config.nickname}': "
            + "; ".join(problems)
        )
        logger.error(message)
        raise InvalidConfiguration(message)

    return profile


def parse_simulation_config(data: Dict[str, Any]) -> SimulationConfig:
    """Builds a SimulationConfig from a plain dictionary."""
    try:
        return SimulationConfig(**data)
    except ValidationError as e:
        raise InvalidConfiguration(f"Configuration validation error: {e}") from e


def load_config_from_json(file_path: str) -> Dict[str, Any]:
    """Loads and returns the configuration dictionary from a JSON file."""
    if not os.path.exists(file_path):
        raise ConfigurationError(f"Configuration file not found at: {file_path}")

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Error parsing JSON file '{file_path}': {e}"
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Unexpected error reading config file '{file_path}': {e}"
        ) from e
