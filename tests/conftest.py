from typing import Any, Dict, List

import pytest
from loguru import logger

from allocations import AllocationProfile
from config import SimulationConfig


@pytest.fixture
def base_config_dict() -> Dict[str, Any]:
    return {
        "scenario": "TestScenario",
        "current_age": 55,
        "retirement_age": 65,
        "life_expectancy": 90,
        "current_savings": 1_500_000,
        "monthly_contribution": 3_000,
        "desired_retirement_income": 200_000,
        "inflation_rate_pct": 2.0,
        "allocation": "moderate",
        "trial_count": 200,
    }


@pytest.fixture
def base_config(base_config_dict) -> SimulationConfig:
    return SimulationConfig(**base_config_dict)


@pytest.fixture
def flat_profile() -> AllocationProfile:
    """A profile with no volatility: every draw equals the expected real return."""
    return AllocationProfile(
        name="Flat",
        cash_pct=10,
        fixed_income_pct=30,
        equity_pct=60,
        expected_nominal_return_pct=4.0,
        volatility_pct=0.0,
        description="Deterministic returns",
    )


@pytest.fixture
def log_messages():
    messages: List[str] = []
    handler_id = logger.add(messages.append, level="DEBUG", format="{level} | {message}")
    yield messages
    logger.remove(handler_id)
