import numpy as np

from allocations import AllocationProfile


def calculate_real_return_pct(
    profile: AllocationProfile, inflation_rate_pct: float
) -> float:
    """Expected annual return after inflation, in percent (Fisher relation)."""
    return (
        (1 + profile.expected_nominal_return_pct / 100)
        / (1 + inflation_rate_pct / 100)
        - 1
    ) * 100


def sample_annual_return(
    profile: AllocationProfile, real_return_pct: float, rng: np.random.Generator
) -> float:
    """
    Draws one year's realised real return as a fraction.

    The draw is uniform on a band as wide as the profile's volatility and
    centred on ``real_return_pct``. A zero-volatility profile always returns
    the centre exactly.
    """
    return real_return_pct / 100 + (rng.random() - 0.5) * (
        profile.volatility_pct / 100
    )
