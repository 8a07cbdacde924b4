# constants.py

MONTHS_PER_YEAR: int = 12
DEFAULT_TRIAL_COUNT: int = 1000
DEFAULT_ALLOCATION: str = "moderate"
DEFAULT_INFLATION_RATE_PCT: float = 2.0

# Age bounds accepted by the projection engine
MIN_CURRENT_AGE: int = 18
MAX_LIFE_EXPECTANCY: int = 120

# Nearest-rank positions for the percentile bands
OPTIMISTIC_RANK: float = 0.9
LIKELY_RANK: float = 0.5
CONSERVATIVE_RANK: float = 0.1

HIGH_INFLATION_WARNING_PCT: float = 10.0
