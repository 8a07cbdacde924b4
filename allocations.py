import os
import json
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple
from pydantic import BaseModel, Field, ValidationError
from loguru import logger


class UnknownAllocation(KeyError):
    """Raised when an allocation key is not registered in the catalog."""


class CatalogFileError(Exception):
    """Raised when an allocation catalog file cannot be loaded or parsed."""


class AllocationProfile(BaseModel):
    """A named cash / fixed income / equity mix with its return assumptions."""

    name: str = Field(..., description="Display name of the profile.")
    cash_pct: float = Field(..., ge=0.0, le=100.0)
    fixed_income_pct: float = Field(..., ge=0.0, le=100.0)
    equity_pct: float = Field(..., ge=0.0, le=100.0)
    expected_nominal_return_pct: float = Field(
        ..., description="Expected annual nominal return, in percent."
    )
    volatility_pct: float = Field(
        ...,
        ge=0.0,
        description="Width of the uniform band the annual return is drawn from, in percent.",
    )
    description: str = Field("", description="Short human-readable summary.")

    model_config = {"frozen": True}

    @property
    def safe_assets_pct(self) -> float:
        """Share of the portfolio held in cash and fixed income."""
        return self.cash_pct + self.fixed_income_pct


ALLOCATION_PROFILES: Dict[str, Dict[str, Any]] = {
    "conservative": {
        "name": "Conservative",
        "cash_pct": 5,
        "fixed_income_pct": 50,
        "equity_pct": 45,
        "expected_nominal_return_pct": 5.2,
        "volatility_pct": 8.0,
        "description": "Lower risk, stable returns",
    },
    "moderate": {
        "name": "Moderate",
        "cash_pct": 5,
        "fixed_income_pct": 25,
        "equity_pct": 70,
        "expected_nominal_return_pct": 6.5,
        "volatility_pct": 12.0,
        "description": "Balanced risk and return",
    },
    "aggressive": {
        "name": "Aggressive",
        "cash_pct": 2,
        "fixed_income_pct": 8,
        "equity_pct": 90,
        "expected_nominal_return_pct": 7.5,
        "volatility_pct": 15.0,
        "description": "Higher risk, higher potential return",
    },
}


class AllocationCatalog:
    """
    Read-only registry of allocation profiles keyed by a short identifier.

    The catalog is built once from data; lookups never mutate it, so a single
    instance can be shared by every projection in the process.
    """

    def __init__(self, profiles: Mapping[str, AllocationProfile]):
        self._profiles: Dict[str, AllocationProfile] = dict(profiles)

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Mapping[str, Any]],
        base: Optional["AllocationCatalog"] = None,
    ) -> "AllocationCatalog":
        """Builds a catalog from raw profile dictionaries, optionally layered over ``base``."""
        profiles: Dict[str, AllocationProfile] = dict(base.items()) if base else {}
        for key, raw_profile in data.items():
            try:
                profiles[key] = AllocationProfile(**raw_profile)
            except ValidationError as e:
                raise CatalogFileError(
                    f"Invalid allocation profile '{key}': {e}"
                ) from e
        return cls(profiles)

    def get(self, key: str) -> AllocationProfile:
        try:
            return self._profiles[key]
        except KeyError:
            raise UnknownAllocation(
                f"Unknown allocation '{key}'. Known allocations: {', '.join(self._profiles)}"
            ) from None

    def keys(self) -> Tuple[str, ...]:
        return tuple(self._profiles)

    def items(self) -> Tuple[Tuple[str, AllocationProfile], ...]:
        return tuple(self._profiles.items())

    def __contains__(self, key: object) -> bool:
        return key in self._profiles

    def __iter__(self) -> Iterator[str]:
        return iter(self._profiles)

    def __len__(self) -> int:
        return len(self._profiles)


DEFAULT_CATALOG = AllocationCatalog.from_dict(ALLOCATION_PROFILES)


def load_catalog_from_json(
    file_path: str, include_defaults: bool = True
) -> AllocationCatalog:
    """
    Loads allocation profiles from a JSON object of ``{key: profile}`` entries.

    With ``include_defaults`` the file's profiles are added to (or override)
    the built-in conservative/moderate/aggressive set.
    """
    if not os.path.exists(file_path):
        raise CatalogFileError(f"Allocation catalog file not found at: {file_path}")

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise CatalogFileError(
            f"Error parsing JSON file '{file_path}': {e}"
        ) from e

    if not isinstance(data, dict):
        raise CatalogFileError(
            f"Allocation catalog '{file_path}' must contain a JSON object of profiles."
        )

    catalog = AllocationCatalog.from_dict(
        data, base=DEFAULT_CATALOG if include_defaults else None
    )
    logger.info(
        f"Loaded {len(data)} allocation profile(s) from '{file_path}'; catalog now has {len(catalog)}."
    )
    return catalog
