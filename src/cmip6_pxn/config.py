"""
Configuration Module

This module groups every tunable of a pipeline run in a single PipelineConfig.
The ensemble members, year windows, percentile levels and the ocean index box are
configuration rather than logic; they can be overridden from a JSON file or from
the command line.
"""

import json
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Tuple, Union

from .exceptions import ConfigurationError

# Configure logger
logger = logging.getLogger(__name__)

# Constants
SECONDS_PER_DAY = 86400

VARIABLES = {
    "precipitation": {
        "nc_var": "pr",
        "table": "day",
        "frequency": "day",
    },
    "sst": {
        "nc_var": "tos",
        "table": "Omon",
        "frequency": "month",
    },
}

DEFAULT_MEMBERS = tuple(f"r{i}" for i in range(1, 41))
DEFAULT_FILE_PATTERN = "{nc_var}_{table}_{model}_{experiment}_{member}i*.nc"

Period = Tuple[int, int]


@dataclass(frozen=True)
class PipelineConfig:
    """
    Settings for one batch run over an ensemble.

    The first entry of future_periods is the near-future window used by the
    monthly exceedance variant.
    """

    members: Tuple[str, ...] = DEFAULT_MEMBERS
    model: str = "ACCESS-ESM1-5"
    scenario: str = "ssp585"
    reference_period: Period = (1980, 2014)
    historical_period: Period = (1950, 2014)
    future_periods: Tuple[Period, ...] = ((2021, 2050), (2071, 2100))
    percentile_levels: Tuple[float, ...] = (99.0, 99.9)
    monthly_percentile: float = 99.0
    heavy_precipitation_thresholds: Tuple[float, ...] = (10.0, 20.0)
    ocean_index_box: Tuple[float, float, float, float] = (190.0, 240.0, -5.0, 5.0)
    baseline_period: Period = (1981, 2010)
    regrid_resolution: float = 1.0
    enso_threshold: float = 0.5
    enso_min_duration: int = 5
    input_dir: Path = field(default_factory=lambda: Path("data") / "raw")
    output_dir: Path = field(default_factory=lambda: Path("data") / "processed")
    max_workers: int = 4
    file_pattern: str = DEFAULT_FILE_PATTERN
    export_csv: bool = True

    def __post_init__(self):
        # Normalise containers coming from JSON or argparse
        object.__setattr__(self, "members", tuple(str(m) for m in self.members))
        object.__setattr__(self, "reference_period", _as_period(self.reference_period))
        object.__setattr__(self, "historical_period", _as_period(self.historical_period))
        object.__setattr__(self, "baseline_period", _as_period(self.baseline_period))
        object.__setattr__(self, "future_periods", tuple(_as_period(p) for p in self.future_periods))
        object.__setattr__(self, "percentile_levels", tuple(float(p) for p in self.percentile_levels))
        object.__setattr__(self, "heavy_precipitation_thresholds",
                           tuple(float(t) for t in self.heavy_precipitation_thresholds))
        object.__setattr__(self, "ocean_index_box", tuple(float(v) for v in self.ocean_index_box))
        object.__setattr__(self, "input_dir", Path(self.input_dir))
        object.__setattr__(self, "output_dir", Path(self.output_dir))

    @property
    def near_future_period(self) -> Period:
        return self.future_periods[0]

    @property
    def reference_years(self) -> int:
        """Number of distinct years the reference window must contain."""
        start, end = self.reference_period
        return end - start + 1

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "PipelineConfig":
        """
        Load a configuration from a JSON file.

        Args:
            path: JSON file whose keys are PipelineConfig field names

        Returns:
            PipelineConfig with defaults for every missing key

        Raises:
            ConfigurationError: If the file cannot be read or has unknown keys
        """
        path = Path(path)
        try:
            with open(path, "r") as f:
                options = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e

        logger.info(f"Loaded configuration from {path}")
        return cls.from_dict(options)

    @classmethod
    def from_dict(cls, options: Dict[str, Any]) -> "PipelineConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(options) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration options: {sorted(unknown)}")
        try:
            return cls(**options)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def with_overrides(self, **overrides) -> "PipelineConfig":
        """Return a copy with every non-None override applied."""
        try:
            return replace(self, **{k: v for k, v in overrides.items() if v is not None})
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration override: {e}") from e

    def validate(self, check_paths: bool = True) -> None:
        """
        Check the configuration before any member is processed.

        Args:
            check_paths: Whether to require the input directory to exist

        Raises:
            ConfigurationError: On the first invalid setting found
        """
        if not self.members:
            raise ConfigurationError("At least one ensemble member is required")
        if len(set(self.members)) != len(self.members):
            raise ConfigurationError(f"Duplicate ensemble members in {self.members}")

        periods = {
            "reference_period": self.reference_period,
            "historical_period": self.historical_period,
            "baseline_period": self.baseline_period,
        }
        for i, period in enumerate(self.future_periods):
            periods[f"future_periods[{i}]"] = period
        for name, (start, end) in periods.items():
            if start > end:
                raise ConfigurationError(f"{name} starts after it ends: {start}-{end}")

        if not self.future_periods:
            raise ConfigurationError("At least one future period is required")

        if not self.percentile_levels:
            raise ConfigurationError("At least one percentile level is required")
        for level in self.percentile_levels + (self.monthly_percentile,):
            if not 0.0 < level < 100.0:
                raise ConfigurationError(f"Percentile level must be in (0, 100): {level}")
        if self.monthly_percentile not in self.percentile_levels:
            raise ConfigurationError(
                f"Monthly percentile {self.monthly_percentile} is not one of {self.percentile_levels}"
            )

        lon_min, lon_max, lat_min, lat_max = self.ocean_index_box
        if lon_min >= lon_max or lat_min >= lat_max:
            raise ConfigurationError(f"Degenerate ocean index box: {self.ocean_index_box}")
        if lat_min < -90.0 or lat_max > 90.0:
            raise ConfigurationError(f"Ocean index box latitudes out of range: {self.ocean_index_box}")

        if self.regrid_resolution <= 0 or (180.0 / self.regrid_resolution) % 1:
            raise ConfigurationError(
                f"Regrid resolution must divide 180 degrees: {self.regrid_resolution}"
            )
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be positive: {self.max_workers}")
        if self.enso_min_duration < 1:
            raise ConfigurationError(f"enso_min_duration must be positive: {self.enso_min_duration}")

        if check_paths and not self.input_dir.is_dir():
            raise ConfigurationError(f"Input directory does not exist: {self.input_dir}")


def _as_period(value) -> Period:
    start, end = value
    return int(start), int(end)
