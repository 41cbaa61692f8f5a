"""
Grid Module

This module defines the gridded time series passed between pipeline stages.
"""

from dataclasses import dataclass, replace
from typing import Optional

import numpy as np
import xarray as xr


@dataclass(frozen=True)
class TimeSeriesGrid:
    """
    A (time, lat, lon) field for one ensemble member and variable.

    Instances are never modified in place; every ingest and analysis step returns
    a new grid. The physical unit lives in the 'units' attribute of the data.

    Attributes:
        data: DataArray with dimensions (time, lat, lon)
        member: Ensemble member identifier (e.g. 'r1')
        variable: Logical variable name ('precipitation' or 'sst')
    """

    data: xr.DataArray
    member: str
    variable: str

    def __post_init__(self):
        missing = {"time", "lat", "lon"} - set(self.data.dims)
        if missing:
            raise ValueError(f"TimeSeriesGrid needs dims (time, lat, lon), missing {sorted(missing)}")

    @property
    def units(self) -> Optional[str]:
        return self.data.attrs.get("units")

    @property
    def years(self) -> np.ndarray:
        """Distinct years present on the time axis, ascending."""
        return np.unique(self.data["time"].dt.year.values)

    @property
    def n_time(self) -> int:
        return self.data.sizes["time"]

    def with_data(self, data: xr.DataArray) -> "TimeSeriesGrid":
        """Return a new grid for the same member and variable."""
        return replace(self, data=data)
