"""
ENSO Module

This module computes an Oceanic Nino Index (ONI) analogue from monthly SST of one
ensemble member:

1. Subset of the Nino 3.4 box (190-240°E, 5°S-5°N by default)
2. Linear detrend per grid cell over the full series
3. Monthly climatology over a fixed baseline window
4. Anomalies from the matching calendar-month climatology
5. Centred 3-month running mean (shrinking window at the series ends)
6. Area-weighted mean over the box

El Nino and La Nina phases are flagged where the index stays beyond +/- 0.5 K for
at least five consecutive months, as in the NOAA CPC definition.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np
import xarray as xr

from ..config import PipelineConfig
from ..data.artifacts import ArtifactKey, ClimateIndexSeries
from ..data.grid import TimeSeriesGrid
from ..exceptions import BaselineWindowError, EmptyRangeError
from ..utils.geo_utils import area_weighted_mean, format_box_cardinal, to_lon_360
from .base_analyzer import BaseAnalyzer
from .filters import linear_detrend, running_mean

# Configure logger
logger = logging.getLogger(__name__)

SMOOTHING_WINDOW = 3


def subset_box(
        data: xr.DataArray,
        box: Tuple[float, float, float, float],
        member: Optional[str] = None
) -> xr.DataArray:
    """
    Select the cells inside a lon/lat box (inclusive bounds).

    A box crossing the prime meridian, e.g. (-20, 10, -5, 5), is joined from its
    western and eastern pieces; the western longitudes are returned as negative
    values so that the longitude axis stays ascending.

    Args:
        data: DataArray with 'lat' and 'lon' coordinates
        box: (lon_min, lon_max, lat_min, lat_max), longitudes in degrees east
        member: Ensemble member identifier, for error reports

    Returns:
        Subset with both axes ascending

    Raises:
        EmptyRangeError: If no cell falls inside the box
    """
    lon_min, lon_max, lat_min, lat_max = box
    data = to_lon_360(data).sortby("lat").sel(lat=slice(lat_min, lat_max))

    west, east = lon_min % 360, lon_max % 360 or 360.0
    if west <= east:
        subset = data.sel(lon=slice(west, east))
    else:
        western = data.sel(lon=slice(west, 360.0))
        western = western.assign_coords(lon=western["lon"] - 360.0)
        subset = xr.concat([western, data.sel(lon=slice(0.0, east))], dim="lon")

    if subset.sizes["lat"] == 0 or subset.sizes["lon"] == 0:
        raise EmptyRangeError(f"No grid cells inside box {box}", member=member)

    return subset


def monthly_climatology(
        data: xr.DataArray,
        baseline_period: Tuple[int, int],
        member: Optional[str] = None
) -> xr.DataArray:
    """
    Mean of each calendar month over the baseline window.

    Args:
        data: Monthly series with a 'time' dimension
        baseline_period: Inclusive (start, end) years
        member: Ensemble member identifier, for error reports

    Returns:
        DataArray with a 'month' dimension (1..12)

    Raises:
        BaselineWindowError: If any (year, month) of the window is missing
    """
    start, end = baseline_period
    years = data["time"].dt.year
    in_window = ((years >= start) & (years <= end)).values
    baseline = data.isel(time=in_window)

    present = set(zip(baseline["time"].dt.year.values.tolist(), baseline["time"].dt.month.values.tolist()))
    expected = {(y, m) for y in range(start, end + 1) for m in range(1, 13)}
    missing = sorted(expected - present)
    if missing:
        raise BaselineWindowError(
            f"Baseline {start}-{end} is missing {len(missing)} month(s), "
            f"first {missing[0][0]}-{missing[0][1]:02d}",
            member=member,
        )

    return baseline.groupby("time.month").mean("time")


def monthly_anomalies(data: xr.DataArray, climatology: xr.DataArray) -> xr.DataArray:
    """Subtract the matching calendar-month climatology from every time step."""
    anomalies = data.groupby("time.month") - climatology
    return anomalies.drop_vars("month", errors="ignore")


def detrended_anomalies(
        data: xr.DataArray,
        baseline_period: Tuple[int, int],
        member: Optional[str] = None
) -> xr.DataArray:
    """
    Detrend per cell, then remove the baseline monthly climatology.

    Adding a constant to the input leaves the result unchanged, since both the
    trend fit and the climatology absorb it.

    Raises:
        TrendFitError: If fewer than 2 time steps are available
        BaselineWindowError: If the baseline window has missing months
    """
    detrended = linear_detrend(data, member=member)
    climatology = monthly_climatology(detrended, baseline_period, member)
    return monthly_anomalies(detrended, climatology)


def classify_enso_phases(
        index: xr.DataArray,
        threshold: float = 0.5,
        min_duration: int = 5
) -> xr.DataArray:
    """
    Flag El Nino (+1) and La Nina (-1) episodes in an index series.

    An episode is a run of at least `min_duration` consecutive months at or above
    +threshold (El Nino) or at or below -threshold (La Nina).

    Args:
        index: Monthly index series
        threshold: Anomaly threshold in K
        min_duration: Minimum run length in months

    Returns:
        Integer series with the same time coordinate
    """
    values = index.values
    phase = np.zeros(values.shape, dtype=np.int8)

    for sign, condition in ((1, values >= threshold), (-1, values <= -threshold)):
        starts, durations = _find_consecutive_runs(condition)
        for start, duration in zip(starts, durations):
            if duration >= min_duration:
                phase[start:start + duration] = sign

    return xr.DataArray(phase, coords={"time": index["time"]}, dims=["time"], name="phase")


def _find_consecutive_runs(binary_array: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Find runs of consecutive True values in a binary array.

    Args:
        binary_array: Boolean array to analyze

    Returns:
        Tuple containing (start_indices, run_lengths)
    """
    runs = np.diff(np.concatenate(([0], binary_array.astype(np.int8), [0])))
    starts = np.where(runs == 1)[0]
    ends = np.where(runs == -1)[0]
    return starts, ends - starts


def oceanic_nino_index(
        grid: TimeSeriesGrid,
        box: Tuple[float, float, float, float] = (190.0, 240.0, -5.0, 5.0),
        baseline_period: Tuple[int, int] = (1981, 2010),
        window: int = SMOOTHING_WINDOW
) -> xr.DataArray:
    """
    Box-averaged, smoothed, detrended SST anomaly series.

    Only the final index is returned; the subset, detrended field, climatology
    and anomalies are released when this function returns.

    Args:
        grid: Monthly SST grid
        box: (lon_min, lon_max, lat_min, lat_max)
        baseline_period: Inclusive climatology window
        window: Running mean length in months

    Returns:
        Monthly index DataArray with the input time coordinate

    Raises:
        TrendFitError: If fewer than 2 time steps are available
        BaselineWindowError: If the baseline window has missing months
    """
    subset = subset_box(grid.data, box, grid.member).load()
    logger.info(f"Computing ONI for member {grid.member} over {subset.sizes['lat']}x{subset.sizes['lon']} "
                f"cells, {subset.sizes['time']} months")

    anomalies = detrended_anomalies(subset, baseline_period, grid.member)
    smoothed = running_mean(anomalies, window=window)
    index = area_weighted_mean(smoothed)
    index.name = "index"

    return index


class OniAnalyzer(BaseAnalyzer):
    """
    Analyzer for the Oceanic Nino Index of one ensemble member.

    The index is a pure function of the SST grid; only the final series and its
    ENSO phase flags are persisted.
    """

    def __init__(
            self,
            grid: TimeSeriesGrid,
            config: PipelineConfig,
            output_dir: Optional[Union[str, Path]] = None,
            persist: bool = True
    ):
        super().__init__(grid, config, output_dir)
        self.persist = persist
        self.saved_files = []

    def compute(self) -> Dict[str, Any]:
        """
        Compute the index series and ENSO phases.

        Returns:
            Dictionary with key 'index' holding a ClimateIndexSeries
        """
        config = self.config
        index = oceanic_nino_index(
            self.grid,
            box=config.ocean_index_box,
            baseline_period=config.baseline_period,
        )
        phase = classify_enso_phases(index, config.enso_threshold, config.enso_min_duration)

        years = self.grid.years
        key = ArtifactKey(member=self.member, variable="tos", kind="oni",
                          period=(int(years[0]), int(years[-1])))
        attrs = {
            'region': format_box_cardinal(*config.ocean_index_box),
            'baseline_period': f"{config.baseline_period[0]}-{config.baseline_period[1]}",
            'smoothing': f"centred {SMOOTHING_WINDOW}-month running mean, shrinking edge windows",
            'enso_threshold': config.enso_threshold,
            'enso_min_duration': config.enso_min_duration,
        }
        series = ClimateIndexSeries(key=key, index=index, phase=phase, attrs=attrs)

        n_nino = int((phase == 1).sum())
        n_nina = int((phase == -1).sum())
        logger.info(f"ONI for member {self.member}: {n_nino} El Nino months, {n_nina} La Nina months")

        if self.persist:
            self.saved_files.append(self.save_results(series))

        return {'index': series}
