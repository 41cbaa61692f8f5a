"""
Extremes Module

This module computes extreme-precipitation statistics for one ensemble member,
following the percentile-exceedance approach of the ETCCDI indices:

1. REFERENCE: per-cell percentile thresholds (99th and 99.9th by default) over a
   fixed reference window, bracketed by the per-cell minimum and maximum
2. EXCEEDANCE: annual frequency of days at or above the reference threshold for
   the historical period and each future window, spatially averaged
3. MONTHLY: the same exceedance at monthly granularity for the near-future
   window and the 99th percentile only
4. HEAVY DAYS: annual counts of days at or above fixed thresholds (R10mm, R20mm)

The same reference threshold field is applied to every period, so changes in
exceedance frequency reflect the shift of the distribution against a fixed
historical baseline.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import dask
import numpy as np
import pymannkendall as mk
import xarray as xr

from ..config import PipelineConfig
from ..data.artifacts import (
    ArtifactKey,
    ExceedanceSeries,
    HeavyPrecipitationDays,
    PercentileThresholdField,
)
from ..data.grid import TimeSeriesGrid
from ..data.ingest import select_years
from ..exceptions import InsufficientReferenceDataError, ThresholdDegeneracyError
from ..utils.geo_utils import area_weighted_mean
from .base_analyzer import BaseAnalyzer

# Configure logger
logger = logging.getLogger(__name__)

# Rank-based estimator: the threshold is always one of the observed values
PERCENTILE_METHOD = "inverted_cdf"

# Minimum series length for a Mann-Kendall trend test
MIN_TREND_YEARS = 4


def reference_thresholds(
        grid: TimeSeriesGrid,
        levels: Sequence[float],
        reference_period: Tuple[int, int],
        variable: str = "pr"
) -> Dict[float, PercentileThresholdField]:
    """
    Compute per-cell percentile thresholds over the reference window.

    The per-cell minimum and maximum are computed in the same pass as the
    percentiles. They serve two purposes: a cell whose minimum equals its
    maximum has no usable distribution and is reported instead of producing a
    flat threshold, and they are stored with the threshold as its bracket.
    With the inverted_cdf estimator every threshold is already an observed
    value of its cell, so the final clip into [min, max] only guards against a
    change of estimator and leaves the values unchanged.

    Args:
        grid: Historical precipitation grid (mm/day)
        levels: Percentile levels in (0, 100), e.g. (99.0, 99.9)
        reference_period: Inclusive (start, end) years
        variable: NetCDF variable name used in artifact keys

    Returns:
        Dictionary mapping each level to its PercentileThresholdField

    Raises:
        InsufficientReferenceDataError: If any year of the window is missing
        ThresholdDegeneracyError: If any non-missing cell has min == max
    """
    start, end = reference_period
    expected_years = set(range(start, end + 1))
    present_years = set(int(y) for y in grid.years) & expected_years
    missing_years = sorted(expected_years - present_years)

    if missing_years:
        raise InsufficientReferenceDataError(
            f"Reference window {start}-{end} needs {len(expected_years)} years, "
            f"found {len(present_years)} for member {grid.member} "
            f"(missing {missing_years[0]}..{missing_years[-1]})",
            member=grid.member,
        )

    reference = select_years(grid, start, end).data.chunk({"time": -1})

    logger.info(f"Calculating {list(levels)} percentile thresholds for member {grid.member} "
                f"over {start}-{end} ({reference.sizes['time']} days)")

    quantiles = [level / 100.0 for level in levels]
    cell_min, cell_max, percentiles = dask.compute(
        reference.min("time", skipna=True),
        reference.max("time", skipna=True),
        reference.quantile(quantiles, dim="time", method=PERCENTILE_METHOD, skipna=True),
    )

    degenerate = cell_max == cell_min
    n_degenerate = int(degenerate.sum())
    if n_degenerate:
        first = degenerate.where(degenerate, drop=True)
        raise ThresholdDegeneracyError(
            f"{n_degenerate} cell(s) have min == max over {start}-{end} for member {grid.member}, "
            f"first at lat={float(first['lat'][0])}, lon={float(first['lon'][0])}",
            member=grid.member,
        )

    units = grid.units or "mm/day"
    fields = {}
    for level, q in zip(levels, quantiles):
        threshold = percentiles.sel(quantile=q).drop_vars("quantile")
        threshold = threshold.clip(min=cell_min, max=cell_max)
        threshold.attrs = {"units": units}

        key = ArtifactKey(member=grid.member, variable=variable, kind="threshold",
                          period=(start, end), percentile=level)
        fields[level] = PercentileThresholdField(key=key, threshold=threshold,
                                                 cell_min=cell_min, cell_max=cell_max)

        logger.info(f"Threshold p{level} for member {grid.member}: "
                    f"spatial mean {float(area_weighted_mean(threshold)):.3f} {units}")

    return fields


def _exceedance_mask(data: xr.DataArray, threshold: xr.DataArray) -> xr.DataArray:
    """1.0 where value >= threshold, 0.0 below, missing where either is missing."""
    exceeds = (data >= threshold).astype(float)
    return exceeds.where(data.notnull() & threshold.notnull())


def mann_kendall_summary(series: xr.DataArray) -> Dict[str, Any]:
    """
    Mann-Kendall trend test on a 1-D series.

    Returns:
        Attribute-safe dictionary (trend, h, p, z, tau, slope, intercept), empty
        when the series is too short
    """
    valid_data = series.values[np.isfinite(series.values)]
    if len(valid_data) < MIN_TREND_YEARS:
        return {}

    mk_result = mk.original_test(valid_data)
    return {
        'trend': str(mk_result.trend),
        'h': int(bool(mk_result.h)),
        'p': float(mk_result.p),
        'z': float(mk_result.z),
        'tau': float(mk_result.Tau),
        'slope': float(mk_result.slope),
        'intercept': float(mk_result.intercept),
    }


def exceedance_series(
        grid: TimeSeriesGrid,
        field: PercentileThresholdField,
        period: Tuple[int, int],
        frequency: str = "annual",
        variable: str = "pr"
) -> ExceedanceSeries:
    """
    Spatially averaged exceedance of a reference threshold over one period.

    For every cell and day a boolean exceedance (value >= threshold) is taken,
    aggregated per year (or per month) into a frequency and a day count, and then
    averaged over the grid with cos(latitude) weights, ignoring missing cells.

    Args:
        grid: Precipitation grid covering the period
        field: Reference threshold field
        period: Inclusive (start, end) years
        frequency: 'annual' or 'monthly'
        variable: NetCDF variable name used in artifact keys

    Returns:
        ExceedanceSeries with one value per year (dim 'year') or month (dim 'time')

    Raises:
        EmptyRangeError: If the grid has no data in the period
    """
    if frequency not in ("annual", "monthly"):
        raise ValueError(f"Invalid frequency: {frequency}. Must be 'annual' or 'monthly'")

    data = select_years(grid, *period).data
    exceeds = _exceedance_mask(data, field.threshold)

    if frequency == "annual":
        grouped = exceeds.groupby("time.year")
        cell_frequency = grouped.mean("time", skipna=True)
        cell_days = grouped.sum("time", skipna=True, min_count=1)
    else:
        resampled = exceeds.resample(time="MS")
        cell_frequency = resampled.mean(skipna=True)
        cell_days = resampled.sum(skipna=True, min_count=1)

    mean_frequency, mean_days = dask.compute(
        area_weighted_mean(cell_frequency),
        area_weighted_mean(cell_days),
    )

    key = ArtifactKey(member=grid.member, variable=variable, kind=f"exceedance_{frequency}",
                      period=tuple(period), percentile=field.key.percentile)

    trend = mann_kendall_summary(mean_frequency) if frequency == "annual" else {}

    logger.info(f"Exceedance p{field.key.percentile} {frequency} {period[0]}-{period[1]} "
                f"for member {grid.member}: mean frequency {float(mean_frequency.mean()):.5f}, "
                f"trend {trend.get('trend', 'n/a')}")

    return ExceedanceSeries(key=key, frequency=mean_frequency, days=mean_days, trend=trend)


def heavy_precipitation_days(
        grid: TimeSeriesGrid,
        thresholds: Sequence[float],
        period: Tuple[int, int],
        variable: str = "pr"
) -> HeavyPrecipitationDays:
    """
    Annual count of days with precipitation at or above fixed thresholds.

    Args:
        grid: Precipitation grid in mm/day
        thresholds: Absolute thresholds in mm/day (e.g. 10 and 20 for R10mm, R20mm)
        period: Inclusive (start, end) years
        variable: NetCDF variable name used in artifact keys

    Returns:
        HeavyPrecipitationDays with one spatially averaged count per year
    """
    data = select_years(grid, *period).data

    counts = {}
    for threshold in thresholds:
        wet = (data >= threshold).astype(float).where(data.notnull())
        cell_counts = wet.groupby("time.year").sum("time", skipna=True, min_count=1)
        counts[threshold] = area_weighted_mean(cell_counts)

    computed = dask.compute(*counts.values())
    counts = dict(zip(counts.keys(), computed))

    key = ArtifactKey(member=grid.member, variable=variable, kind="heavy_days", period=tuple(period))
    return HeavyPrecipitationDays(key=key, counts=counts)


class ExtremesAnalyzer(BaseAnalyzer):
    """
    Analyzer for extreme precipitation of one ensemble member.

    The REFERENCE stage runs first and its threshold fields are persisted before
    any exceedance is computed. Exceedances for every period then reuse the same
    fields.
    """

    def __init__(
            self,
            grid: TimeSeriesGrid,
            config: PipelineConfig,
            output_dir: Optional[Union[str, Path]] = None,
            persist: bool = True
    ):
        """
        Initialize the analyzer.

        Args:
            grid: Precipitation grid in mm/day covering historical and future periods
            config: Pipeline configuration (periods, percentile levels, thresholds)
            output_dir: Directory to store output data
            persist: Whether to write artifacts to NetCDF as they are produced
        """
        super().__init__(grid, config, output_dir)
        self.persist = persist

        # Initialize result containers
        self.thresholds = None
        self.saved_files = []

    @property
    def periods(self) -> Tuple[Tuple[int, int], ...]:
        """Historical period followed by the future windows."""
        return (self.config.historical_period,) + tuple(self.config.future_periods)

    def _save(self, artifact) -> None:
        if self.persist:
            self.saved_files.append(self.save_results(artifact))

    def compute_thresholds(self) -> Dict[float, PercentileThresholdField]:
        """Run the REFERENCE stage and persist every threshold field."""
        self.thresholds = reference_thresholds(
            self.grid,
            self.config.percentile_levels,
            self.config.reference_period,
        )
        for field in self.thresholds.values():
            self._save(field)
        return self.thresholds

    def compute(self) -> Dict[str, Any]:
        """
        Compute thresholds, exceedance series and heavy-precipitation days.

        Returns:
            Dictionary containing:
                - thresholds: {level: PercentileThresholdField}
                - exceedance: {(level, period): ExceedanceSeries} (annual)
                - monthly: {(level, period): ExceedanceSeries} (near-future window)
                - heavy_days: {period: HeavyPrecipitationDays}
        """
        logger.info(f"Computing precipitation extremes for member {self.member}")

        thresholds = self.compute_thresholds()

        exceedance = {}
        for level, field in thresholds.items():
            for period in self.periods:
                series = exceedance_series(self.grid, field, period, frequency="annual")
                self._save(series)
                exceedance[(level, period)] = series

        monthly_level = self.config.monthly_percentile
        near_future = self.config.near_future_period
        monthly_series = exceedance_series(self.grid, thresholds[monthly_level], near_future,
                                           frequency="monthly")
        self._save(monthly_series)
        monthly = {(monthly_level, near_future): monthly_series}

        heavy_days = {}
        for period in self.periods:
            counts = heavy_precipitation_days(self.grid, self.config.heavy_precipitation_thresholds, period)
            self._save(counts)
            heavy_days[period] = counts

        logger.info(f"Extremes computation complete for member {self.member}")

        return {
            'thresholds': thresholds,
            'exceedance': exceedance,
            'monthly': monthly,
            'heavy_days': heavy_days,
        }
