"""
Artifacts Module

This module defines the derived products of the pipeline and the typed keys that
identify them. Keys replace metadata encoded in filenames: member, variable,
period and percentile are explicit fields, and file stems are built from them.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import xarray as xr

from ..utils.netcdf_utils import format_number, format_period


@dataclass(frozen=True)
class ArtifactKey:
    """
    Identifier of one derived artifact.

    Attributes:
        member: Ensemble member identifier
        variable: Source NetCDF variable ('pr' or 'tos')
        kind: Product kind (e.g. 'threshold', 'exceedance_annual', 'oni')
        period: Inclusive (start, end) years the artifact covers
        percentile: Percentile level, for percentile-based products
    """

    member: str
    variable: str
    kind: str
    period: Optional[Tuple[int, int]] = None
    percentile: Optional[float] = None

    @property
    def stem(self) -> str:
        """File stem, e.g. 'pr_r1_p99p9_1950-2014_exceedance_annual'."""
        parts = [self.variable, self.member]
        if self.percentile is not None:
            parts.append(format_number(self.percentile, "p"))
        if self.period is not None:
            parts.append(format_period(self.period))
        parts.append(self.kind)
        return "_".join(parts)

    def attrs(self) -> Dict[str, object]:
        """Key fields as NetCDF global attributes."""
        attrs = {
            'member': self.member,
            'variable': self.variable,
            'kind': self.kind,
        }
        if self.period is not None:
            attrs['period'] = format_period(self.period)
        if self.percentile is not None:
            attrs['percentile'] = self.percentile
        return attrs


@dataclass(frozen=True)
class PercentileThresholdField:
    """Per-cell percentile threshold over a reference window, with its min/max bracket."""

    key: ArtifactKey
    threshold: xr.DataArray
    cell_min: xr.DataArray
    cell_max: xr.DataArray

    def to_dataset(self) -> xr.Dataset:
        units = self.threshold.attrs.get('units', 'mm/day')
        ds = xr.Dataset({
            'threshold': self.threshold.assign_attrs(
                long_name=f'{self.key.percentile}th percentile of daily precipitation',
                units=units),
            'cell_min': self.cell_min.assign_attrs(long_name='Reference period minimum', units=units),
            'cell_max': self.cell_max.assign_attrs(long_name='Reference period maximum', units=units),
        })
        ds.attrs.update(self.key.attrs())
        return ds


@dataclass(frozen=True)
class ExceedanceSeries:
    """
    Spatially averaged exceedance of a percentile threshold.

    frequency is the mean fraction of time steps at or above the threshold, days
    the mean count of such days, both per time unit ('year' for annual series,
    monthly 'time' for the monthly variant). trend holds Mann-Kendall statistics
    for annual series.
    """

    key: ArtifactKey
    frequency: xr.DataArray
    days: xr.DataArray
    trend: Dict[str, object] = field(default_factory=dict)

    def to_dataset(self) -> xr.Dataset:
        ds = xr.Dataset({
            'frequency': self.frequency.assign_attrs(
                long_name='Fraction of days at or above the reference threshold', units='1'),
            'days': self.days.assign_attrs(
                long_name='Days at or above the reference threshold', units='1'),
        })
        ds.attrs.update(self.key.attrs())
        ds.attrs.update({f'trend_{k}': v for k, v in self.trend.items()})
        return ds


@dataclass(frozen=True)
class HeavyPrecipitationDays:
    """Spatially averaged annual counts of days at or above fixed thresholds (mm/day)."""

    key: ArtifactKey
    counts: Dict[float, xr.DataArray]

    def to_dataset(self) -> xr.Dataset:
        data_vars = {}
        for threshold, count in self.counts.items():
            name = f"r{format_number(threshold)}mm"
            data_vars[name] = count.assign_attrs(
                long_name=f'Days with precipitation >= {threshold:g} mm/day', units='1')
        ds = xr.Dataset(data_vars)
        ds.attrs.update(self.key.attrs())
        return ds


@dataclass(frozen=True)
class ClimateIndexSeries:
    """Monthly climate index for one member, with ENSO phase flags."""

    key: ArtifactKey
    index: xr.DataArray
    phase: xr.DataArray
    attrs: Dict[str, object] = field(default_factory=dict)

    def to_dataset(self) -> xr.Dataset:
        ds = xr.Dataset({
            'index': self.index.assign_attrs(
                long_name='Oceanic Nino Index (3-month running mean SST anomaly)', units='K'),
            'phase': self.phase.assign_attrs(
                long_name='ENSO phase', flag_values='-1 0 1', flag_meanings='la_nina neutral el_nino'),
        })
        ds.attrs.update(self.key.attrs())
        ds.attrs.update(self.attrs)
        return ds
