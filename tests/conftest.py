"""Shared synthetic data for the test suite."""

from pathlib import Path

import numpy as np
import pandas as pd
import pytest
import xarray as xr

from cmip6_pxn.config import PipelineConfig
from cmip6_pxn.data.grid import TimeSeriesGrid

LATS = np.array([-10.0, 0.0, 10.0])
LONS = np.array([0.0, 90.0, 180.0])


def daily_times(start_year: int, end_year: int) -> pd.DatetimeIndex:
    return pd.date_range(f"{start_year}-01-01", f"{end_year}-12-31", freq="D")


def monthly_times(start_year: int, end_year: int) -> pd.DatetimeIndex:
    return pd.date_range(f"{start_year}-01-01", f"{end_year}-12-01", freq="MS")


def make_array(values, times, lats=LATS, lons=LONS, name="pr", units="mm/day") -> xr.DataArray:
    return xr.DataArray(
        values,
        coords={"time": times, "lat": lats, "lon": lons},
        dims=["time", "lat", "lon"],
        name=name,
        attrs={"units": units},
    )


def make_grid(values, times, lats=LATS, lons=LONS, member="r1", variable="precipitation",
              name="pr", units="mm/day") -> TimeSeriesGrid:
    data = make_array(values, times, lats, lons, name=name, units=units)
    return TimeSeriesGrid(data=data, member=member, variable=variable)


def random_precipitation(start_year: int, end_year: int, seed: int = 0, lats=LATS, lons=LONS,
                         member="r1") -> TimeSeriesGrid:
    """Gamma-distributed daily precipitation in mm/day."""
    times = daily_times(start_year, end_year)
    rng = np.random.default_rng(seed)
    values = rng.gamma(shape=0.8, scale=4.0, size=(len(times), len(lats), len(lons)))
    return make_grid(values, times, lats, lons, member=member)


def write_member_files(directory: Path, member: str, model: str = "TESTMODEL", seed: int = 0,
                       skip_part: str = None) -> None:
    """
    Write CMIP6-named pr and tos files for one member, each experiment split in two.

    skip_part names a file stem fragment (e.g. '19900101') to leave out, which
    opens a gap in the time axis.
    """
    rng = np.random.default_rng(seed)
    pr_lats, pr_lons = np.array([-5.0, 5.0]), np.array([100.0, 200.0])
    sst_lats = np.arange(-10.0, 10.1, 5.0)
    sst_lons = np.arange(180.0, 250.1, 10.0)

    pr_parts = [("historical", 1950, 1989), ("historical", 1990, 2014),
                ("ssp585", 2015, 2060), ("ssp585", 2061, 2100)]
    for experiment, start, end in pr_parts:
        stem = f"pr_day_{model}_{experiment}_{member}i1p1f1_gn_{start}0101-{end}1231"
        if skip_part and skip_part in stem:
            continue
        times = daily_times(start, end)
        flux = rng.gamma(0.8, 4.0, size=(len(times), len(pr_lats), len(pr_lons))) / 86400.0
        make_array(flux, times, pr_lats, pr_lons, name="pr", units="kg m-2 s-1").to_dataset().to_netcdf(
            directory / f"{stem}.nc")

    sst_parts = [("historical", 1950, 1999), ("historical", 2000, 2014),
                 ("ssp585", 2015, 2060), ("ssp585", 2061, 2100)]
    for experiment, start, end in sst_parts:
        stem = f"tos_Omon_{model}_{experiment}_{member}i1p1f1_gn_{start}01-{end}12"
        if skip_part and skip_part in stem:
            continue
        times = monthly_times(start, end)
        months = np.arange(len(times))
        seasonal = np.sin(2 * np.pi * times.month.values / 12.0)[:, None, None]
        noise = rng.normal(0.0, 0.5, size=(len(times), len(sst_lats), len(sst_lons)))
        values = 300.0 + seasonal + 0.001 * months[:, None, None] + noise
        make_array(values, times, sst_lats, sst_lons, name="tos", units="degC").to_dataset().to_netcdf(
            directory / f"{stem}.nc")


@pytest.fixture
def pipeline_config(tmp_path):
    input_dir = tmp_path / "raw"
    input_dir.mkdir()
    return PipelineConfig(
        members=("r1", "r2"),
        model="TESTMODEL",
        input_dir=input_dir,
        output_dir=tmp_path / "processed",
        regrid_resolution=5.0,
        max_workers=2,
    )
