"""
Ingest Module

This module turns the raw per-period files of one ensemble member into a single
continuous TimeSeriesGrid:

1. Concatenation of split files along time, with continuity checks
2. Precipitation unit conversion from kg.m-2.s-1 to mm.day-1
3. Bilinear regridding onto a regular global grid (SST)
4. Inclusive year-range selection

Functions:
    concatenate(): Join per-period DataArrays into one continuous grid
    convert_precipitation_units(): Convert precipitation flux to mm/day
    regrid_bilinear(): Interpolate onto a global lat-lon grid
    select_years(): Restrict a grid to an inclusive year range
    load_member_variable(): Locate, open and concatenate the files of one member
"""

import logging
from pathlib import Path
from typing import Iterable, List, Union

import numpy as np
import pandas as pd
import xarray as xr

from ..config import SECONDS_PER_DAY, VARIABLES, PipelineConfig
from ..exceptions import DiscontinuityError, EmptyRangeError, RegridError
from ..utils.geo_utils import to_lon_360
from ..utils.netcdf_utils import find_member_files, open_netcdf
from .grid import TimeSeriesGrid

# Configure logger
logger = logging.getLogger(__name__)

PRECIPITATION_FLUX_UNITS = {"kg m-2 s-1", "kg.m-2.s-1", "kg/m2/s", "kg m**-2 s**-1"}
PRECIPITATION_DEPTH_UNITS = "mm/day"

# Months per dask chunk when regridding
REGRID_TIME_CHUNK = 120


def _step_ordinals(time: xr.DataArray, frequency: str) -> np.ndarray:
    """
    Position of each timestamp counted in steps of the given frequency.

    Monthly data is counted in calendar months so that months of different
    lengths are one step apart; daily data is counted in whole days, which works
    for numpy datetimes and cftime calendars alike.
    """
    if frequency == "month":
        return time.dt.year.values.astype(np.int64) * 12 + time.dt.month.values.astype(np.int64)
    if frequency == "day":
        values = time.values
        offsets = pd.to_timedelta(values - values[0])
        return np.asarray(np.round(offsets / pd.Timedelta(days=1)), dtype=np.int64)
    raise ValueError(f"Invalid frequency: {frequency}. Must be 'day' or 'month'")


def _check_continuity(time: xr.DataArray, frequency: str, label: str, member: str = None) -> None:
    """Raise DiscontinuityError unless timestamps advance by exactly one step."""
    if time.size < 2:
        return
    steps = np.diff(_step_ordinals(time, frequency))

    if np.any(steps <= 0):
        bad = int(np.argmax(steps <= 0))
        raise DiscontinuityError(
            f"{label}: duplicate or decreasing timestamp at {time.values[bad + 1]} "
            f"(after {time.values[bad]})",
            member=member,
        )
    if np.any(steps > 1):
        bad = int(np.argmax(steps > 1))
        raise DiscontinuityError(
            f"{label}: {int(steps[bad]) - 1} missing {frequency} step(s) between "
            f"{time.values[bad]} and {time.values[bad + 1]}",
            member=member,
        )


def concatenate(
        parts: Iterable[xr.DataArray],
        member: str,
        variable: str,
        frequency: str
) -> TimeSeriesGrid:
    """
    Concatenate per-period DataArrays into one continuous time series.

    Parts are ordered by their first timestamp. Each part must be continuous on
    its own, and consecutive parts must join without gap or overlap, so that the
    result covers exactly the union of the input time ranges.

    Args:
        parts: DataArrays with dimensions (time, lat, lon)
        member: Ensemble member identifier
        variable: Logical variable name ('precipitation' or 'sst')
        frequency: Sampling frequency of the data ('day' or 'month')

    Returns:
        TimeSeriesGrid spanning all parts

    Raises:
        DiscontinuityError: If the parts leave gaps, overlap or repeat timestamps
        ValueError: If no parts are given
    """
    parts = [p for p in parts if p.sizes.get("time", 0) > 0]
    if not parts:
        raise ValueError(f"No data to concatenate for {variable}, member {member}")

    parts = sorted(parts, key=lambda p: p["time"].values[0])

    for i, part in enumerate(parts):
        _check_continuity(part["time"], frequency, f"{variable} part {i}", member)

    for previous, current in zip(parts[:-1], parts[1:]):
        boundary = xr.DataArray([previous["time"].values[-1], current["time"].values[0]], dims="time")
        _check_continuity(boundary, frequency, f"{variable} file boundary", member)

    data = xr.concat(parts, dim="time", combine_attrs="override") if len(parts) > 1 else parts[0]

    logger.info(f"Concatenated {len(parts)} {variable} parts for member {member}: "
                f"{data.sizes['time']} {frequency} steps from {data['time'].values[0]} "
                f"to {data['time'].values[-1]}")

    return TimeSeriesGrid(data=data, member=member, variable=variable)


def convert_precipitation_units(grid: TimeSeriesGrid, factor: float = SECONDS_PER_DAY) -> TimeSeriesGrid:
    """
    Convert precipitation flux (kg.m-2.s-1) to depth per day (mm.day-1).

    Args:
        grid: Precipitation grid
        factor: Multiplication factor (seconds per day)

    Returns:
        New grid with units set to 'mm/day'
    """
    if grid.units == PRECIPITATION_DEPTH_UNITS:
        logger.info(f"Precipitation for member {grid.member} already in {PRECIPITATION_DEPTH_UNITS}")
        return grid

    if grid.units is not None and grid.units not in PRECIPITATION_FLUX_UNITS:
        logger.warning(f"Unexpected precipitation units '{grid.units}' for member {grid.member}, "
                       f"applying factor {factor} anyway")

    logger.info("Converting precipitation units from kg.m-2.s-1 to mm.day-1")

    converted = grid.data * factor
    converted.attrs = dict(grid.data.attrs)
    converted.attrs["units"] = PRECIPITATION_DEPTH_UNITS
    converted.name = grid.data.name

    return grid.with_data(converted)


def target_grid(resolution: float = 1.0):
    """
    Cell-centre coordinates of a regular global grid.

    Args:
        resolution: Grid spacing in degrees (1.0 gives 180 x 360 cells)

    Returns:
        Tuple of (latitudes, longitudes) as numpy arrays
    """
    n_lat = int(round(180.0 / resolution))
    n_lon = int(round(360.0 / resolution))
    lat = -90.0 + resolution * (np.arange(n_lat) + 0.5)
    lon = resolution * (np.arange(n_lon) + 0.5)
    return lat, lon


def regrid_bilinear(grid: TimeSeriesGrid, resolution: float = 1.0) -> TimeSeriesGrid:
    """
    Bilinear interpolation onto a regular global grid.

    Longitudes are mapped to 0..360. A source grid that spans the whole globe is
    padded periodically so that cells between its last and first longitude are
    interpolated too; target cells outside a regional source stay missing.

    Args:
        grid: Source grid with 1-D 'lat' and 'lon' coordinates
        resolution: Target grid spacing in degrees

    Returns:
        New grid on the target lat-lon cells

    Raises:
        RegridError: If the source grid is degenerate or not rectilinear
    """
    data = grid.data
    for axis in ("lat", "lon"):
        if axis not in data.coords or data[axis].ndim != 1:
            raise RegridError(f"Source grid has no 1-D '{axis}' coordinate", member=grid.member)
        if data.sizes[axis] < 2:
            raise RegridError(
                f"Source grid is degenerate: {data.sizes[axis]} point(s) along '{axis}'",
                member=grid.member,
            )

    data = to_lon_360(data).sortby("lat")

    lon = data["lon"].values
    spacing = float(np.median(np.diff(lon)))
    if lon[-1] - lon[0] + spacing >= 360.0 - 1e-6:
        # Periodic padding with one column on each side
        west = data.isel(lon=[-1]).assign_coords(lon=[lon[-1] - 360.0])
        east = data.isel(lon=[0]).assign_coords(lon=[lon[0] + 360.0])
        data = xr.concat([west, data, east], dim="lon")

    target_lat, target_lon = target_grid(resolution)

    logger.info(f"Regridding {grid.variable} for member {grid.member} from "
                f"{grid.data.sizes['lat']}x{grid.data.sizes['lon']} to "
                f"{len(target_lat)}x{len(target_lon)} ({resolution}° bilinear)")

    regridded = data.chunk({"time": REGRID_TIME_CHUNK, "lat": -1, "lon": -1}).interp(
        lat=target_lat, lon=target_lon, method="linear"
    )
    regridded.attrs = dict(grid.data.attrs)
    regridded.name = grid.data.name

    return grid.with_data(regridded)


def select_years(grid: TimeSeriesGrid, start: int, end: int) -> TimeSeriesGrid:
    """
    Keep only timestamps whose year lies in [start, end].

    Raises:
        EmptyRangeError: If no timestamp falls in the range
    """
    years = grid.data["time"].dt.year
    mask = ((years >= start) & (years <= end)).values

    if not mask.any():
        raise EmptyRangeError(
            f"No {grid.variable} timestamps in {start}-{end} for member {grid.member} "
            f"(data covers {int(years.min())}-{int(years.max())})",
            member=grid.member,
        )

    return grid.with_data(grid.data.isel(time=mask))


def load_member_variable(
        config: PipelineConfig,
        member: str,
        variable: str,
        experiments: List[str] = None,
        input_dir: Union[str, Path] = None
) -> TimeSeriesGrid:
    """
    Locate, open and concatenate all files of one member and variable.

    Historical and scenario files (each possibly split in sub-periods) are joined
    into one continuous grid. Precipitation is converted to mm/day and SST is
    regridded to the configured resolution.

    Args:
        config: Pipeline configuration (model, scenario, file pattern, resolution)
        member: Ensemble member identifier
        variable: Logical variable name ('precipitation' or 'sst')
        experiments: Experiments to join (default: historical and the configured scenario)
        input_dir: Directory to search (default: config.input_dir)

    Returns:
        Normalised TimeSeriesGrid

    Raises:
        FileNotFoundError: If an experiment has no files for the member
        DiscontinuityError: If the files do not join continuously
        RegridError: If the SST source grid is degenerate
    """
    if variable not in VARIABLES:
        raise ValueError(f"Invalid variable: {variable}. Must be one of {list(VARIABLES.keys())}")

    spec = VARIABLES[variable]
    experiments = experiments or ["historical", config.scenario]
    input_dir = Path(input_dir) if input_dir else config.input_dir

    parts = []
    for experiment in experiments:
        pattern = config.file_pattern.format(
            nc_var=spec["nc_var"],
            table=spec["table"],
            model=config.model,
            experiment=experiment,
            member=member,
        )
        for path in find_member_files(input_dir, pattern):
            logger.info(f"Loading {variable} data from {path}")
            parts.append(open_netcdf(path, spec["nc_var"]))

    grid = concatenate(parts, member=member, variable=variable, frequency=spec["frequency"])

    if variable == "precipitation":
        grid = convert_precipitation_units(grid)
    elif variable == "sst":
        grid = regrid_bilinear(grid, resolution=config.regrid_resolution)

    return grid
