"""Utilities for working with NetCDF climate data files."""

import logging
import threading
import xarray as xr
from pathlib import Path
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

# HDF5/NetCDF4 is not fully thread-safe for writes
netcdf_write_lock = threading.Lock()


def format_number(value: float, prefix: str = "") -> str:
    """
        Format a numeric value for use in filenames.

        Integral values lose their decimal part; the decimal point becomes 'p'
        and the minus sign becomes 'n'.

        Args:
            value: Value to format (percentile level, coordinate, threshold)
            prefix: Optional prefix to add (e.g., 'p' or 'lat')

        Returns:
            Formatted string (e.g., 'p99p9' for 99.9 with prefix 'p')
        """
    if float(value).is_integer():
        formatted = f"{int(value)}"
    else:
        formatted = f"{value:g}"
    formatted = formatted.replace('.', 'p').replace('-', 'n')
    if prefix:
        return f"{prefix}{formatted}"
    return formatted


def format_period(period: Optional[Tuple[int, int]]) -> str:
    """Format a (start, end) year pair as 'start-end'."""
    if period is None:
        return ""
    return f"{period[0]}-{period[1]}"


def find_member_files(
    directory: Path,
    pattern: str
) -> List[Path]:
    """
    Find the NetCDF files of one member, variable and experiment.

    CMIP6 output is split in several files per experiment (e.g.
    pr_day_ACCESS-ESM1-5_historical_r1i1p1f1_gn_19500101-19991231.nc and
    pr_day_ACCESS-ESM1-5_historical_r1i1p1f1_gn_20000101-20141231.nc). All files
    matching the glob pattern are returned sorted by name, which for CMIP6 names
    is chronological.

    Args:
        directory: Directory to search
        pattern: Glob pattern, already formatted for member/variable/experiment

    Returns:
        Sorted list of matching paths

    Raises:
        FileNotFoundError: If no files match the pattern in the directory
    """
    matching_files = sorted(p for p in directory.glob(pattern) if p.suffix == ".nc")

    if not matching_files:
        raise FileNotFoundError(f"No file matching '{pattern}' found in {directory}")

    logger.debug(f"Found {len(matching_files)} files for '{pattern}' in {directory}")
    return matching_files


def open_netcdf(path: Path, variable: str) -> xr.DataArray:
    """
    Open one variable of a NetCDF file lazily.

    The file is opened with dask chunks so that member files are only read when
    a computation needs them. Times are decoded with cftime when the calendar is
    not a standard one.

    Args:
        path: File to open
        variable: Name of the NetCDF variable (e.g. 'pr', 'tos')

    Returns:
        Lazily loaded DataArray

    Raises:
        KeyError: If the variable is missing from the file
    """
    ds = xr.open_dataset(path, chunks={})
    if variable not in ds.data_vars:
        available = list(ds.data_vars)
        ds.close()
        raise KeyError(f"Variable '{variable}' not found in {path}. Available: {available}")
    return ds[variable]


def write_netcdf(ds: xr.Dataset, output_path: Path) -> Path:
    """
    Write a dataset to NetCDF, serialising concurrent writers.

    Args:
        ds: Dataset to write
        output_path: Destination file

    Returns:
        Path to the written file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    encoding = {name: {'zlib': True, 'complevel': 4} for name in ds.data_vars}
    with netcdf_write_lock:
        ds.to_netcdf(output_path, engine='netcdf4', encoding=encoding)

    logger.info(f"Saved {output_path}")
    return output_path
