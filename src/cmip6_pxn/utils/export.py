"""
Export Module

This module writes 1-D results as plain CSV tables (one row per time step, one
column per value) for downstream plotting tools.
"""

import logging
from pathlib import Path
from typing import Dict, List, Union

import pandas as pd
import xarray as xr

# Configure logger
logger = logging.getLogger(__name__)


def dataset_to_table(ds: xr.Dataset) -> pd.DataFrame:
    """
    Convert the 1-D variables of a dataset to a table.

    Variables with more than one dimension (threshold fields) are skipped.

    Args:
        ds: Dataset whose series share a single dimension ('year' or 'time')

    Returns:
        DataFrame indexed by that dimension
    """
    series_vars = [name for name, var in ds.data_vars.items() if var.ndim == 1]
    if not series_vars:
        return pd.DataFrame()

    table = ds[series_vars].to_dataframe()
    # cftime indexes are written as their ISO strings
    if table.index.dtype == object:
        table.index = [str(t) for t in table.index]
        table.index.name = ds[series_vars[0]].dims[0]
    return table[series_vars]


def export_table(
        data: Union[xr.Dataset, pd.DataFrame],
        output_dir: Union[str, Path],
        filename: str,
        float_format: str = "%.6g"
) -> Path:
    """
    Export a dataset or DataFrame as a CSV table.

    Args:
        data: Dataset of 1-D series or an already built DataFrame
        output_dir: Directory to save the table in
        filename: Base filename (without extension)
        float_format: Format for floating point values

    Returns:
        Path of the written CSV file
    """
    # Ensure output directory exists
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    table = dataset_to_table(data) if isinstance(data, xr.Dataset) else data

    output_path = output_dir / f"{filename}.csv"
    logger.info(f"Saving table to {output_path}")
    table.to_csv(output_path, float_format=float_format)

    return output_path


def combine_members(series: Dict[str, xr.DataArray]) -> pd.DataFrame:
    """
    Join the same series from several members into one table.

    Args:
        series: Mapping of member identifier to 1-D DataArray

    Returns:
        DataFrame with one column per member, rows aligned on the shared dimension
    """
    columns = {}
    for member, values in series.items():
        frame = values.to_series()
        if frame.index.dtype == object:
            frame.index = [str(t) for t in frame.index]
        columns[member] = frame

    table = pd.DataFrame(columns)
    if series:
        table.index.name = next(iter(series.values())).dims[0]
    return table


def export_netcdf_tables(
        input_paths: List[Path],
        output_dir: Union[str, Path]
) -> List[Path]:
    """
    Convert NetCDF artifacts to CSV tables, one per file.

    Files without 1-D series are skipped.

    Args:
        input_paths: NetCDF files written by the pipeline
        output_dir: Directory to save the tables in

    Returns:
        List of written CSV files
    """
    written = []
    for path in input_paths:
        with xr.open_dataset(path) as ds:
            table = dataset_to_table(ds)
        if table.empty:
            logger.debug(f"No 1-D series in {path}, skipping")
            continue
        written.append(export_table(table, output_dir, Path(path).stem))
    return written
