"""
Filters Module

This module provides the time-domain filters used by the index computation:
linear detrending per grid cell and a centred running mean.
"""

import logging
from typing import Optional, Union

import numpy as np
import xarray as xr
from scipy import signal

from ..exceptions import TrendFitError

# Configure logger
logger = logging.getLogger(__name__)


def linear_detrend(
        data: Union[np.ndarray, xr.DataArray],
        axis: int = 0,
        member: Optional[str] = None
) -> Union[np.ndarray, xr.DataArray]:
    """
    Remove a least-squares linear trend independently along one axis.

    The fit is made against the time-step index, so both the slope and the mean
    are removed. Series containing any missing value are returned as missing
    rather than fitted on a partial record.

    Args:
        data: Input data, time along `axis` (DataArray input keeps its coords)
        axis: Time axis for numpy input; DataArray input uses the 'time' dimension
        member: Ensemble member identifier, for error reports

    Returns:
        Detrended data of the same shape and type

    Raises:
        TrendFitError: If fewer than 2 time steps are available
    """
    if isinstance(data, xr.DataArray):
        axis = data.get_axis_num('time')
        values = np.asarray(data.values, dtype=float)
    else:
        values = np.asarray(data, dtype=float)

    n_time = values.shape[axis]
    if n_time < 2:
        raise TrendFitError(f"Linear trend needs at least 2 time steps, got {n_time}",
                            member=member)

    # Move time first and flatten the remaining axes into columns
    moved = np.moveaxis(values, axis, 0)
    columns = moved.reshape(n_time, -1)

    valid = np.isfinite(columns).all(axis=0)
    detrended = np.full_like(columns, np.nan)
    if valid.any():
        detrended[:, valid] = signal.detrend(columns[:, valid], axis=0, type='linear')

    n_skipped = int((~valid & np.isfinite(columns).any(axis=0)).sum())
    if n_skipped:
        logger.warning(f"Skipped detrending of {n_skipped} series with missing values")

    result = np.moveaxis(detrended.reshape(moved.shape), 0, axis)

    if isinstance(data, xr.DataArray):
        return data.copy(data=result)
    return result


def running_mean(
        data: xr.DataArray,
        window: int = 3,
        dim: str = 'time'
) -> xr.DataArray:
    """
    Centred running mean that keeps the series length.

    At both ends the window shrinks to the samples that exist, so with the
    default 3-step window the first and last values are the mean of 2 samples.
    A constant series is returned unchanged.

    Args:
        data: Input series
        window: Window length in time steps (odd)
        dim: Dimension to smooth along

    Returns:
        Smoothed series with the same coordinates
    """
    if window < 1 or window % 2 == 0:
        raise ValueError(f"Running mean window must be a positive odd integer, got {window}")

    logger.info(f"Applying centred {window}-step running mean (edge windows shrink)")

    return data.rolling({dim: window}, center=True, min_periods=1).mean()
