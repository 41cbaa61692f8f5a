"""Geographic coordinates utility functions."""

from typing import Tuple

import numpy as np
import xarray as xr


def format_coordinates_cardinal(latitude: float, longitude: float, precision: int = 2) -> Tuple[str, str, str]:
    """
    Format geographic coordinates in cardinal format (N/S, E/W).

    Args:
        latitude: Latitude value in decimal degrees
        longitude: Longitude value in decimal degrees
        precision: Number of decimal places to display

    Returns:
        Tuple containing (latitude string, longitude string, combined location string)
    """
    # Format latitude
    lat_dir = "N" if latitude >= 0 else "S"
    lat_val = abs(latitude)
    lat_str = f"{lat_val:.{precision}f}°{lat_dir}"

    # Format longitude (convert values >180 to negative/western values)
    adj_lon = longitude if longitude <= 180 else longitude - 360
    lon_dir = "E" if adj_lon >= 0 else "W"
    lon_val = abs(adj_lon)
    lon_str = f"{lon_val:.{precision}f}°{lon_dir}"

    # Full location string
    location_str = f"{lat_str}, {lon_str}"

    return lat_str, lon_str, location_str


def format_box_cardinal(lon_min: float, lon_max: float, lat_min: float, lat_max: float) -> str:
    """Describe a lon/lat box, e.g. '170°W-120°W, 5°S-5°N'."""
    lat_lo, lon_lo, _ = format_coordinates_cardinal(lat_min, lon_min, precision=0)
    lat_hi, lon_hi, _ = format_coordinates_cardinal(lat_max, lon_max, precision=0)
    return f"{lon_lo}-{lon_hi}, {lat_lo}-{lat_hi}"


def to_lon_360(data: xr.DataArray) -> xr.DataArray:
    """Map longitudes to 0..360 and sort them ascending."""
    lon = data["lon"].values
    if np.nanmin(lon) < 0 or np.nanmax(lon) >= 360:
        data = data.assign_coords(lon=(lon % 360))
    return data.sortby("lon")


def area_weighted_mean(data: xr.DataArray) -> xr.DataArray:
    """
    Spatial mean over (lat, lon) weighted by cos(latitude).

    Missing cells are excluded from both the sum and the weights, so a partially
    masked field averages over its valid cells only.

    Args:
        data: DataArray with 'lat' and 'lon' dimensions

    Returns:
        DataArray without the spatial dimensions
    """
    weights = np.cos(np.deg2rad(data["lat"]))
    weights = weights.clip(min=0.0)
    weights.name = "weights"
    return data.weighted(weights).mean(dim=("lat", "lon"), skipna=True)
