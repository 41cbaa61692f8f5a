"""
Data Module

This module provides the gridded time series type, the derived artifact types and
the ingest functions that build normalised grids from raw member files.
"""

from .grid import TimeSeriesGrid
from .artifacts import (
    ArtifactKey,
    PercentileThresholdField,
    ExceedanceSeries,
    HeavyPrecipitationDays,
    ClimateIndexSeries,
)

__all__ = [
    'TimeSeriesGrid',
    'ArtifactKey',
    'PercentileThresholdField',
    'ExceedanceSeries',
    'HeavyPrecipitationDays',
    'ClimateIndexSeries'
]
