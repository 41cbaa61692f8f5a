"""
Analysis Module

This module provides the per-member analyses of the pipeline: extreme
precipitation statistics and the Oceanic Nino Index.

Classes:
    BaseAnalyzer: Abstract base class for all analyzers
    ExtremesAnalyzer: Percentile thresholds, exceedance series and heavy-precipitation days
    OniAnalyzer: Oceanic Nino Index with ENSO phase flags

Functions:
    linear_detrend: Remove a linear trend along the time axis
    running_mean: Centred running mean with shrinking edge windows
"""

from .base_analyzer import BaseAnalyzer
from .extremes import ExtremesAnalyzer
from .enso import OniAnalyzer
from .filters import linear_detrend, running_mean

__all__ = [
    'BaseAnalyzer',
    'ExtremesAnalyzer',
    'OniAnalyzer',
    'linear_detrend',
    'running_mean'
]
