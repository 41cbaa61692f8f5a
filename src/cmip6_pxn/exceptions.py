"""
Exceptions Module

This module defines the error taxonomy of the processing pipeline. Every error
raised while processing a single ensemble member derives from PipelineError, so
that the ensemble runner can contain it to that member. ConfigurationError is the
only error that aborts a whole run.
"""

from typing import Optional


class PipelineError(Exception):
    """
    Base class for member-local processing errors.

    Attributes:
        member: Ensemble member identifier, when known at raise time
    """

    def __init__(self, message: str, member: Optional[str] = None):
        super().__init__(message)
        self.member = member

    @property
    def kind(self) -> str:
        """Short name of the failure kind used in summary reports."""
        return self.__class__.__name__


class DiscontinuityError(PipelineError):
    """Input files leave a gap, overlap or duplicate timestamps on the time axis."""


class RegridError(PipelineError):
    """Source grid cannot be interpolated (degenerate or non rectilinear)."""


class EmptyRangeError(PipelineError):
    """No timestamps fall inside the requested year range."""


class InsufficientReferenceDataError(PipelineError):
    """The reference window does not cover every year it should."""


class ThresholdDegeneracyError(PipelineError):
    """At least one grid cell has min == max over the reference window."""


class BaselineWindowError(PipelineError):
    """The climatology baseline window has missing months."""


class TrendFitError(PipelineError):
    """Not enough time steps to fit a linear trend."""


class ConfigurationError(Exception):
    """Invalid configuration detected before any member is processed."""
