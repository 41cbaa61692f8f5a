"""
Base Analyzer Module

This module defines the abstract base class for all analyzers in the cmip6_pxn project.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..config import PipelineConfig
from ..data.grid import TimeSeriesGrid
from ..utils.netcdf_utils import write_netcdf

# Configure logger
logger = logging.getLogger(__name__)


class BaseAnalyzer(ABC):
    """
    Abstract base class for per-member analyzers.

    An analyzer receives an already normalised TimeSeriesGrid for one ensemble
    member and produces immutable artifacts. Artifacts are written to the
    member's own output directory, so analyzers of different members never
    share files.
    """

    def __init__(
            self,
            grid: TimeSeriesGrid,
            config: PipelineConfig,
            output_dir: Optional[Union[str, Path]] = None
    ):
        """
        Initialize the analyzer.

        Args:
            grid: Normalised input grid for one member
            config: Pipeline configuration
            output_dir: Directory to store output data (default: config.output_dir / member)
        """
        self.grid = grid
        self.config = config
        self.member = grid.member

        # Convert path strings to Path objects
        self.output_dir = Path(output_dir) if output_dir else config.output_dir / self.member

        # Create output directory if it doesn't exist
        self.output_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Initialized {self.__class__.__name__} for {grid.variable}, member {self.member}")

    @abstractmethod
    def compute(self) -> Dict[str, Any]:
        """
        Compute analysis results.

        This method must be implemented by all derived classes.

        Returns:
            Dictionary of artifacts keyed by name
        """
        pass

    def save_results(self, artifact: Any, filename: str = None) -> Path:
        """
        Save an artifact to a NetCDF file.

        Args:
            artifact: Artifact exposing `key` and `to_dataset()`
            filename: Optional filename override

        Returns:
            Path to the saved file
        """
        if not filename:
            filename = f"{artifact.key.stem}.nc"

        output_path = self.output_dir / filename

        # Convert results to a xarray Dataset
        ds = artifact.to_dataset()

        # Add metadata
        ds.attrs['model'] = self.config.model
        ds.attrs['scenario'] = self.config.scenario

        return write_netcdf(ds, output_path)
