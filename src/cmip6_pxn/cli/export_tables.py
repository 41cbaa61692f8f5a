#!/usr/bin/env python
"""
NetCDF to CSV Table Export Script

This script converts the 1-D series stored in pipeline NetCDF artifacts
(exceedance series, heavy-precipitation days, ONI) to CSV tables, one row per
time step. Threshold fields have no 1-D series and are skipped.

Example usage:
    python export_tables.py --input-dir data/processed/r1
    python export_tables.py --input-dir data/processed --recursive --output-dir tables
"""

import sys
import logging
import argparse
from pathlib import Path

from cmip6_pxn.utils.export import export_netcdf_tables

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler()
    ]
)
logger = logging.getLogger("export_tables")


def main(argv=None) -> int:
    """Main execution function."""
    parser = argparse.ArgumentParser(description="Export pipeline NetCDF series as CSV tables")
    parser.add_argument("--input-dir", type=str, required=True,
                        help="Directory containing NetCDF artifacts")
    parser.add_argument("--output-dir", type=str,
                        help="Directory for CSV tables (default: next to each NetCDF file)")
    parser.add_argument("--recursive", action="store_true",
                        help="Search sub-directories (one per member)")
    args = parser.parse_args(argv)

    input_dir = Path(args.input_dir)
    if not input_dir.is_dir():
        logger.error(f"Input directory does not exist: {input_dir}")
        return 2

    paths = sorted(input_dir.rglob("*.nc") if args.recursive else input_dir.glob("*.nc"))
    if not paths:
        logger.warning(f"No NetCDF files found in {input_dir}")
        return 0

    written = []
    for path in paths:
        output_dir = Path(args.output_dir) if args.output_dir else path.parent
        written.extend(export_netcdf_tables([path], output_dir))

    logger.info(f"Exported {len(written)} tables from {len(paths)} NetCDF files")
    return 0


if __name__ == "__main__":
    sys.exit(main())
