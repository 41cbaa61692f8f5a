#!/usr/bin/env python
"""
CMIP6 Extreme Precipitation and ENSO Index Pipeline

This script processes every configured ensemble member of a CMIP6 model:

1. Concatenates historical and scenario files of daily precipitation and monthly SST
2. Computes 99th / 99.9th percentile thresholds over the reference period and the
   resulting exceedance frequencies for the historical and future windows
3. Computes the Oceanic Nino Index with El Nino / La Nina phases
4. Writes NetCDF artifacts, CSV tables and an ensemble summary

Members run in parallel; a failing member is reported without stopping the others.

Example usage:
    python run_pipeline.py --input-dir data/raw --output-dir data/processed
    python run_pipeline.py --config run.json --members r1 r2 r3 --max-workers 2
    python run_pipeline.py --scenario ssp245 --percentiles 99 99.9 --no-csv
"""

import sys
import logging
import argparse
from pathlib import Path

from cmip6_pxn.config import PipelineConfig
from cmip6_pxn.exceptions import ConfigurationError
from cmip6_pxn.pipeline import run_ensemble

logger = logging.getLogger("run_pipeline")


def _period(value: str):
    """Parse 'start-end' into a (start, end) tuple."""
    try:
        start, end = value.split("-")
        return int(start), int(end)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected a year range like 1980-2014, got '{value}'")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compute extreme precipitation statistics and the Oceanic Nino Index for a CMIP6 ensemble"
    )

    parser.add_argument("--config", type=str,
                        help="JSON configuration file (command-line options override it)")
    parser.add_argument("--input-dir", type=str,
                        help="Directory containing the raw NetCDF files")
    parser.add_argument("--output-dir", type=str,
                        help="Directory to store outputs")
    parser.add_argument("--model", type=str,
                        help="CMIP6 model name used in file names (default: ACCESS-ESM1-5)")
    parser.add_argument("--scenario", type=str,
                        help="Future scenario experiment (default: ssp585)")
    parser.add_argument("--members", type=str, nargs="+",
                        help="Ensemble members to process (default: r1..r40)")

    # Periods
    parser.add_argument("--reference-period", type=_period,
                        help="Percentile reference period (default: 1980-2014)")
    parser.add_argument("--historical-period", type=_period,
                        help="Historical exceedance period (default: 1950-2014)")
    parser.add_argument("--future-periods", type=_period, nargs="+",
                        help="Future windows, near future first (default: 2021-2050 2071-2100)")
    parser.add_argument("--baseline-period", type=_period,
                        help="ONI climatology baseline (default: 1981-2010)")

    # Thresholds
    parser.add_argument("--percentiles", type=float, nargs="+",
                        help="Percentile levels (default: 99 99.9)")

    parser.add_argument("--max-workers", type=int,
                        help="Number of members processed in parallel (default: 4)")
    parser.add_argument("--no-csv", action="store_true",
                        help="Skip CSV table export")
    return parser


def main(argv=None) -> int:
    """Main execution function."""
    args = build_parser().parse_args(argv)

    try:
        config = PipelineConfig.from_file(args.config) if args.config else PipelineConfig()
        config = config.with_overrides(
            input_dir=Path(args.input_dir) if args.input_dir else None,
            output_dir=Path(args.output_dir) if args.output_dir else None,
            model=args.model,
            scenario=args.scenario,
            members=tuple(args.members) if args.members else None,
            reference_period=args.reference_period,
            historical_period=args.historical_period,
            future_periods=tuple(args.future_periods) if args.future_periods else None,
            baseline_period=args.baseline_period,
            percentile_levels=tuple(args.percentiles) if args.percentiles else None,
            max_workers=args.max_workers,
            export_csv=False if args.no_csv else None,
        )
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    # Create output directory if it doesn't exist
    config.output_dir.mkdir(parents=True, exist_ok=True)

    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler(config.output_dir / "run_pipeline.log"),
            logging.StreamHandler()
        ]
    )

    try:
        report = run_ensemble(config)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    print(report.format_summary())

    if report.failed:
        logger.warning(f"{len(report.failed)} member(s) failed")
        return 1

    logger.info("Pipeline completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
