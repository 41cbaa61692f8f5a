"""
Pipeline Module

This module runs the full processing chain for every ensemble member:

    ingest -> extremes (REFERENCE, then EXCEEDANCE) -> index -> export

Members are independent and run in parallel on a thread pool. A failure in one
member is logged with its stage and recorded in the EnsembleReport; the other
members keep running. Only configuration errors, detected before any member
starts, abort the whole run.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import xarray as xr

from .analysis.enso import OniAnalyzer
from .analysis.extremes import ExtremesAnalyzer
from .config import PipelineConfig
from .data.ingest import load_member_variable
from .exceptions import PipelineError
from .utils.export import combine_members, export_table
from .utils.netcdf_utils import format_number, format_period

# Configure logger
logger = logging.getLogger(__name__)

STAGES = ("ingest", "extremes", "index", "export")


@dataclass
class MemberResult:
    """Outcome of one member's pipeline."""

    member: str
    succeeded: bool
    stage: Optional[str] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None
    outputs: List[Path] = field(default_factory=list)
    series: Dict[str, xr.DataArray] = field(default_factory=dict)


@dataclass
class EnsembleReport:
    """Per-member success/failure summary of a run."""

    results: Dict[str, MemberResult] = field(default_factory=dict)

    @property
    def succeeded(self) -> List[str]:
        return [m for m, r in self.results.items() if r.succeeded]

    @property
    def failed(self) -> List[str]:
        return [m for m, r in self.results.items() if not r.succeeded]

    def to_frame(self) -> pd.DataFrame:
        rows = [
            {
                'member': r.member,
                'status': 'ok' if r.succeeded else 'failed',
                'stage': r.stage or '',
                'error_kind': r.error_kind or '',
                'message': r.message or '',
                'n_outputs': len(r.outputs),
            }
            for r in self.results.values()
        ]
        return pd.DataFrame(rows, columns=['member', 'status', 'stage', 'error_kind', 'message', 'n_outputs'])

    def format_summary(self) -> str:
        lines = [f"Members succeeded: {len(self.succeeded)}/{len(self.results)}"]
        if self.succeeded:
            lines.append("  ok: " + ", ".join(self.succeeded))
        for member in self.failed:
            result = self.results[member]
            lines.append(f"  failed: {member} at {result.stage} ({result.error_kind}): {result.message}")
        return "\n".join(lines)


def _series_name(kind: str, **parts) -> str:
    return "_".join([kind] + [p for p in parts.values() if p])


def run_member(member: str, config: PipelineConfig) -> MemberResult:
    """
    Run every stage for one ensemble member.

    Errors are contained here: the member is reported as failed with the stage
    it reached, and no exception propagates to the caller.

    Args:
        member: Ensemble member identifier
        config: Pipeline configuration

    Returns:
        MemberResult with written files and the 1-D series for ensemble tables
    """
    output_dir = config.output_dir / member
    result = MemberResult(member=member, succeeded=False)
    stage = STAGES[0]

    try:
        logger.info(f"Processing member {member}")

        precipitation = load_member_variable(config, member, "precipitation")
        sst = load_member_variable(config, member, "sst")

        stage = "extremes"
        extremes = ExtremesAnalyzer(precipitation, config, output_dir)
        extremes_results = extremes.compute()
        result.outputs.extend(extremes.saved_files)

        stage = "index"
        oni = OniAnalyzer(sst, config, output_dir)
        index = oni.compute()['index']
        result.outputs.extend(oni.saved_files)

        stage = "export"
        for (level, period), series in extremes_results['exceedance'].items():
            name = _series_name("exceedance", level=format_number(level, "p"), period=format_period(period))
            result.series[name] = series.frequency
            if config.export_csv:
                result.outputs.append(export_table(series.to_dataset(), output_dir, series.key.stem))
        for series in extremes_results['monthly'].values():
            if config.export_csv:
                result.outputs.append(export_table(series.to_dataset(), output_dir, series.key.stem))
        for period, counts in extremes_results['heavy_days'].items():
            for threshold, values in counts.counts.items():
                name = _series_name("heavy_days", threshold=format_number(threshold, "r"),
                                    period=format_period(period))
                result.series[name] = values
            if config.export_csv:
                result.outputs.append(export_table(counts.to_dataset(), output_dir, counts.key.stem))
        result.series["oni"] = index.index
        if config.export_csv:
            result.outputs.append(export_table(index.to_dataset(), output_dir, index.key.stem))

    except (PipelineError, OSError, KeyError) as e:
        kind = e.kind if isinstance(e, PipelineError) else type(e).__name__
        logger.error(f"Member {member} failed during {stage}: {kind}: {e}")
        result.stage, result.error_kind, result.message = stage, kind, str(e)
        return result
    except Exception as e:
        logger.exception(f"Member {member} failed during {stage} with an unexpected error")
        result.stage, result.error_kind, result.message = stage, type(e).__name__, str(e)
        return result

    result.succeeded = True
    result.stage = "done"
    logger.info(f"Member {member} complete: {len(result.outputs)} files written")
    return result


def write_ensemble_tables(report: EnsembleReport, output_dir: Path) -> List[Path]:
    """
    Write one CSV per series with a column for every successful member.

    Failed members are left out.
    """
    by_series: Dict[str, Dict[str, xr.DataArray]] = {}
    for member in report.succeeded:
        for name, values in report.results[member].series.items():
            by_series.setdefault(name, {})[member] = values

    written = []
    for name, series in sorted(by_series.items()):
        written.append(export_table(combine_members(series), output_dir, f"ensemble_{name}"))
    return written


def run_ensemble(config: PipelineConfig) -> EnsembleReport:
    """
    Run all configured members in parallel.

    Args:
        config: Pipeline configuration

    Returns:
        EnsembleReport listing succeeded and failed members

    Raises:
        ConfigurationError: If the configuration is invalid (before any member runs)
    """
    config.validate()
    config.output_dir.mkdir(parents=True, exist_ok=True)

    logger.info(f"Processing {len(config.members)} members of {config.model} "
                f"(historical + {config.scenario}) with {config.max_workers} workers")

    report = EnsembleReport()
    with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
        future_to_member = {executor.submit(run_member, member, config): member
                            for member in config.members}
        for future in as_completed(future_to_member):
            member = future_to_member[future]
            report.results[member] = future.result()

    # Keep configured member order in the report
    report.results = {m: report.results[m] for m in config.members}

    export_table(report.to_frame().set_index('member'), config.output_dir, "ensemble_summary")
    if config.export_csv and report.succeeded:
        write_ensemble_tables(report, config.output_dir)

    logger.info(report.format_summary())
    return report
