import numpy as np
import pytest
import xarray as xr

from cmip6_pxn.analysis.extremes import (
    ExtremesAnalyzer,
    exceedance_series,
    heavy_precipitation_days,
    mann_kendall_summary,
    reference_thresholds,
)
from cmip6_pxn.config import PipelineConfig
from cmip6_pxn.exceptions import InsufficientReferenceDataError, ThresholdDegeneracyError

from conftest import daily_times, make_grid, random_precipitation

PLANTED_VALUE = 42.0
REFERENCE = (1980, 2014)


@pytest.fixture(scope="module")
def planted_grid():
    """65 years of daily data where every 99th day carries the planted 99th percentile."""
    times = daily_times(1950, 2014)
    rng = np.random.default_rng(1)
    values = rng.uniform(0.1, 5.0, size=(len(times), 3, 3))
    values[np.arange(len(times)) % 99 == 0] = PLANTED_VALUE
    return make_grid(values, times)


@pytest.fixture(scope="module")
def random_grid():
    return random_precipitation(1950, 2014, seed=3)


def test_reference_recovers_planted_percentile(planted_grid):
    fields = reference_thresholds(planted_grid, [99.0], REFERENCE)

    threshold = fields[99.0].threshold
    assert threshold.dims == ("lat", "lon")
    np.testing.assert_allclose(threshold.values, PLANTED_VALUE)


def test_planted_exceedance_is_one_percent_of_days(planted_grid):
    field = reference_thresholds(planted_grid, [99.0], REFERENCE)[99.0]

    series = exceedance_series(planted_grid, field, (1950, 2014))

    assert series.frequency.dims == ("year",)
    assert series.frequency.sizes["year"] == 65
    assert float(series.days.mean()) == pytest.approx(3.65, abs=0.15)
    assert float(series.frequency.mean()) == pytest.approx(0.01, abs=0.001)


def test_higher_percentile_gives_higher_threshold(random_grid):
    fields = reference_thresholds(random_grid, [99.0, 99.9], REFERENCE)

    assert np.all(fields[99.9].threshold.values >= fields[99.0].threshold.values)
    assert np.all(fields[99.9].threshold.values > fields[99.0].threshold.values)


def test_threshold_stays_within_min_max_bracket(random_grid):
    field = reference_thresholds(random_grid, [99.9], REFERENCE)[99.9]

    assert np.all(field.threshold.values >= field.cell_min.values)
    assert np.all(field.threshold.values <= field.cell_max.values)


def test_threshold_is_an_observed_reference_value(random_grid):
    field = reference_thresholds(random_grid, [99.9], REFERENCE)[99.9]
    reference = random_grid.data.sel(time=slice("1980-01-01", "2014-12-31"))

    for i in range(reference.sizes["lat"]):
        for j in range(reference.sizes["lon"]):
            observed = reference.isel(lat=i, lon=j).values
            assert field.threshold.values[i, j] in observed

    raw = reference.quantile(0.999, dim="time", method="inverted_cdf")
    np.testing.assert_array_equal(field.threshold.values, raw.values)


def test_reference_exceedance_is_self_consistent(random_grid):
    field = reference_thresholds(random_grid, [99.0], REFERENCE)[99.0]

    series = exceedance_series(random_grid, field, REFERENCE)

    mean_frequency = float(series.frequency.mean())
    assert mean_frequency == pytest.approx(0.01, abs=0.001)
    assert mean_frequency <= 0.01 + 0.001


def test_missing_reference_years(random_grid):
    from cmip6_pxn.data.ingest import select_years
    short = select_years(random_grid, 1990, 2014)

    with pytest.raises(InsufficientReferenceDataError, match="35 years"):
        reference_thresholds(short, [99.0], REFERENCE)


def test_constant_cell_is_degenerate(random_grid):
    values = random_grid.data.values.copy()
    values[:, 1, 2] = 0.0
    grid = random_grid.with_data(random_grid.data.copy(data=values))

    with pytest.raises(ThresholdDegeneracyError, match="1 cell"):
        reference_thresholds(grid, [99.0], REFERENCE)


def test_missing_cells_are_excluded(random_grid):
    values = random_grid.data.values.copy()
    values[:, 0, 0] = np.nan
    grid = random_grid.with_data(random_grid.data.copy(data=values))

    field = reference_thresholds(grid, [99.0], REFERENCE)[99.0]
    series = exceedance_series(grid, field, (1950, 2014))

    assert np.isnan(field.threshold.values[0, 0])
    assert np.all(np.isfinite(series.frequency.values))


def test_same_threshold_applies_to_every_period(random_grid):
    field = reference_thresholds(random_grid, [99.0], REFERENCE)[99.0]

    # Doubling precipitation after 2000 should show up as more frequent exceedance
    values = random_grid.data.values.copy()
    later = random_grid.data["time"].dt.year.values > 2000
    values[later] *= 2.0
    shifted = random_grid.with_data(random_grid.data.copy(data=values))

    early = exceedance_series(shifted, field, (1950, 1979))
    late = exceedance_series(shifted, field, (2001, 2014))

    assert float(late.frequency.mean()) > 3 * float(early.frequency.mean())
    assert late.trend == {} or late.trend["trend"] in ("increasing", "no trend", "decreasing")


def test_monthly_exceedance_has_one_value_per_month(random_grid):
    field = reference_thresholds(random_grid, [99.0], REFERENCE)[99.0]

    series = exceedance_series(random_grid, field, (2001, 2010), frequency="monthly")

    assert series.frequency.dims == ("time",)
    assert series.frequency.sizes["time"] == 120
    assert series.key.kind == "exceedance_monthly"


def test_heavy_precipitation_days():
    times = daily_times(2000, 2003)
    values = np.ones((len(times), 3, 3))
    day_of_year = times.dayofyear.values
    values[day_of_year <= 10] = 12.0
    values[(day_of_year > 10) & (day_of_year <= 12)] = 25.0
    grid = make_grid(values, times)

    counts = heavy_precipitation_days(grid, [10.0, 20.0], (2000, 2003))

    np.testing.assert_allclose(counts.counts[10.0].values, 12.0)
    np.testing.assert_allclose(counts.counts[20.0].values, 2.0)
    assert set(counts.to_dataset().data_vars) == {"r10mm", "r20mm"}


def test_mann_kendall_summary_detects_increase():
    series = xr.DataArray(np.arange(30, dtype=float) + 0.1 * np.sin(np.arange(30)),
                          dims=["year"], coords={"year": np.arange(1990, 2020)})

    summary = mann_kendall_summary(series)

    assert summary["trend"] == "increasing"
    assert summary["h"] == 1
    assert summary["slope"] > 0


def test_mann_kendall_summary_short_series():
    assert mann_kendall_summary(xr.DataArray([1.0, 2.0], dims=["year"])) == {}


def test_analyzer_persists_thresholds_before_exceedance(tmp_path):
    grid = random_precipitation(1950, 2100, seed=5)
    config = PipelineConfig(output_dir=tmp_path, future_periods=((2021, 2050), (2071, 2100)))

    analyzer = ExtremesAnalyzer(grid, config, output_dir=tmp_path / "r1")
    results = analyzer.compute()

    names = [p.name for p in analyzer.saved_files]
    assert names[:2] == ["pr_r1_p99_1980-2014_threshold.nc", "pr_r1_p99p9_1980-2014_threshold.nc"]
    assert all(p.exists() for p in analyzer.saved_files)

    assert set(results["thresholds"]) == {99.0, 99.9}
    assert set(results["exceedance"]) == {
        (level, period)
        for level in (99.0, 99.9)
        for period in ((1950, 2014), (2021, 2050), (2071, 2100))
    }
    assert set(results["monthly"]) == {(99.0, (2021, 2050))}
    assert set(results["heavy_days"]) == {(1950, 2014), (2021, 2050), (2071, 2100)}

    # Every period reuses the very same reference field
    with xr.open_dataset(tmp_path / "r1" / "pr_r1_p99_2071-2100_exceedance_annual.nc") as ds:
        assert ds.attrs["percentile"] == 99.0
        assert ds.attrs["period"] == "2071-2100"
        assert "trend_trend" in ds.attrs
