import json
from pathlib import Path

import pytest

from cmip6_pxn.config import DEFAULT_MEMBERS, PipelineConfig
from cmip6_pxn.data.artifacts import ArtifactKey
from cmip6_pxn.exceptions import ConfigurationError
from cmip6_pxn.utils.netcdf_utils import format_number


def test_defaults():
    config = PipelineConfig()

    assert config.members == DEFAULT_MEMBERS
    assert len(config.members) == 40 and config.members[0] == "r1" and config.members[-1] == "r40"
    assert config.reference_period == (1980, 2014)
    assert config.historical_period == (1950, 2014)
    assert config.near_future_period == (2021, 2050)
    assert config.percentile_levels == (99.0, 99.9)
    assert config.ocean_index_box == (190.0, 240.0, -5.0, 5.0)
    assert config.baseline_period == (1981, 2010)
    assert config.reference_years == 35


def test_from_file_normalises_json_lists(tmp_path):
    path = tmp_path / "run.json"
    path.write_text(json.dumps({
        "members": ["r1", "r2"],
        "future_periods": [[2031, 2060]],
        "percentile_levels": [95, 99],
        "monthly_percentile": 95,
        "output_dir": str(tmp_path / "out"),
    }))

    config = PipelineConfig.from_file(path)

    assert config.members == ("r1", "r2")
    assert config.future_periods == ((2031, 2060),)
    assert config.percentile_levels == (95.0, 99.0)
    assert config.output_dir == tmp_path / "out"
    assert isinstance(config.input_dir, Path)


def test_from_file_rejects_unknown_keys(tmp_path):
    path = tmp_path / "run.json"
    path.write_text(json.dumps({"memebers": ["r1"]}))

    with pytest.raises(ConfigurationError, match="memebers"):
        PipelineConfig.from_file(path)


def test_from_file_reports_unreadable_file(tmp_path):
    path = tmp_path / "run.json"
    path.write_text("{not json")

    with pytest.raises(ConfigurationError):
        PipelineConfig.from_file(path)
    with pytest.raises(ConfigurationError):
        PipelineConfig.from_file(tmp_path / "missing.json")


def test_with_overrides_skips_none():
    config = PipelineConfig().with_overrides(scenario="ssp245", model=None, max_workers=8)

    assert config.scenario == "ssp245"
    assert config.model == "ACCESS-ESM1-5"
    assert config.max_workers == 8


@pytest.mark.parametrize("overrides", [
    {"members": ()},
    {"members": ("r1", "r1")},
    {"reference_period": (2014, 1980)},
    {"future_periods": ()},
    {"percentile_levels": (99.0, 100.0)},
    {"monthly_percentile": 95.0},
    {"ocean_index_box": (240.0, 190.0, -5.0, 5.0)},
    {"regrid_resolution": 0.7},
    {"max_workers": 0},
])
def test_validate_rejects_invalid_settings(overrides):
    config = PipelineConfig().with_overrides(**overrides)

    with pytest.raises(ConfigurationError):
        config.validate(check_paths=False)


def test_validate_checks_input_directory(tmp_path):
    PipelineConfig(input_dir=tmp_path).validate()

    with pytest.raises(ConfigurationError, match="does not exist"):
        PipelineConfig(input_dir=tmp_path / "missing").validate()


def test_artifact_stems():
    threshold = ArtifactKey(member="r12", variable="pr", kind="threshold", period=(1980, 2014), percentile=99.9)
    oni = ArtifactKey(member="r1", variable="tos", kind="oni", period=(1950, 2100))

    assert threshold.stem == "pr_r12_p99p9_1980-2014_threshold"
    assert threshold.attrs()["percentile"] == 99.9
    assert oni.stem == "tos_r1_1950-2100_oni"
    assert format_number(10.0, "r") == "r10"
    assert format_number(99.0) == "99"
