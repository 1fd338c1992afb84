from __future__ import annotations

import configparser
from pathlib import Path

import pytest

from krcahpy.core.configuration import config_from_arguments, configuration
from krcahpy.core.validation import ConfigurationError
from krcahpy.krcah import CalibrationStrategy, CoefficientSet, Polarity


def _cfg(tmp_path: Path, **sections) -> configparser.ConfigParser:
    image = tmp_path / "ct.nii.gz"
    image.write_bytes(b"dummy")
    cfg = configparser.ConfigParser()
    cfg["INPUT"] = {"image_file": str(image)}
    cfg["GLOBAL"] = {"sigmas": "0.75, 1.0"}
    for name, values in sections.items():
        if name in cfg:
            cfg[name].update(values)
        else:
            cfg[name] = values
    return cfg


def test_defaults(tmp_path: Path) -> None:
    c = configuration(_cfg(tmp_path))
    assert c.polarity is Polarity.BRIGHT
    assert c.parameter_set is CalibrationStrategy.IMPLEMENTATION
    assert c.sigmas == [0.75, 1.0]
    assert c.mask_path == ""
    assert c.background_value == 0
    assert c.preprocess is True
    assert c.preprocess_sigma == 1.0
    assert c.preprocess_scaling == 10.0
    assert c.coefficients is None
    assert c.output_mode == "standard"
    assert c.DEVICE in {"cpu", "cuda"}


def test_none_like_mask_file_means_every_voxel(tmp_path: Path) -> None:
    for v in ["", "n/a", "NA", "none", r"n\a"]:
        c = configuration(_cfg(tmp_path, INPUT={"mask_file": v}))
        assert c.mask_path == ""


def test_auto_mask_is_kept(tmp_path: Path) -> None:
    assert configuration(_cfg(tmp_path, INPUT={"mask_file": "auto"})).mask_path == "auto"


def test_selectors_and_overrides(tmp_path: Path) -> None:
    c = configuration(
        _cfg(
            tmp_path,
            GLOBAL={"enhance": "dark", "parameter_set": "journal"},
            CALIBRATION={"gamma": "0.1"},
            DEBUG={"output_mode": "v"},
        )
    )
    assert c.polarity is Polarity.DARK
    assert c.parameter_set is CalibrationStrategy.JOURNAL
    assert c.coefficients == CoefficientSet(alpha=0.5, beta=0.5, gamma=0.1)
    assert c.output_mode == "verbose"
    assert c.verbose_flag is True


@pytest.mark.parametrize(
    "sections",
    [
        {"GLOBAL": {"sigmas": ""}},
        {"GLOBAL": {"sigmas": "1.0, -0.5"}},
        {"GLOBAL": {"sigmas": "one"}},
        {"GLOBAL": {"enhance": "sideways"}},
        {"GLOBAL": {"parameter_set": "published"}},
        {"INPUT": {"background_value": "zero"}},
        {"INPUT": {"mask_file": "/definitely/missing/mask.nii.gz"}},
        {"PREPROCESSING": {"sigma": "0"}},
        {"PREPROCESSING": {"scaling": "-1"}},
        {"PREPROCESSING": {"enabled": "sometimes"}},
        {"CALIBRATION": {"alpha": "-0.5"}},
        {"DEVICE": {"DEVICE": "tpu"}},
        {"DEVICE": {"n_jobs": "0"}},
        {"DEVICE": {"n_jobs": "many"}},
        {"DEBUG": {"output_mode": "loud"}},
    ],
)
def test_invalid_values_are_rejected(tmp_path: Path, sections) -> None:
    with pytest.raises(ConfigurationError):
        configuration(_cfg(tmp_path, **sections))


def test_worker_count_accepts_all_cores(tmp_path: Path) -> None:
    assert configuration(_cfg(tmp_path, DEVICE={"n_jobs": "-1"})).n_jobs == -1
    assert configuration(_cfg(tmp_path, DEVICE={"n_jobs": "4"})).n_jobs == 4


def test_missing_image_is_rejected(tmp_path: Path) -> None:
    cfg = configparser.ConfigParser()
    cfg["INPUT"] = {"image_file": str(tmp_path / "missing.nii.gz")}
    cfg["GLOBAL"] = {"sigmas": "1.0"}
    with pytest.raises(ConfigurationError):
        configuration(cfg)

    cfg = configparser.ConfigParser()
    cfg["GLOBAL"] = {"sigmas": "1.0"}
    with pytest.raises(ConfigurationError):
        configuration(cfg)


def test_config_from_arguments_round_trips(tmp_path: Path) -> None:
    image = tmp_path / "ct.nii.gz"
    image.write_bytes(b"dummy")
    cfg = config_from_arguments(
        str(image),
        sigmas=[0.5, 1.5],
        enhance="0",
        parameter_set="1",
        save_dir=str(tmp_path / "out"),
        run_tag="trial",
        output_mode="quiet",
    )
    c = configuration(cfg)
    assert c.sigmas == [0.5, 1.5]
    assert c.polarity is Polarity.DARK
    assert c.parameter_set is CalibrationStrategy.IMPLEMENTATION
    assert c.output_mode == "quiet"
    assert cfg.get("OUTPUT", "run_tag") == "trial"
