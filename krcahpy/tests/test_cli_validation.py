from __future__ import annotations

from pathlib import Path

import pytest

from krcahpy.cli import CLI
from krcahpy.core.validation import ConfigurationError
from krcahpy.enhance_cli import EnhanceCLI


def test_run_cli_validate_args_accepts_existing_cfg(tmp_path: Path) -> None:
    cfg = tmp_path / "cfg.ini"
    cfg.write_text("[GLOBAL]\nsigmas = 1.0\n", encoding="utf-8")

    cli = CLI(subparsers=None)  # subparsers unused for validate_args
    args = cli.validate_args({"cfg_path": str(cfg)})
    assert args["cfg_path"] == str(cfg)


def test_run_cli_validate_args_resolves_packaged_template() -> None:
    args = CLI(subparsers=None).validate_args({"cfg_path": "Template_Krcah.ini"})
    assert Path(args["cfg_path"]).exists()


def test_run_cli_validate_args_rejects_missing_cfg(tmp_path: Path) -> None:
    missing = tmp_path / "missing.ini"
    cli = CLI(subparsers=None)
    with pytest.raises(FileNotFoundError):
        cli.validate_args({"cfg_path": str(missing)})


def _enhance_args(tmp_path: Path, **overrides) -> dict:
    image = tmp_path / "ct.nii.gz"
    image.write_bytes(b"dummy")
    args = {
        "input": str(image),
        "output_preprocessed": str(tmp_path / "pre.nii.gz"),
        "output_measure": str(tmp_path / "measure.nii.gz"),
        "enhance": "1",
        "parameter_set": "0",
        "sigmas": [0.5, 1.0],
        "mask": "",
    }
    args.update(overrides)
    return args


def test_enhance_cli_validate_args_normalizes_selectors(tmp_path: Path) -> None:
    args = EnhanceCLI(subparsers=None).validate_args(_enhance_args(tmp_path))
    assert args["enhance"] == "bright"
    assert args["parameter_set"] == "journal"
    assert args["sigmas"] == [0.5, 1.0]
    assert args["mask"] is None


@pytest.mark.parametrize(
    "overrides, exc",
    [
        ({"sigmas": [0.0]}, ConfigurationError),
        ({"enhance": "both"}, ConfigurationError),
        ({"mask": "/missing/mask.nii.gz"}, FileNotFoundError),
        ({"input": "/missing/ct.nii.gz"}, FileNotFoundError),
    ],
)
def test_enhance_cli_validate_args_rejects_bad_input(tmp_path: Path, overrides, exc) -> None:
    with pytest.raises(exc):
        EnhanceCLI(subparsers=None).validate_args(_enhance_args(tmp_path, **overrides))
