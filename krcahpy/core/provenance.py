"""Provenance and run-manifest utilities.

Centralizes creation of the on-disk `run_manifest.json` written after a run.

Provenance should never abort a computation.
"""

from __future__ import annotations

import importlib
import json
import logging
import platform
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import torch


def _safe_version(mod_name: str) -> str:
    try:
        mod = importlib.import_module(mod_name)
        return getattr(mod, "__version__", "unknown")
    except Exception:
        return "unavailable"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def write_run_manifest(model: Any, *, krcahpy_version: str) -> None:
    """Write a provenance manifest alongside saved outputs.

    Parameters
    ----------
    model:
        A `BoneEnhancement`-like object with attributes set during a run.
    krcahpy_version:
        The version string to record. Passed in to avoid circular imports.

    Notes
    -----
    Failures are logged and ignored.
    """

    try:
        save_dir = getattr(model, "save_dir", None)
        if not isinstance(save_dir, str) or not save_dir:
            return

        configuration = getattr(model, "configuration", None)
        cfg = getattr(configuration, "cfg_file", None)

        cfg_source = None
        if cfg is not None:
            try:
                cfg_source = cfg.get("DEBUG", "cfg_source", fallback=None)
            except Exception:
                cfg_source = None

        polarity = getattr(configuration, "polarity", None)
        parameter_set = getattr(configuration, "parameter_set", None)
        coefficients = getattr(model, "coefficients", None)

        config_selected: dict[str, Any] = {
            "enhance": getattr(polarity, "value", polarity),
            "parameter_set": getattr(parameter_set, "value", parameter_set),
            "sigmas": list(getattr(configuration, "sigmas", []) or []),
            "background_value": getattr(configuration, "background_value", None),
            "coefficients": (
                {"alpha": coefficients.alpha, "beta": coefficients.beta, "gamma": coefficients.gamma}
                if coefficients is not None
                else None
            ),
            "preprocessing": {
                "enabled": bool(getattr(configuration, "preprocess", False)),
                "sigma": getattr(configuration, "preprocess_sigma", None),
                "scaling": getattr(configuration, "preprocess_scaling", None),
            },
            "output_mode": str(getattr(configuration, "output_mode", "standard")),
        }

        image_shape = None
        try:
            shp = getattr(model, "image_shape", None)
            if shp is not None:
                image_shape = [int(x) for x in shp]
        except Exception:
            image_shape = None

        spacing = None
        try:
            sp = getattr(model, "spacing", None)
            if sp is not None:
                spacing = [float(x) for x in sp]
        except Exception:
            spacing = None

        masked_voxels = None
        try:
            mask = getattr(model, "mask", None)
            if mask is not None:
                bg = int(getattr(model, "mask_background_value", 0))
                masked_voxels = int((mask != bg).sum())
        except Exception:
            masked_voxels = None

        outputs: list[str] = []
        try:
            outputs = sorted([p.name for p in Path(save_dir).glob("*.nii.gz")])
        except Exception:
            outputs = []

        manifest = {
            "schema_version": 1,
            "created_utc": utc_now_iso(),
            "run_started_utc": getattr(model, "_run_started_utc", None),
            "run_finished_utc": getattr(model, "_run_finished_utc", None),
            "total_runtime_s": getattr(model, "_total_runtime_s", None),
            "save_dir": save_dir,
            "device": getattr(configuration, "DEVICE", None),
            "diagnostics_enabled": bool(getattr(configuration, "diagnostics_enabled", False)),
            "output_mode": str(getattr(configuration, "output_mode", "standard")),
            "mask_source": getattr(model, "mask_source", None),
            "cfg_source": cfg_source,
            "config_selected": config_selected,
            "inputs": {
                "image_file": getattr(configuration, "image_path", None),
                "mask_file": getattr(configuration, "mask_path", None),
            },
            "data": {
                "image_shape": image_shape,
                "spacing": spacing,
                "masked_voxels": masked_voxels,
            },
            "calibration": list(getattr(model, "calibrations", []) or []),
            "timings_s": dict(getattr(model, "_timings", {}) or {}),
            "runtime": {
                "krcahpy_version": str(krcahpy_version),
                "python": sys.version.split()[0],
                "platform": platform.platform(),
                "numpy": _safe_version("numpy"),
                "scipy": _safe_version("scipy"),
                "torch": _safe_version("torch"),
                "nibabel": _safe_version("nibabel"),
                "dipy": _safe_version("dipy"),
                "joblib": _safe_version("joblib"),
                "pandas": _safe_version("pandas"),
            },
            "cuda": {
                "available": bool(torch.cuda.is_available()),
                "device_name": (
                    torch.cuda.get_device_name(torch.cuda.current_device()) if torch.cuda.is_available() else None
                ),
            },
            "provenance": {
                "argv": getattr(model, "_argv_str", None),
            },
            "artifacts": {
                "config_final_ini": str(Path(save_dir) / "config_final.ini"),
                "calibration_csv": str(Path(save_dir) / "calibration.csv"),
                "log": str(Path(save_dir) / "log"),
                "outputs_nii_gz": outputs,
            },
        }

        out_path = Path(save_dir) / "run_manifest.json"
        out_path.write_text(json.dumps(manifest, indent=2, sort_keys=True), encoding="utf-8")
        logging.info(f"Run manifest saved to: {out_path}")
    except Exception:
        logging.exception("Failed to write run_manifest.json")
