"""Direct enhancement CLI for KrcahPy.

Adds `KrcahPy enhance` to preprocess one CT volume and write the multi-scale
Krcah measure without writing a configuration file first.

Example:
    KrcahPy enhance ct.nii.gz ct_pre.nii.gz ct_measure.nii.gz --sigmas 0.75 1.0
"""

from __future__ import annotations

import argparse
import os

from krcahpy.core import runner
from krcahpy.core.validation import ConfigurationError
from krcahpy.krcah.parameters import CalibrationStrategy, Polarity


class EnhanceCLI:
    def __init__(self, subparsers) -> None:
        self.subparsers = subparsers

    def add_subparser_args(self) -> argparse:
        subparser = self.subparsers.add_parser(
            "enhance",
            description="preprocess a CT volume and compute the multi-scale Krcah bone measure",
        )

        subparser.add_argument("input", type=str, help="Input intensity NIfTI (*.nii or *.nii.gz)")
        subparser.add_argument("output_preprocessed", type=str, help="Output path for the preprocessed image")
        subparser.add_argument("output_measure", type=str, help="Output path for the Krcah measure")
        subparser.add_argument(
            "--enhance",
            type=str,
            required=False,
            default="bright",
            help="Structures to enhance: bright | dark (1 | 0 accepted)",
        )
        subparser.add_argument(
            "--parameter_set",
            type=str,
            required=False,
            default="implementation",
            help="Calibration strategy: implementation | journal (1 | 0 accepted)",
        )
        subparser.add_argument(
            "--sigmas",
            type=float,
            nargs="+",
            required=True,
            help="Hessian scales in physical units, e.g. --sigmas 0.75 1.0",
        )
        subparser.add_argument(
            "--mask",
            type=str,
            required=False,
            default=None,
            help="Optional mask NIfTI path, or 'auto' to auto-generate",
        )
        subparser.add_argument(
            "--background_value",
            type=int,
            required=False,
            default=0,
            help="Mask label excluded from parameter estimation (default: 0)",
        )
        subparser.add_argument(
            "--no_preprocessing",
            action="store_true",
            help="Skip the unsharp-mask preprocessing (the input is written as the preprocessed output)",
        )
        subparser.add_argument("--preprocess_sigma", type=float, required=False, default=1.0,
                               help="Unsharp-mask Gaussian sigma in physical units (default: 1.0)")
        subparser.add_argument("--preprocess_scaling", type=float, required=False, default=10.0,
                               help="Unsharp-mask scaling k (default: 10)")
        subparser.add_argument(
            "--device",
            type=str,
            required=False,
            default=None,
            choices=["auto", "cpu", "cuda"],
            help="Compute device (default: auto)",
        )
        subparser.add_argument(
            "--save_dir",
            type=str,
            required=False,
            default=None,
            help="Directory for the log, calibration table and manifest (default: next to output_measure)",
        )
        subparser.add_argument(
            "--output_mode",
            type=str,
            required=False,
            default=None,
            choices=["quiet", "standard", "verbose", "debug"],
            help="Terminal output mode: quiet | standard | verbose | debug",
        )

        return self.subparsers

    def validate_args(self, args):
        # master_cli passes a dict; keep parity with krcahpy.cli.CLI
        if not isinstance(args, dict):
            args = vars(args)

        inp = str(args.get("input", "") or "")
        if not inp:
            raise ValueError("Missing required argument: input")
        if not os.path.exists(inp):
            raise FileNotFoundError(f"File not found: {inp}")
        args["input"] = inp

        for key in ("output_preprocessed", "output_measure"):
            p = str(args.get(key, "") or "").strip()
            if not p:
                raise ValueError(f"Missing required argument: {key}")
            args[key] = p

        args["enhance"] = Polarity.parse(args.get("enhance", "bright")).value
        args["parameter_set"] = CalibrationStrategy.parse(args.get("parameter_set", "implementation")).value

        sigmas = [float(s) for s in (args.get("sigmas", None) or [])]
        if not sigmas or any(s <= 0 for s in sigmas):
            raise ConfigurationError(f"Invalid --sigmas: {sigmas}\nProvide at least one sigma > 0.")
        args["sigmas"] = sigmas

        mask = args.get("mask", None)
        if mask is not None:
            mask = str(mask).strip()
            if mask == "":
                mask = None
            elif mask.lower() != "auto" and not os.path.exists(mask):
                raise FileNotFoundError(f"Mask file not found: {mask}")
        args["mask"] = mask

        return args

    def run(self, args):
        model = runner.enhance(args)
        print(f"Enhancement complete. Measure: {model.outputs.get('measure')}")
