"""Checkout-level CLI shim.

Installed KrcahPy uses the package-scoped entrypoint `krcahpy.master_cli:main`.
This file runs the same CLI straight from a source checkout:

    python master_cli.py enhance ct.nii.gz pre.nii.gz measure.nii.gz --sigmas 1.0
"""

from __future__ import annotations

from krcahpy.master_cli import main


if __name__ == "__main__":
    main()
