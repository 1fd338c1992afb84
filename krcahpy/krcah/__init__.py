"""Krcah bone enhancement core.

Public API
----------
- KrcahParameterEstimator : single-pass (alpha, beta, gamma) estimation
- KrcahFunctor            : per-voxel measure from ordered eigenvalues
- KrcahEigenToScalar      : configuration surface + estimate/apply composite
"""

from __future__ import annotations

from .parameters import (
    DEFAULT_COEFFICIENTS,
    CalibrationParameters,
    CalibrationStrategy,
    CoefficientSet,
    EigenStatistics,
    KrcahParameterEstimator,
    Polarity,
    calibration_from_statistics,
    merge_statistics,
)
from .functor import NEUTRAL_VALUE, EigenToScalarFunctor, KrcahFunctor
from .filter import KrcahEigenToScalar

__all__ = [
    "DEFAULT_COEFFICIENTS",
    "CalibrationParameters",
    "CalibrationStrategy",
    "CoefficientSet",
    "EigenStatistics",
    "KrcahParameterEstimator",
    "Polarity",
    "calibration_from_statistics",
    "merge_statistics",
    "NEUTRAL_VALUE",
    "EigenToScalarFunctor",
    "KrcahFunctor",
    "KrcahEigenToScalar",
]
