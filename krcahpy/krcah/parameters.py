"""Calibration parameter estimation for the Krcah bone enhancement measure.

The estimator makes one read-only pass over an eigenvalue volume (optionally
restricted to non-background voxels of a mask) and accumulates a small set of
statistics:

- the maximum absolute value of each eigenvalue channel,
- the maximum of the per-voxel eigenvalue norm,
- the number of voxels that participated.

The statistics of disjoint chunks merge with ``max`` (and a summed voxel count), so the pass can be
split into chunks in any way (and evaluated in parallel) without changing the
maxima. The calibration constants are fixed fractions of those maxima::

    alpha = c_alpha * max|l3|
    beta  = c_beta  * max|l2|
    gamma = c_gamma * max ||(l1, l2, l3)||

Two coefficient sets are shipped, one per :class:`CalibrationStrategy`. They
are defaults only; site-specific values belong in the ``[CALIBRATION]``
section of the configuration file.
"""

from __future__ import annotations

import logging
import math
import sys
from dataclasses import dataclass
from enum import Enum
from functools import reduce
from typing import Any, Dict, Optional, Tuple

import torch
from joblib import Parallel, delayed

from krcahpy.core._memory import memory_manager
from krcahpy.core.eigen import as_eigenvalue_tensor, as_mask_tensor, stable_norm
from krcahpy.core.logfmt import VERBOSE
from krcahpy.core.progress import ProgressCallback
from krcahpy.core.validation import ConfigurationError


class Polarity(str, Enum):
    """Which structures to enhance: bright on dark, or dark on bright."""

    BRIGHT = "bright"
    DARK = "dark"

    @property
    def direction(self) -> float:
        return 1.0 if self is Polarity.BRIGHT else -1.0

    @classmethod
    def parse(cls, value: Any) -> "Polarity":
        if isinstance(value, Polarity):
            return value
        v = str(value).strip().lower()
        if v in {'bright', 'enhance_bright', 'bright_objects', '1'}:
            return cls.BRIGHT
        if v in {'dark', 'enhance_dark', 'dark_objects', '0'}:
            return cls.DARK
        raise ConfigurationError(
            "Invalid enhance (polarity) value.\n"
            "Valid options: bright | dark\n"
            f"Current value: '{value}'"
        )


class CalibrationStrategy(str, Enum):
    """How the accumulated statistics are turned into (alpha, beta, gamma)."""

    IMPLEMENTATION = "implementation"
    JOURNAL = "journal"

    @classmethod
    def parse(cls, value: Any) -> "CalibrationStrategy":
        if isinstance(value, CalibrationStrategy):
            return value
        v = str(value).strip().lower()
        if v in {'implementation', 'impl', '1'}:
            return cls.IMPLEMENTATION
        if v in {'journal', 'journal_article', 'article', '0'}:
            return cls.JOURNAL
        raise ConfigurationError(
            "Invalid parameter_set value.\n"
            "Valid options: implementation | journal\n"
            f"Current value: '{value}'"
        )


def _check_non_negative(name: str, value: float) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid {name}: must be a number.\nCurrent value: '{value}'")
    if not math.isfinite(v) or v < 0.0:
        raise ConfigurationError(f"Invalid {name}: {value}\nMust be finite and >= 0.")
    return v


@dataclass(frozen=True)
class CoefficientSet:
    """Fractions of the accumulated maxima used for alpha, beta and gamma."""

    alpha: float
    beta: float
    gamma: float

    def __post_init__(self) -> None:
        for name in ('alpha', 'beta', 'gamma'):
            object.__setattr__(self, name, _check_non_negative(f"{name} coefficient", getattr(self, name)))


DEFAULT_COEFFICIENTS: Dict[CalibrationStrategy, CoefficientSet] = {
    CalibrationStrategy.IMPLEMENTATION: CoefficientSet(alpha=0.5, beta=0.5, gamma=0.5),
    CalibrationStrategy.JOURNAL: CoefficientSet(alpha=0.5, beta=0.5, gamma=0.25),
}


@dataclass(frozen=True)
class CalibrationParameters:
    """The (alpha, beta, gamma) triple consumed by the scalar functor."""

    alpha: float = 0.0
    beta: float = 0.0
    gamma: float = 0.0

    def __post_init__(self) -> None:
        for name in ('alpha', 'beta', 'gamma'):
            object.__setattr__(self, name, _check_non_negative(name, getattr(self, name)))

    def as_dict(self) -> Dict[str, float]:
        return {'alpha': self.alpha, 'beta': self.beta, 'gamma': self.gamma}


@dataclass(frozen=True)
class EigenStatistics:
    """Mergeable summary of the voxels seen by one estimation pass."""

    count: int = 0
    max_abs: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    frobenius_max: float = 0.0

    @classmethod
    def from_tensor(cls, evals: torch.Tensor) -> "EigenStatistics":
        """Statistics of an ``(N, 3)`` float64 tensor."""
        n = int(evals.shape[0])
        if n == 0:
            return cls()
        max_abs = torch.amax(torch.abs(evals), dim=0).tolist()
        norms = stable_norm(evals)
        return cls(
            count=n,
            max_abs=(float(max_abs[0]), float(max_abs[1]), float(max_abs[2])),
            frobenius_max=float(torch.amax(norms).item()),
        )

    def merge(self, other: "EigenStatistics") -> "EigenStatistics":
        return EigenStatistics(
            count=self.count + other.count,
            max_abs=tuple(max(a, b) for a, b in zip(self.max_abs, other.max_abs)),  # type: ignore[arg-type]
            frobenius_max=max(self.frobenius_max, other.frobenius_max),
        )

    @property
    def empty(self) -> bool:
        return self.count == 0


def _capped(coefficient: float, statistic: float) -> float:
    if coefficient == 0.0:
        return 0.0
    return min(coefficient * statistic, sys.float_info.max)


def calibration_from_statistics(
    stats: EigenStatistics,
    strategy: CalibrationStrategy = CalibrationStrategy.IMPLEMENTATION,
    coefficients: Optional[CoefficientSet] = None,
) -> CalibrationParameters:
    """Map accumulated statistics to calibration constants.

    An empty pass (no foreground voxel) falls back to alpha = beta = gamma = 0.
    Products beyond the float range are capped at the largest finite float.
    """
    strategy = CalibrationStrategy.parse(strategy)
    coeffs = coefficients if coefficients is not None else DEFAULT_COEFFICIENTS[strategy]
    if stats.empty:
        return CalibrationParameters(0.0, 0.0, 0.0)
    return CalibrationParameters(
        alpha=_capped(coeffs.alpha, stats.max_abs[2]),
        beta=_capped(coeffs.beta, stats.max_abs[1]),
        gamma=_capped(coeffs.gamma, stats.frobenius_max),
    )


def _chunk_statistics(
    evals: torch.Tensor,
    labels: Optional[torch.Tensor],
    background_value: int,
    start: int,
    stop: int,
) -> EigenStatistics:
    block = evals[start:stop]
    if labels is not None:
        block = block[labels[start:stop] != background_value]
    return EigenStatistics.from_tensor(block)


class KrcahParameterEstimator:
    """Estimate Krcah calibration constants from an eigenvalue volume.

    Parameters
    ----------
    parameter_set:
        ``CalibrationStrategy`` (or its string name).
    background_value:
        Mask label excluded from the statistics.
    coefficients:
        Optional ``CoefficientSet`` overriding the strategy defaults.
    device:
        Torch device used for the pass.
    chunk_size:
        Voxels per chunk. ``None`` sizes chunks from available memory.
    n_jobs:
        joblib workers (threads) used to evaluate chunks. 1 keeps the pass serial.
    progress_callback:
        Optional ``callback(done, total)`` invoked as chunks complete.
    """

    def __init__(
        self,
        parameter_set: Any = CalibrationStrategy.IMPLEMENTATION,
        *,
        background_value: int = 0,
        coefficients: Optional[CoefficientSet] = None,
        device: str = 'cpu',
        chunk_size: Optional[int] = None,
        n_jobs: int = 1,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        self.parameter_set = CalibrationStrategy.parse(parameter_set)
        self.background_value = int(background_value)
        self.coefficients = coefficients
        self.device = device
        self.chunk_size = chunk_size
        self.n_jobs = int(n_jobs)
        if self.n_jobs == 0:
            raise ConfigurationError("Invalid n_jobs: 0\nUse a positive worker count, or -1 for every core.")
        self.progress_callback = progress_callback
        self.statistics: Optional[EigenStatistics] = None

    def set_parameter_set_to_implementation(self) -> None:
        self.parameter_set = CalibrationStrategy.IMPLEMENTATION

    def set_parameter_set_to_journal_article(self) -> None:
        self.parameter_set = CalibrationStrategy.JOURNAL

    def _chunk_bounds(self, n_voxels: int) -> list[tuple[int, int]]:
        if self.chunk_size is not None:
            chunk = int(self.chunk_size)
            if chunk < 1:
                raise ConfigurationError(f"Invalid chunk_size: {self.chunk_size}\nMust be >= 1.")
        else:
            chunk = memory_manager(self.device, 'statistics')(n_voxels)
        return [(s, min(s + chunk, n_voxels)) for s in range(0, n_voxels, chunk)]

    def compute_statistics(self, eigenvalues: Any, mask: Any = None) -> EigenStatistics:
        """Single pass over the volume returning merged chunk statistics."""
        evals = as_eigenvalue_tensor(eigenvalues, device=self.device)
        spatial_shape = tuple(evals.shape[:-1])
        labels = None
        if mask is not None:
            labels = as_mask_tensor(mask, spatial_shape, device=self.device).reshape(-1)
        evals = evals.reshape(-1, 3)

        bounds = self._chunk_bounds(int(evals.shape[0]))
        total = len(bounds)
        if self.n_jobs == 1 or total <= 1:
            results = (_chunk_statistics(evals, labels, self.background_value, s, e) for s, e in bounds)
        else:
            results = Parallel(n_jobs=self.n_jobs, prefer="threads", return_as="generator")(
                delayed(_chunk_statistics)(evals, labels, self.background_value, s, e) for s, e in bounds
            )

        stats = EigenStatistics()
        for done, chunk_stats in enumerate(results, start=1):
            stats = stats.merge(chunk_stats)
            if self.progress_callback is not None:
                self.progress_callback(done, total)
        self.statistics = stats
        return stats

    def estimate(self, eigenvalues: Any, mask: Any = None) -> CalibrationParameters:
        """Return (alpha, beta, gamma) for ``eigenvalues`` restricted by ``mask``."""
        stats = self.compute_statistics(eigenvalues, mask)
        if stats.empty:
            logging.warning(
                "No foreground voxels available for parameter estimation "
                f"(background value {self.background_value}); using alpha = beta = gamma = 0."
            )
        params = calibration_from_statistics(stats, self.parameter_set, self.coefficients)
        logging.log(
            VERBOSE,
            f"Krcah parameters ({self.parameter_set.value}): voxels={stats.count:,}, "
            f"alpha={params.alpha:.6g}, beta={params.beta:.6g}, gamma={params.gamma:.6g}",
        )
        return params


def merge_statistics(*parts: EigenStatistics) -> EigenStatistics:
    """Combine statistics computed over disjoint partitions of one volume."""
    return reduce(EigenStatistics.merge, parts, EigenStatistics())
