"""Per-voxel eigenvalue-to-scalar functors.

A functor maps one ordered eigenvalue triple ``(l1, l2, l3)`` to one real
value. It holds only immutable configuration, so evaluation over a volume can
be split into arbitrary chunks with no coordination.

Krcah measure
-------------
With ``s = +1`` for bright and ``s = -1`` for dark structures:

1. voxels where ``s*l2 <= 0`` or ``s*l3 <= 0`` return 0 (sign gate),
2. otherwise, with ``R_plate = |l2| / |l3|`` and ``R_small = |l1| / |l2|``::

       plate    = exp(-(1 - R_plate)^2 / (2 (alpha/gamma)^2))
       small    = exp(-R_small^2 / (2 (beta/gamma)^2))
       strength = 1 - exp(-(l2^2 + l3^2) / (2 gamma^2))
       measure  = |l3| * plate * small * strength

The shape terms only see eigenvalue ratios, so two voxels whose eigenvalues
differ by a common factor get the same ``plate * small``. alpha and beta are
in eigenvalue units like gamma; dividing by gamma turns them into ratio widths.

A zero denominator in a ratio gives the neutral ratio (1 for the plate ratio,
0 for the small ratio). A zero alpha/beta/gamma is the limit of the
corresponding term, never a division by zero; a zero gamma with non-zero
alpha (beta) leaves the plate (small) term at 1. Each term divides by its
width before squaring.
"""

from __future__ import annotations

import abc
import math
from typing import Any, Optional

import torch

from krcahpy.core._memory import memory_manager
from krcahpy.core.eigen import EigenValueOrder, as_eigenvalue_tensor, gaussian_term, safe_ratio, strength_term
from krcahpy.core.progress import ProgressCallback
from krcahpy.krcah.parameters import CalibrationParameters, Polarity


NEUTRAL_VALUE = 0.0


class EigenToScalarFunctor(abc.ABC):
    """Produces a per-voxel scalar from ordered eigenvalues."""

    #: Ordering the functor expects on the last axis of its input.
    eigenvalue_order: EigenValueOrder = EigenValueOrder.ORDER_BY_MAGNITUDE

    def __init__(self, *, device: str = 'cpu', chunk_size: Optional[int] = None) -> None:
        self.device = device
        self.chunk_size = chunk_size

    @abc.abstractmethod
    def evaluate_tensor(self, evals: torch.Tensor) -> torch.Tensor:
        """Vectorised evaluation of an ``(N, 3)`` float64 tensor."""

    def __call__(self, l1: float, l2: float, l3: float) -> float:
        evals = torch.tensor([[l1, l2, l3]], dtype=torch.float64, device=self.device)
        return float(self.evaluate_tensor(evals)[0].item())

    def evaluate(self, volume: Any, progress_callback: Optional[ProgressCallback] = None) -> torch.Tensor:
        """Evaluate every voxel of a ``(..., 3)`` volume; returns a float64 tensor of shape ``(...)``."""
        evals = as_eigenvalue_tensor(volume, device=self.device)
        spatial_shape = tuple(evals.shape[:-1])
        flat = evals.reshape(-1, 3)
        n_voxels = int(flat.shape[0])
        out = torch.zeros((n_voxels,), dtype=torch.float64, device=self.device)

        chunk = int(self.chunk_size) if self.chunk_size else memory_manager(self.device, 'functor')(n_voxels)
        starts = range(0, n_voxels, max(chunk, 1))
        total = len(starts)
        for done, s in enumerate(starts, start=1):
            e = min(s + chunk, n_voxels)
            out[s:e] = self.evaluate_tensor(flat[s:e])
            if progress_callback is not None:
                progress_callback(done, total)
        return out.reshape(spatial_shape)


class KrcahFunctor(EigenToScalarFunctor):
    """Krcah sheetness-style bone measure for magnitude-ordered eigenvalues."""

    eigenvalue_order = EigenValueOrder.ORDER_BY_MAGNITUDE

    def __init__(
        self,
        parameters: CalibrationParameters = CalibrationParameters(),
        polarity: Any = Polarity.BRIGHT,
        *,
        device: str = 'cpu',
        chunk_size: Optional[int] = None,
    ) -> None:
        super().__init__(device=device, chunk_size=chunk_size)
        self.parameters = parameters
        self.polarity = Polarity.parse(polarity)

    @property
    def alpha(self) -> float:
        return self.parameters.alpha

    @property
    def beta(self) -> float:
        return self.parameters.beta

    @property
    def gamma(self) -> float:
        return self.parameters.gamma

    @property
    def plate_width(self) -> float:
        """Width of the plate-ratio term, ``alpha / gamma``."""
        return relative_width(self.alpha, self.gamma)

    @property
    def small_width(self) -> float:
        """Width of the small-eigenvalue-ratio term, ``beta / gamma``."""
        return relative_width(self.beta, self.gamma)

    def shape_factor(self, evals: torch.Tensor) -> torch.Tensor:
        """Product of the two ratio terms for an ``(N, 3)`` tensor; depends only on eigenvalue ratios."""
        mags = torch.abs(evals)
        l1, l2, l3 = mags[:, 0], mags[:, 1], mags[:, 2]
        r_plate = safe_ratio(l2, l3, 1.0)
        r_small = safe_ratio(l1, l2, 0.0)
        return gaussian_term(1.0 - r_plate, self.plate_width) * gaussian_term(r_small, self.small_width)

    def evaluate_tensor(self, evals: torch.Tensor) -> torch.Tensor:
        signed = evals * self.polarity.direction
        gate = (signed[:, 1] > 0) & (signed[:, 2] > 0)

        mags = torch.abs(evals)
        strength = torch.hypot(mags[:, 1], mags[:, 2])

        measure = self.shape_factor(evals)
        measure = measure * strength_term(strength, self.gamma)
        measure = measure * mags[:, 2]

        return torch.where(gate, measure, torch.full_like(measure, NEUTRAL_VALUE))


def relative_width(width: float, reference: float) -> float:
    """``width / reference`` with the limits 0 for a zero width and inf for a zero reference."""
    width = float(width)
    reference = float(reference)
    if width == 0.0:
        return 0.0
    if reference == 0.0:
        return math.inf
    return width / reference
