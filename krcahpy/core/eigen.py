"""Eigenvalue ordering, volume validation and guarded numeric helpers.

Every eigenvalue volume in KrcahPy is a float64 tensor of shape ``(..., 3)``
whose last axis holds ``(l1, l2, l3)``. Consumers state the ordering they
expect through :class:`EigenValueOrder`; the Krcah measure expects
ascending magnitude, ``|l1| <= |l2| <= |l3|``.
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Any, Optional, Sequence

import numpy as np
import torch

from krcahpy.core.validation import ConfigurationError


class EigenValueOrder(str, Enum):
    ORDER_BY_VALUE = "value"
    ORDER_BY_MAGNITUDE = "magnitude"
    DO_NOT_ORDER = "none"


def resolve_device(device: Optional[str]) -> str:
    """Normalize a device request (auto | cpu | cuda) to a torch device string."""
    dev = str(device or 'auto').strip().lower()
    if dev in {'', 'auto'}:
        return 'cuda' if torch.cuda.is_available() else 'cpu'
    if dev.startswith('cuda'):
        if not torch.cuda.is_available():
            logging.warning("DEVICE=cuda requested but CUDA is not available; falling back to cpu")
            return 'cpu'
        return dev
    if dev == 'cpu':
        return 'cpu'
    raise ConfigurationError(
        f"Invalid device: '{device}'\n"
        "Valid values: auto | cpu | cuda"
    )


def sort_eigenvalues(evals: torch.Tensor, order: EigenValueOrder = EigenValueOrder.ORDER_BY_MAGNITUDE) -> torch.Tensor:
    """Sort the last axis of an eigenvalue tensor.

    Ties in magnitude keep their original relative order, so the result is
    deterministic for inputs such as ``(1, -1, 2)``.
    """
    order = EigenValueOrder(order)
    if order is EigenValueOrder.DO_NOT_ORDER:
        return evals
    if order is EigenValueOrder.ORDER_BY_VALUE:
        return torch.sort(evals, dim=-1, stable=True).values
    idx = torch.sort(torch.abs(evals), dim=-1, stable=True).indices
    return torch.gather(evals, -1, idx)


def as_eigenvalue_tensor(volume: Any, *, device: str = 'cpu', name: str = "eigenvalue volume") -> torch.Tensor:
    """Return ``volume`` as a float64 tensor of shape ``(..., 3)`` on ``device``."""
    if isinstance(volume, torch.Tensor):
        t = volume.detach()
    else:
        t = torch.as_tensor(np.asarray(volume))
    if t.ndim < 1 or int(t.shape[-1]) != 3:
        raise ConfigurationError(
            f"Invalid {name} shape: {tuple(t.shape)}\n"
            "The last axis must hold the three eigenvalues (l1, l2, l3)."
        )
    return t.to(device=device, dtype=torch.float64)


def as_mask_tensor(mask: Any, spatial_shape: Sequence[int], *, device: str = 'cpu') -> torch.Tensor:
    """Return ``mask`` as an integer tensor, checking it shares the eigenvalue grid."""
    if isinstance(mask, torch.Tensor):
        m = mask.detach()
    else:
        m = torch.as_tensor(np.asarray(mask))
    if tuple(m.shape) != tuple(int(s) for s in spatial_shape):
        raise ConfigurationError(
            f"Mask shape {tuple(m.shape)} does not match the eigenvalue grid {tuple(spatial_shape)}.\n"
            "The mask must be defined on the same voxel grid as the eigenvalue volume."
        )
    if torch.is_floating_point(m):
        m = torch.round(m)
    return m.to(device=device, dtype=torch.int64)


_SQRT2 = math.sqrt(2.0)


def safe_ratio(numerator: torch.Tensor, denominator: torch.Tensor, neutral: float) -> torch.Tensor:
    """``numerator / denominator`` with ``neutral`` wherever the denominator is 0."""
    nonzero = denominator != 0
    safe = torch.where(nonzero, denominator, torch.ones_like(denominator))
    return torch.where(nonzero, numerator / safe, torch.full_like(numerator, neutral))


def stable_norm(evals: torch.Tensor) -> torch.Tensor:
    """Row-wise Euclidean norm of an ``(N, 3)`` tensor that does not overflow for large entries."""
    scale = torch.amax(torch.abs(evals), dim=-1)
    unit = evals / torch.where(scale > 0, scale, torch.ones_like(scale)).unsqueeze(-1)
    return torch.linalg.vector_norm(unit, dim=-1) * scale


def gaussian_term(deviation: torch.Tensor, width: float) -> torch.Tensor:
    """``exp(-d^2 / (2 w^2))``; a zero-width term is 1 where ``d == 0`` and 0 elsewhere."""
    width = float(width)
    if math.isinf(width):
        return torch.ones_like(deviation)
    if width > 0.0:
        t = deviation / (_SQRT2 * width)
        return torch.exp(-(t * t))
    return (deviation == 0).to(deviation.dtype)


def strength_term(strength: torch.Tensor, width: float) -> torch.Tensor:
    """``1 - exp(-s^2 / (2 w^2))`` for a non-negative strength ``s``; with zero width any non-zero strength counts fully."""
    width = float(width)
    if width > 0.0:
        t = strength / (_SQRT2 * width)
        return -torch.expm1(-(t * t))
    return (strength > 0).to(strength.dtype)
