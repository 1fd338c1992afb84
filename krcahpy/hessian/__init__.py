"""
krcahpy.hessian
===============

Collaborators around the Krcah core:

preprocessing : unsharp-mask sharpening applied before Hessian computation.
multiscale    : per-scale Hessian eigenvalues (magnitude ordered) and the
                max-over-scales enhancement driver.
"""

from .preprocessing import krcah_preprocess
from .multiscale import MultiScaleHessianEnhancement, MultiScaleResult, hessian_eigenvalues

__all__ = [
    "krcah_preprocess",
    "hessian_eigenvalues",
    "MultiScaleHessianEnhancement",
    "MultiScaleResult",
]
