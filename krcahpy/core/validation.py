"""Validation helpers and shared exceptions."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Custom exception for configuration validation errors."""


class DataError(ValueError):
    """Raised when input data (image, mask, eigenvalues) is invalid or corrupted."""


def validate_tensor(tensor, name, allow_inf: bool = False):
    """Comprehensive tensor validation with informative error messages."""

    import numpy as np
    import torch

    # Convert to torch if numpy
    if isinstance(tensor, np.ndarray):
        tensor = torch.from_numpy(tensor)

    if not torch.is_floating_point(tensor):
        return tensor

    # Check for NaN
    if torch.any(torch.isnan(tensor)):
        nan_count = torch.isnan(tensor).sum().item()
        nan_pct = 100.0 * nan_count / tensor.numel()
        raise DataError(
            f"{name} contains {nan_count:,} NaN values ({nan_pct:.2f}% of total).\n"
            f"This usually indicates:\n"
            f"  - Corrupted input data (check your NIfTI files)\n"
            f"  - Division by zero during an upstream resampling step\n"
            f"Action: Inspect your input data for quality issues."
        )

    # Check for Inf
    if not allow_inf and torch.any(torch.isinf(tensor)):
        inf_count = torch.isinf(tensor).sum().item()
        inf_pct = 100.0 * inf_count / tensor.numel()
        raise DataError(
            f"{name} contains {inf_count:,} Inf values ({inf_pct:.2f}% of total).\n"
            f"This usually indicates:\n"
            f"  - Numerical overflow during computation\n"
            f"  - Extreme intensity values in the input image\n"
            f"Action: Check for unreasonable values in input data."
        )

    return tensor
