from __future__ import annotations

import math

import pytest
import torch

from krcahpy.core.eigen import (
    EigenValueOrder,
    as_mask_tensor,
    gaussian_term,
    resolve_device,
    safe_ratio,
    sort_eigenvalues,
    stable_norm,
    strength_term,
)
from krcahpy.core.validation import ConfigurationError


def test_sort_by_magnitude_is_stable() -> None:
    evals = torch.tensor([[3.0, -1.0, 1.0], [-5.0, 2.0, 0.5]], dtype=torch.float64)
    out = sort_eigenvalues(evals, EigenValueOrder.ORDER_BY_MAGNITUDE)
    assert out.tolist() == [[-1.0, 1.0, 3.0], [0.5, 2.0, -5.0]]


def test_sort_by_value_and_no_order() -> None:
    evals = torch.tensor([[3.0, -1.0, 1.0]], dtype=torch.float64)
    assert sort_eigenvalues(evals, EigenValueOrder.ORDER_BY_VALUE).tolist() == [[-1.0, 1.0, 3.0]]
    assert sort_eigenvalues(evals, EigenValueOrder.DO_NOT_ORDER) is evals


def test_guarded_terms_at_zero_width() -> None:
    d = torch.tensor([0.0, 1.0], dtype=torch.float64)
    assert gaussian_term(d, 0.0).tolist() == [1.0, 0.0]
    assert strength_term(d, 0.0).tolist() == [0.0, 1.0]
    assert torch.isfinite(strength_term(torch.tensor([1e300], dtype=torch.float64), 1e-300)).all()


def test_terms_do_not_overflow_for_huge_inputs() -> None:
    huge = torch.tensor([1e200, 0.0], dtype=torch.float64)
    assert gaussian_term(huge, 1e200).tolist() == pytest.approx([math.exp(-0.5), 1.0])
    assert strength_term(huge, 1e200).tolist() == pytest.approx([-math.expm1(-0.5), 0.0])
    assert gaussian_term(huge, math.inf).tolist() == [1.0, 1.0]


def test_stable_norm_and_safe_ratio() -> None:
    evals = torch.tensor([[3.0, 4.0, 0.0], [1e200, 1e200, 1e200], [0.0, 0.0, 0.0]], dtype=torch.float64)
    norms = stable_norm(evals)
    assert norms[0].item() == pytest.approx(5.0)
    assert norms[1].item() == pytest.approx(math.sqrt(3.0) * 1e200)
    assert norms[2].item() == 0.0

    num = torch.tensor([2.0, 0.0, 5.0], dtype=torch.float64)
    den = torch.tensor([4.0, 0.0, 0.0], dtype=torch.float64)
    assert safe_ratio(num, den, 1.0).tolist() == [0.5, 1.0, 1.0]


def test_mask_tensor_rounds_float_labels() -> None:
    m = as_mask_tensor([[[0.2, 0.9]]], (1, 1, 2))
    assert m.dtype == torch.int64
    assert m.tolist() == [[[0, 1]]]


def test_resolve_device() -> None:
    assert resolve_device("cpu") == "cpu"
    assert resolve_device(None) in {"cpu", "cuda"}
    with pytest.raises(ConfigurationError):
        resolve_device("tpu")
