from __future__ import annotations

import itertools
import math

import numpy as np
import pytest
import torch

from krcahpy.core.eigen import EigenValueOrder
from krcahpy.krcah import NEUTRAL_VALUE, CalibrationParameters, EigenToScalarFunctor, KrcahFunctor, Polarity


PARAMS = CalibrationParameters(alpha=5.0, beta=5.0, gamma=7.0)


def _triples():
    values = [0.0, 1e-12, -1e-12, 1.0, -1.0, 10.0, -10.0, 1e6, -1e6]
    return list(itertools.product(values, repeat=3))


@pytest.mark.parametrize(
    "params",
    [
        CalibrationParameters(0.0, 0.0, 0.0),
        CalibrationParameters(0.0, 1.0, 0.0),
        CalibrationParameters(1e-9, 1e-9, 1e-9),
        PARAMS,
        CalibrationParameters(1e9, 1e9, 1e9),
    ],
)
@pytest.mark.parametrize("polarity", [Polarity.BRIGHT, Polarity.DARK])
def test_output_is_finite_for_finite_input(params: CalibrationParameters, polarity: Polarity) -> None:
    evals = torch.tensor(_triples(), dtype=torch.float64)
    out = KrcahFunctor(params, polarity).evaluate(evals)
    assert out.shape == (evals.shape[0],)
    assert torch.isfinite(out).all()


@pytest.mark.parametrize(
    "polarity, triple",
    [
        (Polarity.BRIGHT, (1.0, -10.0, 10.0)),
        (Polarity.BRIGHT, (1.0, 10.0, -10.0)),
        (Polarity.BRIGHT, (1.0, -10.0, -10.0)),
        (Polarity.BRIGHT, (1.0, 0.0, 10.0)),
        (Polarity.DARK, (-1.0, 10.0, 10.0)),
        (Polarity.DARK, (-1.0, -10.0, 10.0)),
        (Polarity.DARK, (-1.0, -10.0, 0.0)),
    ],
)
@pytest.mark.parametrize(
    "params",
    [CalibrationParameters(0.0, 0.0, 0.0), PARAMS, CalibrationParameters(100.0, 100.0, 100.0)],
)
def test_sign_gate_returns_neutral_value(polarity, triple, params) -> None:
    assert KrcahFunctor(params, polarity)(*triple) == NEUTRAL_VALUE


def test_polarity_symmetry() -> None:
    evals = torch.tensor(_triples(), dtype=torch.float64)
    bright = KrcahFunctor(PARAMS, Polarity.BRIGHT).evaluate(evals)
    dark_negated = KrcahFunctor(PARAMS, Polarity.DARK).evaluate(-evals)
    torch.testing.assert_close(bright, dark_negated, rtol=0.0, atol=0.0)


def test_more_plate_deviation_never_increases_output() -> None:
    f = KrcahFunctor(PARAMS, Polarity.BRIGHT)
    # |l2| moving away from |l3| at fixed l1, l3
    outs = [f(1.0, l2, 10.0) for l2 in (10.0, 9.0, 7.0, 5.0, 2.0)]
    assert all(a >= b for a, b in zip(outs, outs[1:]))
    # growing |l1| at fixed l2, l3
    outs = [f(l1, 10.0, 10.0) for l1 in (0.0, 1.0, 3.0, 6.0, 9.0)]
    assert all(a >= b for a, b in zip(outs, outs[1:]))


def test_matches_closed_form() -> None:
    l1, l2, l3 = 1.0, 8.0, 10.0
    a, b, g = PARAMS.alpha, PARAMS.beta, PARAMS.gamma
    wa, wb = a / g, b / g
    expected = (
        l3
        * math.exp(-((1.0 - l2 / l3) ** 2) / (2 * wa * wa))
        * math.exp(-((l1 / l2) ** 2) / (2 * wb * wb))
        * (1.0 - math.exp(-(l2 ** 2 + l3 ** 2) / (2 * g * g)))
    )
    assert KrcahFunctor(PARAMS, Polarity.BRIGHT)(l1, l2, l3) == pytest.approx(expected, rel=1e-12)


def test_shape_factor_depends_only_on_ratios() -> None:
    f = KrcahFunctor(PARAMS, Polarity.BRIGHT)
    base = torch.tensor([[0.0, 9.0, 10.0], [1.0, 5.0, 8.0]], dtype=torch.float64)
    for factor in (1e-3, 10.0, 1e6):
        torch.testing.assert_close(f.shape_factor(base * factor), f.shape_factor(base), rtol=1e-12, atol=0.0)
    # Output over |l3| differs only through the strength term, which saturates for strong structures.
    weak, strong = f(0.0, 90.0, 100.0) / 100.0, f(0.0, 900.0, 1000.0) / 1000.0
    assert weak == pytest.approx(strong, rel=1e-9)


def test_zero_ratio_denominators_use_neutral_ratios() -> None:
    f = KrcahFunctor(PARAMS, Polarity.BRIGHT)
    shape = f.shape_factor(torch.tensor([[0.0, 0.0, 0.0], [3.0, 0.0, 5.0]], dtype=torch.float64))
    assert torch.isfinite(shape).all()
    assert shape[0].item() == 1.0


def test_huge_eigenvalues_and_parameters_stay_finite() -> None:
    params = CalibrationParameters(1e200, 1e200, 1e200)
    for polarity, sign in ((Polarity.BRIGHT, 1.0), (Polarity.DARK, -1.0)):
        out = KrcahFunctor(params, polarity)(0.0, sign * 1e200, sign * 1e200)
        assert math.isfinite(out)
        assert out > 0.0
    evals = torch.tensor([[0.0, 1e308, 1e308], [1e-300, 1e300, 1e308]], dtype=torch.float64)
    for p in (params, CalibrationParameters(1e-300, 1e-300, 1e-300), CalibrationParameters(1e308, 1e308, 1e308)):
        assert torch.isfinite(KrcahFunctor(p, Polarity.BRIGHT).evaluate(evals)).all()


def test_zero_calibration_limits() -> None:
    f = KrcahFunctor(CalibrationParameters(0.0, 0.0, 0.0), Polarity.BRIGHT)
    # Perfect pattern: every term is at its limit value 1.
    assert f(0.0, 4.0, 4.0) == pytest.approx(4.0)
    # Any plate deviation or non-zero l1 collapses the output.
    assert f(0.0, 3.0, 4.0) == 0.0
    assert f(0.5, 4.0, 4.0) == 0.0


def test_vectorised_matches_scalar_calls() -> None:
    rng = np.random.default_rng(7)
    evals = rng.normal(scale=5.0, size=(64, 3))
    f = KrcahFunctor(PARAMS, Polarity.DARK, chunk_size=5)
    vec = f.evaluate(evals).numpy()
    scalar = np.array([f(*row) for row in evals])
    np.testing.assert_allclose(vec, scalar, rtol=1e-12, atol=0.0)


def test_evaluate_keeps_spatial_shape_and_reports_progress() -> None:
    evals = np.zeros((3, 4, 5, 3))
    evals[..., 1:] = 2.0
    calls: list[tuple[int, int]] = []
    out = KrcahFunctor(PARAMS, Polarity.BRIGHT, chunk_size=7).evaluate(
        evals, progress_callback=lambda done, total: calls.append((done, total))
    )
    assert out.shape == (3, 4, 5)
    assert calls[-1][0] == calls[-1][1] == math.ceil(60 / 7)
    assert (out > 0).all()


def test_functor_interface_declares_magnitude_ordering() -> None:
    f = KrcahFunctor(PARAMS, Polarity.BRIGHT)
    assert isinstance(f, EigenToScalarFunctor)
    assert f.eigenvalue_order is EigenValueOrder.ORDER_BY_MAGNITUDE
    with pytest.raises(TypeError):
        EigenToScalarFunctor()
