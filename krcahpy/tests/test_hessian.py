from __future__ import annotations

import numpy as np
import pytest

from krcahpy.core.validation import ConfigurationError
from krcahpy.hessian import MultiScaleHessianEnhancement, hessian_eigenvalues, krcah_preprocess
from krcahpy.krcah import KrcahEigenToScalar


def _bright_rod(shape=(9, 21, 21), value=1000.0) -> np.ndarray:
    img = np.zeros(shape, dtype=np.float64)
    c1, c2 = shape[1] // 2, shape[2] // 2
    img[:, c1 - 1:c1 + 2, c2 - 1:c2 + 2] = value
    return img


def test_preprocess_formula_and_dtype() -> None:
    img = np.zeros((5, 5, 5), dtype=np.int16)
    img[2, 2, 2] = 100
    out = krcah_preprocess(img, sigma=1.0, scaling=10.0)
    assert out.dtype == np.int16
    assert out[2, 2, 2] > 100

    flat = np.full((4, 4, 4), 7.0)
    np.testing.assert_allclose(krcah_preprocess(flat), flat)

    unscaled = krcah_preprocess(img.astype(np.float64), scaling=0.0)
    np.testing.assert_array_equal(unscaled, img.astype(np.float64))


def test_preprocess_clips_integer_range() -> None:
    img = np.zeros((5, 5, 5), dtype=np.uint8)
    img[2, 2, 2] = 250
    out = krcah_preprocess(img)
    assert out.dtype == np.uint8
    assert out.max() == 255
    assert out.min() == 0


def test_preprocess_rejects_bad_parameters() -> None:
    img = np.zeros((3, 3, 3))
    with pytest.raises(ConfigurationError):
        krcah_preprocess(img, sigma=0.0)
    with pytest.raises(ConfigurationError):
        krcah_preprocess(img, scaling=-1.0)
    with pytest.raises(ConfigurationError):
        krcah_preprocess(img, spacing=(1.0, 0.0, 1.0))


def test_bright_rod_eigenvalues_follow_curvature_convention() -> None:
    img = _bright_rod()
    evals = hessian_eigenvalues(img, 1.0).numpy()
    assert evals.shape == img.shape + (3,)

    mags = np.abs(evals)
    assert (mags[..., 0] <= mags[..., 1]).all()
    assert (mags[..., 1] <= mags[..., 2]).all()

    axis = evals[4, 10, 10]
    assert axis[1] > 0.0 and axis[2] > 0.0
    assert abs(axis[0]) < 1e-6 * abs(axis[2])


def test_hessian_chunking_does_not_change_eigenvalues() -> None:
    rng = np.random.default_rng(11)
    img = rng.normal(size=(7, 6, 5))
    whole = hessian_eigenvalues(img, 1.5, spacing=(1.0, 0.5, 2.0)).numpy()
    for chunk_size in (1, 13, 64):
        chunked = hessian_eigenvalues(img, 1.5, spacing=(1.0, 0.5, 2.0), chunk_size=chunk_size).numpy()
        np.testing.assert_allclose(chunked, whole, rtol=1e-12, atol=1e-12)


def test_hessian_requires_3d() -> None:
    with pytest.raises(ConfigurationError):
        hessian_eigenvalues(np.zeros((4, 4)), 1.0)


def test_multiscale_measure_peaks_on_bright_rod() -> None:
    img = _bright_rod()
    enhancer = MultiScaleHessianEnhancement(KrcahEigenToScalar(), [1.0, 2.0], progress=False)
    result = enhancer(img)

    assert result.measure.shape == img.shape
    assert result.measure.dtype == np.float32
    assert np.isfinite(result.measure).all()
    assert set(np.unique(result.best_sigma)) <= {1.0, 2.0}
    assert [c["sigma"] for c in result.calibrations] == [1.0, 2.0]
    assert all(c["voxels"] == img.size for c in result.calibrations)

    assert result.measure[4, 10, 10] > 0.0
    assert result.measure[4, 10, 10] > result.measure[4, 0, 0]


def test_dark_polarity_ignores_bright_rod_axis() -> None:
    img = _bright_rod()
    result = MultiScaleHessianEnhancement(KrcahEigenToScalar(polarity="dark"), [1.0], progress=False)(img)
    assert result.measure[4, 10, 10] == 0.0

    inverted = MultiScaleHessianEnhancement(KrcahEigenToScalar(polarity="dark"), [1.0], progress=False)(-img)
    assert inverted.measure[4, 10, 10] > 0.0


@pytest.mark.parametrize("sigmas", [[], [0.0], [1.0, -2.0], ["a"]])
def test_multiscale_rejects_bad_sigmas(sigmas) -> None:
    with pytest.raises(ConfigurationError):
        MultiScaleHessianEnhancement(KrcahEigenToScalar(), sigmas)
