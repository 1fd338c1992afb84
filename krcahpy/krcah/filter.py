"""Krcah eigenvalue-to-scalar composite: estimate calibration, then apply the functor."""

from __future__ import annotations

import logging
from typing import Any, Optional

import torch

from krcahpy.core.eigen import EigenValueOrder
from krcahpy.core.progress import ProgressCallback
from krcahpy.krcah.functor import KrcahFunctor
from krcahpy.krcah.parameters import (
    CalibrationParameters,
    CalibrationStrategy,
    CoefficientSet,
    KrcahParameterEstimator,
    Polarity,
)


class KrcahEigenToScalar:
    """Configure once, then run estimation and the per-voxel measure on each eigenvalue volume.

    The mask, background value, parameter set and polarity are configuration
    set before estimation. ``alpha``, ``beta`` and ``gamma`` expose the
    constants of the most recent estimation for diagnostic reporting.
    """

    eigenvalue_order = EigenValueOrder.ORDER_BY_MAGNITUDE

    def __init__(
        self,
        *,
        polarity: Any = Polarity.BRIGHT,
        parameter_set: Any = CalibrationStrategy.IMPLEMENTATION,
        mask: Any = None,
        background_value: int = 0,
        coefficients: Optional[CoefficientSet] = None,
        device: str = 'cpu',
        chunk_size: Optional[int] = None,
        n_jobs: int = 1,
    ) -> None:
        self.polarity = Polarity.parse(polarity)
        self.mask = mask
        self.device = device
        self.chunk_size = chunk_size
        self._estimator = KrcahParameterEstimator(
            parameter_set,
            background_value=background_value,
            coefficients=coefficients,
            device=device,
            chunk_size=chunk_size,
            n_jobs=n_jobs,
        )
        self.parameters: Optional[CalibrationParameters] = None

    # Mask / background
    def set_mask_image(self, mask: Any) -> None:
        self.mask = mask

    def get_mask_image(self) -> Any:
        return self.mask

    def set_background_value(self, value: int) -> None:
        self._estimator.background_value = int(value)

    def get_background_value(self) -> int:
        return self._estimator.background_value

    # Parameter set
    def set_parameter_set(self, parameter_set: Any) -> None:
        self._estimator.parameter_set = CalibrationStrategy.parse(parameter_set)

    def get_parameter_set(self) -> CalibrationStrategy:
        return self._estimator.parameter_set

    def set_parameter_set_to_implementation(self) -> None:
        self._estimator.set_parameter_set_to_implementation()

    def set_parameter_set_to_journal_article(self) -> None:
        self._estimator.set_parameter_set_to_journal_article()

    # Polarity
    def set_enhance_bright_objects(self) -> None:
        self.polarity = Polarity.BRIGHT

    def set_enhance_dark_objects(self) -> None:
        self.polarity = Polarity.DARK

    def get_enhance_type(self) -> Polarity:
        return self.polarity

    # Computed parameters
    def _require_parameters(self) -> CalibrationParameters:
        if self.parameters is None:
            raise RuntimeError("Calibration parameters are not available until estimate() has run.")
        return self.parameters

    @property
    def alpha(self) -> float:
        return self._require_parameters().alpha

    @property
    def beta(self) -> float:
        return self._require_parameters().beta

    @property
    def gamma(self) -> float:
        return self._require_parameters().gamma

    @property
    def statistics(self):
        return self._estimator.statistics

    def estimate(self, eigenvalues: Any, progress_callback: Optional[ProgressCallback] = None) -> CalibrationParameters:
        self._estimator.progress_callback = progress_callback
        try:
            self.parameters = self._estimator.estimate(eigenvalues, self.mask)
        finally:
            self._estimator.progress_callback = None
        return self.parameters

    def functor(self) -> KrcahFunctor:
        return KrcahFunctor(self._require_parameters(), self.polarity, device=self.device, chunk_size=self.chunk_size)

    def apply(self, eigenvalues: Any, progress_callback: Optional[ProgressCallback] = None) -> torch.Tensor:
        return self.functor().evaluate(eigenvalues, progress_callback=progress_callback)

    def __call__(self, eigenvalues: Any) -> torch.Tensor:
        """Estimate the calibration for ``eigenvalues`` and return the measure volume."""
        params = self.estimate(eigenvalues)
        logging.debug(f"Applying Krcah measure ({self.polarity.value}) with {params.as_dict()}")
        return self.apply(eigenvalues)
