"""Sample weights for the Fréchet statistics.

The weight type decides the bias correction applied to variances:

==================  ================  ===============================
type                uncorrected       corrected
==================  ================  ===============================
Weights             1 / s             not supported
AnalyticWeights     1 / s             1 / (s - Σw² / s)
FrequencyWeights    1 / s             1 / (s - 1)
ProbabilityWeights  1 / s             n / ((n - 1) s), n = #{w ≠ 0}
==================  ================  ===============================

with s the sum of the weights. A vanishing denominator, as for a single
sample, gives an infinite correction and hence a NaN variance.
"""

import math
from typing import Optional

import torch
from torch import Tensor


def _reciprocal(x: float) -> float:
    return math.inf if x == 0 else 1.0 / x


class Weights:
    """Generic weight vector; supports only uncorrected variances.

    Args:
        values: Non-negative weights, one per sample
        total: Precomputed sum of ``values``
    """

    def __init__(self, values, total: Optional[float] = None):
        values = torch.as_tensor(values)
        if not values.is_floating_point():
            values = values.to(torch.get_default_dtype())
        if values.ndim != 1:
            raise ValueError(f"Weights must be a vector, got shape {tuple(values.shape)}")
        if bool((values < 0).any()):
            raise ValueError("Weights must be non-negative")
        self.values = values
        self.sum = float(values.sum()) if total is None else float(total)

    def __len__(self) -> int:
        return self.values.shape[0]

    def __getitem__(self, i):
        return self.values[i]

    def __iter__(self):
        return iter(self.values)

    def varcorrection(self, corrected: bool = False) -> float:
        if corrected:
            raise ValueError(
                f"{type(self).__name__} does not support bias correction: use "
                "AnalyticWeights, FrequencyWeights or ProbabilityWeights."
            )
        return 1.0 / self.sum

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.values.tolist()})"


class AnalyticWeights(Weights):
    """Weights proportional to the inverse variance of each observation."""

    def varcorrection(self, corrected: bool = False) -> float:
        s = self.sum
        if corrected:
            return _reciprocal(s - float(torch.sum(self.values ** 2)) / s)
        return 1.0 / s


class FrequencyWeights(Weights):
    """Integer-like weights counting how often each observation occurred."""

    def varcorrection(self, corrected: bool = False) -> float:
        s = self.sum
        if corrected:
            return _reciprocal(s - 1)
        return 1.0 / s


class ProbabilityWeights(Weights):
    """Weights proportional to the inverse sampling probability."""

    def varcorrection(self, corrected: bool = False) -> float:
        s = self.sum
        if corrected:
            n = int(torch.count_nonzero(self.values))
            return n * _reciprocal((n - 1) * s)
        return 1.0 / s


def unit_weights(n: int, dtype=None) -> ProbabilityWeights:
    """``n`` probability weights equal to one."""
    return ProbabilityWeights(torch.ones(n, dtype=dtype), n)


def as_weights(w) -> Weights:
    """Wrap raw values as :class:`Weights`, leaving weight objects untouched."""
    if isinstance(w, Weights):
        return w
    return Weights(w)
