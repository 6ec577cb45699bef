"""Tests for sample weights and their bias corrections."""

import math

import pytest
import torch
from riemtorch.weights import (
    AnalyticWeights,
    FrequencyWeights,
    ProbabilityWeights,
    Weights,
    as_weights,
    unit_weights,
)


class TestWeights:
    """Construction and container behaviour."""

    def test_sum_and_length(self):
        w = Weights([1.0, 2.0, 3.0])
        assert len(w) == 3
        assert w.sum == 6.0
        assert float(w[1]) == 2.0
        assert [float(x) for x in w] == [1.0, 2.0, 3.0]

    def test_integer_values_become_floating(self):
        w = FrequencyWeights([1, 2])
        assert w.values.is_floating_point()

    def test_explicit_total(self):
        assert Weights([1.0, 1.0], total=5.0).sum == 5.0

    def test_negative_weights_raise(self):
        with pytest.raises(ValueError):
            Weights([1.0, -1.0])

    def test_matrix_raises(self):
        with pytest.raises(ValueError):
            Weights(torch.ones(2, 2))

    def test_unit_weights(self):
        w = unit_weights(4)
        assert isinstance(w, ProbabilityWeights)
        assert w.sum == 4.0
        assert torch.equal(w.values, torch.ones(4))

    def test_as_weights(self):
        w = AnalyticWeights([1.0, 2.0])
        assert as_weights(w) is w
        assert type(as_weights([1.0, 2.0])) is Weights


class TestVarCorrection:
    """Bias correction factors."""

    def test_uncorrected_is_inverse_sum(self):
        for cls in (Weights, AnalyticWeights, FrequencyWeights, ProbabilityWeights):
            assert math.isclose(cls([1.0, 3.0]).varcorrection(), 0.25)

    def test_plain_weights_cannot_correct(self):
        with pytest.raises(ValueError):
            Weights([1.0, 3.0]).varcorrection(True)

    def test_analytic(self):
        w = AnalyticWeights([1.0, 3.0])
        assert math.isclose(w.varcorrection(True), 1.0 / (4.0 - 10.0 / 4.0))

    def test_frequency(self):
        assert math.isclose(FrequencyWeights([1.0, 3.0]).varcorrection(True), 1.0 / 3.0)

    def test_probability_counts_nonzero(self):
        w = ProbabilityWeights([1.0, 0.0, 3.0])
        assert math.isclose(w.varcorrection(True), 2.0 / (1.0 * 4.0))

    def test_unit_probability_is_bessel(self):
        assert math.isclose(unit_weights(5).varcorrection(True), 1.0 / 4.0)

    @pytest.mark.parametrize(
        "w",
        [AnalyticWeights([2.0]), FrequencyWeights([1.0]), ProbabilityWeights([3.0]), unit_weights(1)],
    )
    def test_vanishing_denominator_is_infinite(self, w):
        assert w.varcorrection(True) == math.inf
