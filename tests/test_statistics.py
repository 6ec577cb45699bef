"""Tests for Fréchet means, medians and variances."""

import math

import pytest
import torch
from riemtorch import DimensionMismatch, Euclidean, SPD, Sphere
from riemtorch.statistics import (
    CyclicProximalPointMethod,
    GeodesicInterpolationMethod,
    GradientMethod,
    mean,
    mean_and_std,
    mean_and_var,
    median,
    std,
    var,
)
from riemtorch.weights import FrequencyWeights, ProbabilityWeights


@pytest.fixture
def plane_points():
    return [
        torch.tensor([0.0, 0.0]),
        torch.tensor([1.0, 2.0]),
        torch.tensor([5.0, -1.0]),
        torch.tensor([2.0, 3.0]),
    ]


@pytest.fixture
def cap_points():
    """Four points on S² placed symmetrically about the north pole."""
    a = 0.4
    c, s = math.cos(a), math.sin(a)
    return [
        torch.tensor([s, 0.0, c]),
        torch.tensor([-s, 0.0, c]),
        torch.tensor([0.0, s, c]),
        torch.tensor([0.0, -s, c]),
    ]


class TestMean:
    """Weighted Fréchet mean."""

    def test_euclidean_is_arithmetic_mean(self, plane_points):
        M = Euclidean(2)
        m = mean(M, plane_points)
        assert torch.allclose(m, torch.stack(plane_points).mean(dim=0), atol=1e-12)

    def test_euclidean_weighted(self, plane_points):
        M = Euclidean(2)
        w = torch.tensor([1.0, 2.0, 3.0, 4.0])
        m = mean(M, plane_points, w)
        expected = (w[:, None] * torch.stack(plane_points)).sum(dim=0) / w.sum()
        assert torch.allclose(m, expected, atol=1e-12)

    def test_gradient_method_on_euclidean(self, plane_points):
        M = Euclidean(2)
        m = mean(M, plane_points, method=GradientMethod())
        assert torch.allclose(m, torch.stack(plane_points).mean(dim=0), atol=1e-6)

    def test_shuffled_interpolation(self, plane_points):
        M = Euclidean(2)
        method = GeodesicInterpolationMethod(shuffle_rng=torch.Generator().manual_seed(3))
        m = mean(M, plane_points, method=method)
        assert torch.allclose(m, torch.stack(plane_points).mean(dim=0), atol=1e-12)

    def test_sphere_symmetric_sample(self, cap_points):
        M = Sphere(3)
        m = mean(M, cap_points)
        assert M.is_point(m)
        assert torch.allclose(m, torch.tensor([0.0, 0.0, 1.0]), atol=1e-6)

    def test_sphere_start_point(self, cap_points):
        M = Sphere(3)
        x0 = M.project(torch.tensor([0.1, 0.2, 1.0]))
        m = mean(M, cap_points, x0=x0, method=GradientMethod(stop_iter=200))
        assert torch.allclose(m, torch.tensor([0.0, 0.0, 1.0]), atol=1e-6)

    def test_spd_commuting_matrices(self):
        """The mean of commuting SPD matrices is exp of the mean of logs"""
        M = SPD(2)
        points = [
            torch.eye(2),
            torch.diag(torch.tensor([math.exp(2.0), 1.0])),
            torch.diag(torch.tensor([1.0, math.exp(2.0)])),
        ]
        m = mean(M, points)
        expected = math.exp(2.0 / 3.0) * torch.eye(2)
        assert torch.allclose(m, expected, atol=1e-6)

    def test_single_point(self):
        M = Sphere(3)
        p = torch.tensor([0.0, 1.0, 0.0])
        assert torch.allclose(mean(M, [p]), p)

    def test_weight_count_mismatch_raises(self, plane_points):
        with pytest.raises(DimensionMismatch):
            mean(Euclidean(2), plane_points, [1.0, 2.0])

    def test_empty_sample_raises(self):
        with pytest.raises(ValueError):
            mean(Euclidean(2), [])


class TestMedian:
    """Weighted Fréchet median."""

    def test_real_line(self):
        M = Euclidean(1)
        points = [torch.tensor([0.0]), torch.tensor([1.0]), torch.tensor([5.0])]
        m = median(M, points)
        assert torch.allclose(m, torch.tensor([1.0]), atol=1e-3)

    def test_dominant_weight(self):
        M = Euclidean(1)
        points = [torch.tensor([0.0]), torch.tensor([1.0]), torch.tensor([5.0])]
        m = median(M, points, [1.0, 1.0, 10.0], x0=torch.tensor([4.0]))
        assert torch.allclose(m, torch.tensor([5.0]), atol=1e-3)

    def test_sphere_symmetric_sample(self, cap_points):
        M = Sphere(3)
        north = torch.tensor([0.0, 0.0, 1.0])
        m = median(M, cap_points + [north], method=CyclicProximalPointMethod(stop_iter=2000))
        assert torch.allclose(m, north, atol=1e-3)

    def test_method_without_median_raises(self, plane_points):
        with pytest.raises(TypeError):
            median(Euclidean(2), plane_points, method=GradientMethod())

    def test_default_method(self):
        assert isinstance(Sphere(3).default_estimation_method("median"), CyclicProximalPointMethod)


class TestVariance:
    """Variance and standard deviation about the mean."""

    def test_euclidean_matches_sample_variance(self, plane_points):
        M = Euclidean(2)
        X = torch.stack(plane_points)
        expected = float(X.var(dim=0, unbiased=True).sum())
        assert math.isclose(var(M, plane_points), expected, rel_tol=1e-12)
        assert math.isclose(std(M, plane_points), math.sqrt(expected), rel_tol=1e-12)

    def test_uncorrected(self, plane_points):
        M = Euclidean(2)
        X = torch.stack(plane_points)
        expected = float(X.var(dim=0, unbiased=False).sum())
        assert math.isclose(var(M, plane_points, corrected=False), expected, rel_tol=1e-12)

    def test_given_mean(self, plane_points):
        M = Euclidean(2)
        m = torch.zeros(2)
        expected = sum(float(p @ p) for p in plane_points) / 3
        assert math.isclose(var(M, plane_points, m=m), expected, rel_tol=1e-12)

    def test_frequency_weights_repeat_samples(self, plane_points):
        M = Euclidean(2)
        w = FrequencyWeights([1.0, 2.0, 1.0, 1.0])
        repeated = plane_points[:2] + plane_points[1:]
        v = var(M, plane_points, w, corrected=True)
        assert math.isclose(v, var(M, repeated), rel_tol=1e-10)

    def test_plain_weights_reject_correction(self, plane_points):
        with pytest.raises(ValueError):
            var(Euclidean(2), plane_points, [1.0, 1.0, 1.0, 1.0], corrected=True)

    def test_weighted_default_is_uncorrected(self, plane_points):
        M = Euclidean(2)
        w = ProbabilityWeights([1.0, 1.0, 1.0, 1.0])
        assert math.isclose(var(M, plane_points, w), var(M, plane_points, corrected=False), rel_tol=1e-12)


class TestMeanAndVar:
    """Joint estimates."""

    def test_single_pass_matches_two_pass(self, plane_points):
        M = Euclidean(2)
        m, v = mean_and_var(M, plane_points)
        assert torch.allclose(m, mean(M, plane_points), atol=1e-12)
        assert math.isclose(v, var(M, plane_points), rel_tol=1e-10)

    def test_weighted_single_pass(self, plane_points):
        M = Euclidean(2)
        w = FrequencyWeights([1.0, 2.0, 1.0, 3.0])
        m, v = mean_and_var(M, plane_points, w, corrected=True)
        assert torch.allclose(m, mean(M, plane_points, w), atol=1e-12)
        assert math.isclose(v, var(M, plane_points, w, m=m, corrected=True), rel_tol=1e-10)

    def test_gradient_method_falls_back_to_two_pass(self, cap_points):
        M = Sphere(3)
        m, v = mean_and_var(M, cap_points, method=GradientMethod())
        assert torch.allclose(m, torch.tensor([0.0, 0.0, 1.0]), atol=1e-6)
        assert math.isclose(v, 4 * 0.4 ** 2 / 3, rel_tol=1e-6)

    def test_mean_and_std(self, plane_points):
        M = Euclidean(2)
        m, s = mean_and_std(M, plane_points)
        assert math.isclose(s, math.sqrt(var(M, plane_points)), rel_tol=1e-10)
        assert torch.allclose(m, torch.stack(plane_points).mean(dim=0), atol=1e-12)


class TestEuclideanTriangle:
    """Three points of ℝ³ with uniform weights."""

    @pytest.fixture
    def triangle(self):
        return [
            torch.tensor([0.0, 0.0, 0.0]),
            torch.tensor([2.0, 0.0, 0.0]),
            torch.tensor([0.0, 2.0, 0.0]),
        ]

    def test_mean(self, triangle):
        m = mean(Euclidean(3), triangle)
        assert torch.allclose(m, torch.tensor([2.0 / 3.0, 2.0 / 3.0, 0.0]), atol=1e-12)

    def test_uncorrected_variance(self, triangle):
        # squared distances to the mean: 8/9, 20/9, 20/9
        v = var(Euclidean(3), triangle, corrected=False)
        assert math.isclose(v, 16.0 / 9.0, rel_tol=1e-12)

    def test_corrected_variance(self, triangle):
        assert math.isclose(var(Euclidean(3), triangle), 8.0 / 3.0, rel_tol=1e-12)


class TestInputValidation:
    """Argument checks shared by every estimator entry point."""

    @pytest.mark.parametrize("estimator", [mean, median, var, std, mean_and_var, mean_and_std])
    def test_weight_count_mismatch_raises(self, estimator, plane_points):
        with pytest.raises(DimensionMismatch):
            estimator(Euclidean(2), plane_points, [1.0, 2.0, 3.0])

    @pytest.mark.parametrize("estimator", [median, var, std, mean_and_var, mean_and_std])
    def test_mismatch_raised_before_iterating(self, estimator, plane_points):
        class Untouchable(Euclidean):
            def log(self, p, q):
                raise RuntimeError("log must not be called")

            def distance(self, p, q):
                raise RuntimeError("distance must not be called")

        with pytest.raises(DimensionMismatch):
            estimator(Untouchable(2), plane_points, [1.0])

    @pytest.mark.parametrize("method", [GradientMethod(), GeodesicInterpolationMethod()])
    def test_inputs_are_not_modified(self, method, cap_points):
        M = Sphere(3)
        w = torch.tensor([1.0, 2.0, 3.0, 4.0])
        points_before = [p.clone() for p in cap_points]
        w_before = w.clone()
        mean(M, cap_points, w, method=method)
        median(M, cap_points, w, method=CyclicProximalPointMethod(stop_iter=20))
        var(M, cap_points, w)
        mean_and_var(M, cap_points, w, method=method)
        for p, q in zip(cap_points, points_before):
            assert torch.equal(p, q)
        assert torch.equal(w, w_before)

    def test_single_sample_corrected_variance_is_nan(self):
        M = Euclidean(2)
        p = torch.tensor([1.0, 2.0])
        assert math.isnan(var(M, [p]))
        assert math.isnan(std(M, [p]))
        assert var(M, [p], corrected=False) == 0.0

    def test_single_sample_frequency_weight_is_nan(self):
        M = Euclidean(2)
        p = torch.tensor([1.0, 2.0])
        assert math.isnan(var(M, [p], FrequencyWeights([1.0]), corrected=True))
        _, v = mean_and_var(M, [p], FrequencyWeights([1.0]), corrected=True)
        assert math.isnan(v)
