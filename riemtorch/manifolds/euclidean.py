"""Euclidean space manifold."""

from typing import Optional

import torch
from torch import Tensor

from ..manifold import Manifold
from ..metric import EuclideanMetric


class Euclidean(Manifold):
    """
    Euclidean space R^n with flat metric.

    This is the trivial manifold where:
    - exp_p(v) = p + v
    - log_p(q) = q - p
    - distance(p, q) = ||q - p||

    It is the reference case for the generic algorithms: the Fréchet mean is
    the weighted arithmetic mean and all curvature tensors vanish.

    Args:
        n: Dimension of the space
    """

    default_metric = EuclideanMetric()

    def __init__(self, n: int):
        if n < 1:
            raise ValueError(f"Euclidean requires n >= 1, got {n}")
        self.n = n

    @property
    def dim(self) -> int:
        """Intrinsic dimension of the manifold."""
        return self.n

    @property
    def representation_size(self):
        return (self.n,)

    def exp(self, p: Tensor, v: Tensor, t: float = 1.0) -> Tensor:
        """
        Exponential map: exp_p(tv) = p + tv.

        Args:
            p: Point on manifold, shape (n,)
            v: Tangent vector at p, shape (n,)
            t: Time along the geodesic

        Returns:
            Point on manifold after geodesic flow
        """
        return p + t * v

    def log(self, p: Tensor, q: Tensor) -> Tensor:
        """
        Logarithmic map: log_p(q) = q - p.

        Args:
            p: Base point on manifold
            q: Target point on manifold

        Returns:
            Tangent vector v such that exp(p, v) = q
        """
        return q - p

    def parallel_transport(self, v: Tensor, p: Tensor, q: Tensor) -> Tensor:
        """
        Parallel transport is the identity, all tangent spaces are identified.
        """
        return v.clone()

    def distance(self, p: Tensor, q: Tensor) -> Tensor:
        """Euclidean distance ||q - p||."""
        return torch.linalg.vector_norm(q - p)

    def project(self, x: Tensor) -> Tensor:
        return x

    def project_tangent(self, p: Tensor, v: Tensor) -> Tensor:
        return v

    def check_point(self, p: Tensor, atol: float = 0.0) -> None:
        self._check_shape(p, "point")

    def check_vector(self, p: Tensor, v: Tensor, atol: float = 0.0) -> None:
        self.check_point(p, atol=atol)
        self._check_shape(v, "tangent vector")

    def random_point(self, generator: Optional[torch.Generator] = None, device=None, dtype=None) -> Tensor:
        """
        Generate a random point from the standard normal distribution.

        Args:
            generator: Source of randomness
            device: Device to create tensor on
            dtype: Data type of tensor

        Returns:
            Random point on manifold
        """
        return torch.randn(self.n, generator=generator, device=device, dtype=dtype)

    def default_estimation_method(self, kind: str):
        if kind == "mean":
            from ..statistics import GeodesicInterpolationMethod

            return GeodesicInterpolationMethod()
        return super().default_estimation_method(kind)

    def __repr__(self) -> str:
        return f"Euclidean({self.n})"
