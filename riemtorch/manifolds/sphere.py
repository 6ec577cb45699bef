"""Sphere manifold."""

import math
from typing import Optional

import torch
from torch import Tensor

from ..errors import DomainError
from ..manifold import Manifold
from ..metric import EuclideanMetric
from ..utils import find_eps, usinc, usinc_from_cos


class Sphere(Manifold):
    """Unit sphere S^{n-1} embedded in ℝⁿ.

    The sphere consists of all points x in ℝⁿ such that ||x|| = 1.
    Note: Sphere(n) creates the (n-1)-dimensional sphere S^{n-1} embedded in ℝⁿ.

    Geodesics are great circles, and the exponential/logarithmic maps have
    closed-form expressions using trigonometric functions. The metric is the
    one induced by the embedding.

    Args:
        n: Ambient dimension (creates S^{n-1} sphere)

    Examples:
        >>> S = Sphere(3)  # Creates S^2 (2-sphere) in R^3
        >>> p = S.random_point()
        >>> assert torch.allclose(torch.linalg.norm(p), torch.tensor(1.0))
    """

    default_metric = EuclideanMetric()

    def __init__(self, n: int):
        if n < 2:
            raise ValueError(f"Sphere requires n >= 2, got {n}")
        self.n = n

    @property
    def dim(self) -> int:
        """Intrinsic dimension is n - 1."""
        return self.n - 1

    @property
    def representation_size(self):
        return (self.n,)

    def exp(self, p: Tensor, v: Tensor, t: float = 1.0) -> Tensor:
        """Exponential map along the great circle.

        exp_p(v) = cos(||v||) p + sin(||v||) v / ||v||
        """
        v = t * v
        theta = torch.linalg.vector_norm(v)
        return torch.cos(theta) * p + usinc(theta) * v

    def log(self, p: Tensor, q: Tensor) -> Tensor:
        """Logarithmic map.

        log_p(q) = θ (q - cos θ p) / sin θ  with cos θ = ⟨p, q⟩

        For antipodal points every direction is a shortest geodesic; a
        tangent direction is chosen deterministically.
        """
        cos_theta = torch.clamp(torch.dot(p, q), -1.0, 1.0)
        if float(cos_theta) <= -1.0 + find_eps(p):
            e = torch.zeros_like(p)
            e[int(torch.argmin(torch.abs(p)))] = 1.0
            w = self.project_tangent(p, e)
            return math.pi * w / torch.linalg.vector_norm(w)
        v = (q - cos_theta * p) / usinc_from_cos(cos_theta)
        return self.project_tangent(p, v)

    def distance(self, p: Tensor, q: Tensor) -> Tensor:
        """Great-circle distance, computed as 2 atan(||p - q|| / ||p + q||)."""
        return 2 * torch.atan2(torch.linalg.vector_norm(p - q), torch.linalg.vector_norm(p + q))

    def parallel_transport(self, v: Tensor, p: Tensor, q: Tensor) -> Tensor:
        """Transport along the great circle from p to q.

        PT(v) = v - ⟨q, v⟩ / (1 + ⟨p, q⟩) (p + q)
        """
        return v - (torch.dot(q, v) / (1 + torch.dot(p, q))) * (p + q)

    def retract(self, p: Tensor, v: Tensor, t: float = 1.0) -> Tensor:
        """Projection retraction: normalize p + tv."""
        return self.project(p + t * v)

    def inverse_retract(self, p: Tensor, q: Tensor) -> Tensor:
        """Inverse of the projection retraction: q / ⟨p, q⟩ - p."""
        return q / torch.dot(p, q) - p

    def project(self, x: Tensor) -> Tensor:
        """Project onto sphere by normalization."""
        return x / torch.linalg.vector_norm(x)

    def project_tangent(self, p: Tensor, v: Tensor) -> Tensor:
        """Remove the component of v along p."""
        return v - torch.dot(p, v) * p

    def check_point(self, p: Tensor, atol: float = 0.0) -> None:
        self._check_shape(p, "point")
        tol = self._tolerance(p, atol)
        norm = float(torch.linalg.vector_norm(p))
        if abs(norm - 1.0) > tol:
            raise DomainError(f"The point {p.tolist()} does not lie on {self}: its norm is {norm}.")

    def check_vector(self, p: Tensor, v: Tensor, atol: float = 0.0) -> None:
        self.check_point(p, atol=atol)
        self._check_shape(v, "tangent vector")
        tol = self._tolerance(v, atol)
        ip = float(torch.dot(p, v))
        if abs(ip) > tol:
            raise DomainError(
                f"The vector {v.tolist()} is not tangent to {self} at {p.tolist()}: "
                f"⟨p, v⟩ = {ip}."
            )

    def in_domain(self, p: Tensor, q: Tensor) -> bool:
        """log_p(q) is unique unless q = -p."""
        return float(torch.dot(p, q)) > -1.0 + find_eps(p)

    def random_point(self, generator: Optional[torch.Generator] = None, device=None, dtype=None) -> Tensor:
        """Uniform sample via normalized Gaussian."""
        x = torch.randn(self.n, generator=generator, device=device, dtype=dtype)
        return self.project(x)

    def __repr__(self) -> str:
        return f"Sphere({self.n})"
