"""
ProductManifold - Cartesian Product of Riemannian Manifolds.

The product manifold M = M₁ × M₂ × ... × M_k consists of tuples
(p₁, p₂, ..., p_k) where p_i ∈ M_i.

The metric is the sum of component metrics (orthogonal product):
    ⟨(u₁, u₂), (v₁, v₂)⟩ = ⟨u₁, v₁⟩_{M₁} + ⟨u₂, v₂⟩_{M₂}

All operations are componentwise:
    exp_{(p,q)}(u, v) = (exp_p(u), exp_q(v))
    log_{(p,q)}(x, y) = (log_p(x), log_q(y))
    d((p,q), (x,y)) = sqrt(d(p,x)² + d(q,y)²)
"""

from typing import List, Optional, Sequence, Tuple

import torch
from torch import Tensor

from ..manifold import Manifold
from ..metric import ProductMetric


class ProductManifold(Manifold):
    """
    Product of multiple Riemannian manifolds.

    Points are represented as concatenated vectors: [p₁ | p₂ | ... | p_k], so
    every component must use a one-dimensional representation.

    Args:
        manifolds: List of component manifolds

    Example:
        >>> M = ProductManifold([Sphere(3), Euclidean(2)])
        >>> x = M.random_point()
        >>> x_sphere, x_flat = M.split(x)
        >>> d = M.distance(x, M.random_point())
    """

    default_metric = ProductMetric()

    def __init__(self, manifolds: Sequence[Manifold]):
        if not manifolds:
            raise ValueError("ProductManifold needs at least one component")
        self.manifolds = list(manifolds)

        self.sizes = []
        for m in self.manifolds:
            size = tuple(m.representation_size)
            if len(size) != 1:
                raise ValueError(
                    f"ProductManifold only combines vector-valued manifolds, {m} has "
                    f"representation size {size}"
                )
            self.sizes.append(size[0])

        # Split indices
        self.split_indices: List[Tuple[int, int]] = []
        idx = 0
        for d in self.sizes:
            self.split_indices.append((idx, idx + d))
            idx += d

    @property
    def dim(self) -> int:
        return sum(m.dim for m in self.manifolds)

    @property
    def representation_size(self):
        return (sum(self.sizes),)

    def split(self, x: Tensor) -> List[Tensor]:
        """
        Split concatenated point or vector into components.
        """
        return [x[..., start:end] for start, end in self.split_indices]

    def combine(self, components: Sequence[Tensor]) -> Tensor:
        """
        Combine component points or vectors into a product tensor.
        """
        return torch.cat(list(components), dim=-1)

    def _map(self, name: str, *args, **kwargs) -> Tensor:
        parts = [self.split(a) for a in args]
        return self.combine([
            getattr(m, name)(*comps, **kwargs) for m, *comps in zip(self.manifolds, *parts)
        ])

    def exp(self, p: Tensor, v: Tensor, t: float = 1.0) -> Tensor:
        return self._map("exp", p, v, t=t)

    def log(self, p: Tensor, q: Tensor) -> Tensor:
        return self._map("log", p, q)

    def retract(self, p: Tensor, v: Tensor, t: float = 1.0) -> Tensor:
        return self._map("retract", p, v, t=t)

    def inverse_retract(self, p: Tensor, q: Tensor) -> Tensor:
        return self._map("inverse_retract", p, q)

    def parallel_transport(self, v: Tensor, p: Tensor, q: Tensor) -> Tensor:
        return self._map("parallel_transport", v, p, q)

    def project(self, x: Tensor) -> Tensor:
        return self._map("project", x)

    def project_tangent(self, p: Tensor, v: Tensor) -> Tensor:
        return self._map("project_tangent", p, v)

    def flat(self, p: Tensor, v: Tensor) -> Tensor:
        return self._map("flat", p, v)

    def sharp(self, p: Tensor, xi: Tensor) -> Tensor:
        return self._map("sharp", p, xi)

    def inner(self, p: Tensor, u: Tensor, v: Tensor) -> Tensor:
        """Sum of the component inner products."""
        return sum(
            m.inner(pi, ui, vi)
            for m, pi, ui, vi in zip(self.manifolds, self.split(p), self.split(u), self.split(v))
        )

    def distance(self, p: Tensor, q: Tensor) -> Tensor:
        """
        Product distance: d = sqrt(Σᵢ dᵢ²)
        """
        squared = [
            m.distance(pi, qi) ** 2
            for m, pi, qi in zip(self.manifolds, self.split(p), self.split(q))
        ]
        return torch.sqrt(torch.stack(squared).sum())

    def check_point(self, p: Tensor, atol: float = 0.0) -> None:
        self._check_shape(p, "point")
        for m, pi in zip(self.manifolds, self.split(p)):
            m.check_point(pi, atol=atol)

    def check_vector(self, p: Tensor, v: Tensor, atol: float = 0.0) -> None:
        self.check_point(p, atol=atol)
        self._check_shape(v, "tangent vector")
        for m, pi, vi in zip(self.manifolds, self.split(p), self.split(v)):
            m.check_vector(pi, vi, atol=atol)

    def in_domain(self, p: Tensor, q: Tensor) -> bool:
        return all(
            m.in_domain(pi, qi) for m, pi, qi in zip(self.manifolds, self.split(p), self.split(q))
        )

    def random_point(self, generator: Optional[torch.Generator] = None, device=None, dtype=None) -> Tensor:
        """
        Random point with each component sampled on its own manifold.
        """
        return self.combine([
            m.random_point(generator=generator, device=device, dtype=dtype) for m in self.manifolds
        ])

    def random_tangent(self, p: Tensor, generator: Optional[torch.Generator] = None) -> Tensor:
        return self.combine([
            m.random_tangent(pi, generator=generator) for m, pi in zip(self.manifolds, self.split(p))
        ])

    def __repr__(self) -> str:
        names = " × ".join(repr(m) for m in self.manifolds)
        return f"ProductManifold({names})"
