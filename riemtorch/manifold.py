"""Base manifold class for riemtorch."""

import math
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

import torch
from torch import Tensor

from .errors import DomainError
from .utils import find_eps, isapprox


class Manifold(ABC):
    """Abstract base class for Riemannian manifolds.

    This class defines the interface that all manifold implementations must
    follow. The generic algorithms of riemtorch (Fréchet statistics, metric
    manifolds, the conformance checks in :mod:`riemtorch.testing`) are written
    only against these operations.

    Points and tangent vectors are single tensors whose shape is
    ``representation_size``. Subclasses store only structural parameters and
    never mutate them after construction.
    """

    #: The metric a bare manifold carries, see :mod:`riemtorch.metric`.
    default_metric = None

    @property
    @abstractmethod
    def dim(self) -> int:
        """Intrinsic dimension of the manifold.

        Returns:
            The intrinsic dimension (number of degrees of freedom).
        """

    @property
    @abstractmethod
    def representation_size(self) -> Tuple[int, ...]:
        """Shape of the tensors representing points and tangent vectors."""

    def manifold_dimension(self) -> int:
        """Intrinsic dimension, see :attr:`dim`."""
        return self.dim

    @abstractmethod
    def exp(self, p: Tensor, v: Tensor, t: float = 1.0) -> Tensor:
        """Exponential map: move from p along the geodesic with velocity v.

        Gives the point reached at time ``t`` when following the geodesic that
        starts at p with initial velocity v.

        Args:
            p: Point on manifold
            v: Tangent vector at p
            t: Time along the geodesic

        Returns:
            Point on manifold after geodesic flow
        """

    @abstractmethod
    def log(self, p: Tensor, q: Tensor) -> Tensor:
        """Logarithmic map: tangent vector at p pointing toward q.

        The inverse of the exponential map, ``exp(p, log(p, q)) = q``.

        Args:
            p: Base point on manifold
            q: Target point on manifold

        Returns:
            Tangent vector v such that exp(p, v) = q
        """

    @abstractmethod
    def distance(self, p: Tensor, q: Tensor) -> Tensor:
        """Geodesic distance between points.

        Args:
            p: First point
            q: Second point

        Returns:
            Length of the shortest geodesic connecting p and q
        """

    @abstractmethod
    def project(self, x: Tensor) -> Tensor:
        """Project ambient space point onto manifold.

        Args:
            x: Point in ambient space

        Returns:
            Closest point on manifold
        """

    @abstractmethod
    def project_tangent(self, p: Tensor, v: Tensor) -> Tensor:
        """Project ambient vector onto tangent space at p.

        Args:
            p: Point on manifold
            v: Vector in ambient space

        Returns:
            Component of v in T_pM
        """

    @abstractmethod
    def check_point(self, p: Tensor, atol: float = 0.0) -> None:
        """Raise :class:`DomainError` unless p is a point of the manifold.

        Args:
            p: Candidate point
            atol: Absolute tolerance on the defining constraints; ``0`` picks
                a tolerance from the dtype of p.
        """

    @abstractmethod
    def check_vector(self, p: Tensor, v: Tensor, atol: float = 0.0) -> None:
        """Raise :class:`DomainError` unless v is tangent at p.

        The base point is checked as well.
        """

    def is_point(self, p: Tensor, raise_error: bool = False, atol: float = 0.0) -> bool:
        """Whether p is a point of the manifold."""
        try:
            self.check_point(p, atol=atol)
        except DomainError:
            if raise_error:
                raise
            return False
        return True

    def is_vector(self, p: Tensor, v: Tensor, raise_error: bool = False, atol: float = 0.0) -> bool:
        """Whether v is a tangent vector at p."""
        try:
            self.check_vector(p, v, atol=atol)
        except DomainError:
            if raise_error:
                raise
            return False
        return True

    def _check_shape(self, x: Tensor, what: str) -> None:
        if tuple(x.shape) != tuple(self.representation_size):
            raise DomainError(
                f"The {what} has shape {tuple(x.shape)}, but {self} uses "
                f"representation size {tuple(self.representation_size)}."
            )

    @staticmethod
    def _tolerance(x: Tensor, atol: float) -> float:
        return atol if atol > 0 else math.sqrt(find_eps(x))

    def inner(self, p: Tensor, u: Tensor, v: Tensor) -> Tensor:
        """Riemannian inner product g_p(u, v).

        Defaults to the Euclidean inner product of the embedding.
        """
        return torch.sum(u.conj() * v).real

    def norm(self, p: Tensor, v: Tensor) -> Tensor:
        """Riemannian norm of tangent vector v at point p.

        Computes ||v||_p = sqrt(g_p(v, v)).
        """
        return torch.sqrt(torch.clamp(self.inner(p, v, v), min=0.0))

    def zero_tangent_vector(self, p: Tensor) -> Tensor:
        """Zero element of the tangent space at p."""
        return torch.zeros_like(p)

    def retract(self, p: Tensor, v: Tensor, t: float = 1.0) -> Tensor:
        """First-order approximation of the exponential map.

        Defaults to the exponential map itself.
        """
        return self.exp(p, v, t)

    def inverse_retract(self, p: Tensor, q: Tensor) -> Tensor:
        """Inverse of :meth:`retract`; defaults to the logarithmic map."""
        return self.log(p, q)

    def parallel_transport(self, v: Tensor, p: Tensor, q: Tensor) -> Tensor:
        """Parallel transport tangent vector v from T_pM to T_qM.

        Moves v along the geodesic from p to q while preserving inner
        products.

        Args:
            v: Tangent vector at p
            p: Source point
            q: Destination point

        Returns:
            Tangent vector at q
        """
        raise NotImplementedError(f"{self.__class__.__name__} does not implement parallel_transport")

    def in_domain(self, p: Tensor, q: Tensor) -> bool:
        """Check if log_p(q) is well-defined (q not at cut locus)."""
        return True

    def geodesic(self, p: Tensor, q: Tensor, t: float) -> Tensor:
        """Point γ(t) on the geodesic with γ(0) = p and γ(1) = q."""
        return self.exp(p, self.log(p, q), t)

    def mid_point(self, p: Tensor, q: Tensor) -> Tensor:
        """Midpoint of the shortest geodesic between p and q."""
        return self.geodesic(p, q, 0.5)

    def isapprox(self, p: Tensor, q: Tensor, atol: float = 0.0, rtol: Optional[float] = None) -> bool:
        """Approximate equality of two points in their representation."""
        return isapprox(p, q, atol=atol, rtol=rtol)

    def isapprox_tangent(
        self, p: Tensor, u: Tensor, v: Tensor, atol: float = 0.0, rtol: Optional[float] = None
    ) -> bool:
        """Approximate equality of two tangent vectors at p."""
        return isapprox(u, v, atol=atol, rtol=rtol)

    def flat(self, p: Tensor, v: Tensor) -> Tensor:
        """Covector g_p(v, ·), in the coordinates of the embedding."""
        return v.clone()

    def sharp(self, p: Tensor, xi: Tensor) -> Tensor:
        """Tangent vector representing the covector xi; inverse of :meth:`flat`."""
        return xi.clone()

    def pair(self, xi: Tensor, v: Tensor) -> Tensor:
        """Evaluate the covector xi on the tangent vector v."""
        return torch.sum(xi * v).real

    def orthonormal_basis(self, p: Tensor) -> List[Tensor]:
        """Orthonormal basis of T_pM.

        Projects the unit vectors of the ambient space onto the tangent space
        and runs Gram-Schmidt with respect to :meth:`inner`, discarding
        vectors that become numerically zero.
        """
        tol = math.sqrt(find_eps(p))
        basis: List[Tensor] = []
        for e in torch.eye(p.numel(), dtype=p.dtype, device=p.device):
            v = self.project_tangent(p, e.reshape(p.shape))
            for b in basis:
                v = v - self.inner(p, b, v) * b
            n = self.norm(p, v)
            if n > tol:
                basis.append(v / n)
            if len(basis) == self.dim:
                break
        return basis

    def get_coordinates(self, p: Tensor, v: Tensor, basis: Optional[Sequence[Tensor]] = None) -> Tensor:
        """Coefficients of v in an orthonormal basis of T_pM."""
        if basis is None:
            basis = self.orthonormal_basis(p)
        return torch.stack([self.inner(p, b, v) for b in basis])

    def get_vector(self, p: Tensor, c: Tensor, basis: Optional[Sequence[Tensor]] = None) -> Tensor:
        """Tangent vector with coefficients c in an orthonormal basis of T_pM."""
        if basis is None:
            basis = self.orthonormal_basis(p)
        v = self.zero_tangent_vector(p)
        for ci, b in zip(c, basis):
            v = v + ci * b
        return v

    def random_point(self, generator: Optional[torch.Generator] = None, device=None, dtype=None) -> Tensor:
        """Generate a random point on the manifold.

        Args:
            generator: Source of randomness, for reproducible samples
            device: PyTorch device
            dtype: PyTorch dtype

        Returns:
            Random point on the manifold
        """
        raise NotImplementedError(f"{self.__class__.__name__} does not implement random_point")

    def random_tangent(self, p: Tensor, generator: Optional[torch.Generator] = None) -> Tensor:
        """Generate random tangent vector at p."""
        v = torch.randn(p.shape, generator=generator, dtype=p.dtype, device=p.device)
        return self.project_tangent(p, v)

    def default_estimation_method(self, kind: str):
        """Estimator used by :mod:`riemtorch.statistics` when none is given.

        Args:
            kind: ``"mean"`` or ``"median"``
        """
        from .statistics import CyclicProximalPointMethod, GradientMethod

        if kind == "mean":
            return GradientMethod()
        if kind == "median":
            return CyclicProximalPointMethod()
        raise ValueError(f"Unknown estimation kind {kind!r}")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
