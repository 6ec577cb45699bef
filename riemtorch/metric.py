"""Riemannian metrics and the generic differential geometry of a metric tensor.

A :class:`Metric` is a tag naming a family of inner products. Pairing it with a
manifold gives a :class:`MetricManifold`. If the metric is the manifold's
``default_metric`` every operation is forwarded to the manifold's own closed
forms. Otherwise the operations are computed from the local metric tensor
``g_ij(p)`` in a single global chart:

    inner(p, X, Y) = Xᵀ g_p Y
    flat(p, X)     = g_p X
    sharp(p, ξ)    = g_p⁻¹ ξ
    exp(p, X)      = solution of the geodesic equation at t = 1

together with Christoffel symbols, Riemann, Ricci and Einstein tensors.

Example:
    >>> class PolarMetric(RiemannianMetric):
    ...     def local_metric(self, manifold, p):
    ...         return torch.diag(torch.stack([torch.ones_like(p[0]), p[0] ** 2]))
    >>> M = MetricManifold(Euclidean(2), PolarMetric())
    >>> M.christoffel_symbols_second(torch.tensor([2.0, 0.0]))
"""

from typing import Callable, Optional

import torch
from torch import Tensor

from ._logging import get_logger
from .errors import DimensionMismatch
from .geodesic import solve_exp_ode
from .manifold import Manifold

logger = get_logger(__name__)

DEFAULT_JACOBIAN_BACKEND = "autograd"
JACOBIAN_BACKENDS = ("autograd", "finite_difference")


class Metric:
    """Tag for a family of inner products on the tangent spaces of a manifold.

    Subclasses that are not a manifold's default metric implement
    :meth:`local_metric`. Calling a metric on a manifold builds the
    corresponding :class:`MetricManifold`.
    """

    def local_metric(self, manifold: Manifold, p: Tensor) -> Tensor:
        """Metric tensor g_ij at p, in local coordinates of ``manifold``."""
        raise NotImplementedError(
            f"Local metric not implemented on {manifold!r} with {self!r} for point of "
            f"type {type(p).__name__}."
        )

    def __call__(self, manifold: Manifold) -> "MetricManifold":
        return MetricManifold(manifold, self)

    def __eq__(self, other) -> bool:
        return type(self) is type(other)

    def __hash__(self) -> int:
        return hash(type(self))

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class RiemannianMetric(Metric):
    """Positive definite metric."""


class LorentzMetric(Metric):
    """Metric of signature (n-1, 1)."""


class EuclideanMetric(RiemannianMetric):
    """Identity metric tensor in the coordinates of the representation.

    :meth:`local_metric` is a chart metric only when the representation is a
    single global chart, as for :class:`~riemtorch.manifolds.Euclidean`. On
    embedded manifolds such as the sphere it returns the identity of the
    ambient space, which is not a metric in local coordinates; curvature and
    geodesic ODEs built from it do not describe that manifold.
    """

    def local_metric(self, manifold: Manifold, p: Tensor) -> Tensor:
        return torch.eye(p.numel(), dtype=p.dtype, device=p.device)


class LinearAffineMetric(RiemannianMetric):
    """Affine-invariant metric tr(P⁻¹ U P⁻¹ V) on positive definite matrices."""


class ProductMetric(RiemannianMetric):
    """Sum of the component metrics of a product manifold."""


def is_default_metric(manifold: Manifold, metric: Metric) -> bool:
    """Whether ``metric`` is the metric ``manifold`` implements natively."""
    return manifold.default_metric is not None and type(metric) is type(manifold.default_metric)


def jacobian(f: Callable[[Tensor], Tensor], p: Tensor, backend: Optional[str] = None,
             step: Optional[float] = None) -> Tensor:
    """Jacobian of ``f`` at ``p``, indexed ``[output indices..., k]`` = ∂f/∂p_k.

    Args:
        f: Tensor-valued function of a coordinate vector
        p: Coordinates, shape (n,)
        backend: ``"autograd"`` (torch.autograd.functional.jacobian) or
            ``"finite_difference"`` (central differences); defaults to
            ``DEFAULT_JACOBIAN_BACKEND``
        step: Finite-difference step, scaled by max(1, |p_k|); defaults to
            eps^(1/4)

    Raises:
        NotImplementedError: For an unknown backend.
    """
    backend = backend or DEFAULT_JACOBIAN_BACKEND
    if backend == "autograd":
        # Nested calls must keep the graph of the inner derivative.
        create_graph = torch.is_grad_enabled() and p.requires_grad
        return torch.autograd.functional.jacobian(f, p, create_graph=create_graph)
    if backend == "finite_difference":
        h = step if step is not None else torch.finfo(p.dtype).eps ** 0.25
        columns = []
        for k in range(p.numel()):
            hk = h * max(1.0, abs(float(p[k])))
            e = torch.zeros_like(p)
            e[k] = hk
            columns.append((f(p + e) - f(p - e)) / (2 * hk))
        return torch.stack(columns, dim=-1)
    raise NotImplementedError(
        f"Unknown jacobian backend {backend!r}; available backends are {JACOBIAN_BACKENDS}"
    )


class MetricManifold(Manifold):
    """A manifold equipped with a specific metric.

    Args:
        manifold: The base manifold
        metric: The metric tag

    Attributes:
        is_default: True when ``metric`` is the base manifold's default
            metric; all operations are then forwarded to ``manifold``.
    """

    def __init__(self, manifold: Manifold, metric: Metric):
        self.manifold = manifold
        self.metric = metric
        self.is_default = is_default_metric(manifold, metric)

    @property
    def default_metric(self):
        return self.metric

    @property
    def dim(self) -> int:
        return self.manifold.dim

    @property
    def representation_size(self):
        return self.manifold.representation_size

    def _not_closed_form(self, name: str):
        return NotImplementedError(
            f"{name} on {self!r} has no generic implementation; provide a closed form "
            f"in a subclass."
        )

    @staticmethod
    def _check_coordinates(p: Tensor) -> None:
        if p.ndim != 1:
            raise DimensionMismatch(
                f"Local metric computations need a coordinate vector, got shape {tuple(p.shape)}"
            )

    # Local metric and its derivatives

    def local_metric(self, p: Tensor) -> Tensor:
        """Metric tensor g_ij at p.

        Raises:
            NotImplementedError: If the metric does not provide one.
        """
        return self.metric.local_metric(self.manifold, p)

    def inverse_local_metric(self, p: Tensor) -> Tensor:
        """Inverse metric tensor g^ij at p."""
        return torch.linalg.inv(self.local_metric(p))

    def det_local_metric(self, p: Tensor) -> Tensor:
        """Determinant of the metric tensor at p."""
        return torch.linalg.det(self.local_metric(p))

    def log_local_metric_density(self, p: Tensor) -> Tensor:
        """log sqrt|det g| at p."""
        return torch.linalg.slogdet(self.local_metric(p)).logabsdet / 2

    def local_metric_jacobian(self, p: Tensor, backend: Optional[str] = None) -> Tensor:
        """∂g[i, j, k] = ∂_k g_ij."""
        self._check_coordinates(p)
        return jacobian(self.local_metric, p, backend)

    def christoffel_symbols_first(self, p: Tensor, backend: Optional[str] = None) -> Tensor:
        """Christoffel symbols of the first kind.

        Γ[i, j, k] = ½ (∂_i g_kj + ∂_j g_ik - ∂_k g_ij)
        """
        dg = self.local_metric_jacobian(p, backend=backend)
        return 0.5 * (dg.permute(2, 1, 0) + dg.permute(0, 2, 1) - dg)

    def christoffel_symbols_second(self, p: Tensor, backend: Optional[str] = None) -> Tensor:
        """Christoffel symbols of the second kind Γ[l, i, j] = Γˡ_ij = g^{kl} Γ_ijk."""
        ginv = self.inverse_local_metric(p)
        gamma = self.christoffel_symbols_first(p, backend=backend)
        return torch.einsum("kl,ijk->lij", ginv, gamma)

    def christoffel_symbols_second_jacobian(self, p: Tensor, backend: Optional[str] = None) -> Tensor:
        """∂Γ[l, i, j, k] = ∂_k Γˡ_ij."""
        self._check_coordinates(p)
        return jacobian(lambda q: self.christoffel_symbols_second(q, backend=backend), p, backend)

    def riemann_tensor(self, p: Tensor, backend: Optional[str] = None) -> Tensor:
        """Riemann tensor R[l, i, j, k] = Rˡ_ijk.

        Rˡ_ijk = ∂_j Γˡ_ik - ∂_k Γˡ_ij + Γˢ_ik Γˡ_sj - Γˢ_ij Γˡ_sk

        The derivative terms use the Christoffel jacobian divided by the
        number of coordinates.
        """
        n = p.shape[0]
        gamma = self.christoffel_symbols_second(p, backend=backend)
        dgamma = self.christoffel_symbols_second_jacobian(p, backend=backend) / n
        return (
            dgamma.permute(0, 1, 3, 2)
            - dgamma
            + torch.einsum("sik,lsj->lijk", gamma, gamma)
            - torch.einsum("sij,lsk->lijk", gamma, gamma)
        )

    def ricci_tensor(self, p: Tensor, backend: Optional[str] = None) -> Tensor:
        """Ric[i, j] = Rˡ_ilj."""
        R = self.riemann_tensor(p, backend=backend)
        return torch.einsum("lilj->ij", R)

    def ricci_curvature(self, p: Tensor, backend: Optional[str] = None) -> Tensor:
        """Scalar curvature g^ij Ric_ij."""
        ginv = self.inverse_local_metric(p)
        return torch.sum(ginv * self.ricci_tensor(p, backend=backend))

    def gaussian_curvature(self, p: Tensor, backend: Optional[str] = None) -> Tensor:
        """Half the scalar curvature."""
        return self.ricci_curvature(p, backend=backend) / 2

    def einstein_tensor(self, p: Tensor, backend: Optional[str] = None) -> Tensor:
        """G = Ric - ½ g S with S the scalar curvature."""
        ric = self.ricci_tensor(p, backend=backend)
        g = self.local_metric(p)
        ginv = torch.linalg.inv(g)
        S = torch.sum(ginv * ric)
        return ric - g * S / 2

    # Metric-dependent operations

    def inner(self, p: Tensor, u: Tensor, v: Tensor) -> Tensor:
        """g_p(u, v) = uᵀ g_p v."""
        if self.is_default:
            return self.manifold.inner(p, u, v)
        return torch.dot(u, self.local_metric(p) @ v)

    def flat(self, p: Tensor, v: Tensor) -> Tensor:
        """Lower the index: v♭ = g_p v."""
        if self.is_default:
            return self.manifold.flat(p, v)
        return self.local_metric(p) @ v

    def sharp(self, p: Tensor, xi: Tensor) -> Tensor:
        """Raise the index: ξ♯ = g_p⁻¹ ξ."""
        if self.is_default:
            return self.manifold.sharp(p, xi)
        return torch.linalg.solve(self.local_metric(p), xi)

    def pair(self, xi: Tensor, v: Tensor) -> Tensor:
        return self.manifold.pair(xi, v)

    def exp(self, p: Tensor, v: Tensor, t: float = 1.0, **kwargs) -> Tensor:
        """Exponential map.

        Without a closed form the geodesic equation is integrated with
        :func:`riemtorch.geodesic.solve_exp_ode`; keyword arguments are passed
        on to it.
        """
        if self.is_default:
            return self.manifold.exp(p, v, t)
        return solve_exp_ode(self, p, v, t=t, **kwargs)

    def log(self, p: Tensor, q: Tensor) -> Tensor:
        if self.is_default:
            return self.manifold.log(p, q)
        raise self._not_closed_form("log")

    def distance(self, p: Tensor, q: Tensor) -> Tensor:
        if self.is_default:
            return self.manifold.distance(p, q)
        return self.norm(p, self.log(p, q))

    def parallel_transport(self, v: Tensor, p: Tensor, q: Tensor) -> Tensor:
        if self.is_default:
            return self.manifold.parallel_transport(v, p, q)
        raise self._not_closed_form("parallel_transport")

    def retract(self, p: Tensor, v: Tensor, t: float = 1.0) -> Tensor:
        if self.is_default:
            return self.manifold.retract(p, v, t)
        return self.exp(p, v, t)

    def inverse_retract(self, p: Tensor, q: Tensor) -> Tensor:
        if self.is_default:
            return self.manifold.inverse_retract(p, q)
        return self.log(p, q)

    def default_estimation_method(self, kind: str):
        if self.is_default:
            return self.manifold.default_estimation_method(kind)
        return super().default_estimation_method(kind)

    # Metric-independent operations

    def project(self, x: Tensor) -> Tensor:
        return self.manifold.project(x)

    def project_tangent(self, p: Tensor, v: Tensor) -> Tensor:
        return self.manifold.project_tangent(p, v)

    def check_point(self, p: Tensor, atol: float = 0.0) -> None:
        self.manifold.check_point(p, atol=atol)

    def check_vector(self, p: Tensor, v: Tensor, atol: float = 0.0) -> None:
        self.manifold.check_vector(p, v, atol=atol)

    def zero_tangent_vector(self, p: Tensor) -> Tensor:
        return self.manifold.zero_tangent_vector(p)

    def in_domain(self, p: Tensor, q: Tensor) -> bool:
        return self.manifold.in_domain(p, q)

    def random_point(self, generator: Optional[torch.Generator] = None, device=None, dtype=None) -> Tensor:
        return self.manifold.random_point(generator=generator, device=device, dtype=dtype)

    def random_tangent(self, p: Tensor, generator: Optional[torch.Generator] = None) -> Tensor:
        return self.manifold.random_tangent(p, generator=generator)

    def __repr__(self) -> str:
        return f"MetricManifold({self.manifold!r}, {self.metric!r})"
