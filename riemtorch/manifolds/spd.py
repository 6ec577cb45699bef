"""
SPD (Symmetric Positive Definite) Manifold.

The space of symmetric positive definite matrices with the affine-invariant
Riemannian metric.

Mathematical background:
- SPD(n) = {P ∈ ℝⁿˣⁿ : P = Pᵀ, P ≻ 0}
- Tangent space at P: T_P SPD = Sym(n) (all symmetric matrices)
- Affine-invariant metric: ⟨U, V⟩_P = tr(P⁻¹ U P⁻¹ V)
- Exponential map: exp_P(V) = P^{1/2} expm(P^{-1/2} V P^{-1/2}) P^{1/2}
- Distance: d(P, Q) = ||log(P^{-1/2} Q P^{-1/2})||_F
"""

from typing import Callable, Optional

import torch
from torch import Tensor

from ..errors import DomainError
from ..manifold import Manifold
from ..metric import LinearAffineMetric
from ..utils import log_safe


def _sym(X: Tensor) -> Tensor:
    return (X + X.mT) / 2


def _funm(P: Tensor, f: Callable[[Tensor], Tensor]) -> Tensor:
    """Apply a scalar function to the eigenvalues of a symmetric matrix."""
    vals, vecs = torch.linalg.eigh(P)
    return _sym((vecs * f(vals)) @ vecs.mT)


class SPD(Manifold):
    """
    Manifold of Symmetric Positive Definite matrices.

    Uses the affine-invariant Riemannian metric, which is invariant under
    congruence transformations: d(A P Aᵀ, A Q Aᵀ) = d(P, Q).

    Args:
        n: Size of matrices (n×n)

    Example:
        >>> spd = SPD(4)
        >>> P = spd.random_point()  # Random 4×4 SPD matrix
        >>> Q = spd.random_point()
        >>> d = spd.distance(P, Q)  # Riemannian distance
        >>> V = spd.log(P, Q)       # Tangent vector from P to Q
        >>> Q_recovered = spd.exp(P, V)  # Recover Q
    """

    default_metric = LinearAffineMetric()

    def __init__(self, n: int):
        if n < 1:
            raise ValueError(f"SPD requires n >= 1, got {n}")
        self.n = n

    @property
    def dim(self) -> int:
        return self.n * (self.n + 1) // 2

    @property
    def representation_size(self):
        return (self.n, self.n)

    def exp(self, P: Tensor, V: Tensor, t: float = 1.0) -> Tensor:
        """
        Exponential map exp_P(tV) = P^{1/2} expm(t P^{-1/2} V P^{-1/2}) P^{1/2}.
        """
        P_sqrt = _funm(P, torch.sqrt)
        P_isqrt = _funm(P, torch.rsqrt)
        inner = _sym(P_isqrt @ (t * V) @ P_isqrt)
        return _sym(P_sqrt @ _funm(inner, torch.exp) @ P_sqrt)

    def log(self, P: Tensor, Q: Tensor) -> Tensor:
        """
        Logarithmic map log_P(Q) = P^{1/2} log(P^{-1/2} Q P^{-1/2}) P^{1/2}.

        Raises:
            DomainError: If Q is not positive definite.
        """
        P_sqrt = _funm(P, torch.sqrt)
        P_isqrt = _funm(P, torch.rsqrt)
        inner = _sym(P_isqrt @ Q @ P_isqrt)
        return _sym(P_sqrt @ log_safe(inner) @ P_sqrt)

    def distance(self, P: Tensor, Q: Tensor) -> Tensor:
        """
        Affine-invariant distance sqrt(Σ log(λᵢ)²), λ the eigenvalues of P⁻¹Q.
        """
        P_isqrt = _funm(P, torch.rsqrt)
        vals = torch.linalg.eigvalsh(_sym(P_isqrt @ Q @ P_isqrt))
        return torch.linalg.vector_norm(torch.log(vals))

    def inner(self, P: Tensor, U: Tensor, V: Tensor) -> Tensor:
        """⟨U, V⟩_P = tr(P⁻¹ U P⁻¹ V)."""
        return torch.trace(torch.linalg.solve(P, U) @ torch.linalg.solve(P, V))

    def parallel_transport(self, V: Tensor, P: Tensor, Q: Tensor) -> Tensor:
        """
        Transport along the geodesic from P to Q: E V Eᵀ with
        E = P^{1/2} (P^{-1/2} Q P^{-1/2})^{1/2} P^{-1/2}.
        """
        P_sqrt = _funm(P, torch.sqrt)
        P_isqrt = _funm(P, torch.rsqrt)
        middle = _funm(_sym(P_isqrt @ Q @ P_isqrt), torch.sqrt)
        E = P_sqrt @ middle @ P_isqrt
        return _sym(E @ V @ E.mT)

    def project(self, X: Tensor) -> Tensor:
        """Symmetrize and clamp the spectrum to be positive."""
        eps = torch.finfo(X.dtype).eps
        return _funm(_sym(X), lambda vals: torch.clamp(vals, min=eps))

    def project_tangent(self, P: Tensor, V: Tensor) -> Tensor:
        """Tangent space is Sym(n): symmetrize."""
        return _sym(V)

    def flat(self, P: Tensor, V: Tensor) -> Tensor:
        """Frobenius representative P⁻¹ V P⁻¹ of g_P(V, ·)."""
        return _sym(torch.linalg.solve(P, torch.linalg.solve(P, V).mT))

    def sharp(self, P: Tensor, xi: Tensor) -> Tensor:
        """Inverse of :meth:`flat`: P ξ P."""
        return _sym(P @ xi @ P)

    def check_point(self, P: Tensor, atol: float = 0.0) -> None:
        self._check_shape(P, "point")
        tol = self._tolerance(P, atol)
        asym = float(torch.linalg.matrix_norm(P - P.mT))
        if asym > tol * max(1.0, float(torch.linalg.matrix_norm(P))):
            raise DomainError(f"The matrix is not symmetric: ||P - Pᵀ|| = {asym}.")
        vals = torch.linalg.eigvalsh(_sym(P))
        if bool((vals <= 0).any()):
            raise DomainError(f"The matrix is not positive definite, eigenvalues {vals.tolist()}.")

    def check_vector(self, P: Tensor, V: Tensor, atol: float = 0.0) -> None:
        self.check_point(P, atol=atol)
        self._check_shape(V, "tangent vector")
        tol = self._tolerance(V, atol)
        asym = float(torch.linalg.matrix_norm(V - V.mT))
        if asym > tol * max(1.0, float(torch.linalg.matrix_norm(V))):
            raise DomainError(f"The tangent vector is not symmetric: ||V - Vᵀ|| = {asym}.")

    def random_point(self, generator: Optional[torch.Generator] = None, device=None, dtype=None) -> Tensor:
        """
        Generate random SPD matrix via A Aᵀ + I.
        """
        A = torch.randn(self.n, self.n, generator=generator, device=device, dtype=dtype)
        eye = torch.eye(self.n, device=A.device, dtype=A.dtype)
        return _sym(A @ A.mT + eye)

    def __repr__(self) -> str:
        return f"SPD({self.n})"
