"""
Fréchet statistics on manifolds.

The (weighted) Fréchet mean minimizes

    f(y) = 1/(2 Σ wᵢ) Σᵢ wᵢ d(y, xᵢ)²

and the Fréchet median minimizes Σᵢ wᵢ d(y, xᵢ) / Σ wᵢ. Both are computed
iteratively from the primitive maps of a :class:`~riemtorch.manifold.Manifold`
(exp, log, distance, norm):

- :class:`GradientMethod`: gradient descent on f with a fixed step of 1/2.
- :class:`GeodesicInterpolationMethod`: a single streaming pass of weighted
  geodesic interpolation; exact on Euclidean space.
- :class:`CyclicProximalPointMethod`: proximal steps towards each sample with
  decaying step size, for the median.

Iterative methods stop when two successive iterates are approximately equal
(keyword arguments such as ``atol``/``rtol`` go to ``M.isapprox``) or after
``stop_iter`` iterations. Reaching ``stop_iter`` is not an error; the last
iterate is returned.

Example:
    >>> M = Sphere(3)
    >>> pts = [M.random_point() for _ in range(10)]
    >>> m = mean(M, pts)
    >>> m, v = mean_and_var(M, pts, method=GeodesicInterpolationMethod())
"""

import math
from typing import Optional, Sequence, Tuple

import torch
from torch import Tensor

from ._logging import get_logger
from .errors import DimensionMismatch
from .manifold import Manifold
from .weights import Weights, as_weights, unit_weights

logger = get_logger(__name__)


class EstimationMethod:
    """Base class of the estimators used by :func:`mean` and :func:`median`."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class GradientMethod(EstimationMethod):
    """Gradient descent for the Fréchet mean.

    Each iteration computes the weighted mean v of log_y(xᵢ) in the tangent
    space at the current iterate y, accumulated online, and moves to
    exp_y(v / 2).

    Args:
        stop_iter: Maximal number of iterations
    """

    def __init__(self, stop_iter: int = 100):
        self.stop_iter = stop_iter

    def mean(self, M: Manifold, x: Sequence[Tensor], w: Weights, x0: Optional[Tensor] = None,
             **kwargs) -> Tensor:
        n = len(x)
        y = (x[0] if x0 is None else x0).clone()
        alpha = w.values / torch.cumsum(w.values, dim=0)
        for i in range(1, self.stop_iter + 1):
            y_old = y
            # online weighted mean in the tangent space at y_old
            v = M.log(y_old, x[0])
            for j in range(1, n):
                v = v + float(alpha[j]) * (M.log(y_old, x[j]) - v)
            y = M.exp(y_old, v, 0.5)
            if M.isapprox(y, y_old, **kwargs):
                logger.debug("GradientMethod converged after %d iterations", i)
                break
        else:
            logger.debug("GradientMethod stopped after stop_iter=%d iterations", self.stop_iter)
        return y

    def __repr__(self) -> str:
        return f"GradientMethod(stop_iter={self.stop_iter})"


class GeodesicInterpolationMethod(EstimationMethod):
    """Repeated weighted geodesic interpolation for the Fréchet mean.

    μ₁ = x₁,  t_k = w_k / Σ_{i≤k} wᵢ,  μ_k = γ_{μ_{k-1}, x_k}(t_k)

    where γ is the shortest geodesic. The pass over the samples computes the
    weighted mean exactly on Euclidean space. On other manifolds it converges
    with the sample size when all points lie in an open geodesic ball about
    the mean (radius ∞ for SPD, π/2 for the sphere); this is not checked.

    Args:
        shuffle_rng: Optional generator used to shuffle the order in which
            the samples are visited
    """

    def __init__(self, shuffle_rng: Optional[torch.Generator] = None):
        self.shuffle_rng = shuffle_rng

    def _order(self, n: int):
        if self.shuffle_rng is None:
            return list(range(n))
        return torch.randperm(n, generator=self.shuffle_rng).tolist()

    def mean(self, M: Manifold, x: Sequence[Tensor], w: Weights, x0: Optional[Tensor] = None,
             **kwargs) -> Tensor:
        order = self._order(len(x))
        s = float(w[order[0]])
        y = x[order[0]].clone()
        for j in order[1:]:
            wj = float(w[j])
            s += wj
            if s == 0:
                continue
            y = M.exp(y, M.log(y, x[j]), wj / s)
        return y

    def mean_and_var(self, M: Manifold, x: Sequence[Tensor], w: Weights,
                     corrected: bool = False) -> Tuple[Tensor, float]:
        """Mean together with a Welford-style running second moment.

        The variance recursion M₂ += t s d² is exact on Euclidean space and
        only approximate elsewhere.
        """
        order = self._order(len(x))
        s = float(w[order[0]])
        y = x[order[0]].clone()
        m2 = 0.0
        for j in order[1:]:
            wj = float(w[j])
            s_new = s + wj
            if s_new == 0:
                continue
            t = wj / s_new
            v = M.log(y, x[j])
            y_new = M.exp(y, v, t)
            d = float(M.norm(y, v))
            y = y_new
            m2 += t * s * d ** 2
            s = s_new
        return y, w.varcorrection(corrected) * m2


class CyclicProximalPointMethod(EstimationMethod):
    """Cyclic proximal point algorithm for the Fréchet median.

    Iteration i visits every sample xⱼ and moves towards it by the fraction
    t = min(λ wⱼ / d(y, xⱼ), 1) of the geodesic, with λ = 1/(2i) and
    normalized weights.

    Args:
        stop_iter: Maximal number of iterations
    """

    def __init__(self, stop_iter: int = 1_000_000):
        self.stop_iter = stop_iter

    def median(self, M: Manifold, x: Sequence[Tensor], w: Weights, x0: Optional[Tensor] = None,
               **kwargs) -> Tensor:
        y = (x[0] if x0 is None else x0).clone()
        wv = w.values / w.sum
        for i in range(1, self.stop_iter + 1):
            lam = 0.5 / i
            y_old = y
            for j, xj in enumerate(x):
                d = float(M.distance(y, xj))
                if d == 0:
                    continue
                t = min(lam * float(wv[j]) / d, 1.0)
                y = M.exp(y, M.log(y, xj), t)
            if M.isapprox(y, y_old, **kwargs):
                logger.debug("CyclicProximalPointMethod converged after %d iterations", i)
                break
        else:
            logger.debug(
                "CyclicProximalPointMethod stopped after stop_iter=%d iterations", self.stop_iter
            )
        return y

    def __repr__(self) -> str:
        return f"CyclicProximalPointMethod(stop_iter={self.stop_iter})"


def _prepare(x: Sequence[Tensor], w, kind: str) -> Tuple[Sequence[Tensor], Weights]:
    """Validate the sample and its weights before any computation."""
    n = len(x)
    weights = unit_weights(n) if w is None else as_weights(w)
    if len(weights) != n:
        raise DimensionMismatch(
            f"The number of weights ({len(weights)}) does not match the number of points "
            f"for the {kind} ({n})."
        )
    if n == 0:
        raise ValueError(f"The {kind} of an empty sample is undefined")
    return x, weights


def mean(M: Manifold, x: Sequence[Tensor], w=None, method: Optional[EstimationMethod] = None,
         x0: Optional[Tensor] = None, **kwargs) -> Tensor:
    """Weighted Riemannian center of mass (Karcher mean) of the points x.

    Args:
        M: Manifold the points lie on
        x: Sequence of points
        w: Optional weights, a :class:`~riemtorch.weights.Weights` or values
        method: Estimator; defaults to ``M.default_estimation_method("mean")``
        x0: Starting point for iterative methods (default: the first point)
        **kwargs: Passed to ``M.isapprox`` as the stopping criterion

    Returns:
        Estimate of the mean

    Raises:
        DimensionMismatch: If the number of weights differs from the number
            of points.
    """
    x, w = _prepare(x, w, "mean")
    method = method if method is not None else M.default_estimation_method("mean")
    if not hasattr(method, "mean"):
        raise TypeError(f"{method!r} cannot estimate a mean")
    return method.mean(M, x, w, x0=x0, **kwargs)


def median(M: Manifold, x: Sequence[Tensor], w=None, method: Optional[EstimationMethod] = None,
           x0: Optional[Tensor] = None, **kwargs) -> Tensor:
    """Weighted Riemannian median of the points x.

    Same arguments as :func:`mean`; the default estimator is
    ``M.default_estimation_method("median")``.
    """
    x, w = _prepare(x, w, "median")
    method = method if method is not None else M.default_estimation_method("median")
    if not hasattr(method, "median"):
        raise TypeError(f"{method!r} cannot estimate a median")
    return method.median(M, x, w, x0=x0, **kwargs)


def var(M: Manifold, x: Sequence[Tensor], w=None, m: Optional[Tensor] = None,
        corrected: Optional[bool] = None, **kwargs) -> float:
    """Variance c Σᵢ wᵢ d(m, xᵢ)² about the mean m.

    Args:
        M: Manifold the points lie on
        x: Sequence of points
        w: Optional weights
        m: The mean; computed with :func:`mean` when omitted
        corrected: Apply the bias correction of the weight type. Defaults to
            True without weights and False with weights.
        **kwargs: Passed to :func:`mean` when m is omitted
    """
    x, w_ = _prepare(x, w, "variance")
    if corrected is None:
        corrected = w is None
    if m is None:
        m = mean(M, x, w_, **kwargs)
    total = sum(float(wi) * float(M.distance(m, xi)) ** 2 for wi, xi in zip(w_, x))
    return w_.varcorrection(corrected) * total


def std(M: Manifold, x: Sequence[Tensor], w=None, m: Optional[Tensor] = None,
        corrected: Optional[bool] = None, **kwargs) -> float:
    """Standard deviation, the square root of :func:`var`."""
    return math.sqrt(var(M, x, w, m, corrected=corrected, **kwargs))


def mean_and_var(M: Manifold, x: Sequence[Tensor], w=None, method: Optional[EstimationMethod] = None,
                 corrected: Optional[bool] = None, **kwargs) -> Tuple[Tensor, float]:
    """Mean and variance of the points x.

    With :class:`GeodesicInterpolationMethod` both are computed in a single
    pass; otherwise the mean is computed first and the variance about it.
    """
    x, w_ = _prepare(x, w, "mean")
    if corrected is None:
        corrected = w is None
    method = method if method is not None else M.default_estimation_method("mean")
    if hasattr(method, "mean_and_var"):
        return method.mean_and_var(M, x, w_, corrected=corrected)
    m = mean(M, x, w_, method=method, **kwargs)
    return m, var(M, x, w_, m, corrected=corrected)


def mean_and_std(M: Manifold, x: Sequence[Tensor], w=None, method: Optional[EstimationMethod] = None,
                 corrected: Optional[bool] = None, **kwargs) -> Tuple[Tensor, float]:
    """Mean and standard deviation of the points x."""
    m, v = mean_and_var(M, x, w, method=method, corrected=corrected, **kwargs)
    return m, math.sqrt(v)
