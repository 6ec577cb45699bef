"""Numerical integration of the geodesic equation in a single chart.

Solves
    d²pᵏ/dt² + Γᵏ_ij (dpⁱ/dt)(dpʲ/dt) = 0,   p(0) = p,  ṗ(0) = X
with the Christoffel symbols of a :class:`~riemtorch.metric.MetricManifold`.

Two solvers are available:
    - ``"rk4"``: fixed-step classical Runge-Kutta, all in torch.
    - ``"scipy"``: adaptive ``scipy.integrate.solve_ivp`` (DOP853).
"""

import numpy as np
import torch
from torch import Tensor

from ._logging import get_logger
from .errors import DimensionMismatch

logger = get_logger(__name__)

DEFAULT_ODE_SOLVER = "rk4"
DEFAULT_ODE_STEPS = 100


def geodesic_acceleration(M, p: Tensor, v: Tensor, backend=None) -> Tensor:
    """Acceleration aᵏ = -Γᵏ_ij vⁱ vʲ of the geodesic through p with velocity v."""
    gamma = M.christoffel_symbols_second(p, backend=backend)
    return -torch.einsum("kij,i,j->k", gamma, v, v)


def _solve_rk4(M, p: Tensor, X: Tensor, t: float, steps: int, backend) -> Tensor:
    h = t / steps
    x, v = p.clone(), X.clone()
    for _ in range(steps):
        k1x, k1v = v, geodesic_acceleration(M, x, v, backend)
        k2x = v + 0.5 * h * k1v
        k2v = geodesic_acceleration(M, x + 0.5 * h * k1x, k2x, backend)
        k3x = v + 0.5 * h * k2v
        k3v = geodesic_acceleration(M, x + 0.5 * h * k2x, k3x, backend)
        k4x = v + h * k3v
        k4v = geodesic_acceleration(M, x + h * k3x, k4x, backend)
        x = x + (h / 6) * (k1x + 2 * k2x + 2 * k3x + k4x)
        v = v + (h / 6) * (k1v + 2 * k2v + 2 * k3v + k4v)
    return x


def _solve_scipy(M, p: Tensor, X: Tensor, t: float, backend, rtol: float, atol: float) -> Tensor:
    from scipy.integrate import solve_ivp

    n = p.numel()

    def rhs(_, y):
        x = torch.as_tensor(y[:n], dtype=p.dtype, device=p.device)
        v = torch.as_tensor(y[n:], dtype=p.dtype, device=p.device)
        a = geodesic_acceleration(M, x, v, backend)
        return np.concatenate([y[n:], a.detach().cpu().numpy()])

    y0 = np.concatenate([p.detach().cpu().numpy(), X.detach().cpu().numpy()])
    sol = solve_ivp(rhs, (0.0, float(t)), y0, method="DOP853", rtol=rtol, atol=atol)
    if not sol.success:
        raise RuntimeError(f"Geodesic integration failed: {sol.message}")
    return torch.as_tensor(sol.y[:n, -1], dtype=p.dtype, device=p.device)


def solve_exp_ode(
    M,
    p: Tensor,
    X: Tensor,
    t: float = 1.0,
    solver: str = None,
    steps: int = None,
    backend: str = None,
    rtol: float = 1e-10,
    atol: float = 1e-12,
) -> Tensor:
    """Exponential map by integrating the geodesic equation over [0, t].

    Only valid for manifolds covered by a single global chart: p and X are
    coordinate vectors of that chart.

    Args:
        M: Metric manifold providing ``christoffel_symbols_second``
        p: Coordinates of the start point, shape (n,)
        X: Initial velocity, shape (n,)
        t: Integration time
        solver: ``"rk4"`` or ``"scipy"``, defaults to ``DEFAULT_ODE_SOLVER``
        steps: Number of steps of the ``"rk4"`` solver
        backend: Jacobian backend used for the Christoffel symbols
        rtol: Relative tolerance of the ``"scipy"`` solver
        atol: Absolute tolerance of the ``"scipy"`` solver

    Returns:
        Coordinates of the point reached at time t

    Raises:
        DimensionMismatch: If p is not a vector or X does not match it.
        NotImplementedError: For an unknown solver.
    """
    solver = solver or DEFAULT_ODE_SOLVER
    steps = steps or DEFAULT_ODE_STEPS
    if p.ndim != 1 or X.shape != p.shape:
        raise DimensionMismatch(
            f"solve_exp_ode expects coordinate vectors of equal length, got {tuple(p.shape)} "
            f"and {tuple(X.shape)}"
        )
    logger.debug("solve_exp_ode: solver=%s t=%s on %r", solver, t, M)
    if t == 0:
        return p.clone()
    if solver == "rk4":
        return _solve_rk4(M, p, X, t, steps, backend)
    if solver == "scipy":
        return _solve_scipy(M, p, X, t, backend, rtol, atol)
    raise NotImplementedError(
        f"solve_exp_ode has no solver {solver!r} for {M!r}; use 'rk4' or 'scipy'"
    )
