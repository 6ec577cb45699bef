"""Numerically safe matrix functions and small tensor helpers.

These are the building blocks the manifolds and the generic algorithms rely on:

- ``log_safe`` / ``eigen_safe``: matrix logarithm and eigendecomposition that
  check the spectrum before doing any work and never silently fall back to an
  inexact result.
- ``isnormal``: commutation check ``X Xᴴ == Xᴴ X`` with exact fast paths.
- ``realify`` / ``complexify``: the real embedding of complex matrices.
- ``max_eps`` / ``find_eps`` / ``isapprox``: tolerance helpers.
"""

import math
import numbers
from typing import NamedTuple, Optional

import numpy as np
import torch
from torch import Tensor

from .errors import DimensionMismatch, DomainError

_REAL_DTYPES = {
    torch.complex32: torch.float16,
    torch.complex64: torch.float32,
    torch.complex128: torch.float64,
}


class Eigen(NamedTuple):
    """Eigenvalues and eigenvectors (as columns) of a square matrix."""

    values: Tensor
    vectors: Tensor


def _real_dtype(dtype: torch.dtype) -> torch.dtype:
    return _REAL_DTYPES.get(dtype, dtype)


def _as_matrix(X) -> Tensor:
    X = torch.as_tensor(X)
    if not (X.is_floating_point() or X.is_complex()):
        X = X.to(torch.get_default_dtype())
    return X


def _check_square(X: Tensor, name: str) -> None:
    if X.ndim != 2 or X.shape[0] != X.shape[1]:
        raise DomainError(f"{name}: expected a square matrix, got shape {tuple(X.shape)}")


def _is_hermitian(X: Tensor) -> bool:
    return torch.equal(X, X.mH)


def _is_triangular(X: Tensor) -> bool:
    return torch.equal(X, X.triu()) or torch.equal(X, X.tril())


def _logm(X: Tensor) -> Tensor:
    from scipy.linalg import logm

    result = logm(X.detach().cpu().numpy())
    if not X.is_complex():
        result = np.real(result)
    return torch.as_tensor(result).to(dtype=X.dtype, device=X.device)


def log_safe(X, out: Optional[Tensor] = None) -> Tensor:
    """Matrix logarithm that refuses inputs without a (real) logarithm.

    Hermitian matrices are handled through their eigendecomposition and must be
    positive definite. Real triangular matrices must have a positive diagonal.
    Any other real matrix must not have a real eigenvalue ``<= 0``; complex
    matrices must be nonsingular. The general case is computed with
    ``scipy.linalg.logm``.

    Args:
        X: Square matrix, real or complex.
        out: Optional tensor receiving the result in place.

    Returns:
        ``log(X)`` with the dtype and device of ``X`` (``out`` if given).

    Raises:
        DomainError: If ``X`` is not square or its spectrum excludes a
            logarithm of the same field.
    """
    X = _as_matrix(X)
    _check_square(X, "log_safe")

    if _is_hermitian(X):
        vals, vecs = torch.linalg.eigh(X)
        if bool((vals <= 0).any()):
            raise DomainError(
                "The matrix logarithm is not defined for a Hermitian matrix with "
                f"non-positive eigenvalues {vals.tolist()}."
            )
        result = (vecs * torch.log(vals).to(vecs.dtype)) @ vecs.mH
    else:
        if _is_triangular(X):
            diag = torch.diagonal(X)
            if X.is_complex():
                singular = bool((diag == 0).any())
            else:
                singular = bool((diag <= 0).any())
            if singular:
                raise DomainError(
                    "The matrix logarithm is not defined for a triangular matrix "
                    f"with diagonal {diag.tolist()}."
                )
        else:
            vals = torch.linalg.eigvals(X)
            if X.is_complex():
                bad = (vals == 0).any()
            else:
                bad = ((vals.imag == 0) & (vals.real <= 0)).any()
            if bool(bad):
                raise DomainError(
                    "The real matrix logarithm is not defined for a matrix with "
                    f"eigenvalues {vals.tolist()}."
                )
        result = _logm(X)

    if out is not None:
        out.copy_(result)
        return out
    return result


def eigen_safe(X) -> Eigen:
    """Eigendecomposition whose output size always matches the input.

    Hermitian input goes through ``torch.linalg.eigh`` and yields real
    eigenvalues. A real matrix with a purely real spectrum yields real tensors;
    otherwise the complex decomposition is returned.

    Raises:
        DomainError: If ``X`` is not square.
    """
    X = _as_matrix(X)
    _check_square(X, "eigen_safe")
    if _is_hermitian(X):
        vals, vecs = torch.linalg.eigh(X)
        return Eigen(vals, vecs)
    vals, vecs = torch.linalg.eig(X)
    if not X.is_complex() and bool((vals.imag == 0).all()):
        return Eigen(vals.real, vecs.real)
    return Eigen(vals, vecs)


def isnormal(X, atol: Optional[float] = None) -> bool:
    """Whether ``X`` commutes with its adjoint.

    Diagonal, Hermitian and skew-Hermitian matrices are normal by construction
    and return ``True`` without any tolerance. Otherwise ``X Xᴴ`` and ``Xᴴ X``
    are compared exactly, or with :func:`isapprox` when ``atol`` is given.
    """
    if isinstance(X, numbers.Number):
        return True
    X = torch.as_tensor(X)
    if X.ndim == 0:
        return True
    if X.ndim != 2 or X.shape[0] != X.shape[1]:
        return False
    XH = X.mH
    if torch.equal(X, torch.diag_embed(torch.diagonal(X))):
        return True
    if torch.equal(X, XH) or torch.equal(X, -XH):
        return True
    lhs = X @ XH
    rhs = XH @ X
    if atol is None:
        return torch.equal(lhs, rhs)
    return isapprox(lhs, rhs, atol=atol)


def realify(X: Tensor) -> Tensor:
    """Real ``2n×2n`` representation ``[[A, -B], [B, A]]`` of ``X = A + iB``.

    The map is an injective ring homomorphism:
    ``realify(C) @ realify(D) == realify(C @ D)``. Real input is returned
    unchanged.
    """
    X = torch.as_tensor(X)
    if not X.is_complex():
        return X
    A, B = X.real, X.imag
    top = torch.cat([A, -B], dim=-1)
    bottom = torch.cat([B, A], dim=-1)
    return torch.cat([top, bottom], dim=-2)


def complexify(Y: Tensor) -> Tensor:
    """Inverse of :func:`realify`.

    Returns ``(Y11 + Y22)/2 + i (Y21 - Y12)/2`` for the ``n×n`` blocks of ``Y``.

    Raises:
        DimensionMismatch: If ``Y`` is not a square matrix of even size.
    """
    Y = torch.as_tensor(Y)
    if Y.ndim != 2 or Y.shape[0] != Y.shape[1] or Y.shape[0] % 2:
        raise DimensionMismatch(
            f"complexify expects a square matrix of even size, got shape {tuple(Y.shape)}"
        )
    n = Y.shape[0] // 2
    Y11, Y12 = Y[:n, :n], Y[:n, n:]
    Y21, Y22 = Y[n:, :n], Y[n:, n:]
    return torch.complex((Y11 + Y22) / 2, (Y21 - Y12) / 2)


def _eps_of(x) -> float:
    if isinstance(x, torch.dtype):
        if x.is_floating_point or x.is_complex:
            return torch.finfo(_real_dtype(x)).eps
        return 0.0
    if isinstance(x, Tensor):
        return _eps_of(x.dtype)
    dt = None
    if isinstance(x, (np.ndarray, np.generic)):
        dt = x.dtype
    elif isinstance(x, np.dtype) or (isinstance(x, type) and issubclass(x, np.generic)):
        dt = np.dtype(x)
    if dt is not None:
        if np.issubdtype(dt, np.inexact):
            return float(np.finfo(dt).eps)
        return 0.0
    if isinstance(x, (bool, int)):
        return 0.0
    if isinstance(x, (float, complex)):
        return float(np.finfo(np.float64).eps)
    if isinstance(x, (list, tuple)):
        return max((_eps_of(v) for v in x), default=0.0)
    raise TypeError(f"Cannot determine a floating epsilon for {type(x).__name__}")


def max_eps(*xs) -> float:
    """Largest machine epsilon among the element types of ``xs``.

    Accepts tensors, numpy arrays and scalars, dtypes and Python numbers.
    Integer types contribute ``0``; complex types count as their real part.

    Examples:
        >>> max_eps(torch.zeros(2, dtype=torch.float64), torch.zeros(2, dtype=torch.float32))
        1.1920928955078125e-07
    """
    return max((_eps_of(x) for x in xs), default=0.0)


def find_eps(*xs) -> float:
    """Epsilon of the floating type all of ``xs`` promote to.

    Non-floating promotions fall back to the default dtype.
    """
    dtype = None
    for x in xs:
        dt = x.dtype if isinstance(x, Tensor) else torch.as_tensor(x).dtype
        dtype = dt if dtype is None else torch.promote_types(dtype, dt)
    if dtype is None or not (dtype.is_floating_point or dtype.is_complex):
        dtype = torch.get_default_dtype()
    return torch.finfo(_real_dtype(dtype)).eps


def isapprox(a, b, atol: float = 0.0, rtol: Optional[float] = None) -> bool:
    """Norm-wise approximate equality.

    ``‖a - b‖ <= max(atol, rtol * max(‖a‖, ‖b‖))``. When ``rtol`` is omitted it
    is ``sqrt(eps)`` if ``atol`` is zero and ``0`` otherwise.
    """
    a = _as_matrix(a)
    b = _as_matrix(b)
    if rtol is None:
        rtol = math.sqrt(find_eps(a, b)) if atol == 0 else 0.0
    diff = float(torch.linalg.vector_norm(a - b))
    scale = max(float(torch.linalg.vector_norm(a)), float(torch.linalg.vector_norm(b)))
    return diff <= max(atol, rtol * scale)


def usinc(theta):
    """Unnormalized sinc ``sin(θ)/θ`` with value ``1`` at ``θ = 0``."""
    theta = torch.as_tensor(theta)
    zero = theta == 0
    safe = torch.where(zero, torch.ones_like(theta), theta)
    return torch.where(zero, torch.ones_like(theta), torch.sin(safe) / safe)


def usinc_from_cos(c):
    """``sin(θ)/θ`` written in terms of ``c = cos(θ)`` for ``θ ∈ [0, π]``.

    Returns ``1`` for ``c >= 1`` and ``0`` for ``c <= -1``.
    """
    c = torch.as_tensor(c)
    inside = (c < 1) & (c > -1)
    safe = torch.where(inside, c, torch.zeros_like(c))
    value = torch.sqrt(1 - safe * safe) / torch.acos(safe)
    return torch.where(inside, value, torch.where(c >= 1, torch.ones_like(c), torch.zeros_like(c)))


def vec2skew(v: Tensor) -> Tensor:
    """Skew-symmetric matrix ``[v]ₓ`` such that ``[v]ₓ w = v × w``."""
    v = torch.as_tensor(v)
    if v.shape != (3,):
        raise DimensionMismatch(f"vec2skew expects a 3-vector, got shape {tuple(v.shape)}")
    zero = torch.zeros((), dtype=v.dtype, device=v.device)
    return torch.stack([
        torch.stack([zero, -v[2], v[1]]),
        torch.stack([v[2], zero, -v[0]]),
        torch.stack([-v[1], v[0], zero]),
    ])
