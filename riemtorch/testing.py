"""
Generic conformance checks for manifold implementations.

:func:`check_manifold` exercises every operation a manifold advertises on a
set of sample points and tangent vectors and raises ``AssertionError`` on the
first violated contract. Which checks run is described by
:class:`ManifoldFeatures`, what values, tolerances and errors to expect by
:class:`ManifoldExpectations`, so the same checks serve manifolds with very
different numerical conditioning.

Tolerances are multipliers: a check with multiplier ``c`` on a point p uses
``atol = c * find_eps(p)``. When the absolute multiplier is zero the relative
tolerance ``rtol_multiplier * sqrt(find_eps(p))`` is used instead.

Example:
    >>> M = Sphere(3)
    >>> pts = [torch.tensor([1.0, 0.0, 0.0]), ...]
    >>> vecs = [M.random_tangent(p) for p in pts]
    >>> check_manifold(M, pts, vecs, non_points=[torch.tensor([2.0, 0.0, 0.0])])
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple, Type

import torch
from torch import Tensor

from ._logging import get_logger
from .errors import DimensionMismatch, DomainError
from .manifold import Manifold
from .metric import MetricManifold
from .utils import find_eps

logger = get_logger(__name__)

CHECKS = (
    "dimension",
    "is_point",
    "is_vector",
    "project_point",
    "project_tangent",
    "zero_vector",
    "exp",
    "exp_log",
    "mid_point",
    "retraction",
    "inverse_retraction",
    "parallel_transport",
    "basis",
    "vector_space",
    "musical_isomorphisms",
    "random_generation",
)

# Operations a check needs beyond the abstract interface of Manifold.
_REQUIRES = {
    "parallel_transport": ("parallel_transport",),
    "random_generation": ("random_point",),
}


def _overrides(M: Manifold, name: str) -> bool:
    return getattr(type(M), name) is not getattr(Manifold, name)


@dataclass
class ManifoldFeatures:
    """Which checks :func:`check_manifold` runs.

    Attributes:
        enabled: Names of the enabled checks, a subset of ``CHECKS``
    """

    enabled: Set[str] = field(default_factory=lambda: set(CHECKS))

    @classmethod
    def from_manifold(cls, M: Manifold) -> "ManifoldFeatures":
        """Enable every check whose operations M implements."""
        base = M
        enabled = set(CHECKS)
        if isinstance(M, MetricManifold):
            if not M.is_default:
                enabled -= {"exp_log", "mid_point", "inverse_retraction", "parallel_transport"}
            base = M.manifold
        for check, ops in _REQUIRES.items():
            if not all(_overrides(base, op) for op in ops):
                enabled.discard(check)
        return cls(enabled)

    def disable(self, *names: str) -> "ManifoldFeatures":
        """Return a copy with the given checks switched off."""
        return ManifoldFeatures(self.enabled - set(names))

    def __contains__(self, name: str) -> bool:
        return name in self.enabled


@dataclass
class ManifoldExpectations:
    """Expected values, tolerance multipliers and accepted errors per check.

    Attributes:
        values: Expected results, e.g. ``{"manifold_dimension": 2,
            "representation_size": (3,)}``
        atol_multipliers: Absolute tolerance multipliers per check name
        rtol_multipliers: Relative tolerance multipliers per check name
        errors: Exception types accepted when a check expects a failure,
            keyed ``"is_point"`` and ``"is_vector"``
    """

    values: Dict[str, object] = field(default_factory=dict)
    atol_multipliers: Dict[str, float] = field(default_factory=dict)
    rtol_multipliers: Dict[str, float] = field(default_factory=dict)
    errors: Dict[str, Tuple[Type[BaseException], ...]] = field(
        default_factory=lambda: {"is_point": (DomainError,), "is_vector": (DomainError,)}
    )

    def tolerances(self, check: str, p: Tensor) -> Tuple[float, float]:
        """``(atol, rtol)`` for a check at the point p."""
        eps = find_eps(p)
        atol = self.atol_multipliers.get(check, 0.0) * eps
        if atol > 0:
            return atol, 0.0
        return 0.0, self.rtol_multipliers.get(check, 1.0) * math.sqrt(eps)

    def point_atol(self, check: str, p: Tensor) -> float:
        """Tolerance handed to ``is_point``/``is_vector`` inside a check."""
        atol, rtol = self.tolerances(check, p)
        return atol if atol > 0 else rtol


def _assert_close(actual: Tensor, expected: Tensor, atol: float, rtol: float, msg: str) -> None:
    if atol == 0:
        # relative tolerance measured against the size of the expectation
        atol = rtol * max(1.0, float(torch.max(torch.abs(expected))) if expected.numel() else 1.0)
    torch.testing.assert_close(
        actual, expected, atol=atol, rtol=rtol, check_dtype=False, msg=lambda m: f"{msg}\n{m}"
    )


def _assert_scalar_close(actual, expected, atol: float, rtol: float, msg: str) -> None:
    a, e = float(actual), float(expected)
    if abs(a - e) > max(atol, rtol * max(abs(a), abs(e), 1.0)):
        raise AssertionError(f"{msg}: {a} != {e} (atol={atol}, rtol={rtol})")


def check_dimension(M: Manifold, expectations: ManifoldExpectations) -> None:
    """manifold_dimension and representation_size are consistent and as expected."""
    dim = M.manifold_dimension()
    if not isinstance(dim, int) or dim < 0:
        raise AssertionError(f"manifold_dimension of {M!r} must be a non-negative int, got {dim!r}")
    if "manifold_dimension" in expectations.values and dim != expectations.values["manifold_dimension"]:
        raise AssertionError(
            f"manifold_dimension of {M!r} is {dim}, expected {expectations.values['manifold_dimension']}"
        )
    size = tuple(M.representation_size)
    if "representation_size" in expectations.values and size != tuple(expectations.values["representation_size"]):
        raise AssertionError(
            f"representation_size of {M!r} is {size}, expected {expectations.values['representation_size']}"
        )


def _expect_rejection(check, accepted, what: str) -> None:
    try:
        check()
    except accepted:
        return
    except Exception as e:
        raise AssertionError(f"{what} raised {type(e).__name__}, expected one of {accepted}") from e
    raise AssertionError(f"{what} was accepted, expected one of {accepted}")


def check_is_point(M: Manifold, points: Sequence[Tensor], non_points: Sequence[Tensor],
                   expectations: ManifoldExpectations) -> None:
    """Sample points are accepted, non-points rejected with an accepted error."""
    for p in points:
        try:
            M.check_point(p, atol=expectations.point_atol("is_point", p))
        except DomainError as e:
            raise AssertionError(f"{M!r} rejected the sample point {p}") from e
    accepted = expectations.errors.get("is_point", (DomainError,))
    for q in non_points:
        _expect_rejection(lambda: M.check_point(q), accepted, f"The non-point {q} on {M!r}")


def check_is_vector(M: Manifold, points: Sequence[Tensor], vectors: Sequence[Tensor],
                    non_vectors: Sequence[Tensor], expectations: ManifoldExpectations) -> None:
    """Sample tangent vectors are accepted, non-tangent ones rejected at the first point."""
    for p, v in zip(points, vectors):
        try:
            M.check_vector(p, v, atol=expectations.point_atol("is_vector", p))
        except DomainError as e:
            raise AssertionError(f"{M!r} rejected the sample vector {v} at {p}") from e
    accepted = expectations.errors.get("is_vector", (DomainError,))
    p = points[0]
    for v in non_vectors:
        _expect_rejection(lambda: M.check_vector(p, v), accepted, f"The non-tangent vector {v} on {M!r}")


def check_project_point(M: Manifold, points: Sequence[Tensor], expectations: ManifoldExpectations) -> None:
    """Projecting a point of M returns it unchanged."""
    for p in points:
        atol, rtol = expectations.tolerances("project_point", p)
        q = M.project(p)
        if not M.is_point(q, atol=expectations.point_atol("project_point", p)):
            raise AssertionError(f"project on {M!r} left the manifold: {q}")
        _assert_close(q, p, atol, rtol, f"project(p) != p on {M!r}")


def check_project_tangent(M: Manifold, points: Sequence[Tensor], vectors: Sequence[Tensor],
                          expectations: ManifoldExpectations) -> None:
    """project_tangent fixes tangent vectors and is an idempotent map into T_pM."""
    for p, v in zip(points, vectors):
        atol, rtol = expectations.tolerances("project_tangent", p)
        _assert_close(M.project_tangent(p, v), v, atol, rtol, f"project_tangent(p, v) != v on {M!r}")
        u = M.project_tangent(p, v + p)
        tol = expectations.point_atol("project_tangent", p)
        if not M.is_vector(p, u, atol=tol * max(1.0, float(torch.max(torch.abs(u))))):
            raise AssertionError(f"project_tangent on {M!r} is not tangent: {u}")
        _assert_close(M.project_tangent(p, u), u, atol, rtol, f"project_tangent is not idempotent on {M!r}")


def check_zero_vector(M: Manifold, points: Sequence[Tensor], expectations: ManifoldExpectations) -> None:
    """The zero vector is tangent and exp along it stays put."""
    for p in points:
        atol, rtol = expectations.tolerances("zero_vector", p)
        z = M.zero_tangent_vector(p)
        if not M.is_vector(p, z, atol=expectations.point_atol("zero_vector", p)):
            raise AssertionError(f"zero_tangent_vector of {M!r} at {p} is not a tangent vector")
        _assert_close(M.exp(p, z), p, atol, rtol, f"exp(p, 0) != p on {M!r}")


def check_exp(M: Manifold, points: Sequence[Tensor], vectors: Sequence[Tensor],
              expectations: ManifoldExpectations) -> None:
    """exp lands on the manifold and respects the time parameter."""
    for p, v in zip(points, vectors):
        atol, rtol = expectations.tolerances("exp", p)
        q = M.exp(p, v)
        if not M.is_point(q, atol=expectations.point_atol("exp", p)):
            raise AssertionError(f"exp on {M!r} left the manifold: {q}")
        _assert_close(M.exp(p, v, 0.0), p, atol, rtol, f"exp(p, v, 0) != p on {M!r}")
        _assert_close(M.exp(p, v, 0.5), M.exp(p, 0.5 * v), atol, rtol,
                      f"exp(p, v, t) != exp(p, t v) on {M!r}")


def check_exp_log(M: Manifold, points: Sequence[Tensor], expectations: ManifoldExpectations) -> None:
    """log inverts exp, distances match norms of logs, inner is symmetric."""
    for i, p in enumerate(points):
        q = points[(i + 1) % len(points)]
        r = points[(i + 2) % len(points)]
        atol, rtol = expectations.tolerances("exp_log", p)
        v = M.log(p, q)
        w = M.log(p, r)
        if not M.is_vector(p, v, atol=expectations.point_atol("exp_log", p)):
            raise AssertionError(f"log on {M!r} is not tangent: {v}")
        _assert_close(M.exp(p, v), q, atol, rtol, f"exp(p, log(p, q)) != q on {M!r}")
        _assert_close(M.log(p, p), M.zero_tangent_vector(p), atol, rtol, f"log(p, p) != 0 on {M!r}")
        _assert_scalar_close(M.distance(p, q), M.norm(p, v), atol, rtol,
                             f"distance(p, q) != norm(log(p, q)) on {M!r}")
        _assert_scalar_close(M.distance(p, q), M.distance(q, p), atol, rtol,
                             f"distance is not symmetric on {M!r}")
        _assert_scalar_close(M.inner(p, v, w), M.inner(p, w, v), atol, rtol,
                             f"inner is not symmetric on {M!r}")
        _assert_scalar_close(M.norm(p, v) ** 2, M.inner(p, v, v), atol, rtol,
                             f"norm(v)² != inner(v, v) on {M!r}")


def check_mid_point(M: Manifold, points: Sequence[Tensor], expectations: ManifoldExpectations) -> None:
    """The midpoint lies on M halfway between its endpoints."""
    for i, p in enumerate(points):
        q = points[(i + 1) % len(points)]
        atol, rtol = expectations.tolerances("mid_point", p)
        m = M.mid_point(p, q)
        if not M.is_point(m, atol=expectations.point_atol("mid_point", p)):
            raise AssertionError(f"mid_point on {M!r} left the manifold: {m}")
        d = M.distance(p, q)
        _assert_scalar_close(M.distance(p, m), d / 2, atol, rtol, f"mid_point is not halfway from p on {M!r}")
        _assert_scalar_close(M.distance(m, q), d / 2, atol, rtol, f"mid_point is not halfway to q on {M!r}")


def check_retraction(M: Manifold, points: Sequence[Tensor], vectors: Sequence[Tensor],
                     expectations: ManifoldExpectations) -> None:
    """retract lands on the manifold and is the identity at t = 0."""
    for p, v in zip(points, vectors):
        atol, rtol = expectations.tolerances("retraction", p)
        q = M.retract(p, v)
        if not M.is_point(q, atol=expectations.point_atol("retraction", p)):
            raise AssertionError(f"retract on {M!r} left the manifold: {q}")
        _assert_close(M.retract(p, v, 0.0), p, atol, rtol, f"retract(p, v, 0) != p on {M!r}")
        _assert_close(M.retract(p, M.zero_tangent_vector(p)), p, atol, rtol,
                      f"retract(p, 0) != p on {M!r}")


def check_inverse_retraction(M: Manifold, points: Sequence[Tensor],
                             expectations: ManifoldExpectations) -> None:
    """inverse_retract yields tangent vectors that retract back to the target."""
    for i, p in enumerate(points):
        q = points[(i + 1) % len(points)]
        atol, rtol = expectations.tolerances("inverse_retraction", p)
        v = M.inverse_retract(p, q)
        if not M.is_vector(p, v, atol=expectations.point_atol("inverse_retraction", p)):
            raise AssertionError(f"inverse_retract on {M!r} is not tangent: {v}")
        _assert_close(M.retract(p, v), q, atol, rtol, f"retract(p, inverse_retract(p, q)) != q on {M!r}")


def check_parallel_transport(M: Manifold, points: Sequence[Tensor], vectors: Sequence[Tensor],
                             expectations: ManifoldExpectations) -> None:
    """Transport keeps tangency and norms, and transporting back is the identity."""
    for i, (p, v) in enumerate(zip(points, vectors)):
        q = points[(i + 1) % len(points)]
        atol, rtol = expectations.tolerances("parallel_transport", p)
        u = M.parallel_transport(v, p, q)
        if not M.is_vector(q, u, atol=expectations.point_atol("parallel_transport", p)):
            raise AssertionError(f"parallel_transport on {M!r} is not tangent at the target: {u}")
        _assert_scalar_close(M.norm(q, u), M.norm(p, v), atol, rtol,
                             f"parallel_transport on {M!r} does not preserve the norm")
        _assert_close(M.parallel_transport(u, q, p), v, atol, rtol,
                      f"parallel transport there and back is not the identity on {M!r}")


def check_basis(M: Manifold, points: Sequence[Tensor], vectors: Sequence[Tensor],
                expectations: ManifoldExpectations) -> None:
    """The basis has dim elements, is orthonormal, and coordinates round-trip."""
    for p, v in zip(points, vectors):
        atol, rtol = expectations.tolerances("basis", p)
        basis = M.orthonormal_basis(p)
        if len(basis) != M.manifold_dimension():
            raise AssertionError(
                f"orthonormal_basis of {M!r} has {len(basis)} elements, expected {M.manifold_dimension()}"
            )
        gram = torch.stack([torch.stack([M.inner(p, a, b) for b in basis]) for a in basis])
        eye = torch.eye(len(basis), dtype=gram.dtype, device=gram.device)
        _assert_close(gram, eye, atol, rtol, f"orthonormal_basis of {M!r} is not orthonormal")
        c = M.get_coordinates(p, v, basis)
        _assert_close(M.get_vector(p, c, basis), v, atol, rtol,
                      f"get_vector(get_coordinates(v)) != v on {M!r}")


def check_vector_space(M: Manifold, points: Sequence[Tensor], vectors: Sequence[Tensor],
                       expectations: ManifoldExpectations) -> None:
    """Tangent spaces behave as vector spaces."""
    for p, v in zip(points, vectors):
        atol, rtol = expectations.tolerances("vector_space", p)
        zero = M.zero_tangent_vector(p)
        _assert_close(0 * v, zero, atol, rtol, f"0 v != 0 on {M!r}")
        _assert_close(2 * v, v + v, atol, rtol, f"2 v != v + v on {M!r}")
        _assert_close(v - v, zero, atol, rtol, f"v - v != 0 on {M!r}")
        _assert_close(-v, -1 * v, atol, rtol, f"-v != (-1) v on {M!r}")
        tol = expectations.point_atol("vector_space", p)
        for combo in (3 * v, 2 * v + (-v)):
            if not M.is_vector(p, combo, atol=tol * max(1.0, float(M.norm(p, combo)))):
                raise AssertionError(f"Linear combinations of tangent vectors leave T_pM on {M!r}")


def check_musical_isomorphisms(M: Manifold, points: Sequence[Tensor], vectors: Sequence[Tensor],
                               expectations: ManifoldExpectations) -> None:
    """flat and sharp are inverse to each other and flat(v)(v) = |v|²."""
    for p, v in zip(points, vectors):
        atol, rtol = expectations.tolerances("musical_isomorphisms", p)
        xi = M.flat(p, v)
        _assert_scalar_close(M.pair(xi, v), M.norm(p, v) ** 2, atol, rtol,
                             f"flat(v)(v) != |v|² on {M!r}")
        _assert_close(M.sharp(p, xi), v, atol, rtol, f"sharp(flat(v)) != v on {M!r}")


def check_random_generation(M: Manifold, expectations: ManifoldExpectations, seed: int = 42) -> None:
    """Equal seeds give equal samples, and samples are valid."""
    g1 = torch.Generator().manual_seed(seed)
    g2 = torch.Generator().manual_seed(seed)
    p1 = M.random_point(generator=g1)
    p2 = M.random_point(generator=g2)
    if not torch.equal(p1, p2):
        raise AssertionError(f"random_point of {M!r} is not reproducible under a fixed seed")
    if not M.is_point(p1, atol=expectations.point_atol("random_generation", p1)):
        raise AssertionError(f"random_point of {M!r} is not a point: {p1}")
    v1 = M.random_tangent(p1, generator=g1)
    v2 = M.random_tangent(p2, generator=g2)
    if not torch.equal(v1, v2):
        raise AssertionError(f"random_tangent of {M!r} is not reproducible under a fixed seed")
    if not M.is_vector(p1, v1, atol=expectations.point_atol("random_generation", p1)):
        raise AssertionError(f"random_tangent of {M!r} is not tangent: {v1}")


def check_manifold(
    M: Manifold,
    points: Sequence[Tensor],
    tangent_vectors: Sequence[Tensor],
    features: Optional[ManifoldFeatures] = None,
    expectations: Optional[ManifoldExpectations] = None,
    non_points: Sequence[Tensor] = (),
    non_tangent_vectors: Sequence[Tensor] = (),
    seed: int = 42,
) -> List[str]:
    """Run every enabled conformance check on M.

    Args:
        M: Manifold under test
        points: At least three points of M
        tangent_vectors: One tangent vector per point
        features: Checks to run; defaults to ``ManifoldFeatures.from_manifold(M)``
        expectations: Expected values, tolerances and errors
        non_points: Tensors that must be rejected as points
        non_tangent_vectors: Tensors that must be rejected as tangent vectors
            at ``points[0]``
        seed: Seed for the random generation check

    Returns:
        Names of the checks that ran, in order

    Raises:
        AssertionError: On the first violated contract.
        ValueError: If fewer than three points or a wrong number of tangent
            vectors are given.
    """
    if len(points) < 3:
        raise ValueError(f"check_manifold needs at least three points, got {len(points)}")
    if len(tangent_vectors) != len(points):
        raise DimensionMismatch(
            f"check_manifold needs one tangent vector per point, got {len(tangent_vectors)} "
            f"for {len(points)} points"
        )
    points = list(points)
    tangent_vectors = list(tangent_vectors)
    features = features if features is not None else ManifoldFeatures.from_manifold(M)
    expectations = expectations if expectations is not None else ManifoldExpectations()

    runners = {
        "dimension": lambda: check_dimension(M, expectations),
        "is_point": lambda: check_is_point(M, points, non_points, expectations),
        "is_vector": lambda: check_is_vector(M, points, tangent_vectors, non_tangent_vectors, expectations),
        "project_point": lambda: check_project_point(M, points, expectations),
        "project_tangent": lambda: check_project_tangent(M, points, tangent_vectors, expectations),
        "zero_vector": lambda: check_zero_vector(M, points, expectations),
        "exp": lambda: check_exp(M, points, tangent_vectors, expectations),
        "exp_log": lambda: check_exp_log(M, points, expectations),
        "mid_point": lambda: check_mid_point(M, points, expectations),
        "retraction": lambda: check_retraction(M, points, tangent_vectors, expectations),
        "inverse_retraction": lambda: check_inverse_retraction(M, points, expectations),
        "parallel_transport": lambda: check_parallel_transport(M, points, tangent_vectors, expectations),
        "basis": lambda: check_basis(M, points, tangent_vectors, expectations),
        "vector_space": lambda: check_vector_space(M, points, tangent_vectors, expectations),
        "musical_isomorphisms": lambda: check_musical_isomorphisms(M, points, tangent_vectors, expectations),
        "random_generation": lambda: check_random_generation(M, expectations, seed),
    }
    executed = []
    for name in CHECKS:
        if name not in features:
            continue
        logger.debug("check_manifold: %s on %r", name, M)
        runners[name]()
        executed.append(name)
    return executed
