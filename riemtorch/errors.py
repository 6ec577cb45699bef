"""Exception types raised by riemtorch."""


class DomainError(ValueError):
    """Input violates a mathematical precondition.

    Raised for points that do not lie on a manifold, tangent vectors that do
    not satisfy the tangency constraint, or matrices whose spectrum rules out
    the requested function (e.g. a real logarithm of a matrix with a negative
    real eigenvalue).
    """


class DimensionMismatch(ValueError):
    """Shapes or lengths of the inputs do not agree."""
