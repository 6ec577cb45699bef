"""Manifold implementations."""

from .euclidean import Euclidean
from .sphere import Sphere
from .spd import SPD
from .product import ProductManifold

__all__ = [
    'Euclidean',
    'Sphere',
    'SPD',
    'ProductManifold',
]
