"""Pytest configuration and fixtures."""

import pytest
import torch
from riemtorch import Euclidean, Sphere, SPD, ProductManifold

torch.set_default_dtype(torch.float64)


@pytest.fixture
def euclidean():
    """Fixture for Euclidean manifold."""
    return Euclidean(3)


@pytest.fixture
def sphere():
    """Fixture for Sphere manifold."""
    return Sphere(3)


@pytest.fixture
def spd():
    """Fixture for SPD manifold."""
    return SPD(3)


@pytest.fixture
def product():
    """Fixture for a Sphere × Euclidean product."""
    return ProductManifold([Sphere(3), Euclidean(2)])


@pytest.fixture(params=['euclidean', 'sphere', 'spd', 'product'])
def manifold(request):
    """Fixture that parametrizes over all manifolds."""
    if request.param == 'euclidean':
        return Euclidean(3)
    elif request.param == 'sphere':
        return Sphere(3)
    elif request.param == 'spd':
        return SPD(3)
    elif request.param == 'product':
        return ProductManifold([Sphere(3), Euclidean(2)])


@pytest.fixture
def random_seed():
    """Set random seed for reproducibility."""
    torch.manual_seed(42)
    return 42
