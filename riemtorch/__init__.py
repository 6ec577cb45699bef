"""riemtorch: Riemannian geometry and Fréchet statistics in PyTorch."""

from .errors import DimensionMismatch, DomainError
from .manifold import Manifold
from .manifolds import Euclidean, Sphere, SPD, ProductManifold

# Metrics
from . import metric
from .metric import (
    Metric,
    RiemannianMetric,
    LorentzMetric,
    EuclideanMetric,
    LinearAffineMetric,
    ProductMetric,
    MetricManifold,
    is_default_metric,
)
from .geodesic import solve_exp_ode

# Numerics
from . import utils
from .expm_frechet import expm_frechet, expm_frechet_buffered, frechet_buffer

# Statistics
from . import statistics
from .statistics import (
    GradientMethod,
    GeodesicInterpolationMethod,
    CyclicProximalPointMethod,
    mean,
    median,
    var,
    std,
    mean_and_var,
    mean_and_std,
)
from .weights import (
    Weights,
    AnalyticWeights,
    FrequencyWeights,
    ProbabilityWeights,
)

# Conformance checks
from . import testing
from .testing import ManifoldFeatures, ManifoldExpectations, check_manifold

__version__ = "0.1.0"

__all__ = [
    # Core
    'DomainError',
    'DimensionMismatch',
    'Manifold',
    'Euclidean',
    'Sphere',
    'SPD',
    'ProductManifold',
    # Metrics
    'metric',
    'Metric',
    'RiemannianMetric',
    'LorentzMetric',
    'EuclideanMetric',
    'LinearAffineMetric',
    'ProductMetric',
    'MetricManifold',
    'is_default_metric',
    'solve_exp_ode',
    # Numerics
    'utils',
    'expm_frechet',
    'expm_frechet_buffered',
    'frechet_buffer',
    # Statistics
    'statistics',
    'GradientMethod',
    'GeodesicInterpolationMethod',
    'CyclicProximalPointMethod',
    'mean',
    'median',
    'var',
    'std',
    'mean_and_var',
    'mean_and_std',
    'Weights',
    'AnalyticWeights',
    'FrequencyWeights',
    'ProbabilityWeights',
    # Conformance checks
    'testing',
    'ManifoldFeatures',
    'ManifoldExpectations',
    'check_manifold',
]
