"""
Shared pytest configuration and fixtures for DynOcc-JAX tests.

Provides small simulated surveys and fitted models used across the suite.
Fitted models are session scoped because every fit compiles and optimizes a
JAX likelihood.
"""

import pytest
import numpy as np

from dynocc_jax.data import SurveyDesign, simulate_dynocc, build_multiseason_data
from dynocc_jax.formulas import create_formula_spec
from dynocc_jax.models import DynamicOccupancyModel


@pytest.fixture(scope="session")
def small_design():
    """60 sites, 5 years, 3 occasions per year."""
    return SurveyDesign(n_sites=60, n_years=5, n_occasions=3)


@pytest.fixture(scope="session")
def small_simulation(small_design):
    return simulate_dynocc(small_design, seed=2024)


@pytest.fixture(scope="session")
def small_data(small_simulation):
    return build_multiseason_data(small_simulation)


@pytest.fixture(scope="session")
def null_spec():
    return create_formula_spec(name="null")


@pytest.fixture(scope="session")
def true_spec():
    return create_formula_spec(psi="~Xpsi1", gamma="~Xgamma", phi="~Xphi", p="~1", name="true")


@pytest.fixture(scope="session")
def model():
    return DynamicOccupancyModel()


@pytest.fixture(scope="session")
def null_fit(model, null_spec, small_data):
    return model.fit(null_spec, small_data)


@pytest.fixture(scope="session")
def true_fit(model, true_spec, small_data):
    return model.fit(true_spec, small_data)


@pytest.fixture
def tiny_detections():
    """2 sites, 3 years, 2 occasions with distinct values per cell."""
    return np.arange(12, dtype=float).reshape(2, 3, 2)


# Markers for different test types
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test (fast)"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (medium speed)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow (may take >10 seconds)"
    )
