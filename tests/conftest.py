"""
Pytest configuration for damage_solver tests.

Adds the repo root to sys.path so tests can import damage_solver without
installing the package, and provides the material setups shared by tests.
"""

import os
import sys

import matplotlib
matplotlib.use("Agg")  # Non-interactive backend for cross-platform compatibility (CI/headless)

import numpy as np
import pytest

repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

from damage_solver.material_models import (  # noqa: E402
    IsotropicLinearElasticModel,
    SmallStrainJ2Plasticity,
    VoceIsotropicHardeningModel,
)


@pytest.fixture
def elastic():
    return IsotropicLinearElasticModel(E=200000.0, nu=0.3)


@pytest.fixture
def j2_base(elastic):
    return SmallStrainJ2Plasticity(elastic, sigma_y=200.0,
                                   isotropic_model=VoceIsotropicHardeningModel(R_inf=100.0, b=50.0))


@pytest.fixture
def step_data():
    """A general multiaxial step with nonzero inelastic strain increment."""
    return {
        'd_np1': 0.2,
        'd_n': 0.1,
        'e_np1': np.array([0.0015, -0.0005, -0.0004, 0.0003, 0.00005, 0.0001]),
        'e_n': np.array([0.001, -0.0003, -0.0003, 0.0002, 0.0, 0.0001]),
        's_np1': np.array([180.0, 30.0, 5.0, 20.0, 3.0, 10.0]),
        's_n': np.array([150.0, 20.0, 10.0, 15.0, 5.0, 8.0]),
        'T_np1': 550.0,
        'T_n': 540.0,
        't_np1': 10.0,
        't_n': 9.0,
    }


def finite_difference(fn, x, h):
    """Central difference of a scalar or vector function of a scalar or vector."""
    x = np.asarray(x, dtype=float)
    if x.ndim == 0:
        return (fn(x + h) - fn(x - h)) / (2 * h)
    columns = []
    for i in range(len(x)):
        dx = np.zeros_like(x)
        dx[i] = h
        columns.append((np.asarray(fn(x + dx)) - np.asarray(fn(x - dx))) / (2 * h))
    return np.array(columns).T
