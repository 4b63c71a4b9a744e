"""
Shared fixtures for the test suite.
"""

import numpy as np
import pytest
import matplotlib

matplotlib.use("Agg")

from src.forward_solver import generate_synthetic_data
from src.problem import BackgroundMedium, ScatteringProblem


def random_complex(rng, shape):
    return rng.standard_normal(shape) + 1j * rng.standard_normal(shape)


@pytest.fixture
def small_case():
    """
    Random 2x3 domain (N=6) with M=4 sensors and L=2 sources.

    gd is complex symmetric (reciprocal medium). Returns (problem, true contrast).
    """
    rng = np.random.default_rng(1234)
    I, J, M, L = 2, 3, 4, 2
    N = I * J
    g = 0.1 * random_complex(rng, (N, N))
    gd = (g + g.T) / 2
    gs = random_complex(rng, (M, N))
    ei = random_complex(rng, (N, L))
    true_contrast = 0.2 * random_complex(rng, N)
    es = generate_synthetic_data(true_contrast, ei, gd, gs)

    problem = ScatteringProblem(es=es, ei=ei, gd=gd, gs=gs, dx=1.0, dy=1.0,
                                I=I, J=J, background=BackgroundMedium())
    return problem, true_contrast


@pytest.fixture
def small_problem(small_case):
    return small_case[0]
