import matplotlib
matplotlib.use('Agg')

import numpy as np
import pytest


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def pool_field():
    return np.array([[1, 2, 5, 6],
                     [3, 4, 7, 8],
                     [9, 10, 13, 14],
                     [11, 12, 15, 16]], dtype=np.float64)
