#test_activations.py
import math
import warnings

import numpy as np
import pytest

from activations import ACTIVATIONS, UnknownActivation, activation_graph_points, activation_list, apply_activation
from field_ops import EmptyField


REFERENCE = {
    'none': lambda x: x,
    'relu': lambda x: max(0.0, x),
    'leakyRelu': lambda x: x if x >= 0 else 0.01 * x,
    'sigmoid': lambda x: 1 / (1 + math.exp(-x)),
    'tanh': math.tanh,
    'elu': lambda x: x if x >= 0 else math.exp(x) - 1,
    'softplus': lambda x: math.log(1 + math.exp(x)),
    'swish': lambda x: x / (1 + math.exp(-x)),
}


@pytest.fixture
def field():
    return np.array([[-3.0, -1.0, -0.25], [0.0, 0.5, 2.0]])


def test_all_required_activations_registered():
    assert set(ACTIVATIONS) == set(REFERENCE)


@pytest.mark.parametrize("name", sorted(REFERENCE))
def test_matches_scalar_formula(field, name):
    out = apply_activation(field, name)
    assert out.shape == field.shape
    expected = np.vectorize(REFERENCE[name])(field)
    np.testing.assert_allclose(out, expected, rtol=1e-12, atol=1e-15)


def test_relu_zeroes_negatives_and_keeps_positives(rng):
    field = rng.normal(size=(10, 10))
    out = apply_activation(field, 'relu')
    assert (out >= 0).all()
    assert (out[field < 0] == 0).all()
    np.testing.assert_array_equal(out[field >= 0], field[field >= 0])


def test_activation_returns_new_array(field):
    out = apply_activation(field, 'none')
    assert out is not field
    out[0, 0] = 99.0
    assert field[0, 0] == -3.0


def test_extreme_inputs_follow_ieee_without_warnings():
    field = np.array([[-1000.0, 1000.0]])
    with warnings.catch_warnings():
        warnings.simplefilter('error')
        sig = apply_activation(field, 'sigmoid')
        soft = apply_activation(field, 'softplus')
        swish = apply_activation(field, 'swish')
        elu = apply_activation(field, 'elu')
    np.testing.assert_array_equal(sig, [[0.0, 1.0]])
    np.testing.assert_array_equal(soft, [[0.0, np.inf]])
    assert swish[0, 1] == 1000.0 and swish[0, 0] == 0.0
    np.testing.assert_array_equal(elu, [[-1.0, 1000.0]])


def test_unknown_activation():
    with pytest.raises(UnknownActivation):
        apply_activation([[1.0]], 'gelu')
    with pytest.raises(ValueError):
        apply_activation([[1.0]], 'gelu')


def test_empty_field_rejected():
    with pytest.raises(EmptyField):
        apply_activation([[]], 'relu')


def test_graph_points_cover_range():
    xs, ys = activation_graph_points('sigmoid', num_points=50)
    assert xs[0] == -5 and xs[-1] == 5
    assert len(xs) == len(ys) == 51
    assert ys[25] == pytest.approx(0.5)


def test_activation_list_has_ids_and_no_callables():
    items = activation_list()
    assert [item['id'] for item in items] == list(ACTIVATIONS)
    assert all('fn' not in item and 'formula' in item for item in items)
