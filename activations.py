"""Element-wise activation functions and their display metadata."""

import numpy as np

from field_ops import as_field


class UnknownActivation(ValueError):
    pass


def _elu(x):
    # exp is only evaluated on the non-positive side
    return np.where(x >= 0, x, np.exp(np.minimum(x, 0.0)) - 1.0)


ACTIVATIONS = {
    'none': {
        'name': 'None (Linear)',
        'formula': 'f(x) = x',
        'description': 'No activation applied. Output equals input directly. Rarely used in hidden '
                       'layers as it cannot learn non-linear patterns.',
        'fn': lambda x: np.array(x, dtype=np.float64),
        'color': '#8b949e',
        'x_range': (-3, 3),
        'y_range': (-3, 3),
    },
    'relu': {
        'name': 'ReLU',
        'formula': 'f(x) = max(0, x)',
        'description': 'Rectified Linear Unit. Sets all negative values to zero while keeping positive '
                       'values unchanged. Cheap to compute and helps avoid vanishing gradients.',
        'fn': lambda x: np.maximum(x, 0.0),
        'color': '#3fb950',
        'x_range': (-3, 3),
        'y_range': (-0.5, 3),
    },
    'leakyRelu': {
        'name': 'Leaky ReLU',
        'formula': 'f(x) = max(0.01x, x)',
        'description': 'Keeps a small slope for negative values instead of zero, so neurons cannot get '
                       'stuck outputting zero ("dying ReLU").',
        'fn': lambda x: np.where(x >= 0, x, 0.01 * x),
        'color': '#56d364',
        'x_range': (-3, 3),
        'y_range': (-0.5, 3),
    },
    'sigmoid': {
        'name': 'Sigmoid',
        'formula': 'f(x) = 1 / (1 + e^(-x))',
        'description': 'Squashes values into the 0-1 range. Can cause vanishing gradients; often used in '
                       'the output layer for binary classification.',
        'fn': lambda x: 1.0 / (1.0 + np.exp(-x)),
        'color': '#667eea',
        'x_range': (-5, 5),
        'y_range': (-0.1, 1.1),
    },
    'tanh': {
        'name': 'Tanh',
        'formula': 'f(x) = (e^x - e^(-x)) / (e^x + e^(-x))',
        'description': 'Hyperbolic tangent. Squashes values into -1 to 1 and, unlike sigmoid, is '
                       'zero-centered.',
        'fn': np.tanh,
        'color': '#764ba2',
        'x_range': (-3, 3),
        'y_range': (-1.2, 1.2),
    },
    'elu': {
        'name': 'ELU',
        'formula': 'f(x) = x if x > 0, e^x - 1 if x <= 0',
        'description': 'Exponential Linear Unit. Like ReLU for positive values but smoothly approaches -1 '
                       'for negative values.',
        'fn': _elu,
        'color': '#f85149',
        'x_range': (-3, 3),
        'y_range': (-1.5, 3),
    },
    'softplus': {
        'name': 'Softplus',
        'formula': 'f(x) = ln(1 + e^x)',
        'description': 'Smooth approximation of ReLU. Always positive and differentiable everywhere.',
        'fn': lambda x: np.log(1.0 + np.exp(x)),
        'color': '#d29922',
        'x_range': (-3, 3),
        'y_range': (-0.1, 3.5),
    },
    'swish': {
        'name': 'Swish',
        'formula': 'f(x) = x * sigmoid(x)',
        'description': 'Self-gated activation. Smooth and non-monotonic; often outperforms ReLU in deep '
                       'networks.',
        'fn': lambda x: x / (1.0 + np.exp(-x)),
        'color': '#a371f7',
        'x_range': (-5, 5),
        'y_range': (-1, 5),
    },
}


def activation_fn(name):
    try:
        return ACTIVATIONS[name]['fn']
    except KeyError:
        raise UnknownActivation(f"unknown activation '{name}', expected one of {list(ACTIVATIONS)}") from None


def apply_activation(field, name):
    """Map every element of `field` through the named activation."""
    fn = activation_fn(name)
    field = as_field(field)
    # exp overflow saturates to inf/0 as IEEE prescribes
    with np.errstate(over='ignore'):
        return np.asarray(fn(field), dtype=np.float64)


def activation_graph_points(name, num_points=100):
    """Sample the activation curve over its display x range."""
    fn = activation_fn(name)
    x_min, x_max = ACTIVATIONS[name]['x_range']
    xs = np.linspace(x_min, x_max, num_points + 1)
    with np.errstate(over='ignore'):
        ys = fn(xs)
    return xs, np.asarray(ys, dtype=np.float64)


def activation_list():
    return [{'id': key, **{k: v for k, v in value.items() if k != 'fn'}}
            for key, value in ACTIVATIONS.items()]
