"""
Computations behind the interactive explorer tabs.

Each function takes plain arrays and parameters chosen in the UI and returns
the fields and statistics a tab displays, so the Streamlit layer only draws.
"""

import numpy as np
from scipy.ndimage import zoom

from activations import apply_activation
from field_ops import as_field, convolve, field_range, normalize, pool


def first_channel(image, channels_first=True):
    """
    Reduce an image to one 2D field: (H, W) is returned as is, otherwise
    channel 0 of (C, H, W), or of (H, W, C) when channels_first is False.
    """
    image = np.asarray(image, dtype=np.float64)
    if image.ndim == 3:
        return image[0] if channels_first else image[..., 0]
    return image


def explore_convolution(image, kernel, activation='none'):
    """Convolve, activate and normalize one image, recording value ranges at each stage."""
    field = as_field(first_channel(image))
    convolved = convolve(field, kernel)
    activated = apply_activation(convolved, activation)
    return {
        'original': field,
        'convolved': convolved,
        'activated': activated,
        'convolved_display': normalize(convolved),
        'activated_display': normalize(activated),
        'original_range': field_range(field),
        'convolved_range': field_range(convolved),
        'activated_range': field_range(activated),
    }


def explore_pooling(image, pool_size=2, mode='max'):
    field = as_field(first_channel(image))
    output = pool(field, pool_size, mode)
    in_cells = field.shape[0] * field.shape[1]
    out_cells = output.shape[0] * output.shape[1]
    return {
        'input': field,
        'output': output,
        'input_shape': field.shape,
        'output_shape': output.shape,
        'reduction': round((1 - out_cells / in_cells) * 100),
        'operations': out_cells * pool_size * pool_size,
    }


def flatten_field(field):
    return as_field(field).reshape(-1).copy()


def random_dense_layer(input_size, units, rng=None):
    rng = np.random.default_rng() if rng is None else rng
    weights = rng.uniform(-1.0, 1.0, size=(units, input_size))
    biases = rng.uniform(-0.05, 0.05, size=units)
    return weights, biases


def dense_param_count(input_size, units):
    return input_size * units + units


def dense_forward(vector, weights, biases, activation='relu'):
    vector = np.asarray(vector, dtype=np.float64).reshape(-1)
    weights = np.asarray(weights, dtype=np.float64)
    if weights.shape[1] != vector.size:
        raise ValueError(f"dense weights expect {weights.shape[1]} inputs, got {vector.size}")
    z = weights @ vector + np.asarray(biases, dtype=np.float64)
    return apply_activation(z.reshape(1, -1), activation).reshape(-1)


def dropout_mask(num_neurons, rate, rng=None):
    """Boolean mask of surviving neurons; each survives when its uniform draw exceeds rate."""
    if not 0.0 <= rate < 1.0:
        raise ValueError(f"dropout rate must be in [0, 1), got {rate}")
    rng = np.random.default_rng() if rng is None else rng
    return rng.random(num_neurons) > rate


def dropout_stats(mask):
    mask = np.asarray(mask, dtype=bool)
    active = int(mask.sum())
    return {'total': int(mask.size), 'active': active, 'dropped': int(mask.size) - active}


def prepare_input(pixels, input_shape, invert=False):
    """
    Turn a user-supplied picture into a network input of shape (C, H, W).

    pixels may be (H, W), (H, W, 2), (H, W, 3) or (H, W, 4). Integer pictures
    are scaled by 1/255 and a trailing alpha channel is dropped. The picture is
    resized bilinearly to the model's height and width, averaged to grey or
    repeated to RGB to match the channel count, and clipped to [0, 1].
    invert swaps dark and light, turning a dark-on-light drawing into
    MNIST-style light-on-dark strokes.
    """
    pixels = np.asarray(pixels)
    if pixels.ndim not in (2, 3) or pixels.size == 0:
        raise ValueError(f"expected an (H, W) or (H, W, C) picture, got shape {pixels.shape}")
    scale = 255.0 if np.issubdtype(pixels.dtype, np.integer) else 1.0
    pixels = pixels.astype(np.float64) / scale
    if pixels.ndim == 2:
        pixels = pixels[..., np.newaxis]
    if pixels.shape[-1] in (2, 4):
        pixels = pixels[..., :-1]

    channels, height, width = input_shape
    if channels == 1:
        pixels = pixels.mean(axis=-1, keepdims=True)
    elif pixels.shape[-1] != channels:
        pixels = np.repeat(pixels[..., :1], channels, axis=-1)

    factors = (height / pixels.shape[0], width / pixels.shape[1], 1)
    resized = np.clip(zoom(pixels, factors, order=1, grid_mode=True, mode='nearest'), 0.0, 1.0)
    if invert:
        resized = 1.0 - resized
    return np.moveaxis(resized, -1, 0).astype(np.float32)


def feature_map_detail(activation, index):
    """One channel of a (1, C, H, W) layer output, min-max scaled for display, with its raw statistics."""
    output = np.asarray(activation['output'])
    if output.ndim != 4:
        raise ValueError(f"{activation['layer_name']} outputs a flat vector, not feature maps")
    if not 0 <= index < output.shape[1]:
        raise IndexError(f"feature map {index} out of range for {output.shape[1]} maps")
    field = output[0, index].astype(np.float64)
    return {
        'map': normalize(field),
        'range': field_range(field),
        'mean': float(field.mean()),
        'active_fraction': float(np.mean(field > 0)),
    }


def neuron_grid(values):
    """Lay a flat activation vector out row by row on a near-square grid; unused trailing cells are NaN."""
    values = np.asarray(values, dtype=np.float64).reshape(-1)
    if values.size == 0:
        raise ValueError("no neurons to lay out")
    cols = int(np.ceil(np.sqrt(values.size)))
    rows = int(np.ceil(values.size / cols))
    grid = np.full(rows * cols, np.nan)
    grid[:values.size] = values
    return grid.reshape(rows, cols)


def inspect_neuron(activation, index):
    values = np.asarray(activation['output'], dtype=np.float64).reshape(-1)
    if not 0 <= index < values.size:
        raise IndexError(f"neuron {index} out of range for {values.size} neurons")
    value = float(values[index])
    return {
        'index': index,
        'value': value,
        'rank': int(np.sum(values > value)) + 1,
        'is_max': bool(value == values.max()),
    }
