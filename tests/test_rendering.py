#test_rendering.py
import matplotlib.pyplot as plt
import numpy as np
import pytest
from matplotlib.figure import Figure

import rendering
from model_engine import compute_confusion_matrix, compute_metrics
from numpy_nn import Conv2D


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close('all')


def test_to_pixels_floors_and_clips():
    pixels = rendering.to_pixels([[0.0, 0.5, 1.0], [-0.3, 1.7, 0.999]])
    assert pixels.dtype == np.uint8
    np.testing.assert_array_equal(pixels, [[0, 127, 255], [0, 255, 254]])


def test_upscale_is_nearest_neighbour():
    pixels = np.array([[1, 2], [3, 4]], dtype=np.uint8)
    expected = np.repeat(np.repeat(pixels, 2, axis=0), 2, axis=1)
    np.testing.assert_array_equal(rendering.upscale(pixels, 4, 4), expected)


def test_upscale_keeps_channels():
    pixels = np.zeros((2, 2, 3), dtype=np.uint8)
    assert rendering.upscale(pixels, 6, 4).shape == (6, 4, 3)


def test_kernel_cell_color():
    assert rendering.kernel_cell_color(0.5) == 'rgba(102, 126, 234, 0.5)'
    assert rendering.kernel_cell_color(-4) == 'rgba(248, 81, 73, 1.0)'
    assert rendering.kernel_cell_color(0) == 'rgba(102, 126, 234, 0.0)'


def test_field_plots_return_figures(rng, pool_field):
    field = rng.random((8, 8))
    figures = [
        rendering.plot_field(field, 'field'),
        rendering.plot_kernel_matrix(np.eye(3) * 5),
        rendering.plot_activation_curve('swish'),
        rendering.plot_pooling(pool_field, pool_field[::2, ::2], 2),
        rendering.plot_flatten_dense(field, rng.random(4)),
        rendering.plot_dropout_network([4, 3, 2], [[True] * 4, [True, False, True], [False, True]]),
    ]
    assert all(isinstance(fig, Figure) for fig in figures)


def test_training_plots_return_figures(rng):
    history = {'loss': [1.0, 0.5], 'accuracy': [0.5, 0.8], 'val_loss': [1.1, 0.6], 'val_accuracy': [0.4, 0.7]}
    cm = compute_confusion_matrix(rng.integers(0, 3, 30), rng.integers(0, 3, 30), num_classes=3)
    conv = Conv2D(1, 3, rng=rng)
    figures = [
        rendering.plot_training_history(history),
        rendering.plot_training_history({'loss': [1.0], 'accuracy': [0.5], 'val_loss': [], 'val_accuracy': []}),
        rendering.plot_feature_maps({'output': rng.random((1, 3, 5, 5)), 'shape': (1, 3, 5, 5),
                                     'layer_name': 'conv2d_1'}),
        rendering.plot_feature_maps({'output': rng.random((1, 10)), 'shape': (1, 10), 'layer_name': 'dense_1'}),
        rendering.plot_kernels(conv, 'conv2d_1'),
        rendering.plot_confusion_matrix(cm, ['a', 'b', 'c']),
        rendering.plot_per_class_metrics(compute_metrics(cm)),
    ]
    assert all(isinstance(fig, Figure) for fig in figures)


def test_neuron_grid_plot_with_highlight():
    grid = np.full((3, 4), np.nan)
    grid.reshape(-1)[:10] = np.linspace(-1, 1, 10)
    fig = rendering.plot_neuron_grid(grid, 'dense_1', highlight=divmod(6, 4))
    assert isinstance(fig, Figure)
    assert len(fig.axes[0].patches) == 1
