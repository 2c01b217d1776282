#test_kernels.py
import numpy as np
import pytest

from field_ops import convolve
from kernels import (KERNEL_CATEGORIES, KERNELS, get_kernel, kernel_display_values, kernel_list,
                     kernels_by_category, normalize_kernel)


def test_presets_are_odd_squares_in_known_categories():
    for kernel_id, preset in KERNELS.items():
        kernel = get_kernel(kernel_id)
        assert kernel.ndim == 2 and kernel.shape[0] == kernel.shape[1], kernel_id
        assert kernel.shape[0] % 2 == 1, kernel_id
        assert preset['category'] in KERNEL_CATEGORIES, kernel_id


def test_blur_kernels_preserve_mean_brightness():
    for kernel_id in ('boxBlur', 'gaussianBlur', 'motionBlurHorizontal', 'motionBlurVertical'):
        assert get_kernel(kernel_id).sum() == pytest.approx(1.0), kernel_id


def test_get_kernel_returns_copy():
    kernel = get_kernel('identity')
    kernel[1, 1] = 42
    assert get_kernel('identity')[1, 1] == 1


def test_get_kernel_unknown():
    with pytest.raises(KeyError):
        get_kernel('nope')


def test_listing_helpers():
    assert [k['id'] for k in kernel_list()] == list(KERNELS)
    edges = kernels_by_category('edge')
    assert edges and all(k['category'] == 'edge' for k in edges)
    assert {k['id'] for k in kernels_by_category('basic')} == {'identity'}


def test_normalize_kernel_divides_by_abs_sum():
    normalized = normalize_kernel([[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]])
    assert np.abs(normalized).sum() == pytest.approx(1.0)
    assert normalized[1, 2] == pytest.approx(0.25)


def test_normalize_zero_kernel_is_unchanged():
    np.testing.assert_array_equal(normalize_kernel(np.zeros((3, 3))), np.zeros((3, 3)))


def test_display_clamp_does_not_touch_convolution():
    kernel = get_kernel('sharpenStrong')
    shown = kernel_display_values(kernel)
    assert shown.max() == 1.0 and shown.min() == -1.0
    assert kernel[1, 1] == 9
    out = convolve(np.ones((3, 3)), kernel)
    assert out[1, 1] == pytest.approx(1.0)
    assert out[0, 0] == pytest.approx(9 - 3)
