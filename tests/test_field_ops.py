#test_field_ops.py
import numpy as np
import pytest

from field_ops import (EmptyField, InvalidFieldShape, InvalidKernelShape, InvalidPoolSize, as_field, convolve,
                       field_range, normalize, pool)
from kernels import get_kernel


IDENTITY = [[0, 0, 0], [0, 1, 0], [0, 0, 0]]
SOBEL_X = [[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]]


def test_identity_kernel_reproduces_field(rng):
    for shape in [(1, 1), (3, 5), (28, 28), (32, 17)]:
        field = rng.normal(size=shape)
        out = convolve(field, IDENTITY)
        assert out.shape == field.shape
        assert np.array_equal(out, field), "identity kernel changed the field"


def test_convolve_zero_padding_on_single_pixel():
    box_blur = np.full((3, 3), 1 / 9)
    out = convolve([[5.0]], box_blur)
    assert out.shape == (1, 1)
    assert out[0, 0] == pytest.approx(5 / 9)


def test_sobel_cancels_on_constant_field():
    out = convolve(np.ones((3, 3)), SOBEL_X)
    assert out[1, 1] == 0.0
    # zero padding makes the borders respond
    assert out[1, 0] == 4.0
    assert out[1, 2] == -4.0


def test_convolve_matches_explicit_sum(rng):
    field = rng.random((6, 7))
    kernel = rng.normal(size=(5, 5))
    out = convolve(field, kernel)
    padded = np.pad(field, 2)
    expected = np.array([[np.sum(padded[y:y + 5, x:x + 5] * kernel) for x in range(7)] for y in range(6)])
    np.testing.assert_allclose(out, expected, rtol=1e-12, atol=1e-12)


def test_convolve_is_not_flipped():
    field = np.zeros((3, 3))
    field[1, 2] = 1.0
    kernel = np.zeros((3, 3))
    kernel[1, 2] = 1.0
    out = convolve(field, kernel)
    # the tap to the right of center reads the pixel to the right
    assert out[1, 1] == 1.0
    assert out[1, 2] == 0.0


def test_one_by_one_kernel_scales(rng):
    field = rng.random((4, 4))
    np.testing.assert_allclose(convolve(field, [[2.5]]), field * 2.5)


def test_convolve_output_is_unclamped():
    out = convolve(np.ones((3, 3)), get_kernel('sharpenStrong'))
    assert out.max() > 1.0


def test_convolve_does_not_mutate_input(rng):
    field = rng.random((5, 5))
    before = field.copy()
    convolve(field, get_kernel('laplacian'))
    assert np.array_equal(field, before)


@pytest.mark.parametrize("kernel", [
    [[1, 1], [1, 1]],
    [[1, 2, 3], [4, 5, 6]],
    np.ones((4, 4)),
    [],
    [1, 2, 3],
])
def test_convolve_rejects_bad_kernels(kernel):
    with pytest.raises(InvalidKernelShape):
        convolve(np.ones((4, 4)), kernel)


def test_operations_reject_empty_fields():
    for empty in ([], [[]], np.zeros((0, 3))):
        with pytest.raises(EmptyField):
            convolve(empty, IDENTITY)
        with pytest.raises(EmptyField):
            pool(empty, 2)
        with pytest.raises(EmptyField):
            normalize(empty)


def test_as_field_rejects_non_2d():
    with pytest.raises(InvalidFieldShape):
        as_field([1.0, 2.0])
    with pytest.raises(InvalidFieldShape):
        as_field(np.ones((2, 2, 2)))
    with pytest.raises(InvalidFieldShape):
        as_field([[1, 2], [3]])


def test_max_pool(pool_field):
    np.testing.assert_array_equal(pool(pool_field, 2, 'max'), [[4, 8], [12, 16]])


def test_average_pool(pool_field):
    np.testing.assert_array_equal(pool(pool_field, 2, 'average'), [[2.5, 6.5], [10.5, 14.5]])
    np.testing.assert_array_equal(pool(pool_field, 2, 'avg'), [[2.5, 6.5], [10.5, 14.5]])


def test_pool_drops_partial_windows(rng):
    field = rng.random((5, 5))
    out = pool(field, 2)
    assert out.shape == (2, 2)
    assert out[1, 1] == field[2:4, 2:4].max()
    assert pool(rng.random((28, 28)), 3).shape == (9, 9)
    assert pool(rng.random((7, 10)), 3, 'average').shape == (2, 3)


def test_pool_size_equal_to_smaller_side_gives_single_row():
    field = np.arange(12, dtype=np.float64).reshape(3, 4)
    np.testing.assert_array_equal(pool(field, 3), [[10.0]])


@pytest.mark.parametrize("size", [0, -1, 5, 2.5])
def test_pool_rejects_bad_sizes(pool_field, size):
    with pytest.raises(InvalidPoolSize):
        pool(pool_field, size)


def test_pool_rejects_size_beyond_one_dimension():
    with pytest.raises(InvalidPoolSize):
        pool(np.ones((2, 8)), 3)


def test_pool_rejects_unknown_mode(pool_field):
    with pytest.raises(ValueError):
        pool(pool_field, 2, 'median')


def test_normalize_range(rng):
    field = rng.normal(size=(6, 6)) * 10
    out = normalize(field)
    assert out.min() == 0.0
    assert out.max() == 1.0


def test_normalize_is_idempotent(rng):
    once = normalize(rng.normal(size=(8, 5)))
    np.testing.assert_array_equal(normalize(once), once)


def test_normalize_constant_field_is_zero():
    out = normalize(np.full((4, 3), 7.5))
    np.testing.assert_array_equal(out, np.zeros((4, 3)))


def test_normalize_does_not_mutate_input():
    field = np.array([[1.0, 3.0], [5.0, 9.0]])
    out = normalize(field)
    np.testing.assert_array_equal(field, [[1.0, 3.0], [5.0, 9.0]])
    np.testing.assert_allclose(out, [[0.0, 0.25], [0.5, 1.0]])


def test_field_range():
    assert field_range([[1, -2], [3, 0.5]]) == (-2.0, 3.0)
