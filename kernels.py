"""Predefined convolution kernels with explanations, grouped by category."""

import numpy as np


KERNEL_CATEGORIES = {
    'basic': 'Basic',
    'edge': 'Edge Detection',
    'sharpen': 'Sharpening',
    'blur': 'Blur/Smooth',
    'effect': 'Effects',
}

KERNELS = {
    'identity': {
        'name': 'Identity',
        'description': 'Returns the original image unchanged. Useful as a baseline comparison.',
        'category': 'basic',
        'kernel': [[0, 0, 0],
                   [0, 1, 0],
                   [0, 0, 0]],
    },
    'sobelX': {
        'name': 'Sobel X (Vertical Edges)',
        'description': 'Gradient in the X direction. Bright areas show where intensity changes from left to right.',
        'category': 'edge',
        'kernel': [[-1, 0, 1],
                   [-2, 0, 2],
                   [-1, 0, 1]],
    },
    'sobelY': {
        'name': 'Sobel Y (Horizontal Edges)',
        'description': 'Gradient in the Y direction. Bright areas show where intensity changes from top to bottom.',
        'category': 'edge',
        'kernel': [[-1, -2, -1],
                   [0, 0, 0],
                   [1, 2, 1]],
    },
    'laplacian': {
        'name': 'Laplacian',
        'description': 'Edges in all directions at once. Highlights regions of rapid intensity change.',
        'category': 'edge',
        'kernel': [[0, 1, 0],
                   [1, -4, 1],
                   [0, 1, 0]],
    },
    'laplacianDiagonal': {
        'name': 'Laplacian (with Diagonals)',
        'description': 'Laplacian that also weighs diagonal neighbours. More sensitive to edges at all angles.',
        'category': 'edge',
        'kernel': [[1, 1, 1],
                   [1, -8, 1],
                   [1, 1, 1]],
    },
    'prewittX': {
        'name': 'Prewitt X',
        'description': 'Like Sobel X but with equal weights.',
        'category': 'edge',
        'kernel': [[-1, 0, 1],
                   [-1, 0, 1],
                   [-1, 0, 1]],
    },
    'prewittY': {
        'name': 'Prewitt Y',
        'description': 'Like Sobel Y but with equal weights.',
        'category': 'edge',
        'kernel': [[-1, -1, -1],
                   [0, 0, 0],
                   [1, 1, 1]],
    },
    'sharpen': {
        'name': 'Sharpen',
        'description': 'Amplifies high-frequency components so edges and fine details look crisper.',
        'category': 'sharpen',
        'kernel': [[0, -1, 0],
                   [-1, 5, -1],
                   [0, -1, 0]],
    },
    'sharpenStrong': {
        'name': 'Sharpen (Strong)',
        'description': 'Aggressive sharpening. Can create halo effects around edges.',
        'category': 'sharpen',
        'kernel': [[-1, -1, -1],
                   [-1, 9, -1],
                   [-1, -1, -1]],
    },
    'boxBlur': {
        'name': 'Box Blur',
        'description': 'Replaces each pixel with the mean of its 3x3 neighbourhood.',
        'category': 'blur',
        'kernel': [[1 / 9, 1 / 9, 1 / 9],
                   [1 / 9, 1 / 9, 1 / 9],
                   [1 / 9, 1 / 9, 1 / 9]],
    },
    'gaussianBlur': {
        'name': 'Gaussian Blur',
        'description': 'Weighted average giving more importance to the center pixel. Natural, smooth blur.',
        'category': 'blur',
        'kernel': [[1 / 16, 2 / 16, 1 / 16],
                   [2 / 16, 4 / 16, 2 / 16],
                   [1 / 16, 2 / 16, 1 / 16]],
    },
    'emboss': {
        'name': 'Emboss',
        'description': 'Raised 3D look: edges highlighted on one side and shadowed on the other.',
        'category': 'effect',
        'kernel': [[-2, -1, 0],
                   [-1, 1, 1],
                   [0, 1, 2]],
    },
    'embossTopLeft': {
        'name': 'Emboss (Top-Left)',
        'description': 'Emboss with the light source in the top-left corner.',
        'category': 'effect',
        'kernel': [[2, 1, 0],
                   [1, 1, -1],
                   [0, -1, -2]],
    },
    'ridge': {
        'name': 'Ridge Detection',
        'description': 'Highlights ridge-like structures such as thin lines.',
        'category': 'edge',
        'kernel': [[-1, -1, -1],
                   [-1, 8, -1],
                   [-1, -1, -1]],
    },
    'outline': {
        'name': 'Outline',
        'description': 'Keeps object outlines and removes flat interiors.',
        'category': 'edge',
        'kernel': [[-1, -1, -1],
                   [-1, 8, -1],
                   [-1, -1, -1]],
    },
    'motionBlurHorizontal': {
        'name': 'Motion Blur (Horizontal)',
        'description': 'Simulates horizontal camera motion.',
        'category': 'blur',
        'kernel': [[0, 0, 0],
                   [1 / 3, 1 / 3, 1 / 3],
                   [0, 0, 0]],
    },
    'motionBlurVertical': {
        'name': 'Motion Blur (Vertical)',
        'description': 'Simulates vertical camera motion.',
        'category': 'blur',
        'kernel': [[0, 1 / 3, 0],
                   [0, 1 / 3, 0],
                   [0, 1 / 3, 0]],
    },
}


def get_kernel(kernel_id):
    if kernel_id not in KERNELS:
        raise KeyError(f"unknown kernel '{kernel_id}'")
    return np.array(KERNELS[kernel_id]['kernel'], dtype=np.float64)


def kernel_list():
    return [{'id': key, **value} for key, value in KERNELS.items()]


def kernels_by_category(category):
    return [{'id': key, **value} for key, value in KERNELS.items() if value['category'] == category]


def normalize_kernel(kernel):
    """Divide the weights by the sum of their absolute values."""
    kernel = np.array(kernel, dtype=np.float64)
    total = np.abs(kernel).sum()
    if total == 0:
        total = 1.0
    return kernel / total


def kernel_display_values(kernel):
    # display colouring only; convolution itself never clamps
    return np.clip(np.asarray(kernel, dtype=np.float64), -1.0, 1.0)
