import numpy as np
import matplotlib.pyplot as plt
from matplotlib.patches import Circle, Rectangle
from scipy.ndimage import zoom

from activations import ACTIVATIONS, activation_graph_points
from constants import CHART_COLORS
from kernels import kernel_display_values


def to_pixels(field):
    """Map a [0, 1] field to uint8 intensities with floor(value * 255)."""
    field = np.clip(np.asarray(field, dtype=np.float64), 0.0, 1.0)
    return np.floor(field * 255).astype(np.uint8)


def upscale(pixels, height, width):
    """Nearest-neighbour resize of a (H, W) or (H, W, channels) pixel grid to (height, width)."""
    pixels = np.asarray(pixels)
    factors = (height / pixels.shape[0], width / pixels.shape[1]) + (1,) * (pixels.ndim - 2)
    return zoom(pixels, factors, order=0, grid_mode=True, mode='nearest')


def kernel_cell_color(value):
    clamped = float(np.clip(value, -1.0, 1.0))
    if clamped >= 0:
        return f'rgba(102, 126, 234, {abs(clamped)})'
    return f'rgba(248, 81, 73, {abs(clamped)})'


def plot_field(field, title=None, cmap='gray', size=3, vmin=0.0, vmax=1.0):
    fig, ax = plt.subplots(figsize=(size, size))
    ax.imshow(field, cmap=cmap, vmin=vmin, vmax=vmax, interpolation='nearest')
    ax.axis('off')
    if title:
        ax.set_title(title, fontsize=10)
    plt.tight_layout()
    return fig


def plot_kernel_matrix(kernel):
    kernel = np.asarray(kernel, dtype=np.float64)
    shown = kernel_display_values(kernel)
    fig, ax = plt.subplots(figsize=(3, 3))
    ax.imshow(shown, cmap='coolwarm_r', vmin=-1, vmax=1)
    for i in range(kernel.shape[0]):
        for j in range(kernel.shape[1]):
            ax.text(j, i, f'{kernel[i, j]:.2f}', ha='center', va='center', fontsize=9)
    ax.set_xticks([])
    ax.set_yticks([])
    ax.set_title('Kernel', fontsize=10)
    plt.tight_layout()
    return fig


def plot_activation_curve(name):
    xs, ys = activation_graph_points(name)
    info = ACTIVATIONS[name]
    fig, ax = plt.subplots(figsize=(4, 3))
    ax.axhline(0, color=CHART_COLORS['text'], linewidth=0.8)
    ax.axvline(0, color=CHART_COLORS['text'], linewidth=0.8)
    ax.plot(xs, ys, color=info['color'], linewidth=2)
    ax.set_xlim(*info['x_range'])
    ax.set_ylim(*info['y_range'])
    ax.set_title(f"{info['name']}: {info['formula']}", fontsize=9)
    ax.grid(alpha=0.3)
    plt.tight_layout()
    return fig


def plot_pooling(input_field, output_field, pool_size):
    fig, axes = plt.subplots(1, 2, figsize=(8, 4))
    axes[0].imshow(input_field, cmap='gray', interpolation='nearest')
    out_h, out_w = output_field.shape
    # outline the windows that feed the output
    for y in range(out_h):
        for x in range(out_w):
            axes[0].add_patch(Rectangle((x * pool_size - 0.5, y * pool_size - 0.5), pool_size, pool_size,
                                        fill=False, edgecolor='#3fb950', linewidth=0.5))
    axes[0].set_title(f'Input {input_field.shape[0]}x{input_field.shape[1]}')
    axes[1].imshow(output_field, cmap='gray', interpolation='nearest')
    axes[1].set_title(f'Output {out_h}x{out_w}')
    for ax in axes:
        ax.axis('off')
    plt.tight_layout()
    return fig


def plot_training_history(history):
    fig, axes = plt.subplots(1, 2, figsize=(10, 3.5))
    epochs = np.arange(1, len(history['loss']) + 1)
    axes[0].plot(epochs, history['loss'], color=CHART_COLORS['loss'], marker='o', label='train')
    axes[1].plot(epochs, history['accuracy'], color=CHART_COLORS['accuracy'], marker='o', label='train')
    if history.get('val_loss'):
        axes[0].plot(epochs, history['val_loss'], color=CHART_COLORS['loss'], linestyle='--', label='validation')
        axes[1].plot(epochs, history['val_accuracy'], color=CHART_COLORS['accuracy'], linestyle='--', label='validation')
    axes[0].set_title('Loss')
    axes[1].set_title('Accuracy')
    for ax in axes:
        ax.set_xlabel('Epoch')
        ax.grid(alpha=0.3)
        ax.legend()
    plt.tight_layout()
    return fig


def plot_feature_maps(activation, max_channels=8):
    """Feature maps of one layer output (1, C, H, W), or a strip for a flat (1, N) vector."""
    output = activation['output'][0]
    title = f"{activation['layer_name']} {tuple(activation['shape'][1:])}"
    if output.ndim == 1:
        fig, ax = plt.subplots(figsize=(8, 1))
        ax.imshow(output[np.newaxis, :], cmap='viridis', aspect='auto')
        ax.set_yticks([])
        ax.set_title(title, fontsize=9)
        plt.tight_layout()
        return fig

    n = min(max_channels, output.shape[0])
    fig, axes = plt.subplots(1, n, figsize=(1.5 * n, 1.8))
    axes = np.atleast_1d(axes)
    for ch in range(n):
        axes[ch].imshow(output[ch], cmap='viridis', interpolation='nearest')
        axes[ch].axis('off')
        axes[ch].set_title(f'ch {ch}', fontsize=8)
    plt.suptitle(title, fontsize=9)
    plt.tight_layout()
    return fig


def plot_kernels(conv_layer, title):
    kernels = conv_layer.weights
    n_filters = min(8, kernels.shape[0])

    fig, axes = plt.subplots(1, n_filters, figsize=(12, 2))
    axes = [axes] if n_filters == 1 else axes

    for i in range(n_filters):
        axes[i].imshow(kernels[i, 0], cmap='gray')
        axes[i].axis('off')
        axes[i].set_title(f'F{i}', fontsize=8)

    plt.suptitle(title, fontsize=10)
    plt.tight_layout()
    return fig


def plot_confusion_matrix(cm, labels=None):
    n = cm.shape[0]
    fig, ax = plt.subplots(figsize=(7, 5.5))
    im = ax.imshow(cm, cmap='Blues')

    ax.set_xticks(np.arange(n))
    ax.set_yticks(np.arange(n))
    if labels is not None:
        ax.set_xticklabels(labels, rotation=45, ha='right')
        ax.set_yticklabels(labels)
    ax.set_xlabel('Predicted Label')
    ax.set_ylabel('True Label')
    ax.set_title('Confusion Matrix')

    for i in range(n):
        for j in range(n):
            ax.text(j, i, cm[i, j], ha="center", va="center",
                    color="white" if cm[i, j] > cm.max() / 2 else "black", fontsize=8)

    plt.colorbar(im, ax=ax)
    plt.tight_layout()
    return fig


def plot_per_class_metrics(metrics):
    fig, axes = plt.subplots(1, 3, figsize=(15, 4))
    classes = np.arange(len(metrics['precision']))
    for ax, key, color in zip(axes, ('precision', 'recall', 'f1'), ('steelblue', 'forestgreen', 'darkorange')):
        macro = metrics[f'macro_{key}']
        ax.bar(classes, metrics[key], color=color, alpha=0.8)
        ax.axhline(macro, color='red', linestyle='--', linewidth=2, label=f"Macro: {macro:.3f}")
        ax.set_xlabel('Class')
        ax.set_title(f'Per-Class {key.capitalize()}')
        ax.set_ylim([0, 1.05])
        ax.legend()
        ax.grid(axis='y', alpha=0.3)
    plt.tight_layout()
    return fig


def plot_flatten_dense(field, outputs):
    fig, axes = plt.subplots(1, 3, figsize=(12, 3), gridspec_kw={'width_ratios': [1, 3, 1]})
    axes[0].imshow(field, cmap='gray', vmin=0, vmax=1, interpolation='nearest')
    axes[0].set_title(f'Feature map {field.shape[0]}x{field.shape[1]}')
    axes[1].imshow(field.reshape(1, -1), cmap='gray', vmin=0, vmax=1, aspect='auto')
    axes[1].set_title(f'Flattened vector ({field.size})')
    axes[1].set_yticks([])
    axes[2].barh(np.arange(len(outputs)), outputs, color='#f85149')
    axes[2].invert_yaxis()
    axes[2].set_title('Dense outputs')
    axes[0].axis('off')
    plt.tight_layout()
    return fig


def plot_dropout_network(layer_sizes, masks):
    """Fully connected layers drawn as circles; neurons with a False mask entry are greyed out."""
    fig, ax = plt.subplots(figsize=(8, 4))
    ax.axis('off')
    tallest = max(layer_sizes)
    positions = []
    for li, size in enumerate(layer_sizes):
        ys = np.linspace(0, tallest, size + 2)[1:-1]
        positions.append([(li * 3.0, y) for y in ys])
    for li in range(len(positions) - 1):
        for i, (x0, y0) in enumerate(positions[li]):
            for j, (x1, y1) in enumerate(positions[li + 1]):
                alive = masks[li][i] and masks[li + 1][j]
                ax.plot([x0, x1], [y0, y1], color='#667eea' if alive else '#30363d',
                        alpha=0.5 if alive else 0.15, linewidth=0.8)
    for li, layer in enumerate(positions):
        for i, (x, y) in enumerate(layer):
            alive = masks[li][i]
            ax.add_patch(Circle((x, y), 0.35, facecolor='#3fb950' if alive else '#8b949e',
                                alpha=1.0 if alive else 0.3, edgecolor='white'))
    ax.set_xlim(-1, 3.0 * (len(layer_sizes) - 1) + 1)
    ax.set_ylim(-0.5, tallest + 0.5)
    ax.set_aspect('equal')
    plt.tight_layout()
    return fig


def plot_neuron_grid(grid, title=None, highlight=None):
    """Heat map of a neuron grid (NaN cells left blank); highlight=(row, col) outlines one neuron."""
    fig, ax = plt.subplots(figsize=(4, 4))
    im = ax.imshow(np.ma.masked_invalid(grid), cmap='coolwarm', interpolation='nearest')
    if highlight is not None:
        row, col = highlight
        ax.add_patch(Rectangle((col - 0.5, row - 0.5), 1, 1, fill=False, edgecolor='black', linewidth=2))
    ax.set_xticks([])
    ax.set_yticks([])
    if title:
        ax.set_title(title, fontsize=9)
    plt.colorbar(im, ax=ax, fraction=0.046)
    plt.tight_layout()
    return fig
