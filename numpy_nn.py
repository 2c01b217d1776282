import numpy as np
from numpy.lib.stride_tricks import as_strided

from constants import CONV2D, MAXPOOL, FLATTEN, DENSE, DROPOUT, LAYER_DEFAULTS, NETWORK_ACTIVATIONS


def _pad_input(x, padding):
    """Zero-pad the two spatial axes of an (N, C, H, W) batch."""
    if padding == 0:
        return x
    return np.pad(x, ((0, 0), (0, 0), (padding, padding), (padding, padding)), mode='constant')


def _im2col(x, kernel, stride, padding):
    """
    Unfold every kernel-sized patch of x into one row so a convolution becomes
    a single matmul. Rows are ordered (n, out_y, out_x); columns (c, ky, kx).
    Returns the columns, the padded input and the output height and width.
    """
    x_padded = _pad_input(x, padding)
    N, C, H_p, W_p = x_padded.shape
    out_h = (H_p - kernel) // stride + 1
    out_w = (W_p - kernel) // stride + 1
    shape = (N, C, out_h, out_w, kernel, kernel)
    strides = (
        x_padded.strides[0],
        x_padded.strides[1],
        x_padded.strides[2] * stride,
        x_padded.strides[3] * stride,
        x_padded.strides[2],
        x_padded.strides[3],
    )
    windows = as_strided(x_padded, shape=shape, strides=strides, writeable=False)
    cols = windows.transpose(0, 2, 3, 1, 4, 5).reshape(N * out_h * out_w, -1)
    return cols, x_padded, out_h, out_w


def _col2im(cols, x_shape, kernel, stride, padding):
    """Inverse of _im2col for gradients: overlapping patches are summed back into an (N, C, H, W) array."""
    N, C, H, W = x_shape
    H_p = H + 2 * padding
    W_p = W + 2 * padding
    out_h = (H_p - kernel) // stride + 1
    out_w = (W_p - kernel) // stride + 1
    cols_reshaped = cols.reshape(N, out_h, out_w, C, kernel, kernel).transpose(0, 3, 4, 5, 1, 2)
    x_padded = np.zeros((N, C, H_p, W_p), dtype=cols.dtype)
    for i in range(kernel):
        for j in range(kernel):
            x_padded[:, :, i:i + out_h * stride:stride, j:j + out_w * stride:stride] += cols_reshaped[:, :, i, j]
    if padding == 0:
        return x_padded
    return x_padded[:, :, padding:-padding, padding:-padding]


def _pool_windows(x, pool, stride):
    """Read-only (N, C, out_h, out_w, pool, pool) view of the pooling windows; nothing is copied."""
    N, C, H, W = x.shape
    out_h = (H - pool) // stride + 1
    out_w = (W - pool) // stride + 1
    shape = (N, C, out_h, out_w, pool, pool)
    strides = (
        x.strides[0],
        x.strides[1],
        x.strides[2] * stride,
        x.strides[3] * stride,
        x.strides[2],
        x.strides[3],
    )
    windows = as_strided(x, shape=shape, strides=strides, writeable=False)
    return windows, out_h, out_w


class ReLU:
    """max(0, x); the cached input masks the gradient."""

    def __init__(self):
        self.cache = None

    def forward(self, x):
        x = x.astype(np.float32, copy=False)
        self.cache = x
        return np.maximum(x, 0)

    def backward(self, dout):
        out = dout * (self.cache > 0)
        self.cache = None
        return out


class Sigmoid:
    def __init__(self):
        self.cache = None

    def forward(self, x):
        x = x.astype(np.float32, copy=False)
        with np.errstate(over='ignore'):
            out = 1.0 / (1.0 + np.exp(-x))
        self.cache = out
        return out

    def backward(self, dout):
        out = self.cache
        self.cache = None
        return dout * out * (1.0 - out)


class Tanh:
    def __init__(self):
        self.cache = None

    def forward(self, x):
        out = np.tanh(x.astype(np.float32, copy=False))
        self.cache = out
        return out

    def backward(self, dout):
        out = self.cache
        self.cache = None
        return dout * (1.0 - out * out)


def make_activation(name):
    """Activation layer for a layer config; None for linear."""
    if name in (None, 'linear', 'none'):
        return None
    if name == 'relu':
        return ReLU()
    if name == 'sigmoid':
        return Sigmoid()
    if name == 'tanh':
        return Tanh()
    raise ValueError(f"unsupported layer activation '{name}', expected one of {NETWORK_ACTIVATIONS}")


class Conv2D:
    def __init__(self, in_channels, out_channels, kernel_size=3, stride=1, padding=1, activation=None, rng=None):
        rng = np.random.default_rng() if rng is None else rng
        self.in_channels = in_channels
        self.out_channels = out_channels
        self.kernel_size = kernel_size
        self.stride = stride
        self.padding = padding
        self.activation = make_activation(activation)

        scale = np.sqrt(2.0 / (in_channels * kernel_size * kernel_size))
        self.weights = (rng.standard_normal((out_channels, in_channels, kernel_size, kernel_size)) * scale).astype(np.float32)
        self.bias = np.zeros(out_channels, dtype=np.float32)
        self.cache = None
        self.dW = None
        self.db = None

    def forward(self, x):
        x = x.astype(np.float32, copy=False)
        cols, x_padded, out_h, out_w = _im2col(x, self.kernel_size, self.stride, self.padding)
        cols = np.ascontiguousarray(cols, dtype=np.float32)
        W_col = self.weights.reshape(self.out_channels, -1)
        out = (cols @ W_col.T).astype(np.float32, copy=False)
        out = out.reshape(x.shape[0], out_h, out_w, self.out_channels).transpose(0, 3, 1, 2)
        out += self.bias.reshape(1, -1, 1, 1)
        self.cache = {
            'input_shape': x.shape,
            'cols': cols,
            'out_h': out_h,
            'out_w': out_w
        }
        if self.activation is not None:
            out = self.activation.forward(out)
        return out

    def backward(self, dout):
        if self.activation is not None:
            dout = self.activation.backward(dout)
        cache = self.cache
        cols = cache['cols']
        dout_reshaped = dout.transpose(1, 0, 2, 3).reshape(self.out_channels, -1)
        self.db = dout_reshaped.sum(axis=1).astype(np.float32, copy=False)
        self.dW = (dout_reshaped @ cols).reshape(self.weights.shape).astype(np.float32, copy=False)
        W_col = self.weights.reshape(self.out_channels, -1)
        dcols = dout_reshaped.T @ W_col
        dx = _col2im(dcols, cache['input_shape'], self.kernel_size, self.stride, self.padding)
        self.cache = None
        return dx.astype(np.float32, copy=False)


class MaxPool:
    """
    Max pooling over pool_size windows. The argmax of each window is cached so
    backward can route every output gradient to the one input that won.
    """

    def __init__(self, pool_size=2, stride=2):
        self.pool_size = pool_size
        self.stride = stride
        self.cache = None

    def forward(self, x):
        windows, out_h, out_w = _pool_windows(x, self.pool_size, self.stride)
        flat = windows.reshape(x.shape[0], x.shape[1], out_h, out_w, -1)
        out = flat.max(axis=-1)
        max_idx = flat.argmax(axis=-1).astype(np.int32)
        self.cache = {
            'input_shape': x.shape,
            'out_h': out_h,
            'out_w': out_w,
            'max_idx': max_idx
        }
        return out

    def backward(self, dout):
        cache = self.cache
        input_shape = cache['input_shape']
        N, C, _, _ = input_shape
        out_h = cache['out_h']
        out_w = cache['out_w']
        max_idx = cache['max_idx'].reshape(-1)
        dx = np.zeros(input_shape, dtype=dout.dtype)
        pool = self.pool_size
        stride = self.stride
        n_idx = np.repeat(np.arange(N), C * out_h * out_w)
        c_idx = np.tile(np.repeat(np.arange(C), out_h * out_w), N)
        h_idx = np.tile(np.repeat(np.arange(out_h), out_w), N * C)
        w_idx = np.tile(np.arange(out_w), N * C * out_h)
        h_offsets = max_idx // pool
        w_offsets = max_idx % pool
        h_final = h_idx * stride + h_offsets
        w_final = w_idx * stride + w_offsets
        np.add.at(dx, (n_idx, c_idx, h_final, w_final), dout.reshape(-1))
        self.cache = None
        return dx


class Flatten:
    """(N, C, H, W) feature maps to (N, C*H*W) vectors for the dense layers."""

    def __init__(self):
        self.cache = None

    def forward(self, x):
        # (batch, channels, h, w) -> (batch, channels*h*w)
        self.cache = x.shape
        return x.reshape(x.shape[0], -1).astype(np.float32, copy=False)

    def backward(self, dout):
        out = dout.reshape(self.cache)
        self.cache = None
        return out


class Dense:
    def __init__(self, in_features, out_features, activation=None, rng=None):
        rng = np.random.default_rng() if rng is None else rng
        self.in_features = in_features
        self.out_features = out_features
        self.activation = make_activation(activation)

        scale = np.sqrt(2.0 / in_features)
        self.weights = (rng.standard_normal((in_features, out_features)) * scale).astype(np.float32)
        self.bias = np.zeros(out_features, dtype=np.float32)
        self.cache = None
        self.dW = None
        self.db = None

    def forward(self, x):
        x = x.astype(np.float32, copy=False)
        self.cache = x
        out = x @ self.weights + self.bias
        if self.activation is not None:
            out = self.activation.forward(out)
        return out

    def backward(self, dout):
        if self.activation is not None:
            dout = self.activation.backward(dout)
        x = self.cache
        self.dW = (x.T @ dout).astype(np.float32, copy=False)
        self.db = np.sum(dout, axis=0).astype(np.float32, copy=False)
        out = (dout @ self.weights.T).astype(np.float32, copy=False)
        self.cache = None
        return out


class Dropout:
    """Inverted dropout: active only while training, identity at inference."""

    def __init__(self, rate=0.25, rng=None):
        if not 0.0 <= rate < 1.0:
            raise ValueError(f"dropout rate must be in [0, 1), got {rate}")
        self.rate = rate
        self.rng = np.random.default_rng() if rng is None else rng
        self.cache = None

    def forward(self, x, training=False):
        if not training or self.rate == 0.0:
            self.cache = None
            return x
        keep = (self.rng.random(x.shape) >= self.rate).astype(np.float32) / (1.0 - self.rate)
        self.cache = keep
        return x * keep

    def backward(self, dout):
        keep = self.cache
        self.cache = None
        if keep is None:
            return dout
        return dout * keep


def softmax(logits):
    """Row-wise softmax; the row max is subtracted first so exp cannot overflow."""
    shifted = logits - np.max(logits, axis=1, keepdims=True)
    exp_logits = np.exp(shifted)
    return exp_logits / np.sum(exp_logits, axis=1, keepdims=True)


class SoftmaxCrossEntropy:
    """
    Mean cross-entropy of integer labels under softmax(logits). backward
    returns d(loss)/d(logits), which is (probs - one_hot) / N.
    """

    def __init__(self):
        self.cache = None

    def forward(self, logits, labels):
        # numerically stable softmax
        logits = logits.astype(np.float32, copy=False)
        probs = softmax(logits)

        N = logits.shape[0]
        loss = -np.mean(np.log(probs[np.arange(N), labels] + 1e-8))

        self.cache = (probs.astype(np.float32, copy=False), labels)
        return float(loss)

    def backward(self):
        probs, labels = self.cache
        N = probs.shape[0]

        dlogits = probs.copy()
        dlogits[np.arange(N), labels] -= 1
        dlogits /= N

        return dlogits.astype(np.float32, copy=False)


class SGD:
    """Plain gradient descent on every layer that has weights."""

    def __init__(self, learning_rate=0.01):
        self.lr = learning_rate

    def step(self, layers):
        for layer in layers:
            if hasattr(layer, 'weights') and layer.dW is not None:
                layer.weights -= self.lr * layer.dW
                layer.bias -= self.lr * layer.db


class Adam:
    def __init__(self, learning_rate=0.001, beta1=0.9, beta2=0.999, eps=1e-8):
        self.lr = learning_rate
        self.beta1 = beta1
        self.beta2 = beta2
        self.eps = eps
        self.t = 0
        self.state = {}

    def _update(self, key, param, grad):
        st = self.state.setdefault(key, {'m': np.zeros_like(param), 'v': np.zeros_like(param)})
        st['m'] = self.beta1 * st['m'] + (1 - self.beta1) * grad
        st['v'] = self.beta2 * st['v'] + (1 - self.beta2) * (grad * grad)
        m_hat = st['m'] / (1 - self.beta1 ** self.t)
        v_hat = st['v'] / (1 - self.beta2 ** self.t)
        param -= (self.lr * m_hat / (np.sqrt(v_hat) + self.eps)).astype(param.dtype, copy=False)

    def step(self, layers):
        self.t += 1
        for i, layer in enumerate(layers):
            if hasattr(layer, 'weights') and layer.dW is not None:
                self._update((i, 'weights'), layer.weights, layer.dW)
                self._update((i, 'bias'), layer.bias, layer.db)


class Sequential:
    def __init__(self, layers, names=None, output_shapes=None):
        self.layers = list(layers)
        self.names = list(names) if names is not None else [
            f'{type(layer).__name__.lower()}_{i}' for i, layer in enumerate(self.layers)]
        self.output_shapes = list(output_shapes) if output_shapes is not None else [None] * len(self.layers)
        self.loss_fn = SoftmaxCrossEntropy()

    def forward(self, x, return_activations=False, training=False):
        activations = [] if return_activations else None
        for layer in self.layers:
            if isinstance(layer, Dropout):
                x = layer.forward(x, training=training)
            else:
                x = layer.forward(x)
            if return_activations:
                activations.append(x)
        if return_activations:
            return x, activations
        return x

    def backward(self, dout):
        for layer in reversed(self.layers):
            dout = layer.backward(dout)
        return dout

    def get_conv_layers(self):
        return [layer for layer in self.layers if isinstance(layer, Conv2D)]

    def get_all_layers(self):
        return self.layers

    def predict(self, x):
        return np.argmax(self.forward(x.astype(np.float32, copy=False)), axis=1)

    def predict_proba(self, x):
        return softmax(self.forward(x.astype(np.float32, copy=False)))

    def get_activations(self, x, layer_types=(Conv2D, MaxPool, Flatten, Dense)):
        """Outputs of the visualizable layers for an inference pass over x."""
        _, outputs = self.forward(x.astype(np.float32, copy=False), return_activations=True)
        return [
            {
                'layer_index': i,
                'layer_name': self.names[i],
                'layer_type': type(layer).__name__,
                'output': outputs[i],
                'shape': outputs[i].shape,
            }
            for i, layer in enumerate(self.layers) if isinstance(layer, layer_types)
        ]

    def summary(self):
        rows = []
        total = 0
        for layer, name, shape in zip(self.layers, self.names, self.output_shapes):
            params = param_count(layer)
            total += params
            rows.append({'name': name, 'type': type(layer).__name__, 'output_shape': shape, 'params': params})
        return {'layers': rows, 'total_params': total}


def param_count(layer):
    if not hasattr(layer, 'weights'):
        return 0
    return int(layer.weights.size + layer.bias.size)


def build_model(architecture, input_shape, num_classes, rng=None):
    """
    Build a Sequential network from a list of {'type': ..., 'config': {...}} specs.

    input_shape is (channels, height, width). Each config is merged over
    LAYER_DEFAULTS for its type. Dense layers that receive feature maps get
    an implicit Flatten in front of them. A Dense(num_classes) output layer
    is appended; its softmax is applied by the loss.
    """
    rng = np.random.default_rng() if rng is None else rng
    shape = tuple(input_shape)
    layers, names, shapes = [], [], []
    counters = {}

    def add(layer, kind, out_shape):
        counters[kind] = counters.get(kind, 0) + 1
        layers.append(layer)
        names.append(f'{kind}_{counters[kind]}')
        shapes.append(out_shape)

    def flatten_if_needed():
        nonlocal shape
        if len(shape) == 3:
            shape = (int(np.prod(shape)),)
            add(Flatten(), FLATTEN, shape)

    for position, spec in enumerate(architecture):
        kind = spec.get('type')
        if kind not in LAYER_DEFAULTS:
            raise ValueError(f"layer {position}: unknown layer type '{kind}'")
        config = {**LAYER_DEFAULTS[kind], **spec.get('config', {})}

        if kind in (CONV2D, MAXPOOL) and len(shape) != 3:
            raise ValueError(f"layer {position}: {kind} needs feature maps but receives a flat vector")

        if kind == CONV2D:
            channels, height, width = shape
            kernel_size = int(config['kernel_size'])
            stride = int(config['strides'] or 1)
            if config['padding'] == 'same':
                padding = kernel_size // 2
            elif config['padding'] == 'valid':
                padding = 0
            else:
                raise ValueError(f"layer {position}: padding must be 'same' or 'valid', got {config['padding']!r}")
            out_h = (height + 2 * padding - kernel_size) // stride + 1
            out_w = (width + 2 * padding - kernel_size) // stride + 1
            if out_h <= 0 or out_w <= 0:
                raise ValueError(f"layer {position}: {kernel_size}x{kernel_size} kernel does not fit a {height}x{width} input")
            shape = (int(config['filters']), out_h, out_w)
            add(Conv2D(channels, int(config['filters']), kernel_size, stride, padding,
                       activation=config['activation'], rng=rng), CONV2D, shape)

        elif kind == MAXPOOL:
            channels, height, width = shape
            pool_size = int(config['pool_size'])
            stride = int(config['strides'] or pool_size)
            out_h = (height - pool_size) // stride + 1
            out_w = (width - pool_size) // stride + 1
            if pool_size <= 0 or out_h <= 0 or out_w <= 0:
                raise ValueError(f"layer {position}: pool size {pool_size} does not fit a {height}x{width} input")
            shape = (channels, out_h, out_w)
            add(MaxPool(pool_size, stride), MAXPOOL, shape)

        elif kind == FLATTEN:
            flatten_if_needed()

        elif kind == DENSE:
            flatten_if_needed()
            units = int(config['units'])
            add(Dense(shape[0], units, activation=config['activation'], rng=rng), DENSE, (units,))
            shape = (units,)

        elif kind == DROPOUT:
            add(Dropout(float(config['rate']), rng=rng), DROPOUT, shape)

    flatten_if_needed()
    add(Dense(shape[0], num_classes, rng=rng), DENSE, (num_classes,))
    return Sequential(layers, names=names, output_shapes=shapes)
