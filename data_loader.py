import os
import gzip
import logging

import numpy as np
import requests

from constants import DATA_DIR, DATASETS


logger = logging.getLogger(__name__)

MNIST_FILES = {
    "train-images-idx3-ubyte.gz": "https://github.com/fgnt/mnist/raw/master/train-images-idx3-ubyte.gz",
    "train-labels-idx1-ubyte.gz": "https://github.com/fgnt/mnist/raw/master/train-labels-idx1-ubyte.gz",
    "t10k-images-idx3-ubyte.gz": "https://github.com/fgnt/mnist/raw/master/t10k-images-idx3-ubyte.gz",
    "t10k-labels-idx1-ubyte.gz": "https://github.com/fgnt/mnist/raw/master/t10k-labels-idx1-ubyte.gz",
}


def download_file(url, filepath):
    if os.path.exists(filepath):
        return

    logger.info("downloading %s", os.path.basename(filepath))
    response = requests.get(url, stream=True, timeout=30)
    response.raise_for_status()

    with open(filepath, 'wb') as f:
        for chunk in response.iter_content(chunk_size=8192):
            f.write(chunk)
    logger.info("saved %s", filepath)


def download_mnist(data_dir=DATA_DIR):
    os.makedirs(data_dir, exist_ok=True)
    for filename, url in MNIST_FILES.items():
        download_file(url, os.path.join(data_dir, filename))


def parse_images(filepath):
    with gzip.open(filepath, 'rb') as f:
        magic, num_images, rows, cols = [int.from_bytes(f.read(4), 'big') for _ in range(4)]
        if magic != 2051:
            raise ValueError(f"{filepath}: not an IDX image file (magic {magic})")
        data = np.frombuffer(f.read(), dtype=np.uint8).reshape(num_images, rows, cols)
    return data


def parse_labels(filepath):
    with gzip.open(filepath, 'rb') as f:
        magic, num_labels = [int.from_bytes(f.read(4), 'big') for _ in range(2)]
        if magic != 2049:
            raise ValueError(f"{filepath}: not an IDX label file (magic {magic})")
        labels = np.frombuffer(f.read(), dtype=np.uint8)
    return labels[:num_labels]


def load_mnist_data(data_dir=DATA_DIR, train_size=None, test_size=None):
    download_mnist(data_dir)

    train_images = parse_images(os.path.join(data_dir, 'train-images-idx3-ubyte.gz'))[:train_size]
    train_labels = parse_labels(os.path.join(data_dir, 'train-labels-idx1-ubyte.gz'))[:train_size]
    test_images = parse_images(os.path.join(data_dir, 't10k-images-idx3-ubyte.gz'))[:test_size]
    test_labels = parse_labels(os.path.join(data_dir, 't10k-labels-idx1-ubyte.gz'))[:test_size]

    # normalize to [0,1] and reshape to (batch, channels, height, width)
    X_train = (train_images.astype(np.float32) / 255.0).reshape(-1, 1, 28, 28)
    X_test = (test_images.astype(np.float32) / 255.0).reshape(-1, 1, 28, 28)
    y_train = train_labels.astype(np.int64)
    y_test = test_labels.astype(np.int64)

    return X_train, y_train, X_test, y_test


def synthetic_image(label, size=32, channels=3, rng=None):
    """A (channels, size, size) image in [0, 1] with a label-dependent color and pattern."""
    rng = np.random.default_rng() if rng is None else rng
    base_color = np.array([(label * 25 + 50) / 255, ((label * 37) % 255) / 255, ((label * 61) % 255) / 255])
    y, x = np.mgrid[0:size, 0:size]
    center_dist = np.sqrt((x - size / 2) ** 2 + (y - size / 2) ** 2) / size
    if label % 3 == 0:
        pattern = np.sin(x / 4 + label) * 0.2
    elif label % 3 == 1:
        pattern = np.where(center_dist < 0.3, 0.5, 0.0)
    else:
        pattern = np.where(x > y, 0.3, 0.0)
    noise = rng.random((size, size)) * 0.3
    image = base_color[:channels, None, None] + noise + pattern
    return np.clip(image, 0, 1).astype(np.float32)


def generate_synthetic_cifar10(train_size, test_size, rng=None):
    rng = np.random.default_rng() if rng is None else rng

    def make(n):
        labels = rng.integers(0, 10, size=n).astype(np.int64)
        images = np.stack([synthetic_image(int(label), rng=rng) for label in labels]) if n else \
            np.zeros((0, 3, 32, 32), dtype=np.float32)
        return images, labels

    X_train, y_train = make(train_size)
    X_test, y_test = make(test_size)
    return X_train, y_train, X_test, y_test


class DatasetProvider:
    """Holds one loaded dataset and serves images and random batches from it."""

    def __init__(self, data_dir=DATA_DIR, seed=None):
        self.data_dir = data_dir
        self.rng = np.random.default_rng(seed)
        self.name = None
        self.train = None
        self.test = None

    def load_dataset(self, name, train_size=None, test_size=None):
        if name not in DATASETS:
            raise ValueError(f"unknown dataset '{name}', expected one of {list(DATASETS)}")
        info = DATASETS[name]
        train_size = info['train_size'] if train_size is None else train_size
        test_size = info['test_size'] if test_size is None else test_size

        if name == 'mnist':
            X_train, y_train, X_test, y_test = load_mnist_data(self.data_dir, train_size, test_size)
        else:
            X_train, y_train, X_test, y_test = generate_synthetic_cifar10(train_size, test_size, self.rng)

        self.set_data(name, X_train, y_train, X_test, y_test)
        return self.info()

    def set_data(self, name, X_train, y_train, X_test, y_test):
        self.name = name
        self.train = (X_train, y_train)
        self.test = (X_test, y_test)
        logger.info("loaded %s: %d train / %d test images", name, len(X_train), len(X_test))

    def _split(self, test):
        if self.train is None:
            raise RuntimeError("no dataset loaded; call load_dataset first")
        return self.test if test else self.train

    def info(self):
        if self.name is None:
            return None
        return {**DATASETS[self.name], 'id': self.name,
                'num_train': len(self.train[0]), 'num_test': len(self.test[0])}

    def get_image(self, index, test=False):
        images, labels = self._split(test)
        if not 0 <= index < len(images):
            raise IndexError(f"image index {index} out of range for {len(images)} images")
        return images[index], int(labels[index])

    def get_batch(self, size, test=False):
        images, labels = self._split(test)
        indices = self.rng.integers(0, len(images), size=size)
        return images[indices], labels[indices]

    def sample_images(self, count=10):
        images, labels = self._split(False)
        indices = self.rng.integers(0, len(images), size=count)
        return [{'image': images[i], 'label': int(labels[i]), 'index': int(i)} for i in indices]

    def random_index(self, test=False):
        images, _ = self._split(test)
        return int(self.rng.integers(0, len(images)))
