"""
Model engine: builds, trains and inspects the numpy networks used by the CNN
builder tab.

Training is a generator of progress dicts so a UI can redraw between batches;
`train` drives it and forwards events to optional callbacks.
"""

import logging

import numpy as np

from constants import DATASETS
from numpy_nn import SGD, Adam, build_model


logger = logging.getLogger(__name__)

OPTIMIZERS = {'sgd': SGD, 'adam': Adam}


def compute_confusion_matrix(y_true, y_pred, num_classes=10):
    return np.bincount(num_classes * y_true + y_pred, minlength=num_classes**2).reshape(num_classes, num_classes)


def compute_metrics(cm):
    # compute per-class precision, recall, and f1-score from confusion matrix
    precision = np.diag(cm) / (np.sum(cm, axis=0) + 1e-10)
    recall = np.diag(cm) / (np.sum(cm, axis=1) + 1e-10)
    f1 = 2 * (precision * recall) / (precision + recall + 1e-10)

    # macro averages (unweighted mean across classes)
    return {
        'precision': precision,
        'recall': recall,
        'f1': f1,
        'macro_precision': np.mean(precision),
        'macro_recall': np.mean(recall),
        'macro_f1': np.mean(f1)
    }


class ModelEngine:
    def __init__(self, seed=None):
        self.model = None
        self.optimizer = None
        self.num_classes = None
        self.input_shape = None
        self.is_training = False
        self.should_stop = False
        self.rng = np.random.default_rng(seed)
        self.history = self._empty_history()

    @staticmethod
    def _empty_history():
        return {'loss': [], 'accuracy': [], 'val_loss': [], 'val_accuracy': []}

    def build_model(self, architecture, dataset='mnist', input_shape=None, num_classes=None):
        if dataset not in DATASETS:
            raise ValueError(f"unknown dataset '{dataset}'")
        info = DATASETS[dataset]
        self.input_shape = tuple(input_shape or info['input_shape'])
        self.num_classes = num_classes or info['num_classes']
        self.model = build_model(architecture, self.input_shape, self.num_classes, rng=self.rng)
        self.optimizer = None
        self.history = self._empty_history()
        summary = self.model.summary()
        logger.info("built model with %d layers and %d parameters for %s",
                    len(summary['layers']), summary['total_params'], dataset)
        return self.model

    def compile(self, learning_rate=0.01, optimizer='adam'):
        if self.model is None:
            raise RuntimeError("no model to compile; call build_model first")
        if optimizer not in OPTIMIZERS:
            raise ValueError(f"unknown optimizer '{optimizer}', expected one of {list(OPTIMIZERS)}")
        self.optimizer = OPTIMIZERS[optimizer](learning_rate=learning_rate)

    def is_ready(self):
        return self.model is not None

    def stop_training(self):
        self.should_stop = True

    def _evaluate_loss(self, X, y, batch_size):
        total_loss = total_correct = 0.0
        for start in range(0, len(X), batch_size):
            X_batch, y_batch = X[start:start + batch_size], y[start:start + batch_size]
            logits = self.model.forward(X_batch)
            total_loss += self.model.loss_fn.forward(logits, y_batch) * len(X_batch)
            total_correct += np.sum(np.argmax(logits, axis=1) == y_batch)
        return total_loss / len(X), total_correct / len(X)

    def train_steps(self, images, labels, epochs=5, batch_size=32, validation_split=0.1, rng=None):
        """
        Mini-batch training loop yielding progress dicts.

        Each epoch opens with an 'event': 'epoch_begin' dict, yielded before
        its first batch runs. Batch events carry 'event': 'batch'; after every
        epoch an 'event': 'epoch' dict with the epoch's metrics and the full
        history is yielded. The last `validation_split` share of the data is
        held out for validation and never trained on.
        """
        if self.model is None:
            raise RuntimeError("no model to train; call build_model first")
        if self.optimizer is None:
            raise RuntimeError("model is not compiled; call compile first")
        if self.is_training:
            raise RuntimeError("training already in progress")
        if not 0.0 <= validation_split < 1.0:
            raise ValueError(f"validation_split must be in [0, 1), got {validation_split}")
        rng = self.rng if rng is None else rng
        images = np.asarray(images, dtype=np.float32)
        labels = np.asarray(labels, dtype=np.int64)

        n_val = int(len(images) * validation_split)
        X_train, y_train = images[:len(images) - n_val], labels[:len(labels) - n_val]
        X_val, y_val = images[len(images) - n_val:], labels[len(labels) - n_val:]
        n_batches = int(np.ceil(len(X_train) / batch_size))
        if n_batches == 0:
            raise ValueError("no training samples left after the validation split")

        self.is_training = True
        self.should_stop = False
        self.history = self._empty_history()
        logger.info("training on %d samples (%d validation) for %d epochs", len(X_train), n_val, epochs)
        try:
            for epoch in range(epochs):
                indices = rng.permutation(len(X_train))
                X_shuffled, y_shuffled = X_train[indices], y_train[indices]
                epoch_loss = epoch_correct = 0.0
                yield {'event': 'epoch_begin', 'epoch': epoch}

                for batch_idx in range(n_batches):
                    start_idx = batch_idx * batch_size
                    X_batch = X_shuffled[start_idx:start_idx + batch_size]
                    y_batch = y_shuffled[start_idx:start_idx + batch_size]

                    logits = self.model.forward(X_batch, training=True)
                    loss = self.model.loss_fn.forward(logits, y_batch)
                    self.model.backward(self.model.loss_fn.backward())
                    self.optimizer.step(self.model.get_all_layers())

                    acc = float(np.mean(np.argmax(logits, axis=1) == y_batch))
                    epoch_loss += loss * len(X_batch)
                    epoch_correct += acc * len(X_batch)
                    yield {
                        'event': 'batch',
                        'epoch': epoch,
                        'batch': batch_idx,
                        'total_batches': n_batches,
                        'loss': loss,
                        'accuracy': acc,
                    }
                    if self.should_stop:
                        break

                seen = min((batch_idx + 1) * batch_size, len(X_train))
                self.history['loss'].append(epoch_loss / seen)
                self.history['accuracy'].append(epoch_correct / seen)
                logs = {'loss': self.history['loss'][-1], 'accuracy': self.history['accuracy'][-1]}
                if n_val:
                    val_loss, val_acc = self._evaluate_loss(X_val, y_val, batch_size)
                    self.history['val_loss'].append(val_loss)
                    self.history['val_accuracy'].append(val_acc)
                    logs.update(val_loss=val_loss, val_accuracy=val_acc)
                logger.info("epoch %d/%d: %s", epoch + 1, epochs,
                            ", ".join(f"{k}={v:.4f}" for k, v in logs.items()))
                yield {'event': 'epoch', 'epoch': epoch, 'logs': logs, 'history': self.history}

                if self.should_stop:
                    logger.info("training stopped after epoch %d", epoch + 1)
                    break
        finally:
            self.is_training = False

    def train(self, images, labels, epochs=5, batch_size=32, validation_split=0.1, callbacks=None):
        """
        Run train_steps to completion and return the history.

        callbacks may hold 'on_epoch_begin(epoch)', 'on_batch_end(batch, logs)'
        and 'on_epoch_end(epoch, logs, history)'.
        """
        callbacks = callbacks or {}
        on_epoch_begin = callbacks.get('on_epoch_begin')
        on_batch_end = callbacks.get('on_batch_end')
        on_epoch_end = callbacks.get('on_epoch_end')

        for step in self.train_steps(images, labels, epochs, batch_size, validation_split):
            if step['event'] == 'epoch_begin' and on_epoch_begin:
                on_epoch_begin(step['epoch'])
            elif step['event'] == 'batch' and on_batch_end:
                on_batch_end(step['batch'], {'loss': step['loss'], 'accuracy': step['accuracy']})
            elif step['event'] == 'epoch' and on_epoch_end:
                on_epoch_end(step['epoch'], step['logs'], step['history'])
        return self.history

    def _as_batch(self, x):
        x = np.asarray(x, dtype=np.float32)
        if x.ndim == 3:
            x = x[np.newaxis]
        return x

    def predict(self, x):
        """Class probabilities for a batch (N, C, H, W) or a single (C, H, W) image."""
        if self.model is None:
            return None
        return self.model.predict_proba(self._as_batch(x))

    def get_activations(self, x):
        if self.model is None:
            return []
        return self.model.get_activations(self._as_batch(x))

    def summary(self):
        if self.model is None:
            return None
        return self.model.summary()

    def layer_weights(self, index):
        if self.model is None or not 0 <= index < len(self.model.layers):
            return None
        layer = self.model.layers[index]
        if not hasattr(layer, 'weights'):
            return None
        return {'weights': layer.weights, 'bias': layer.bias}

    def evaluate(self, images, labels, batch_size=64):
        if self.model is None:
            raise RuntimeError("no model to evaluate; call build_model first")
        images = np.asarray(images, dtype=np.float32)
        labels = np.asarray(labels, dtype=np.int64)
        preds = np.concatenate([self.model.predict(images[i:i + batch_size])
                                for i in range(0, len(images), batch_size)])
        cm = compute_confusion_matrix(labels, preds, self.num_classes)
        return {
            'accuracy': float(np.mean(preds == labels)),
            'confusion_matrix': cm,
            **compute_metrics(cm),
        }
