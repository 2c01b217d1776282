#test_model_engine.py
import numpy as np
import pytest

from model_engine import ModelEngine, compute_confusion_matrix, compute_metrics


ARCHITECTURE = [
    {'type': 'conv2d', 'config': {'filters': 4, 'kernel_size': 3}},
    {'type': 'maxpool', 'config': {'pool_size': 2}},
    {'type': 'flatten', 'config': {}},
    {'type': 'dense', 'config': {'units': 16}},
]


def make_halves_dataset(n, rng):
    """Class 0 is bright on the left half, class 1 on the right half."""
    labels = rng.integers(0, 2, size=n)
    images = rng.random((n, 1, 8, 8)).astype(np.float32) * 0.2
    images[labels == 0, :, :, :4] += 0.8
    images[labels == 1, :, :, 4:] += 0.8
    return images, labels


@pytest.fixture
def engine():
    engine = ModelEngine(seed=7)
    engine.build_model(ARCHITECTURE, input_shape=(1, 8, 8), num_classes=2)
    return engine


@pytest.fixture
def dataset(rng):
    return make_halves_dataset(160, rng)


def test_requires_model_and_compile():
    engine = ModelEngine()
    assert not engine.is_ready()
    assert engine.predict(np.zeros((1, 8, 8))) is None
    assert engine.get_activations(np.zeros((1, 8, 8))) == []
    with pytest.raises(RuntimeError):
        engine.compile()
    engine.build_model(ARCHITECTURE, input_shape=(1, 8, 8), num_classes=2)
    assert engine.is_ready()
    with pytest.raises(RuntimeError):
        next(engine.train_steps(np.zeros((4, 1, 8, 8)), np.zeros(4, dtype=int)))
    with pytest.raises(ValueError):
        engine.compile(optimizer='rmsprop')


def test_unknown_dataset():
    with pytest.raises(ValueError):
        ModelEngine().build_model(ARCHITECTURE, dataset='imagenet')


def test_build_uses_dataset_shape():
    engine = ModelEngine(seed=0)
    engine.build_model(ARCHITECTURE, dataset='cifar10')
    assert engine.input_shape == (3, 32, 32)
    assert engine.summary()['layers'][0]['output_shape'] == (4, 32, 32)
    assert engine.summary()['layers'][-1]['output_shape'] == (10,)


def test_training_learns_separable_data(engine, dataset, rng):
    images, labels = dataset
    engine.compile(learning_rate=0.01, optimizer='adam')
    history = engine.train(images, labels, epochs=8, batch_size=16, validation_split=0.2)
    assert len(history['loss']) == 8
    assert len(history['val_loss']) == 8
    assert history['loss'][-1] < history['loss'][0]

    test_images, test_labels = make_halves_dataset(100, rng)
    evaluation = engine.evaluate(test_images, test_labels)
    assert evaluation['accuracy'] >= 0.9
    assert evaluation['confusion_matrix'].sum() == 100
    assert evaluation['confusion_matrix'].shape == (2, 2)


def test_callbacks_and_stop(engine, dataset):
    images, labels = dataset
    engine.compile(learning_rate=0.01, optimizer='sgd')
    events = []

    def on_batch_end(batch, logs):
        events.append(('batch', batch))
        engine.stop_training()

    history = engine.train(images, labels, epochs=5, batch_size=32, validation_split=0.0, callbacks={
        'on_epoch_begin': lambda epoch: events.append(('begin', epoch)),
        'on_batch_end': on_batch_end,
        'on_epoch_end': lambda epoch, logs, history: events.append(('end', epoch)),
    })
    assert events == [('begin', 0), ('batch', 0), ('end', 0)]
    assert len(history['loss']) == 1
    assert history['val_loss'] == []
    assert not engine.is_training


def test_train_steps_events(engine, dataset):
    images, labels = dataset
    engine.compile(learning_rate=0.01)
    steps = list(engine.train_steps(images[:40], labels[:40], epochs=2, batch_size=16, validation_split=0.0))
    batch_events = [s for s in steps if s['event'] == 'batch']
    epoch_events = [s for s in steps if s['event'] == 'epoch']
    assert len(batch_events) == 6
    assert all(s['total_batches'] == 3 for s in batch_events)
    assert [s['epoch'] for s in epoch_events] == [0, 1]


def test_training_is_not_reentrant(engine, dataset):
    images, labels = dataset
    engine.compile()
    running = engine.train_steps(images, labels, epochs=1, batch_size=16)
    next(running)
    with pytest.raises(RuntimeError, match="already in progress"):
        next(engine.train_steps(images, labels, epochs=1))
    running.close()
    assert not engine.is_training


def test_predict_and_activations_accept_single_image(engine):
    image = np.zeros((1, 8, 8), dtype=np.float32)
    probs = engine.predict(image)
    assert probs.shape == (1, 2)
    assert probs.sum() == pytest.approx(1.0)
    activations = engine.get_activations(image)
    assert [a['layer_type'] for a in activations] == ['Conv2D', 'MaxPool', 'Flatten', 'Dense', 'Dense']
    assert activations[0]['layer_name'] == 'conv2d_1'


def test_layer_weights(engine):
    weights = engine.layer_weights(0)
    assert weights['weights'].shape == (4, 1, 3, 3)
    assert engine.layer_weights(1) is None
    assert engine.layer_weights(99) is None


def test_metrics_from_confusion_matrix():
    y_true = np.array([0, 0, 1, 1, 2, 2])
    y_pred = np.array([0, 1, 1, 1, 2, 0])
    cm = compute_confusion_matrix(y_true, y_pred, num_classes=3)
    np.testing.assert_array_equal(cm, [[1, 1, 0], [0, 2, 0], [1, 0, 1]])
    metrics = compute_metrics(cm)
    np.testing.assert_allclose(metrics['recall'], [0.5, 1.0, 0.5], rtol=1e-6)
    np.testing.assert_allclose(metrics['precision'], [0.5, 2 / 3, 1.0], rtol=1e-6)
    assert metrics['macro_recall'] == pytest.approx(2 / 3, rel=1e-6)


def test_epoch_begin_runs_before_any_update(engine, dataset):
    images, labels = dataset
    engine.compile(learning_rate=0.1, optimizer='sgd')
    initial = engine.layer_weights(0)['weights'].copy()
    seen = {}

    def on_epoch_begin(epoch):
        seen.setdefault(epoch, engine.layer_weights(0)['weights'].copy())

    engine.train(images, labels, epochs=2, batch_size=32, validation_split=0.0,
                 callbacks={'on_epoch_begin': on_epoch_begin})
    np.testing.assert_array_equal(seen[0], initial)
    assert not np.array_equal(seen[1], initial)


def test_train_steps_open_each_epoch(engine, dataset):
    images, labels = dataset
    engine.compile()
    steps = list(engine.train_steps(images[:20], labels[:20], epochs=2, batch_size=10, validation_split=0.0))
    assert [s['event'] for s in steps] == ['epoch_begin', 'batch', 'batch', 'epoch'] * 2
    assert [s['epoch'] for s in steps if s['event'] == 'epoch_begin'] == [0, 1]


def test_predict_matches_model_probabilities(engine, rng):
    images = rng.random((3, 1, 8, 8)).astype(np.float32)
    np.testing.assert_allclose(engine.predict(images), engine.model.predict_proba(images))
