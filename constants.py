import os


DATA_DIR = os.environ.get('CNN_VISUALIZER_DATA_DIR', 'data')

CONV2D = 'conv2d'
MAXPOOL = 'maxpool'
FLATTEN = 'flatten'
DENSE = 'dense'
DROPOUT = 'dropout'

LAYER_DEFAULTS = {
    CONV2D: {'filters': 32, 'kernel_size': 3, 'strides': 1, 'activation': 'relu', 'padding': 'same'},
    MAXPOOL: {'pool_size': 2, 'strides': None},
    FLATTEN: {},
    DENSE: {'units': 128, 'activation': 'relu'},
    DROPOUT: {'rate': 0.25},
}

LAYER_INFO = {
    CONV2D: {'name': 'Conv2D', 'color': '#667eea',
             'tooltip': 'Extracts features using a sliding filter. The filter learns to detect patterns like edges and shapes.'},
    MAXPOOL: {'name': 'MaxPooling', 'color': '#3fb950',
              'tooltip': 'Reduces image size by keeping the strongest activations.'},
    FLATTEN: {'name': 'Flatten', 'color': '#d29922',
              'tooltip': 'Reshapes the 2D feature maps into a 1D array so it can connect to Dense layers.'},
    DENSE: {'name': 'Dense', 'color': '#f85149',
            'tooltip': 'Every neuron connects to all neurons in the previous layer.'},
    DROPOUT: {'name': 'Dropout', 'color': '#8b949e',
              'tooltip': 'Randomly turns off some neurons during training so the network generalizes better.'},
}

# layer activations the network builder understands; softmax lives in the loss
NETWORK_ACTIVATIONS = ('relu', 'sigmoid', 'tanh', 'linear')

DATASETS = {
    'mnist': {
        'name': 'MNIST',
        'description': 'Handwritten digits (0-9)',
        'input_shape': (1, 28, 28),
        'num_classes': 10,
        'labels': ['0', '1', '2', '3', '4', '5', '6', '7', '8', '9'],
        'train_size': 10000,
        'test_size': 1000,
    },
    'cifar10': {
        'name': 'CIFAR-10',
        'description': 'Small color images (synthetic class patterns)',
        'input_shape': (3, 32, 32),
        'num_classes': 10,
        'labels': ['airplane', 'automobile', 'bird', 'cat', 'deer', 'dog', 'frog', 'horse', 'ship', 'truck'],
        'train_size': 5000,
        'test_size': 500,
    },
}

PRESETS = {
    'simple': {
        'name': 'Simple CNN',
        'layers': [
            {'type': CONV2D, 'config': {'filters': 16, 'kernel_size': 3}},
            {'type': MAXPOOL, 'config': {'pool_size': 2}},
            {'type': FLATTEN, 'config': {}},
            {'type': DENSE, 'config': {'units': 64}},
        ],
    },
    'lenet': {
        'name': 'LeNet-5',
        'layers': [
            {'type': CONV2D, 'config': {'filters': 6, 'kernel_size': 5, 'padding': 'valid'}},
            {'type': MAXPOOL, 'config': {'pool_size': 2}},
            {'type': CONV2D, 'config': {'filters': 16, 'kernel_size': 5, 'padding': 'valid'}},
            {'type': MAXPOOL, 'config': {'pool_size': 2}},
            {'type': FLATTEN, 'config': {}},
            {'type': DENSE, 'config': {'units': 120}},
            {'type': DENSE, 'config': {'units': 84}},
        ],
    },
}

CHART_COLORS = {
    'loss': '#f85149',
    'accuracy': '#3fb950',
    'grid': '#21262d',
    'text': '#8b949e',
}
