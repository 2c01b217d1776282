import logging

import matplotlib.image as mpimg
import numpy as np
import streamlit as st
import requests

from activations import ACTIVATIONS
from constants import CONV2D, MAXPOOL, FLATTEN, DENSE, DROPOUT, DATASETS, LAYER_DEFAULTS, LAYER_INFO, PRESETS
from data_loader import DatasetProvider
from explorers import (dense_forward, dense_param_count, dropout_mask, dropout_stats, explore_convolution,
                       explore_pooling, feature_map_detail, flatten_field, inspect_neuron, neuron_grid,
                       prepare_input, random_dense_layer)
from field_ops import FieldError
from kernels import KERNEL_CATEGORIES, KERNELS, get_kernel, normalize_kernel
from model_engine import ModelEngine
import rendering


logging.basicConfig(level=logging.INFO, format='%(asctime)s %(name)s %(levelname)s %(message)s')
logger = logging.getLogger(__name__)

st.set_page_config(page_title="CNN Visualizer", layout="wide")

st.markdown("""
<style>
    .main-header {font-size: 3rem; font-weight: 700; color: #1f77b4; margin-bottom: 0.5rem;}
    .subtitle {font-size: 1.2rem; color: #666; font-style: italic; margin-bottom: 2rem;}
    .info-box {background-color: #f0f8ff; padding: 1.5rem; border-radius: 10px;
               border-left: 5px solid #1f77b4; margin: 1rem 0; color: #333;}
    .stProgress > div > div > div > div {background-color: #667eea;}
    h1, h2, h3 {color: #1f77b4;}
    .stButton>button {border-radius: 20px; font-weight: 600; transition: all 0.3s;}
</style>
""", unsafe_allow_html=True)


@st.cache_resource
def load_provider(dataset):
    provider = DatasetProvider(seed=2025)
    provider.load_dataset(dataset)
    return provider


for key, default in [
    ('dataset', 'mnist'),
    ('image_index', 0),
    ('custom_kernel', None),
    ('architecture', [dict(layer) for layer in PRESETS['simple']['layers']]),
    ('engine', None),
    ('history', None),
    ('evaluation', None),
    ('dropout_seed', 0),
]:
    if key not in st.session_state:
        st.session_state[key] = default


st.markdown('<h1 class="main-header">CNN Visualizer</h1>', unsafe_allow_html=True)
st.markdown('<p class="subtitle">Convolution, pooling, flatten/dense and dropout, one step at a time</p>',
            unsafe_allow_html=True)

st.sidebar.markdown("## Dataset")
st.session_state.dataset = st.sidebar.selectbox(
    "Dataset", list(DATASETS), format_func=lambda d: f"{DATASETS[d]['name']}: {DATASETS[d]['description']}",
    index=list(DATASETS).index(st.session_state.dataset))

try:
    provider = load_provider(st.session_state.dataset)
except (requests.RequestException, OSError, ValueError) as e:
    logger.exception("could not load dataset %s", st.session_state.dataset)
    st.error(f"Could not load {DATASETS[st.session_state.dataset]['name']}: {e}")
    st.stop()

info = provider.info()
st.sidebar.metric("Training Samples", f"{info['num_train']:,}")
st.sidebar.metric("Test Samples", f"{info['num_test']:,}")
if st.sidebar.button("Random image", use_container_width=True):
    st.session_state.image_index = provider.random_index()
st.session_state.image_index = min(st.session_state.image_index, info['num_train'] - 1)
image, label = provider.get_image(st.session_state.image_index)
preview = np.moveaxis(image, 0, -1) if image.shape[0] == 3 else image[0]
st.sidebar.image(rendering.upscale(rendering.to_pixels(preview), 112, 112),
                 caption=f"#{st.session_state.image_index}: {info['labels'][label]}")

tabs = st.tabs(["Convolution", "Pooling", "Flatten & Dense", "Dropout", "CNN Builder"])
result = None


with tabs[0]:
    st.markdown("## Convolution Explorer")
    col1, col2, col3 = st.columns([1, 2, 1])
    with col1:
        category = st.selectbox("Kernel category", list(KERNEL_CATEGORIES), format_func=KERNEL_CATEGORIES.get)
        choices = [k for k, v in KERNELS.items() if v['category'] == category]
        kernel_id = st.selectbox("Kernel", choices, format_func=lambda k: KERNELS[k]['name'])
        st.caption(KERNELS[kernel_id]['description'])

        use_custom = st.checkbox("Edit kernel", value=st.session_state.custom_kernel is not None)
        kernel = get_kernel(kernel_id)
        if use_custom:
            base = st.session_state.custom_kernel if st.session_state.custom_kernel is not None else kernel
            edited = st.data_editor(np.round(base, 4), key=f"kernel_editor_{kernel_id}")
            kernel = np.asarray(edited, dtype=np.float64)
            if st.button("Normalize weights"):
                kernel = normalize_kernel(kernel)
            st.session_state.custom_kernel = kernel
        else:
            st.session_state.custom_kernel = None
        st.pyplot(rendering.plot_kernel_matrix(kernel))

        activation = st.selectbox("Activation", list(ACTIVATIONS), format_func=lambda a: ACTIVATIONS[a]['name'])
        st.caption(ACTIVATIONS[activation]['description'])

    try:
        result = explore_convolution(image, kernel, activation)
    except FieldError as e:
        st.error(f"Invalid kernel: {e}")
    else:
        with col2:
            c1, c2, c3 = st.columns(3)
            c1.pyplot(rendering.plot_field(result['original'], "Original"))
            c2.pyplot(rendering.plot_field(result['convolved_display'], "Convolved"))
            c3.pyplot(rendering.plot_field(result['activated_display'], "Activated"))
        with col3:
            st.pyplot(rendering.plot_activation_curve(activation))
            for name, key in (("Original", 'original_range'), ("Convolved", 'convolved_range'),
                              ("Activated", 'activated_range')):
                lo, hi = result[key]
                st.metric(f"{name} range", f"[{lo:.2f}, {hi:.2f}]")


with tabs[1]:
    st.markdown("## Pooling Explorer")
    col1, col2 = st.columns([1, 3])
    with col1:
        mode = st.radio("Pool type", ['max', 'average'], format_func=lambda m: f"{m.capitalize()} Pool")
        pool_size = st.radio("Pool size", [2, 3, 4], format_func=lambda s: f"{s}x{s}")
        source = st.radio("Source", ["Image", "Convolution output"])
        if mode == 'max':
            st.caption("Max pooling keeps the maximum of each window, making the network less sensitive "
                       "to small translations while keeping the most prominent features.")
        else:
            st.caption("Average pooling keeps the mean of each window, giving a smoother downsampled image.")
    field = image
    if source == "Convolution output" and result is not None:
        field = result['activated_display']
    try:
        pooled = explore_pooling(field, pool_size, mode)
    except FieldError as e:
        st.error(str(e))
    else:
        with col2:
            st.pyplot(rendering.plot_pooling(pooled['input'], pooled['output'], pool_size))
            c1, c2, c3, c4 = st.columns(4)
            c1.metric("Input", "{} x {}".format(*pooled['input_shape']))
            c2.metric("Output", "{} x {}".format(*pooled['output_shape']))
            c3.metric("Reduction", f"{pooled['reduction']}%")
            c4.metric("Operations", f"{pooled['operations']:,}")


with tabs[2]:
    st.markdown("## Flatten & Dense Explorer")
    col1, col2 = st.columns([1, 3])
    with col1:
        units = st.slider("Dense units", 2, 10, 4)
        dense_activation = st.selectbox("Dense activation", list(ACTIVATIONS), index=1,
                                        format_func=lambda a: ACTIVATIONS[a]['name'], key="dense_activation")
        seed = st.number_input("Weight seed", min_value=0, value=0, step=1)
    rng = np.random.default_rng(int(seed))
    feature_map = rng.random((8, 8))
    vector = flatten_field(feature_map)
    weights, biases = random_dense_layer(vector.size, units, rng)
    outputs = dense_forward(vector, weights, biases, dense_activation)
    with col2:
        st.pyplot(rendering.plot_flatten_dense(feature_map, outputs))
        n_params = dense_param_count(vector.size, units)
        st.markdown(f"**Parameters:** {vector.size * units} weights + {units} biases = {n_params}")


with tabs[3]:
    st.markdown("## Dropout Explorer")
    col1, col2 = st.columns([1, 3])
    with col1:
        rate = st.slider("Dropout rate", 0, 90, 50, step=5, format="%d%%") / 100
        if st.button("Apply dropout"):
            st.session_state.dropout_seed += 1
        st.caption("During training each neuron is switched off with probability equal to the rate. "
                   "At inference every neuron is active and the outputs are rescaled to compensate.")
    layer_sizes = [4, 6, 6, 3]
    rng = np.random.default_rng(st.session_state.dropout_seed)
    # input and output neurons are never dropped
    masks = [np.ones(layer_sizes[0], dtype=bool)]
    masks += [dropout_mask(size, rate, rng) for size in layer_sizes[1:-1]]
    masks.append(np.ones(layer_sizes[-1], dtype=bool))
    stats = dropout_stats(np.concatenate(masks[1:-1]))
    with col2:
        st.pyplot(rendering.plot_dropout_network(layer_sizes, masks))
        c1, c2, c3 = st.columns(3)
        c1.metric("Hidden neurons", stats['total'])
        c2.metric("Active", stats['active'])
        c3.metric("Dropped", stats['dropped'])


with tabs[4]:
    st.markdown("## CNN Builder")
    col1, col2 = st.columns([1, 2])
    with col1:
        preset = st.selectbox("Start from preset", ["-"] + list(PRESETS),
                              format_func=lambda p: PRESETS[p]['name'] if p in PRESETS else "-")
        if preset != "-" and st.button("Load preset"):
            st.session_state.architecture = [dict(layer) for layer in PRESETS[preset]['layers']]

        st.markdown("### Layers")
        for i, layer in enumerate(st.session_state.architecture):
            c1, c2 = st.columns([4, 1])
            c1.markdown(f"**{LAYER_INFO[layer['type']]['name']}** {layer.get('config') or ''}")
            if c2.button("Remove", key=f"remove_{i}"):
                st.session_state.architecture.pop(i)
                st.rerun()

        st.markdown("### Add layer")
        new_type = st.selectbox("Type", [CONV2D, MAXPOOL, FLATTEN, DENSE, DROPOUT],
                                format_func=lambda t: LAYER_INFO[t]['name'])
        st.caption(LAYER_INFO[new_type]['tooltip'])
        defaults = LAYER_DEFAULTS[new_type]
        config = {}
        if new_type == CONV2D:
            config['filters'] = st.number_input("Filters", 1, 64, 8)
            config['kernel_size'] = st.selectbox("Kernel size", [3, 5])
            config['padding'] = st.selectbox("Padding", ['same', 'valid'])
            config['activation'] = st.selectbox("Activation", ['relu', 'sigmoid', 'tanh', 'linear'])
        elif new_type == MAXPOOL:
            config['pool_size'] = st.selectbox("Pool size", [2, 3])
        elif new_type == DENSE:
            config['units'] = st.number_input("Units", 1, 512, defaults['units'])
            config['activation'] = st.selectbox("Activation", ['relu', 'sigmoid', 'tanh', 'linear'])
        elif new_type == DROPOUT:
            config['rate'] = st.slider("Rate", 0.0, 0.9, defaults['rate'], step=0.05)
        if st.button("Add layer", type="primary"):
            st.session_state.architecture.append({'type': new_type, 'config': config})
            st.rerun()

        st.markdown("### Training")
        epochs = st.number_input("Epochs", min_value=1, max_value=20, value=3)
        batch_size = st.number_input("Batch size", min_value=8, max_value=256, value=32)
        lr = st.select_slider("Learning rate", options=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05], value=0.001)
        optimizer = st.radio("Optimizer", ['adam', 'sgd'], horizontal=True)
        train_size = st.slider("Training images", 200, info['num_train'], min(2000, info['num_train']), step=100)

    with col2:
        engine = ModelEngine(seed=0)
        try:
            engine.build_model(st.session_state.architecture, st.session_state.dataset)
        except ValueError as e:
            st.error(f"Invalid architecture: {e}")
            engine = None
        if engine is not None:
            summary = engine.summary()
            st.dataframe([{**row, 'output_shape': str(row['output_shape'])} for row in summary['layers']],
                         use_container_width=True)
            st.markdown(f"**Total parameters:** {summary['total_params']:,}")

            if st.button("Train model", type="primary", use_container_width=True):
                engine.compile(learning_rate=lr, optimizer=optimizer)
                X_train, y_train = provider.train
                progress_bar = st.progress(0.0)
                status_text = st.empty()
                chart = st.empty()
                for step in engine.train_steps(X_train[:train_size], y_train[:train_size],
                                               epochs=epochs, batch_size=batch_size):
                    if step['event'] == 'batch':
                        done = (step['epoch'] + (step['batch'] + 1) / step['total_batches']) / epochs
                        progress_bar.progress(min(done, 1.0))
                        status_text.markdown(f"Epoch {step['epoch'] + 1}/{epochs} | "
                                             f"Batch {step['batch'] + 1}/{step['total_batches']} | "
                                             f"Loss: {step['loss']:.4f} | Accuracy: {step['accuracy']:.2%}")
                    elif step['event'] == 'epoch':
                        chart.pyplot(rendering.plot_training_history(step['history']))
                progress_bar.progress(1.0)
                X_test, y_test = provider.test
                st.session_state.engine = engine
                st.session_state.history = engine.history
                st.session_state.evaluation = engine.evaluate(X_test, y_test)
                status_text.success(f"Training complete. Test accuracy: {st.session_state.evaluation['accuracy']:.2%}")

        trained = st.session_state.engine
        # a model trained on the other dataset cannot take the current image
        if trained is not None and st.session_state.evaluation is not None and trained.input_shape == image.shape:
            st.divider()
            st.pyplot(rendering.plot_training_history(st.session_state.history))
            evaluation = st.session_state.evaluation
            c1, c2, c3, c4 = st.columns(4)
            c1.metric("Test Accuracy", f"{evaluation['accuracy']:.2%}")
            c2.metric("Macro Precision", f"{evaluation['macro_precision']:.3f}")
            c3.metric("Macro Recall", f"{evaluation['macro_recall']:.3f}")
            c4.metric("Macro F1-Score", f"{evaluation['macro_f1']:.3f}")

            st.subheader("Explore the trained network")
            explore_source = st.radio("Input", ["Selected dataset image", "Upload a picture"], horizontal=True)
            explore_image = image
            if explore_source == "Upload a picture":
                upload = st.file_uploader("Picture (PNG or JPEG)", type=['png', 'jpg', 'jpeg'])
                invert = st.checkbox("Invert colors (dark strokes on a light background)",
                                     value=st.session_state.dataset == 'mnist')
                if upload is None:
                    explore_image = None
                    st.info("Upload a picture to run it through the network.")
                else:
                    try:
                        explore_image = prepare_input(mpimg.imread(upload), trained.input_shape, invert=invert)
                    except (OSError, ValueError) as e:
                        logger.warning("could not read uploaded picture: %s", e)
                        st.error(f"Could not read the picture: {e}")
                        explore_image = None

            if explore_image is not None:
                probs = trained.predict(explore_image)[0]
                c1, c2 = st.columns([1, 3])
                shown = np.moveaxis(explore_image, 0, -1) if explore_image.shape[0] == 3 else explore_image[0]
                c1.image(rendering.upscale(rendering.to_pixels(shown), 112, 112), caption="Network input")
                caption = f"**Prediction:** {info['labels'][int(np.argmax(probs))]} ({probs.max():.2%})"
                if explore_image is image:
                    caption += f", true label {info['labels'][label]}"
                c2.markdown(caption)
                c2.bar_chart({'probability': probs})

                activations = trained.get_activations(explore_image)
                st.markdown("#### Activations")
                for activation_map in activations:
                    st.pyplot(rendering.plot_feature_maps(activation_map))

                st.markdown("#### Inspect a layer")
                layer_pos = st.selectbox("Layer", range(len(activations)),
                                         format_func=lambda p: activations[p]['layer_name'])
                selected = activations[layer_pos]
                d1, d2 = st.columns([2, 1])
                if selected['output'].ndim == 4:
                    map_index = d2.number_input("Feature map", 0, selected['shape'][1] - 1, 0)
                    detail = feature_map_detail(selected, int(map_index))
                    d1.pyplot(rendering.plot_field(detail['map'], f"{selected['layer_name']} map {map_index}",
                                                  size=4))
                    lo, hi = detail['range']
                    d2.metric("Range", f"[{lo:.3f}, {hi:.3f}]")
                    d2.metric("Mean activation", f"{detail['mean']:.4f}")
                    d2.metric("Active pixels", f"{detail['active_fraction']:.0%}")
                else:
                    grid = neuron_grid(selected['output'])
                    neuron = int(d2.number_input("Neuron", 0, selected['output'].size - 1, 0))
                    cols = grid.shape[1]
                    d1.pyplot(rendering.plot_neuron_grid(grid, f"{selected['layer_name']}: {selected['output'].size} "
                                                               f"neurons", highlight=divmod(neuron, cols)))
                    stats = inspect_neuron(selected, neuron)
                    d2.metric("Activation", f"{stats['value']:.6f}")
                    d2.metric("Rank in layer", f"{stats['rank']} / {selected['output'].size}")

            conv_layers = trained.model.get_conv_layers()
            if conv_layers:
                st.subheader("Learned Convolutional Kernels")
                for n, layer in enumerate(conv_layers, 1):
                    st.pyplot(rendering.plot_kernels(layer, f"conv2d_{n} ({layer.out_channels} filters)"))

            st.subheader("Classification Performance")
            st.pyplot(rendering.plot_per_class_metrics(evaluation))
            st.pyplot(rendering.plot_confusion_matrix(evaluation['confusion_matrix'], info['labels']))
