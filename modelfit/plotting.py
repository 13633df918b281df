"""
plotting.py
~~~~~~~~~~~

Charts of fitted models rendered as base64-encoded PNG images.
"""

import base64
from io import BytesIO
from typing import Any, Sequence

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np

from modelfit.fitting import model_output_rows, split_columns
from modelfit.network import Network


def _figure_to_base64(fig) -> str:
    # Save image to a bytes buffer instead of a file
    buffer = BytesIO()
    fig.savefig(buffer, format='png', bbox_inches='tight')
    buffer.seek(0)
    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    plt.close(fig)
    return img_base64


def plot_fit(
    network: Network,
    x_values: Any,
    y_values: Any,
    scale_factor: float = 1.0,
    x_label: str = 'x',
    y_label: str = 'y'
) -> str:
    """
    Scatter the data and draw the model response over it.

    Args:
        network: A single-input, single-output network
        x_values: Predictor values
        y_values: Response values
        scale_factor: Scale factor the network was trained with
        x_label: Axis title for the predictor
        y_label: Axis title for the response

    Returns:
        Base64-encoded PNG image string

    Raises:
        ValueError: If the network does not have exactly one input and output
    """
    if network.num_inputs != 1 or network.num_outputs != 1:
        raise ValueError(
            "Fit plots need a single-input, single-output network, "
            f"got {network.num_inputs} inputs and {network.num_outputs} outputs"
        )

    rows = model_output_rows(network, x_values, y_values, scale_factor)
    x, target, model = split_columns(rows, 1, 1)
    order = np.argsort(x[:, 0])

    fig, ax = plt.subplots(figsize=(6, 4))
    ax.scatter(x[:, 0], target[:, 0], s=12, label='data')
    ax.plot(x[order, 0], model[order, 0], color='tab:red', label='model')
    ax.set_xlabel(x_label)
    ax.set_ylabel(y_label)
    ax.set_title(f"{y_label} vs {x_label}: {network.num_layers} hidden layer(s), "
                 f"{network.layer_sizes[1]} units")
    ax.legend()
    return _figure_to_base64(fig)


def plot_error_history(history: Sequence[float]) -> str:
    """
    Draw the network error against the training iteration.

    Returns:
        Base64-encoded PNG image string
    """
    errors = np.asarray(history, dtype=np.float64)
    iterations = np.arange(1, len(errors) + 1)

    fig, ax = plt.subplots(figsize=(6, 4))
    ax.plot(iterations, errors)
    finite = errors[np.isfinite(errors)]
    if finite.size and np.all(finite > 0):
        ax.set_yscale('log')
    ax.set_xlabel('Iteration')
    ax.set_ylabel('Network error')
    ax.set_title('Training error')
    return _figure_to_base64(fig)
