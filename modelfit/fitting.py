"""
fitting.py
~~~~~~~~~~

Model fitting sessions: train a network on paired data until the network
error falls below a threshold or the iteration limit is reached.

Values are divided by a scale factor before they reach the network and
the reported network error is multiplied by it, so the error threshold
is expressed in the units of the data. The session keeps the network
state with the smallest error seen; if training does not converge that
network is the result. A NaN or infinite network error stops the run.
"""

import csv
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from modelfit.activation import ActivationConfig, ActivationKind
from modelfit.exceptions import NetworkConfigError
from modelfit.network import Network
from modelfit.trainer import Trainer

logger = logging.getLogger(__name__)

STATUS_CONVERGED = 'converged'
STATUS_NOT_CONVERGED = 'not_converged'
STATUS_DIVERGED = 'diverged'


@dataclass
class FitSettings:
    """Network architecture and training parameters for a fitting session."""

    num_hidden_units: int = 4
    hidden_activation: ActivationConfig = field(
        default_factory=lambda: ActivationConfig(ActivationKind.UNIPOLAR)
    )
    output_activation: ActivationConfig = field(
        default_factory=lambda: ActivationConfig(ActivationKind.LINEAR)
    )
    init_range: float = 2.0
    learning_constant: float = 0.01
    momentum: float = 0.0
    min_net_error: float = 5.0
    num_iterations: int = 1000
    scale_factor: float = 1000.0
    report_interval: int = 100

    def validate(self) -> None:
        """
        Check that every setting is usable.

        Raises:
            NetworkConfigError: On the first invalid setting
        """
        if self.num_hidden_units < 1:
            raise NetworkConfigError("num_hidden_units must be at least 1")
        if self.num_iterations < 1:
            raise NetworkConfigError("num_iterations must be at least 1")
        if self.report_interval < 1:
            raise NetworkConfigError("report_interval must be at least 1")
        for name in ('init_range', 'learning_constant', 'scale_factor'):
            value = getattr(self, name)
            if not value > 0:
                raise NetworkConfigError(f"{name} must be positive, got {value}")
        if not self.momentum >= 0:
            raise NetworkConfigError(f"momentum must be non-negative, got {self.momentum}")
        if not self.min_net_error >= 0:
            raise NetworkConfigError(
                f"min_net_error must be non-negative, got {self.min_net_error}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'num_hidden_units': self.num_hidden_units,
            'hidden_activation': self.hidden_activation.to_dict(),
            'output_activation': self.output_activation.to_dict(),
            'init_range': self.init_range,
            'learning_constant': self.learning_constant,
            'momentum': self.momentum,
            'min_net_error': self.min_net_error,
            'num_iterations': self.num_iterations,
            'scale_factor': self.scale_factor,
            'report_interval': self.report_interval
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FitSettings':
        """Build settings from a (possibly partial) dictionary, e.g. a request body."""
        settings = cls()
        for name in ('num_hidden_units', 'num_iterations', 'report_interval'):
            if name in data:
                setattr(settings, name, int(data[name]))
        for name in ('init_range', 'learning_constant', 'momentum',
                     'min_net_error', 'scale_factor'):
            if name in data:
                setattr(settings, name, float(data[name]))
        if 'hidden_activation' in data:
            settings.hidden_activation = ActivationConfig.from_dict(data['hidden_activation'])
        if 'output_activation' in data:
            settings.output_activation = ActivationConfig.from_dict(data['output_activation'])
        return settings


@dataclass
class FitResult:
    """Outcome of a fitting session."""

    network: Optional[Network]
    status: str
    iterations: int
    net_error: float
    min_error: float
    error_history: List[float] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.status == STATUS_CONVERGED

    def summary(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'iterations': self.iterations,
            'net_error': self.net_error,
            'min_error': None if math.isinf(self.min_error) else self.min_error
        }


def _as_rows(values: Any) -> np.ndarray:
    """One row per example; 1-D data becomes a single column."""
    array = np.asarray(values, dtype=np.float64)
    if array.ndim == 1:
        array = array.reshape(-1, 1)
    if array.ndim != 2:
        raise ValueError(f"Expected 1-D or 2-D data, got shape {array.shape}")
    return array


def prepare_training_set(
    inputs: Any,
    targets: Any,
    scale_factor: float = 1.0
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Scale paired data for training.

    Args:
        inputs: Input values, 1-D (one value per example) or 2-D
        targets: Target values, 1-D or 2-D
        scale_factor: Every value is divided by this

    Returns:
        Tuple of (scaled inputs, scaled targets), one row per example

    Raises:
        ValueError: If the example counts differ
    """
    input_rows = _as_rows(inputs)
    target_rows = _as_rows(targets)
    if input_rows.shape[0] != target_rows.shape[0]:
        raise ValueError(
            f"{input_rows.shape[0]} input examples but "
            f"{target_rows.shape[0]} target examples"
        )
    return input_rows / scale_factor, target_rows / scale_factor


def build_network(
    num_inputs: int,
    num_outputs: int,
    settings: FitSettings,
    seed: Optional[int] = None
) -> Network:
    """Create a network with a single hidden layer described by the settings."""
    net = Network(num_inputs, num_outputs, settings.output_activation, seed=seed)
    net.add_layer(settings.num_hidden_units, settings.hidden_activation,
                  settings.init_range)
    logger.info(f"Built network {net.layer_sizes}")
    return net


def fit_network(
    network: Network,
    inputs: Any,
    targets: Any,
    settings: Optional[FitSettings] = None,
    seed: Optional[int] = None,
    callback: Optional[Callable[[Dict[str, Any]], None]] = None,
    yield_func: Optional[Callable[[], None]] = None
) -> FitResult:
    """
    Train a network until it converges or the iteration limit is reached.

    Args:
        network: The network to train (its weights are modified)
        inputs: Unscaled input values
        targets: Unscaled target values
        settings: Training parameters (defaults to FitSettings())
        seed: Seed for the epoch shuffles
        callback: Called after each epoch with a progress dictionary
        yield_func: Called after each epoch to let other tasks run

    Returns:
        FitResult: The converged network, the minimum-error network if the
        run did not converge, or the minimum-error network found before a
        divergence (None if the first epoch diverged)
    """
    settings = settings or FitSettings()
    settings.validate()

    train_inputs, train_targets = prepare_training_set(
        inputs, targets, settings.scale_factor
    )
    trainer = Trainer(settings.learning_constant, settings.momentum, seed=seed)
    trainer.add_new_training_set(train_inputs, train_targets)

    min_error = math.inf
    min_network: Optional[Network] = None
    history: List[float] = []
    net_error = math.nan
    start_time = time.time()

    logger.info(
        f"Fitting network {network.layer_sizes} to {len(train_inputs)} examples: "
        f"iterations={settings.num_iterations}, lc={settings.learning_constant}, "
        f"momentum={settings.momentum}"
    )

    for epoch in range(1, settings.num_iterations + 1):
        trainer.train_one_epoch(network)
        net_error = trainer.net_error * settings.scale_factor
        history.append(net_error)

        if math.isnan(net_error) or math.isinf(net_error):
            logger.error(
                f"Training stopped at iteration {epoch}: invalid network "
                f"error {net_error}"
            )
            return FitResult(min_network, STATUS_DIVERGED, epoch, net_error,
                             min_error, history)

        if net_error < min_error:
            min_error = net_error
            min_network = network.copy()

        if callback is not None:
            callback({
                'epoch': epoch,
                'total_epochs': settings.num_iterations,
                'net_error': net_error,
                'min_error': min_error,
                'elapsed_time': time.time() - start_time
            })

        if net_error < settings.min_net_error:
            logger.info(f"The solution has converged after {epoch} iterations")
            return FitResult(network, STATUS_CONVERGED, epoch, net_error,
                             min_error, history)

        if epoch % settings.report_interval == 0:
            logger.info(f"Iteration {epoch}: network error {net_error:.5g}")

        if yield_func is not None:
            yield_func()

        trainer.reset_net_error()

    logger.info(
        f"The solution has not converged; minimum error {min_error:.5g} "
        f"will be used"
    )
    return FitResult(min_network, STATUS_NOT_CONVERGED, settings.num_iterations,
                     net_error, min_error, history)


def fit_model(
    x_values: Any,
    y_values: Any,
    settings: Optional[FitSettings] = None,
    seed: Optional[int] = None,
    callback: Optional[Callable[[Dict[str, Any]], None]] = None,
    yield_func: Optional[Callable[[], None]] = None
) -> FitResult:
    """
    Build a network sized to the data and fit it.

    Args:
        x_values: Predictor values, 1-D or one row per example
        y_values: Response values, 1-D or one row per example
        settings: Architecture and training parameters
        seed: Seed for weight initialisation and epoch shuffles

    Returns:
        FitResult: See fit_network()
    """
    settings = settings or FitSettings()
    settings.validate()
    x_rows = _as_rows(x_values)
    y_rows = _as_rows(y_values)
    network = build_network(x_rows.shape[1], y_rows.shape[1], settings, seed=seed)
    return fit_network(network, x_rows, y_rows, settings, seed=seed,
                       callback=callback, yield_func=yield_func)


def model_output_rows(
    network: Network,
    x_values: Any,
    y_values: Any,
    scale_factor: float = 1.0
) -> np.ndarray:
    """
    Evaluate the model on the data.

    Returns:
        np.ndarray: One row per example holding the inputs, the targets and
        the model responses, all in unscaled units
    """
    x_rows = _as_rows(x_values)
    y_rows = _as_rows(y_values)
    model = np.array([
        network.get_response(row / scale_factor) * scale_factor for row in x_rows
    ]).reshape(len(x_rows), -1)
    return np.hstack([x_rows, y_rows, model])


def output_header(num_inputs: int, num_outputs: int) -> List[str]:
    """Column titles matching model_output_rows()."""
    def names(prefix: str, count: int) -> List[str]:
        if count == 1:
            return [prefix]
        return [f"{prefix}_{i + 1}" for i in range(count)]

    return (names('input', num_inputs) + names('target', num_outputs)
            + names('model', num_outputs))


def write_csv_output(
    path: str,
    network: Network,
    x_values: Any,
    y_values: Any,
    scale_factor: float = 1.0
) -> int:
    """
    Write the data and the model response as CSV.

    Returns:
        int: Number of data rows written
    """
    rows = model_output_rows(network, x_values, y_values, scale_factor)
    header = output_header(network.num_inputs, network.num_outputs)

    with open(path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for row in rows:
            writer.writerow([repr(float(v)) for v in row])

    logger.info(f"Wrote {len(rows)} model output rows to {path}")
    return len(rows)


def split_columns(rows: Sequence[Sequence[float]], num_inputs: int,
                  num_outputs: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split model_output_rows() back into inputs, targets and responses."""
    array = np.asarray(rows, dtype=np.float64)
    inputs = array[:, :num_inputs]
    targets = array[:, num_inputs:num_inputs + num_outputs]
    model = array[:, num_inputs + num_outputs:]
    return inputs, targets, model
