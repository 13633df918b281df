"""
trainer.py
~~~~~~~~~~

Backpropagation training for feed-forward networks.

The trainer holds a training set of paired input and target vectors.
Each call to train_one_epoch() feeds every input vector through the
network in a freshly shuffled order, compares the response with the
target, propagates the error back through the layers and adjusts the
weights by gradient descent, optionally with momentum. Weights are
updated after every example (online learning), so the order matters
and the loop is strictly sequential.

The squared errors of every example are added to ``net_error``. The
caller inspects it after an epoch, decides whether training is complete,
and calls reset_net_error() before the next measurement window:

    >>> trainer = Trainer(learning_constant=0.05, momentum=0.25)
    >>> trainer.add_new_training_set(input_vectors, target_vectors)
    >>> trainer.train_one_epoch(net)
    >>> if trainer.net_error > tolerance:
    ...     trainer.reset_net_error()
    ...     trainer.train_one_epoch(net)
"""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np

from modelfit.exceptions import NetworkConfigError
from modelfit.network import Network

logger = logging.getLogger(__name__)


class Trainer:
    """Trains a Network on a fixed training set."""

    def __init__(
        self,
        learning_constant: float = 0.5,
        momentum: float = 0.0,
        seed: Optional[int] = None
    ):
        """
        Args:
            learning_constant: Step size of the gradient descent
            momentum: Fraction of the previous weight change added to the
                current one (0 disables momentum)
            seed: Seed for the epoch shuffles
        """
        self._rng = np.random.default_rng(seed)
        self._learning_constant = 0.5
        self._momentum = 0.0
        self.learning_constant = learning_constant
        if momentum:
            self.momentum = momentum

        self._net_error = 0.0
        self._inputs: List[np.ndarray] = []
        self._targets: List[np.ndarray] = []

        # Previous weight changes, shaped like the weight matrices
        self._prev_output_delta: Optional[np.ndarray] = None
        self._prev_hidden_deltas: Dict[int, np.ndarray] = {}

    @property
    def learning_constant(self) -> float:
        return self._learning_constant

    @learning_constant.setter
    def learning_constant(self, value: float) -> None:
        if value > 0:
            self._learning_constant = float(value)
        else:
            logger.warning(
                f"Ignoring invalid learning constant {value}, "
                f"keeping {self._learning_constant}"
            )

    @property
    def momentum(self) -> float:
        return self._momentum

    @momentum.setter
    def momentum(self, value: float) -> None:
        if value > 0:
            self._momentum = float(value)
        else:
            logger.warning(f"Ignoring invalid momentum {value}, keeping {self._momentum}")

    @property
    def net_error(self) -> float:
        """Total half squared error accumulated since the last reset."""
        return self._net_error

    @property
    def training_set_size(self) -> int:
        return len(self._inputs)

    def reset_net_error(self) -> None:
        self._net_error = 0.0

    # ------------------------------------------------------------------
    # Training set
    # ------------------------------------------------------------------

    def add_new_training_set(
        self,
        inputs: Sequence[Sequence[float]],
        targets: Sequence[Sequence[float]]
    ) -> None:
        """
        Replace the training set.

        Args:
            inputs: Input vectors, one per example
            targets: Target vectors, one per example

        Raises:
            ValueError: If the lists differ in length or the vectors within
                a list differ in length
        """
        if len(inputs) != len(targets):
            raise ValueError(
                f"Training set has {len(inputs)} input vectors "
                f"but {len(targets)} target vectors"
            )

        input_vectors = [np.array(v, dtype=np.float64).ravel() for v in inputs]
        target_vectors = [np.array(v, dtype=np.float64).ravel() for v in targets]
        _check_lengths(input_vectors, 'input')
        _check_lengths(target_vectors, 'target')

        self._inputs = input_vectors
        self._targets = target_vectors
        logger.debug(f"New training set with {len(self._inputs)} examples")

    def add_to_training_set(self, inputs: Sequence[float],
                            targets: Sequence[float]) -> None:
        """Append one example to the training set."""
        input_vector = np.array(inputs, dtype=np.float64).ravel()
        target_vector = np.array(targets, dtype=np.float64).ravel()
        _check_lengths(self._inputs + [input_vector], 'input')
        _check_lengths(self._targets + [target_vector], 'target')
        self._inputs.append(input_vector)
        self._targets.append(target_vector)

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def train_one_epoch(self, network: Network) -> None:
        """
        Run one shuffled pass over the training set, updating the weights
        after every example. An empty training set leaves everything unchanged.

        Raises:
            NetworkConfigError: If the network has no layers
            ValueError: If the training vectors do not fit the network
        """
        if not self._inputs:
            return
        if network.num_layers == 0:
            raise NetworkConfigError("Cannot train a network without layers")

        for index in self._rng.permutation(len(self._inputs)):
            input_vector = self._inputs[index]
            target_vector = self._targets[index]

            response = network.get_response(input_vector)
            if target_vector.size != response.size:
                raise ValueError(
                    f"Target vector has {target_vector.size} values, "
                    f"network has {response.size} outputs"
                )

            self._net_error += self._calc_network_error(response, target_vector)

            output_error = self._calc_output_error(network, response, target_vector)
            hidden_errors = self._calc_hidden_error(network, output_error)

            self._adjust_output_weights(network, output_error)
            self._adjust_hidden_weights(network, hidden_errors, input_vector)

    def train(self, network: Network, epochs: int) -> None:
        """Run several epochs; the error keeps accumulating."""
        for _ in range(epochs):
            self.train_one_epoch(network)

    @staticmethod
    def _calc_network_error(response: np.ndarray, target: np.ndarray) -> float:
        return float(np.sum(0.5 * (target - response) ** 2))

    @staticmethod
    def _calc_output_error(network: Network, response: np.ndarray,
                           target: np.ndarray) -> np.ndarray:
        """Error signal of every output unit."""
        unit_inputs = network.get_unit_inputs(network.num_layers)
        slope = network.output_activation.gradient(unit_inputs)
        return (target - response) * slope

    @staticmethod
    def _calc_hidden_error(network: Network,
                           output_error: np.ndarray) -> List[np.ndarray]:
        """
        Error signals of the hidden layers, computed from the last hidden
        layer back to the first. The returned list is in that reverse order:
        element 0 belongs to the last hidden layer.
        """
        hidden_errors = []
        prev_error = output_error

        for layer in range(network.num_layers, 0, -1):
            weights = network.get_weighted_connect(layer).weights
            config = network.get_layer_details(layer - 1)
            unit_inputs = network.get_unit_inputs(layer - 1)

            layer_error = config.gradient(unit_inputs) * (weights.T @ prev_error)
            hidden_errors.append(layer_error)
            prev_error = layer_error

        return hidden_errors

    def _adjust_output_weights(self, network: Network,
                               output_error: np.ndarray) -> None:
        layer = network.num_layers
        x_vec = network.get_activations(layer - 1)
        delta = self._learning_constant * np.outer(output_error, x_vec)

        if self._momentum > 0:
            delta = _with_momentum(delta, self._prev_output_delta, self._momentum)
            self._prev_output_delta = delta

        self._apply_delta(network, layer, delta)

    def _adjust_hidden_weights(self, network: Network,
                               hidden_errors: List[np.ndarray],
                               input_vector: np.ndarray) -> None:
        last = network.num_layers - 1

        for layer in range(last, -1, -1):
            layer_error = hidden_errors[last - layer]
            if layer == 0:
                x_vec = input_vector[:network.num_inputs]
            else:
                x_vec = network.get_activations(layer - 1)
            delta = self._learning_constant * np.outer(layer_error, x_vec)

            if self._momentum > 0:
                delta = _with_momentum(
                    delta, self._prev_hidden_deltas.get(layer), self._momentum
                )
                self._prev_hidden_deltas[layer] = delta

            self._apply_delta(network, layer, delta)

    @staticmethod
    def _apply_delta(network: Network, layer: int, delta: np.ndarray) -> None:
        connection = network.get_weighted_connect(layer)
        connection.set_weights(connection.weights + delta)
        network.set_weighted_connect(connection, layer)


def _with_momentum(delta: np.ndarray, previous: Optional[np.ndarray],
                   momentum: float) -> np.ndarray:
    # the first change seen for a connection seeds the history
    if previous is None or previous.shape != delta.shape:
        return delta
    return delta + momentum * previous


def _check_lengths(vectors: List[np.ndarray], name: str) -> None:
    lengths = {v.size for v in vectors}
    if len(lengths) > 1:
        raise ValueError(f"Training {name} vectors have different lengths: {sorted(lengths)}")
