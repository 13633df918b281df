"""
network.py
~~~~~~~~~~

A feed-forward neural network with any number of hidden layers.

The network is built incrementally: set the number of inputs and outputs,
choose the output activation, then add hidden layers one at a time.
Each hidden layer has its own activation configuration used by all of its
units.

    >>> net = Network(num_inputs=2, num_outputs=3,
    ...               output_activation=ActivationConfig(ActivationKind.UNIPOLAR))
    >>> net.add_layer(4, ActivationKind.BIPOLAR)   # first hidden layer
    >>> net.add_layer(6, ActivationKind.BIPOLAR)   # second hidden layer
    >>> outputs = net.get_response([0.5, 0.2])

Layers are linked by weighted connections. The connection list always has
one entry more than there are hidden layers: its last element feeds the
output layer and is replaced whenever another hidden layer is added.

A network can be serialized to a whitespace-delimited text format and
read back, so a trained network can be used later or trained further.
"""

import copy
import logging
from typing import Any, Dict, Iterator, List, Optional, Sequence

import numpy as np

from modelfit.activation import ActivationConfig, ActivationKind
from modelfit.connection import WeightedConnection
from modelfit.exceptions import DeserializationError, NetworkConfigError

logger = logging.getLogger(__name__)

LAYER_DELIMITER = 'L'


def _format_number(value: float) -> str:
    """Shortest text that reads back to exactly the same double."""
    text = repr(float(value))
    if text.endswith('.0'):
        text = text[:-2]
    return text


class Network:
    """A layered feed-forward network of activation units."""

    def __init__(
        self,
        num_inputs: int = 0,
        num_outputs: int = 0,
        output_activation: Optional[ActivationConfig] = None,
        seed: Optional[int] = None
    ):
        """
        Create an empty network.

        Args:
            num_inputs: Number of input values
            num_outputs: Number of output units
            output_activation: Activation settings of the output layer
                (defaults to a threshold unit)
            seed: Seed for the random weight initialisation
        """
        self._rng = np.random.default_rng(seed)
        self._num_inputs = 0
        self._num_outputs = 0
        if num_inputs:
            self.num_inputs = num_inputs
        if num_outputs:
            self.num_outputs = num_outputs

        if output_activation is None:
            output_activation = ActivationConfig(ActivationKind.THRESHOLD)
        self._output_activation = output_activation.copy()

        self._connections: List[WeightedConnection] = []
        self._hidden_activations: List[ActivationConfig] = []

        # Per forward pass: unit input and activation vectors of every layer,
        # the output layer included
        self._unit_inputs: List[np.ndarray] = []
        self._activations: List[np.ndarray] = []

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def num_inputs(self) -> int:
        return self._num_inputs

    @num_inputs.setter
    def num_inputs(self, value: int) -> None:
        if value > 0:
            self._num_inputs = int(value)
        else:
            logger.warning(f"Ignoring invalid number of inputs: {value}")

    @property
    def num_outputs(self) -> int:
        return self._num_outputs

    @num_outputs.setter
    def num_outputs(self, value: int) -> None:
        if value > 0:
            self._num_outputs = int(value)
        else:
            logger.warning(f"Ignoring invalid number of outputs: {value}")

    @property
    def num_layers(self) -> int:
        """The number of hidden layers."""
        return len(self._hidden_activations)

    @property
    def output_activation(self) -> ActivationConfig:
        return self._output_activation.copy()

    @property
    def layer_sizes(self) -> List[int]:
        """Unit counts from the input layer to the output layer."""
        hidden = [c.num_outputs for c in self._connections[:-1]]
        return [self._num_inputs] + hidden + [self._num_outputs]

    def set_output_activation(self, config: ActivationConfig) -> None:
        self._output_activation = config.copy()

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def add_layer(
        self,
        num_units: int,
        activation: Any = ActivationKind.UNIPOLAR,
        init_range: float = 2.0,
        slope: float = 1.0,
        amplify: float = 1.0
    ) -> None:
        """
        Append a hidden layer after the current last hidden layer.

        The connection that fed the output layer is replaced by the
        connection into the new layer, and a fresh output connection is
        appended. All new weights are drawn from
        [-init_range/2, +init_range/2].

        Args:
            num_units: Number of units in the new layer
            activation: ActivationConfig, or an activation kind combined with
                the slope and amplify arguments
            init_range: Range of the random weight initialisation
            slope: Slope used when activation is a kind
            amplify: Amplify used when activation is a kind

        Raises:
            NetworkConfigError: If a parameter is not positive or the input
                and output counts have not been set; the network is unchanged
        """
        if num_units <= 0:
            raise NetworkConfigError(f"A layer needs at least one unit, got {num_units}")
        if not init_range > 0:
            raise NetworkConfigError(f"init_range must be positive, got {init_range}")

        if isinstance(activation, ActivationConfig):
            config = activation.copy()
        else:
            if not slope > 0 or not amplify > 0:
                raise NetworkConfigError(
                    f"slope and amplify must be positive, got {slope} and {amplify}"
                )
            try:
                config = ActivationConfig(activation, slope, amplify)
            except ValueError as e:
                raise NetworkConfigError(str(e)) from e

        if self._num_inputs <= 0:
            raise NetworkConfigError("Set the number of inputs before adding layers")
        if self._num_outputs <= 0:
            raise NetworkConfigError("Set the number of outputs before adding layers")

        if self._connections:
            layer_inputs = self._connections[-1].num_inputs
        else:
            layer_inputs = self._num_inputs

        hidden = WeightedConnection(layer_inputs, num_units, init_range, self._rng)
        output = WeightedConnection(num_units, self._num_outputs, init_range, self._rng)

        if self._connections:
            # overwrite the old output connection
            self._connections[-1] = hidden
        else:
            self._connections.append(hidden)
        self._connections.append(output)
        self._hidden_activations.append(config)

        self._unit_inputs = []
        self._activations = []

        logger.debug(
            f"Added hidden layer {self.num_layers} with {num_units} "
            f"{config.kind.name} units"
        )

    def clear(self) -> None:
        """Remove every layer and reset the network to its initial settings."""
        self._num_inputs = 0
        self._num_outputs = 0
        self._output_activation = ActivationConfig(ActivationKind.THRESHOLD)
        self._connections = []
        self._hidden_activations = []
        self._unit_inputs = []
        self._activations = []

    def copy(self) -> 'Network':
        """Return an independent deep copy, caches included."""
        return copy.deepcopy(self)

    # ------------------------------------------------------------------
    # Forward pass
    # ------------------------------------------------------------------

    def get_response(self, inputs: Sequence[float]) -> np.ndarray:
        """
        Propagate an input vector through the network.

        Only the first num_inputs values are used.

        Args:
            inputs: Input values

        Returns:
            np.ndarray: The output layer activations

        Raises:
            NetworkConfigError: If no layers have been added
            ValueError: If fewer than num_inputs values are given
        """
        if not self._connections:
            raise NetworkConfigError("The network has no layers")

        values = np.asarray(inputs, dtype=np.float64).ravel()
        if values.size < self._num_inputs:
            raise ValueError(
                f"Expected {self._num_inputs} input values, got {values.size}"
            )

        signal = values[:self._num_inputs]
        unit_inputs = []
        activations = []

        for layer, connection in enumerate(self._connections):
            connection.set_inputs(signal)
            layer_inputs = connection.get_outputs()
            signal = np.asarray(
                self._layer_config(layer).activate(layer_inputs),
                dtype=np.float64
            )
            unit_inputs.append(layer_inputs)
            activations.append(signal)

        self._unit_inputs = unit_inputs
        self._activations = activations
        return signal.copy()

    def _layer_config(self, layer: int) -> ActivationConfig:
        if layer < self.num_layers:
            return self._hidden_activations[layer]
        return self._output_activation

    # ------------------------------------------------------------------
    # Layer access for the trainer
    # ------------------------------------------------------------------

    def get_layer_details(self, n: int) -> ActivationConfig:
        """Return the activation settings of hidden layer n."""
        if not 0 <= n < self.num_layers:
            raise IndexError(f"Hidden layer {n} out of range (0-{self.num_layers - 1})")
        return self._hidden_activations[n].copy()

    def get_activations(self, layer: int) -> np.ndarray:
        """Activations of a layer from the last forward pass (output layer = num_layers)."""
        if not 0 <= layer < len(self._activations):
            raise IndexError(f"No cached activations for layer {layer}")
        return self._activations[layer].copy()

    def get_unit_inputs(self, layer: int) -> np.ndarray:
        """Unit input values of a layer from the last forward pass."""
        if not 0 <= layer < len(self._unit_inputs):
            raise IndexError(f"No cached unit inputs for layer {layer}")
        return self._unit_inputs[layer].copy()

    def get_weighted_connect(self, layer: int) -> WeightedConnection:
        """Return a copy of the connection feeding layer ``layer``."""
        self._check_connection(layer)
        return self._connections[layer].copy()

    def set_weighted_connect(self, connection: WeightedConnection, layer: int) -> None:
        """
        Replace the connection feeding layer ``layer``.

        Raises:
            IndexError: If the layer index is out of range
            ValueError: If the connection shape does not fit the topology
        """
        self._check_connection(layer)
        current = self._connections[layer]
        if (connection.num_inputs, connection.num_outputs) != \
                (current.num_inputs, current.num_outputs):
            raise ValueError(
                f"Connection {connection.num_inputs}x{connection.num_outputs} "
                f"does not fit layer {layer} "
                f"({current.num_inputs}x{current.num_outputs})"
            )
        self._connections[layer] = connection

    def _check_connection(self, layer: int) -> None:
        if not 0 <= layer < len(self._connections):
            raise IndexError(
                f"Connection {layer} out of range (0-{len(self._connections) - 1})"
            )

    def describe(self) -> Dict[str, Any]:
        """Summary of the topology, suitable for JSON."""
        return {
            'num_inputs': self._num_inputs,
            'num_outputs': self._num_outputs,
            'num_layers': self.num_layers,
            'layer_sizes': self.layer_sizes,
            'hidden_activations': [c.to_dict() for c in self._hidden_activations],
            'output_activation': self._output_activation.to_dict()
        }

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize(self) -> str:
        """
        Encode the network as text.

        Format: ``numInputs numOutputs numLayers outKind outSlope outAmplify``
        followed, for every connection (output connection last), by
        ``L numIn numOut kind slope amplify`` and the row-major weights.
        The output connection block carries ``0 0 0`` for its kind, slope
        and amplify; the output layer settings live in the header.

        Raises:
            NetworkConfigError: If the network has no layers
        """
        if not self._connections:
            raise NetworkConfigError("Cannot serialize a network without layers")

        out = self._output_activation
        parts = [
            str(self._num_inputs),
            str(self._num_outputs),
            str(self.num_layers),
            str(int(out.kind)),
            _format_number(out.slope),
            _format_number(out.amplify),
        ]

        for layer, connection in enumerate(self._connections):
            if layer < self.num_layers:
                config = self._hidden_activations[layer]
                kind, slope, amplify = int(config.kind), config.slope, config.amplify
            else:
                kind, slope, amplify = 0, 0.0, 0.0

            parts.extend([
                LAYER_DELIMITER,
                str(connection.num_inputs),
                str(connection.num_outputs),
                str(kind),
                _format_number(slope),
                _format_number(amplify),
            ])
            parts.extend(_format_number(w) for w in connection.weights.ravel())

        return ' '.join(parts) + ' \n'

    @classmethod
    def deserialize(cls, text: str) -> 'Network':
        """
        Rebuild a network from the text produced by serialize().

        Raises:
            DeserializationError: If the text is malformed
        """
        tokens = _TokenReader(text.split())

        num_inputs = tokens.next_int('number of inputs')
        num_outputs = tokens.next_int('number of outputs')
        num_layers = tokens.next_int('number of layers')
        out_kind = tokens.next_kind('output unit type')
        out_slope = tokens.next_float('output slope')
        out_amplify = tokens.next_float('output amplify')

        if num_inputs <= 0 or num_outputs <= 0 or num_layers <= 0:
            raise DeserializationError(
                f"Invalid network header: {num_inputs} inputs, "
                f"{num_outputs} outputs, {num_layers} layers"
            )

        net = cls(num_inputs, num_outputs,
                  ActivationConfig(out_kind, out_slope, out_amplify))

        expected_inputs = num_inputs
        for layer in range(num_layers + 1):
            delimiter = tokens.next_token('layer delimiter')
            if delimiter != LAYER_DELIMITER:
                raise DeserializationError(
                    f"Expected layer delimiter {LAYER_DELIMITER!r} for layer "
                    f"{layer}, found {delimiter!r}"
                )
            n_in = tokens.next_int('layer input count')
            n_out = tokens.next_int('layer output count')
            kind = tokens.next_kind('layer unit type')
            slope = tokens.next_float('layer slope')
            amplify = tokens.next_float('layer amplify')

            if n_in != expected_inputs or n_out <= 0:
                raise DeserializationError(
                    f"Layer {layer} is {n_in}x{n_out} but follows a layer "
                    f"with {expected_inputs} units"
                )
            if layer == num_layers and n_out != num_outputs:
                raise DeserializationError(
                    f"Output connection has {n_out} outputs, expected {num_outputs}"
                )

            weights = [tokens.next_float('weight') for _ in range(n_in * n_out)]
            connection = WeightedConnection(n_in, n_out, rng=net._rng)
            connection.set_weights(np.array(weights).reshape(n_out, n_in))
            net._connections.append(connection)

            if layer < num_layers:
                net._hidden_activations.append(ActivationConfig(kind, slope, amplify))
            expected_inputs = n_out

        if tokens.remaining():
            raise DeserializationError(
                f"Unexpected data after the last layer: {tokens.remaining()} tokens"
            )

        return net

    def write_to_file(self, path: str) -> None:
        """Write the serialized network to a file."""
        with open(path, 'w', encoding='utf-8') as f:
            f.write(self.serialize())
        logger.info(f"Wrote network {self.layer_sizes} to {path}")

    @classmethod
    def read_from_file(cls, path: str) -> 'Network':
        """
        Read a network written by write_to_file().

        Raises:
            OSError: If the file cannot be read
            DeserializationError: If the file content is malformed
        """
        with open(path, 'r', encoding='utf-8') as f:
            net = cls.deserialize(f.read())
        logger.info(f"Read network {net.layer_sizes} from {path}")
        return net

    def __repr__(self) -> str:
        return f"Network({self.layer_sizes})"


class _TokenReader:
    """Sequential access to serialized tokens with typed parsing."""

    def __init__(self, tokens: List[str]):
        self._tokens: Iterator[str] = iter(tokens)
        self._count = len(tokens)
        self._position = 0

    def next_token(self, what: str) -> str:
        try:
            token = next(self._tokens)
        except StopIteration:
            raise DeserializationError(f"Unexpected end of data reading {what}") from None
        self._position += 1
        return token

    def next_int(self, what: str) -> int:
        token = self.next_token(what)
        try:
            return int(token)
        except ValueError:
            raise DeserializationError(f"Invalid {what}: {token!r}") from None

    def next_float(self, what: str) -> float:
        token = self.next_token(what)
        try:
            return float(token)
        except ValueError:
            raise DeserializationError(f"Invalid {what}: {token!r}") from None

    def next_kind(self, what: str) -> ActivationKind:
        code = self.next_int(what)
        try:
            return ActivationKind(code)
        except ValueError:
            raise DeserializationError(f"Invalid {what}: {code}") from None

    def remaining(self) -> int:
        return self._count - self._position
