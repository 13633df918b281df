"""
connection.py
~~~~~~~~~~~~~

Weighted connections linking adjacent layers of a network.

Every input node is connected to every output node. The value of an
output node is the sum of the input node values, each multiplied by the
weight of its connection to that output node. Row ``i`` of the weight
matrix holds the full weight vector of output node ``i``.
"""

import logging
from typing import Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)


class WeightedConnection:
    """A dense bipartite link between ``num_inputs`` and ``num_outputs`` nodes."""

    def __init__(
        self,
        num_inputs: int = 0,
        num_outputs: int = 0,
        init_range: float = 2.0,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Create a connection with randomly initialised weights.

        Non-positive arguments leave the connection empty (0 x 0).

        Args:
            num_inputs: Number of input nodes
            num_outputs: Number of output nodes
            init_range: Weights are drawn from [-init_range/2, +init_range/2]
            rng: Random generator used for initialisation
        """
        self._rng = rng if rng is not None else np.random.default_rng()
        self._weights = np.zeros((0, 0))
        self._inputs = np.zeros(0)
        self._outputs = np.zeros(0)
        self.resize(num_inputs, num_outputs, init_range)

    @property
    def num_inputs(self) -> int:
        return self._weights.shape[1]

    @property
    def num_outputs(self) -> int:
        return self._weights.shape[0]

    @property
    def weights(self) -> np.ndarray:
        """A copy of the (num_outputs, num_inputs) weight matrix."""
        return self._weights.copy()

    def resize(self, num_inputs: int, num_outputs: int,
               init_range: float = 2.0) -> None:
        """
        Set the number of nodes and re-initialise every weight.

        The call is ignored if any argument is not positive.
        """
        if num_inputs <= 0 or num_outputs <= 0 or not init_range > 0:
            logger.debug(
                f"Ignoring connection size {num_inputs}x{num_outputs} "
                f"with init range {init_range}"
            )
            return

        half = init_range / 2.0
        self._weights = self._rng.uniform(-half, half, size=(num_outputs, num_inputs))
        self._inputs = np.zeros(num_inputs)
        self._outputs = np.zeros(num_outputs)

    def set_weights(self, weights: Sequence[Sequence[float]]) -> None:
        """
        Replace the whole weight matrix.

        Raises:
            ValueError: If the matrix shape differs from the connection shape
        """
        matrix = np.array(weights, dtype=np.float64)
        if matrix.shape != self._weights.shape:
            raise ValueError(
                f"Weight matrix shape {matrix.shape} does not match "
                f"connection shape {self._weights.shape}"
            )
        self._weights = matrix

    def set_inputs(self, inputs: Sequence[float]) -> None:
        """
        Set the input node values.

        Raises:
            ValueError: If the number of values differs from num_inputs
        """
        values = np.array(inputs, dtype=np.float64).ravel()
        if values.size != self.num_inputs:
            raise ValueError(
                f"Expected {self.num_inputs} input values, got {values.size}"
            )
        self._inputs = values

    def get_outputs(self) -> np.ndarray:
        """Apply the weights to the current inputs and return the output values."""
        self._outputs = self._weights @ self._inputs
        return self._outputs.copy()

    def get_weight_vector(self, node: int) -> np.ndarray:
        """Return a copy of the weights feeding the given output node."""
        self._check_node(node)
        return self._weights[node].copy()

    def set_weight_vector(self, node: int, weights: Sequence[float]) -> None:
        """
        Set the weights feeding the given output node.

        Raises:
            IndexError: If the node index is out of range
            ValueError: If the vector length differs from num_inputs
        """
        self._check_node(node)
        vector = np.array(weights, dtype=np.float64).ravel()
        if vector.size != self.num_inputs:
            raise ValueError(
                f"Expected {self.num_inputs} weights for node {node}, "
                f"got {vector.size}"
            )
        self._weights[node] = vector

    def copy(self) -> 'WeightedConnection':
        """Return a deep copy sharing the random generator."""
        clone = WeightedConnection(rng=self._rng)
        clone._weights = self._weights.copy()
        clone._inputs = self._inputs.copy()
        clone._outputs = self._outputs.copy()
        return clone

    def _check_node(self, node: int) -> None:
        if not 0 <= node < self.num_outputs:
            raise IndexError(
                f"Output node {node} out of range for connection with "
                f"{self.num_outputs} output nodes"
            )

    def __repr__(self) -> str:
        return f"WeightedConnection({self.num_inputs}, {self.num_outputs})"
