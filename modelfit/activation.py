"""
activation.py
~~~~~~~~~~~~~

Activation functions for the network units.

Every unit in a layer shares one activation configuration: a function
kind plus two shaping parameters.

- ``slope`` adjusts the sensitivity of the function. For the sigmoidal
  kinds (unipolar, bipolar, tanh, arctan, elliot, softsign) a larger slope
  steepens the curve at the origin; for ISRU it has the opposite effect and
  also narrows the range to +/- 1/sqrt(slope). For the periodic kinds
  (sine, cosine, sinc) it shortens the period, for the Gaussian it narrows
  the bell, and for threshold it sets the "on" value.
- ``amplify`` scales the final value, which widens or narrows the range.

The values and analytic gradients are evaluated element-wise on numpy
arrays; scalar inputs return plain floats.
"""

import logging
from enum import IntEnum
from typing import Any, Callable, Dict, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

ArrayLike = Union[float, np.ndarray]

# Inputs closer to zero than this use the limit value of sinc
SINC_CUTOFF = 1e-5


class ActivationKind(IntEnum):
    """The available activation functions.

    The integer values are written to serialized networks and must not change.
    """

    THRESHOLD = 0
    UNIPOLAR = 1
    BIPOLAR = 2
    TANH = 3
    GAUSSIAN = 4
    ARCTAN = 5
    SINE = 6
    COSINE = 7
    SINC = 8
    ELLIOT = 9
    LINEAR = 10
    ISRU = 11
    SOFTSIGN = 12
    SOFTPLUS = 13

    @classmethod
    def parse(cls, value: Any) -> 'ActivationKind':
        """
        Convert a member, an integer code or a name into an ActivationKind.

        Args:
            value: ActivationKind, int, or case-insensitive name such as 'tanh'

        Returns:
            ActivationKind: The matching member

        Raises:
            ValueError: If the value does not name a known activation kind
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown activation kind: {value!r}") from None
        if isinstance(value, bool):
            raise ValueError(f"Unknown activation kind: {value!r}")
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise ValueError(f"Unknown activation kind: {value!r}") from None


# ============================================================================
# BASE FUNCTIONS
# ============================================================================
# Each entry maps a kind to (f, f') evaluated at slope s, before amplify.

def _threshold(x: np.ndarray, s: float) -> np.ndarray:
    return np.where(x >= 0, 1.0 * s, 0.0)


def _threshold_gradient(x: np.ndarray, s: float) -> np.ndarray:
    # zero everywhere except the origin, where the derivative is undefined
    return np.where(x == 0, s, 0.0)


def _unipolar(x: np.ndarray, s: float) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-s * x))


def _unipolar_gradient(x: np.ndarray, s: float) -> np.ndarray:
    exp_mx = np.exp(-s * x)
    exp_mx1 = 1.0 + exp_mx
    return (s * exp_mx) / (exp_mx1 * exp_mx1)


def _bipolar(x: np.ndarray, s: float) -> np.ndarray:
    return (2.0 / (1.0 + np.exp(-s * x))) - 1.0


def _bipolar_gradient(x: np.ndarray, s: float) -> np.ndarray:
    exp_mx = np.exp(-s * x)
    exp_mx1 = 1.0 + exp_mx
    return (2.0 * s * exp_mx) / (exp_mx1 * exp_mx1)


def _tanh(x: np.ndarray, s: float) -> np.ndarray:
    return np.tanh(s * x)


def _tanh_gradient(x: np.ndarray, s: float) -> np.ndarray:
    tan_mx = np.tanh(s * x)
    return s * (1.0 - tan_mx * tan_mx)


def _gaussian(x: np.ndarray, s: float) -> np.ndarray:
    return np.exp(-s * x * x)


def _gaussian_gradient(x: np.ndarray, s: float) -> np.ndarray:
    return -2.0 * s * x * np.exp(-s * x * x)


def _arctan(x: np.ndarray, s: float) -> np.ndarray:
    return np.arctan(s * x)


def _arctan_gradient(x: np.ndarray, s: float) -> np.ndarray:
    return s / (1.0 + s * s * x * x)


def _sine(x: np.ndarray, s: float) -> np.ndarray:
    return np.sin(s * x)


def _sine_gradient(x: np.ndarray, s: float) -> np.ndarray:
    return s * np.cos(s * x)


def _cosine(x: np.ndarray, s: float) -> np.ndarray:
    return np.cos(s * x)


def _cosine_gradient(x: np.ndarray, s: float) -> np.ndarray:
    return -s * np.sin(s * x)


def _sinc(x: np.ndarray, s: float) -> np.ndarray:
    near_zero = np.abs(x) < SINC_CUTOFF
    sx = s * np.where(near_zero, 1.0, x)
    return np.where(near_zero, 1.0, np.sin(sx) / sx)


def _sinc_gradient(x: np.ndarray, s: float) -> np.ndarray:
    near_zero = np.abs(x) < SINC_CUTOFF
    safe_x = np.where(near_zero, 1.0, x)
    sx = s * safe_x
    gradient = (sx * np.cos(sx) - np.sin(sx)) / (s * safe_x * safe_x)
    return np.where(near_zero, 0.0, gradient)


def _elliot(x: np.ndarray, s: float) -> np.ndarray:
    return ((s * x) / 2.0) / (1.0 + np.abs(s * x)) + 0.5


def _elliot_gradient(x: np.ndarray, s: float) -> np.ndarray:
    abs_mx1 = 1.0 + np.abs(s * x)
    return (0.5 * s) / (abs_mx1 * abs_mx1)


def _linear(x: np.ndarray, s: float) -> np.ndarray:
    return s * x


def _linear_gradient(x: np.ndarray, s: float) -> np.ndarray:
    return np.full_like(x, s)


def _isru(x: np.ndarray, s: float) -> np.ndarray:
    return x / np.sqrt(1.0 + s * x * x)


def _isru_gradient(x: np.ndarray, s: float) -> np.ndarray:
    grad = 1.0 / np.sqrt(1.0 + s * x * x)
    return grad * grad * grad


def _softsign(x: np.ndarray, s: float) -> np.ndarray:
    return (s * x) / (1.0 + np.abs(s * x))


def _softsign_gradient(x: np.ndarray, s: float) -> np.ndarray:
    abs_mx1 = 1.0 + np.abs(s * x)
    return s / (abs_mx1 * abs_mx1)


def _softplus(x: np.ndarray, s: float) -> np.ndarray:
    # log(1 + e^sx) without overflowing for large sx
    return np.logaddexp(0.0, s * x)


def _softplus_gradient(x: np.ndarray, s: float) -> np.ndarray:
    # s * e^sx / (1 + e^sx), rewritten so large sx gives s instead of nan
    return s / (1.0 + np.exp(-s * x))


_FUNCTIONS: Dict[ActivationKind, Tuple[Callable, Callable]] = {
    ActivationKind.THRESHOLD: (_threshold, _threshold_gradient),
    ActivationKind.UNIPOLAR: (_unipolar, _unipolar_gradient),
    ActivationKind.BIPOLAR: (_bipolar, _bipolar_gradient),
    ActivationKind.TANH: (_tanh, _tanh_gradient),
    ActivationKind.GAUSSIAN: (_gaussian, _gaussian_gradient),
    ActivationKind.ARCTAN: (_arctan, _arctan_gradient),
    ActivationKind.SINE: (_sine, _sine_gradient),
    ActivationKind.COSINE: (_cosine, _cosine_gradient),
    ActivationKind.SINC: (_sinc, _sinc_gradient),
    ActivationKind.ELLIOT: (_elliot, _elliot_gradient),
    ActivationKind.LINEAR: (_linear, _linear_gradient),
    ActivationKind.ISRU: (_isru, _isru_gradient),
    ActivationKind.SOFTSIGN: (_softsign, _softsign_gradient),
    ActivationKind.SOFTPLUS: (_softplus, _softplus_gradient),
}


def _evaluate(which: int, kind: Any, x: ArrayLike, slope: float,
              amplify: float) -> ArrayLike:
    function = _FUNCTIONS[ActivationKind.parse(kind)][which]
    values = np.asarray(x, dtype=np.float64)
    result = amplify * function(values, float(slope))
    if result.ndim == 0:
        return float(result)
    return result


def activate(kind: Any, x: ArrayLike, slope: float = 1.0,
             amplify: float = 1.0) -> ArrayLike:
    """
    Evaluate an activation function.

    Args:
        kind: The activation kind (member, integer code or name)
        x: Unit input value(s)
        slope: Sensitivity parameter
        amplify: Output scale factor

    Returns:
        amplify * f(x) as a float for scalar input, else an ndarray
    """
    return _evaluate(0, kind, x, slope, amplify)


def gradient(kind: Any, x: ArrayLike, slope: float = 1.0,
             amplify: float = 1.0) -> ArrayLike:
    """
    Evaluate the analytic derivative of an activation function.

    Args:
        kind: The activation kind (member, integer code or name)
        x: Unit input value(s)
        slope: Sensitivity parameter
        amplify: Output scale factor

    Returns:
        amplify * f'(x) as a float for scalar input, else an ndarray
    """
    return _evaluate(1, kind, x, slope, amplify)


class ActivationConfig:
    """
    The activation function settings shared by all units of one layer.

    Non-positive slope or amplify values are ignored and the previous
    value is kept, both in the constructor and on assignment.
    """

    def __init__(
        self,
        kind: Any = ActivationKind.UNIPOLAR,
        slope: float = 1.0,
        amplify: float = 1.0
    ):
        self.kind = ActivationKind.parse(kind)
        self._slope = 1.0
        self._amplify = 1.0
        self.slope = slope
        self.amplify = amplify

    @property
    def slope(self) -> float:
        return self._slope

    @slope.setter
    def slope(self, value: float) -> None:
        if value > 0:
            self._slope = float(value)
        else:
            logger.warning(f"Ignoring invalid slope {value}, keeping {self._slope}")

    @property
    def amplify(self) -> float:
        return self._amplify

    @amplify.setter
    def amplify(self, value: float) -> None:
        if value > 0:
            self._amplify = float(value)
        else:
            logger.warning(
                f"Ignoring invalid amplify {value}, keeping {self._amplify}"
            )

    def activate(self, x: ArrayLike) -> ArrayLike:
        """Evaluate this layer's activation function."""
        return activate(self.kind, x, self._slope, self._amplify)

    def gradient(self, x: ArrayLike) -> ArrayLike:
        """Evaluate this layer's activation gradient."""
        return gradient(self.kind, x, self._slope, self._amplify)

    def copy(self) -> 'ActivationConfig':
        return ActivationConfig(self.kind, self._slope, self._amplify)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.name.lower(),
            'slope': self._slope,
            'amplify': self._amplify
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ActivationConfig':
        """
        Build a configuration from a dictionary such as the one sent to the API.

        Args:
            data: Mapping with 'kind' and optional 'slope' and 'amplify'

        Returns:
            ActivationConfig: The parsed configuration

        Raises:
            ValueError: If the kind is unknown or a value is not numeric
        """
        return cls(
            data.get('kind', ActivationKind.UNIPOLAR),
            float(data.get('slope', 1.0)),
            float(data.get('amplify', 1.0))
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ActivationConfig):
            return NotImplemented
        return (self.kind == other.kind and self._slope == other._slope
                and self._amplify == other._amplify)

    def __repr__(self) -> str:
        return (f"ActivationConfig({self.kind.name}, slope={self._slope}, "
                f"amplify={self._amplify})")
