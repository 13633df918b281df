"""
modelfit package
~~~~~~~~~~~~~~~~

Feed-forward neural network engine for fitting models to tabular data.
Contains the activation units, weighted connections, the network and its
backpropagation trainer, the model fitting session, data loading,
model persistence, and API server.
"""

from modelfit.activation import ActivationConfig, ActivationKind
from modelfit.connection import WeightedConnection
from modelfit.exceptions import (
    DeserializationError,
    NetworkConfigError,
    NetworkError
)
from modelfit.network import Network
from modelfit.trainer import Trainer

__version__ = "1.0.0"

__all__ = [
    'ActivationConfig',
    'ActivationKind',
    'DeserializationError',
    'Network',
    'NetworkConfigError',
    'NetworkError',
    'Trainer',
    'WeightedConnection',
]
