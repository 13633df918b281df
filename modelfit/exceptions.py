"""
exceptions.py
~~~~~~~~~~~~~

Exception types raised by the network engine.
"""


class NetworkError(Exception):
    """Base class for all network engine errors."""


class NetworkConfigError(NetworkError, ValueError):
    """Raised when a network is built or used with an invalid configuration."""


class DeserializationError(NetworkError, ValueError):
    """Raised when a serialized network cannot be parsed."""
