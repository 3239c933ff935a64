from perceptron.context import RandomContext, glorot_limit
from perceptron.errors import (ConfigurationError, ContractViolationError,
                               LayerError, NumericInvariantError,
                               StoreFormatError, UnknownLayerTypeError)
from perceptron.layers import Dense, Layer, Normalization, Transfer
from perceptron.parameters import ParameterSlice, Parameters
from perceptron.registry import (REGISTRY, LayerRegistry,
                                 register_builtin_layers)
from perceptron.store import StoreReader, StoreWriter

__version__ = "0.1.0"

__all__ = [
    "RandomContext", "glorot_limit", "ConfigurationError",
    "ContractViolationError", "LayerError", "NumericInvariantError",
    "StoreFormatError", "UnknownLayerTypeError", "Dense", "Layer",
    "Normalization", "Transfer", "ParameterSlice", "Parameters", "REGISTRY",
    "LayerRegistry", "register_builtin_layers", "StoreReader", "StoreWriter"
]
