from perceptron.layers.base import EQUALITY_TOLERANCE, Layer, arrays_equal
from perceptron.layers.dense import Dense
from perceptron.layers.normalization import Normalization
from perceptron.layers.transfer import Transfer

__all__ = [
    "EQUALITY_TOLERANCE", "Layer", "arrays_equal", "Dense", "Normalization",
    "Transfer"
]
