import logging
from typing import Optional, Tuple

import numpy as np

from perceptron.activations import (TransferFunction, Tanh,
                                    get_transfer_function)
from perceptron.context import RandomContext
from perceptron.errors import StoreFormatError
from perceptron.layers.base import Layer
from perceptron.parameters import Parameters
from perceptron.store import StoreReader, StoreWriter

logger = logging.getLogger(__name__)


class Transfer(Layer):
    """Applies a transfer function to its input. Has no parameters."""

    CLASS_ID = "Transfer_Layer"
    SERIALIZATION_VERSION = 1

    def __init__(self,
                 width: int,
                 transfer: Optional[TransferFunction] = None,
                 name: Optional[str] = None) -> None:
        super().__init__(name, width, width)

        self.transfer = transfer if transfer is not None else Tanh()
        self.update_parameters()

        logger.info("%s initialized with width=%d, transfer=%s.", self.name,
                    width, self.transfer.name)

    def class_id(self) -> str:
        return self.CLASS_ID

    def print(self) -> str:
        return (f"{self.CLASS_ID} '{self.name}': width {self.inputs}, "
                f"transfer={self.transfer.name}\n")

    def targets(self, maximum: float) -> Tuple[float, float]:
        return self.transfer.targets(maximum)

    def equal_impl(self, other: Layer) -> bool:
        return (isinstance(other, Transfer) and self._base_equal(other)
                and self.transfer == other.transfer)

    def add_parameters(self, params: Parameters) -> None:
        pass

    def parameter_count(self) -> int:
        return 0

    def random_fill(self, limit: float, context: RandomContext) -> None:
        logger.debug("%s has no parameters to fill.", self.name)

    def serialize(self, store: StoreWriter) -> None:
        store.write_int(self.SERIALIZATION_VERSION)
        store.write_string(self.name)
        store.write_int(self.inputs)
        store.write_string(type(self.transfer).__name__)

    def reconstitute(self, store: StoreReader) -> None:
        version = store.read_int()
        if version != self.SERIALIZATION_VERSION:
            raise StoreFormatError(
                f"Unknown {self.CLASS_ID} serialization version {version}.")

        name = store.read_string()
        width = store.read_int()
        transfer = get_transfer_function(store.read_string())

        self._init(name, width, width)
        self.transfer = transfer
        self.update_parameters()

    def _apply(self, x: np.ndarray, y: np.ndarray) -> None:
        y[...] = self.transfer.forward(x)

    def _bprop(self, x: np.ndarray, y: np.ndarray, temp_space: np.ndarray,
               dL_dy: np.ndarray, dL_dx: Optional[np.ndarray],
               gradient: Parameters, example_weight: float) -> None:
        if dL_dx is not None:
            dL_dx[...] = self.transfer.backward(dL_dy, y, x)
