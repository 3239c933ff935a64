import logging
import sys
from typing import Optional, Tuple

import numpy as np

from perceptron.activations import (TransferFunction, Tanh,
                                    get_transfer_function)
from perceptron.context import RandomContext, glorot_limit
from perceptron.errors import ConfigurationError, StoreFormatError
from perceptron.layers.base import (SUPPORTED_DTYPES, Layer, arrays_equal,
                                    parameter_dtype)
from perceptron.parameters import Parameters
from perceptron.store import StoreReader, StoreWriter

logger = logging.getLogger(__name__)


class Dense(Layer):
    """Fully connected layer computing ``y = f(x @ W + b)``.

    ``W`` has shape (inputs, outputs) and ``b`` has shape (outputs,). They
    are exposed in that order through the parameter view. When the transfer
    function differentiates from its pre-activation, fprop keeps ``z`` in
    the temporary space.
    """

    CLASS_ID = "Dense_Layer"
    SERIALIZATION_VERSION = 1

    def __init__(self,
                 inputs: int,
                 outputs: int,
                 transfer: Optional[TransferFunction] = None,
                 dtype: np.dtype = np.dtype("float32"),
                 context: Optional[RandomContext] = None,
                 name: Optional[str] = None) -> None:
        super().__init__(name, inputs, outputs)

        self.transfer = transfer if transfer is not None else Tanh()
        self.dtype = parameter_dtype(dtype, self.name)

        self._W = np.zeros((self.inputs, self.outputs), dtype=self.dtype)
        self._b = np.zeros(self.outputs, dtype=self.dtype)
        self.update_parameters()

        self.random_fill(glorot_limit(self.inputs, self.outputs), context
                         if context is not None else RandomContext())

        logger.info(
            "%s initialized with inputs=%d, outputs=%d, transfer=%s, "
            "dtype=%s.", self.name, self.inputs, self.outputs,
            self.transfer.name, self.dtype.name)

    @property
    def weights(self) -> np.ndarray:
        return self._W

    @property
    def bias(self) -> np.ndarray:
        return self._b

    def class_id(self) -> str:
        return self.CLASS_ID

    def print(self) -> str:
        with np.printoptions(threshold=sys.maxsize, linewidth=120):
            return (f"{self.CLASS_ID} '{self.name}': {self.inputs} inputs, "
                    f"{self.outputs} outputs, transfer={self.transfer.name}, "
                    f"dtype={self.dtype.name}\n"
                    f"weights:\n{self._W}\n"
                    f"bias:\n{self._b}\n")

    def targets(self, maximum: float) -> Tuple[float, float]:
        return self.transfer.targets(maximum)

    def validate(self) -> None:
        if self._W.shape != (self.inputs, self.outputs):
            raise ConfigurationError(
                f"{self.name}: weight shape mismatch. Expected "
                f"{(self.inputs, self.outputs)}, got {self._W.shape}.")

        if self._b.shape != (self.outputs, ):
            raise ConfigurationError(
                f"{self.name}: bias shape mismatch. Expected "
                f"({self.outputs},), got {self._b.shape}.")

        super().validate()

    def equal_impl(self, other: Layer) -> bool:
        if not isinstance(other, Dense):
            return False

        return (self._base_equal(other) and self.transfer == other.transfer
                and self.dtype == other.dtype
                and arrays_equal(self._W, other._W)
                and arrays_equal(self._b, other._b))

    def add_parameters(self, params: Parameters) -> None:
        params.add("W", self._W)
        params.add("b", self._b)

    def parameter_count(self) -> int:
        return self.inputs * self.outputs + self.outputs

    def random_fill(self, limit: float, context: RandomContext) -> None:
        self._W[...] = context.uniform(-limit, limit, self._W.shape,
                                       self.dtype)
        self._b[...] = context.uniform(-limit, limit, self._b.shape,
                                       self.dtype)

        logger.debug("%s random fill with limit=%.4f.", self.name, limit)

    def serialize(self, store: StoreWriter) -> None:
        store.write_int(self.SERIALIZATION_VERSION)
        store.write_string(self.name)
        store.write_int(self.inputs)
        store.write_int(self.outputs)
        store.write_string(type(self.transfer).__name__)
        store.write_array(self._W)
        store.write_array(self._b)

    def reconstitute(self, store: StoreReader) -> None:
        version = store.read_int()
        if version != self.SERIALIZATION_VERSION:
            raise StoreFormatError(
                f"Unknown {self.CLASS_ID} serialization version {version}.")

        name = store.read_string()
        inputs = store.read_int()
        outputs = store.read_int()
        transfer = get_transfer_function(store.read_string())
        W = store.read_array()
        b = store.read_array()

        if W.shape != (inputs, outputs) or b.shape != (outputs, ):
            raise StoreFormatError(
                f"{self.CLASS_ID} '{name}' stored arrays have shapes "
                f"{W.shape} and {b.shape}, expected {(inputs, outputs)} and "
                f"({outputs},).")

        if W.dtype not in SUPPORTED_DTYPES or b.dtype != W.dtype:
            raise StoreFormatError(
                f"{self.CLASS_ID} '{name}' stored arrays have dtypes "
                f"{W.dtype} and {b.dtype}, expected matching float32 or "
                f"float64.")

        self._init(name, inputs, outputs)
        self.transfer = transfer
        self.dtype = W.dtype
        self._W = W
        self._b = b
        self.update_parameters()

    def fprop_temporary_space_required(self) -> int:
        return self.outputs if self.transfer.needs_preactivation else 0

    def _activation(self, x: np.ndarray) -> np.ndarray:
        W = self._W.astype(x.dtype, copy=False)
        b = self._b.astype(x.dtype, copy=False)

        return x @ W + b

    def _apply(self, x: np.ndarray, y: np.ndarray) -> None:
        y[...] = self.transfer.forward(self._activation(x))

    def _fprop(self, x: np.ndarray, temp_space: np.ndarray,
               y: np.ndarray) -> None:
        z = self._activation(x)

        if temp_space.size:
            temp_space[...] = z

        y[...] = self.transfer.forward(z)

    def _bprop(self, x: np.ndarray, y: np.ndarray, temp_space: np.ndarray,
               dL_dy: np.ndarray, dL_dx: Optional[np.ndarray],
               gradient: Parameters, example_weight: float) -> None:
        z = temp_space if temp_space.size else None
        dL_dz = self.transfer.backward(dL_dy, y, z)

        dL_dW = gradient["W"]
        dL_dW += example_weight * np.outer(x, dL_dz)
        dL_db = gradient["b"]
        dL_db += example_weight * dL_dz

        if dL_dx is not None:
            dL_dx[...] = dL_dz @ self._W.T.astype(x.dtype, copy=False)
