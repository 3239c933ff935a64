import copy
import logging
from abc import ABC, abstractmethod
from typing import Optional, Tuple

import numpy as np

from perceptron.context import RandomContext
from perceptron.errors import (ConfigurationError, ContractViolationError,
                               NumericInvariantError)
from perceptron.parameters import Parameters
from perceptron.registry import REGISTRY, LayerRegistry
from perceptron.store import StoreReader, StoreWriter

logger = logging.getLogger(__name__)

EQUALITY_TOLERANCE = 0.0
SUPPORTED_DTYPES = (np.dtype("float32"), np.dtype("float64"))


def arrays_equal(a: np.ndarray,
                 b: np.ndarray,
                 tolerance: float = EQUALITY_TOLERANCE) -> bool:
    if a.shape != b.shape:
        return False

    if tolerance == 0.0:
        return bool(np.array_equal(a, b))

    return bool(np.allclose(a, b, rtol=0.0, atol=tolerance))


def parameter_dtype(dtype, name: str) -> np.dtype:
    try:
        dtype = np.dtype(dtype)
    except TypeError as e:
        raise ConfigurationError(
            f"{name}: invalid parameter dtype {dtype!r}.") from e

    if dtype not in SUPPORTED_DTYPES:
        raise ConfigurationError(
            f"{name}: parameter dtype must be float32 or float64, got "
            f"{dtype}.")

    return dtype


class Layer(ABC):
    """One trainable layer of a feed-forward network.

    A layer maps a vector of ``inputs`` values to a vector of ``outputs``
    values. There are three ways to run it:

    * ``apply`` evaluates the layer for inference and keeps nothing.
    * ``fprop`` evaluates it exactly as ``apply`` would while filling a
      caller-owned temporary buffer of ``fprop_temporary_space_required()``
      elements.
    * ``bprop`` takes the buffers of one ``fprop`` call plus the error with
      respect to the outputs. It adds ``example_weight * dE/dparam`` into
      ``gradient`` and writes ``dE/dinput`` into ``dL_dx`` unless that is
      None.

    None of them modify the layer, so one instance may be driven from
    several threads as long as each call has its own buffers. Writes to the
    weights must not overlap with them.

    Vectors are 1D ``float32`` or ``float64`` arrays. Results always have the
    dtype of the input. Subclasses implement ``_apply`` and ``_bprop``, plus
    ``_fprop`` when they need temporary space. The public wrappers check the
    buffers and copy any input that shares memory with an output first.
    """

    def __init__(self, name: Optional[str], inputs: int, outputs: int) -> None:
        self._init(name, inputs, outputs)

    def _init(self, name: Optional[str], inputs: int, outputs: int) -> None:
        if inputs <= 0:
            raise ConfigurationError(
                f"Number of inputs must be positive, got {inputs}.")

        if outputs <= 0:
            raise ConfigurationError(
                f"Number of outputs must be positive, got {outputs}.")

        self.name = name or self.__class__.__name__
        self._inputs = int(inputs)
        self._outputs = int(outputs)
        self._parameters = Parameters()

    # Information

    @property
    def inputs(self) -> int:
        return self._inputs

    @property
    def outputs(self) -> int:
        return self._outputs

    def max_width(self) -> int:
        return max(self._inputs, self._outputs)

    @abstractmethod
    def print(self) -> str:
        """Dump every learnable value as text. This will be big."""

    @abstractmethod
    def class_id(self) -> str:
        pass

    @abstractmethod
    def targets(self, maximum: float) -> Tuple[float, float]:
        """Return the (low, high) label range to train this layer towards.

        ``maximum`` is the fraction of the output range to use, so that a
        saturating function such as tanh is not pushed towards its
        asymptotes (0.8 gives -0.8 to 0.8 for tanh).
        """

    def validate(self) -> None:
        if self._inputs <= 0 or self._outputs <= 0:
            raise ConfigurationError(
                f"{self.name}: widths must be positive, got "
                f"inputs={self._inputs}, outputs={self._outputs}.")

        count = self.parameter_count()
        if self._parameters.size != count:
            raise ConfigurationError(
                f"{self.name}: parameter view holds {self._parameters.size} "
                f"values but parameter_count() is {count}.")

        for param_name, value in self._parameters.items():
            if not np.all(np.isfinite(value)):
                raise NumericInvariantError(
                    f"{self.name}: parameter '{param_name}' contains "
                    "non-finite values.")

        logger.debug("%s validated: inputs=%d, outputs=%d, parameters=%d.",
                     self.name, self._inputs, self._outputs, count)

    def equal(self, other: "Layer") -> bool:
        if self.class_id() != other.class_id():
            return False

        return self.equal_impl(other)

    @abstractmethod
    def equal_impl(self, other: "Layer") -> bool:
        pass

    def _base_equal(self, other: "Layer") -> bool:
        return (self.name == other.name and self._inputs == other._inputs
                and self._outputs == other._outputs)

    def __str__(self) -> str:
        return self.print()

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(name={self.name!r}, "
                f"inputs={self._inputs}, outputs={self._outputs})")

    # Parameters

    @property
    def parameters(self) -> Parameters:
        return self._parameters

    def update_parameters(self) -> None:
        """Rebuild the parameter view from the layer's current arrays.

        Must be called whenever the arrays are created or replaced.
        """
        self._parameters.clear()
        self.add_parameters(self._parameters)

    @abstractmethod
    def add_parameters(self, params: Parameters) -> None:
        pass

    @abstractmethod
    def parameter_count(self) -> int:
        pass

    @abstractmethod
    def random_fill(self, limit: float, context: RandomContext) -> None:
        pass

    def zero_fill(self) -> None:
        self._parameters.fill(0.0)

    # Serialization

    @abstractmethod
    def serialize(self, store: StoreWriter) -> None:
        pass

    @abstractmethod
    def reconstitute(self, store: StoreReader) -> None:
        pass

    @classmethod
    def from_store(cls, store: StoreReader) -> "Layer":
        layer = cls.__new__(cls)
        layer.reconstitute(store)
        return layer

    def poly_serialize(self, store: StoreWriter) -> None:
        store.write_string(self.class_id())
        self.serialize(store)

    @staticmethod
    def poly_reconstitute(store: StoreReader,
                          registry: Optional[LayerRegistry] = None) -> "Layer":
        if registry is None:
            registry = REGISTRY

        return registry.reconstitute(store)

    def make_copy(self) -> "Layer":
        """Copy the weights; helper objects such as transfer functions are
        shared with the original."""
        result = copy.copy(self)

        for attr, value in vars(self).items():
            if isinstance(value, np.ndarray):
                setattr(result, attr, value.copy())

        result._parameters = Parameters()
        result.update_parameters()

        return result

    def deep_copy(self) -> "Layer":
        result = copy.deepcopy(self)
        result.update_parameters()

        return result

    # Apply

    def apply(self,
              x: np.ndarray,
              y: Optional[np.ndarray] = None) -> np.ndarray:
        self._check_vector(x, self._inputs, "Input")

        if y is None:
            y = np.empty(self._outputs, dtype=x.dtype)
        else:
            self._check_vector(y, self._outputs, "Output", x.dtype)
            if np.may_share_memory(x, y):
                x = x.copy()

        self._apply(x, y)

        return y

    @abstractmethod
    def _apply(self, x: np.ndarray, y: np.ndarray) -> None:
        pass

    # Forward propagation

    def fprop_temporary_space_required(self) -> int:
        return 0

    def allocate_temp_space(
            self, dtype: np.dtype = np.dtype("float32")) -> np.ndarray:
        return np.empty(self.fprop_temporary_space_required(), dtype=dtype)

    def fprop(self,
              x: np.ndarray,
              temp_space: Optional[np.ndarray],
              y: Optional[np.ndarray] = None) -> np.ndarray:
        self._check_vector(x, self._inputs, "Input")
        temp_space = self._check_temp_space(temp_space, x.dtype)

        if y is None:
            y = np.empty(self._outputs, dtype=x.dtype)
        else:
            self._check_vector(y, self._outputs, "Output", x.dtype)
            if np.may_share_memory(x, y):
                x = x.copy()

        self._fprop(x, temp_space, y)

        logger.debug("%s fprop: inputs=%d, temp_space=%d, outputs=%d.",
                     self.name, self._inputs, temp_space.size, self._outputs)

        return y

    def _fprop(self, x: np.ndarray, temp_space: np.ndarray,
               y: np.ndarray) -> None:
        self._apply(x, y)

    # Backward propagation

    def bprop(self,
              x: np.ndarray,
              y: np.ndarray,
              temp_space: Optional[np.ndarray],
              dL_dy: np.ndarray,
              dL_dx: Optional[np.ndarray],
              gradient: Parameters,
              example_weight: float = 1.0) -> None:
        self._check_vector(x, self._inputs, "Input")
        self._check_vector(y, self._outputs, "Output", x.dtype)
        self._check_vector(dL_dy, self._outputs, "Output error", x.dtype)
        temp_space = self._check_temp_space(temp_space, x.dtype)

        if dL_dx is not None:
            self._check_vector(dL_dx, self._inputs, "Input error", x.dtype)
            if np.may_share_memory(dL_dx, dL_dy):
                dL_dy = dL_dy.copy()

        if not self._parameters.compatible(gradient):
            raise ContractViolationError(
                f"{self.name}: gradient layout mismatch. Expected "
                f"{self._parameters!r}, got {gradient!r}.")

        self._bprop(x, y, temp_space, dL_dy, dL_dx, gradient,
                    float(example_weight))

        logger.debug("%s bprop: example_weight=%g, input_errors=%s.",
                     self.name, example_weight,
                     "skipped" if dL_dx is None else "computed")

    @abstractmethod
    def _bprop(self, x: np.ndarray, y: np.ndarray, temp_space: np.ndarray,
               dL_dy: np.ndarray, dL_dx: Optional[np.ndarray],
               gradient: Parameters, example_weight: float) -> None:
        pass

    # Buffer checks

    def _check_vector(self,
                      array: np.ndarray,
                      size: int,
                      label: str,
                      dtype: Optional[np.dtype] = None) -> None:
        if not isinstance(array, np.ndarray):
            raise ContractViolationError(
                f"{self.name}: {label} must be a NumPy array, got "
                f"{type(array).__name__}.")

        if array.dtype not in SUPPORTED_DTYPES:
            raise ContractViolationError(
                f"{self.name}: {label} dtype must be float32 or float64, got "
                f"{array.dtype}.")

        if dtype is not None and array.dtype != dtype:
            raise ContractViolationError(
                f"{self.name}: {label} dtype mismatch. Expected {dtype}, got "
                f"{array.dtype}.")

        if array.shape != (size, ):
            raise ContractViolationError(
                f"{self.name}: {label} shape mismatch. Expected ({size},), "
                f"got {array.shape}.")

    def _check_temp_space(self, temp_space: Optional[np.ndarray],
                          dtype: np.dtype) -> np.ndarray:
        required = self.fprop_temporary_space_required()

        if temp_space is None:
            if required != 0:
                raise ContractViolationError(
                    f"{self.name}: temporary space of {required} elements "
                    "is required, got None.")

            return np.empty(0, dtype=dtype)

        if not isinstance(temp_space, np.ndarray):
            raise ContractViolationError(
                f"{self.name}: temporary space must be a NumPy array, got "
                f"{type(temp_space).__name__}.")

        if temp_space.size != required:
            raise ContractViolationError(
                f"{self.name}: temporary space size mismatch. Expected "
                f"{required}, got {temp_space.size}.")

        if required != 0:
            self._check_vector(temp_space, required, "Temporary space", dtype)

        return temp_space
