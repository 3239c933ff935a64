import logging
import sys
from typing import Optional, Tuple

import numpy as np

from perceptron.context import RandomContext
from perceptron.errors import ConfigurationError, StoreFormatError
from perceptron.layers.base import (SUPPORTED_DTYPES, Layer, arrays_equal,
                                    parameter_dtype)
from perceptron.parameters import Parameters
from perceptron.store import StoreReader, StoreWriter

logger = logging.getLogger(__name__)

MIN_STD = 1e-8


class Normalization(Layer):
    """Standardizes each feature, then applies a learnable affine map.

    ``y = (x - mean) / std * scale + offset``. ``mean`` and ``std`` are
    fixed configuration; ``scale`` and ``offset`` are the parameters, in
    that order.
    """

    CLASS_ID = "Normalization_Layer"
    SERIALIZATION_VERSION = 1

    def __init__(self,
                 width: int,
                 mean: Optional[np.ndarray] = None,
                 std: Optional[np.ndarray] = None,
                 dtype: np.dtype = np.dtype("float32"),
                 name: Optional[str] = None) -> None:
        super().__init__(name, width, width)

        self.dtype = parameter_dtype(dtype, self.name)
        self._mean = self._statistic(mean, 0.0, "mean")
        self._std = self._statistic(std, 1.0, "std")

        if np.any(self._std <= 0):
            raise ConfigurationError(
                f"{self.name}: standard deviations must be positive.")

        self._scale = np.ones(width, dtype=self.dtype)
        self._offset = np.zeros(width, dtype=self.dtype)
        self.update_parameters()

        logger.info("%s initialized with width=%d, dtype=%s.", self.name,
                    width, self.dtype.name)

    @classmethod
    def from_samples(cls,
                     samples: np.ndarray,
                     dtype: np.dtype = np.dtype("float32"),
                     name: Optional[str] = None) -> "Normalization":
        if samples.ndim != 2 or samples.shape[0] == 0:
            raise ConfigurationError(
                "Samples must be a non-empty 2D array of shape (N, width), "
                f"got shape {samples.shape}.")

        mean = samples.mean(axis=0)
        std = np.maximum(samples.std(axis=0), MIN_STD)

        return cls(samples.shape[1], mean, std, dtype, name)

    def _statistic(self, value: Optional[np.ndarray], default: float,
                   label: str) -> np.ndarray:
        if value is None:
            return np.full(self.inputs, default, dtype=self.dtype)

        value = np.asarray(value, dtype=self.dtype)
        if value.shape != (self.inputs, ):
            raise ConfigurationError(
                f"{self.name}: {label} shape mismatch. Expected "
                f"({self.inputs},), got {value.shape}.")

        return value.copy()

    @property
    def mean(self) -> np.ndarray:
        return self._mean

    @property
    def std(self) -> np.ndarray:
        return self._std

    @property
    def scale(self) -> np.ndarray:
        return self._scale

    @property
    def offset(self) -> np.ndarray:
        return self._offset

    def class_id(self) -> str:
        return self.CLASS_ID

    def print(self) -> str:
        with np.printoptions(threshold=sys.maxsize, linewidth=120):
            return (f"{self.CLASS_ID} '{self.name}': width {self.inputs}, "
                    f"dtype={self.dtype.name}\n"
                    f"mean:\n{self._mean}\nstd:\n{self._std}\n"
                    f"scale:\n{self._scale}\noffset:\n{self._offset}\n")

    def targets(self, maximum: float) -> Tuple[float, float]:
        return -maximum, maximum

    def validate(self) -> None:
        if not (np.all(np.isfinite(self._mean))
                and np.all(np.isfinite(self._std))):
            raise ConfigurationError(
                f"{self.name}: mean and std must be finite.")

        if np.any(self._std <= 0):
            raise ConfigurationError(
                f"{self.name}: standard deviations must be positive.")

        super().validate()

    def equal_impl(self, other: Layer) -> bool:
        if not isinstance(other, Normalization):
            return False

        return (self._base_equal(other) and self.dtype == other.dtype
                and arrays_equal(self._mean, other._mean)
                and arrays_equal(self._std, other._std)
                and arrays_equal(self._scale, other._scale)
                and arrays_equal(self._offset, other._offset))

    def add_parameters(self, params: Parameters) -> None:
        params.add("scale", self._scale)
        params.add("offset", self._offset)

    def parameter_count(self) -> int:
        return 2 * self.inputs

    def random_fill(self, limit: float, context: RandomContext) -> None:
        self._scale[...] = context.uniform(-limit, limit, self._scale.shape,
                                           self.dtype)
        self._offset[...] = context.uniform(-limit, limit, self._offset.shape,
                                            self.dtype)

    def serialize(self, store: StoreWriter) -> None:
        store.write_int(self.SERIALIZATION_VERSION)
        store.write_string(self.name)
        store.write_int(self.inputs)
        store.write_array(self._mean)
        store.write_array(self._std)
        store.write_array(self._scale)
        store.write_array(self._offset)

    def reconstitute(self, store: StoreReader) -> None:
        version = store.read_int()
        if version != self.SERIALIZATION_VERSION:
            raise StoreFormatError(
                f"Unknown {self.CLASS_ID} serialization version {version}.")

        name = store.read_string()
        width = store.read_int()
        arrays = [store.read_array() for _ in range(4)]

        for array in arrays:
            if array.shape != (width, ):
                raise StoreFormatError(
                    f"{self.CLASS_ID} '{name}' stored array shape "
                    f"{array.shape} does not match width {width}.")

            if (array.dtype not in SUPPORTED_DTYPES
                    or array.dtype != arrays[0].dtype):
                raise StoreFormatError(
                    f"{self.CLASS_ID} '{name}' stored array dtype "
                    f"{array.dtype} is not a float32 or float64 dtype shared "
                    "by all four arrays.")

        self._init(name, width, width)
        self.dtype = arrays[2].dtype
        self._mean, self._std, self._scale, self._offset = arrays
        self.update_parameters()

    def _apply(self, x: np.ndarray, y: np.ndarray) -> None:
        std = self._std.astype(x.dtype, copy=False)
        x_hat = (x - self._mean.astype(x.dtype, copy=False)) / std
        y[...] = (x_hat * self._scale.astype(x.dtype, copy=False) +
                  self._offset.astype(x.dtype, copy=False))

    def _bprop(self, x: np.ndarray, y: np.ndarray, temp_space: np.ndarray,
               dL_dy: np.ndarray, dL_dx: Optional[np.ndarray],
               gradient: Parameters, example_weight: float) -> None:
        std = self._std.astype(x.dtype, copy=False)
        x_hat = (x - self._mean.astype(x.dtype, copy=False)) / std

        dL_dscale = gradient["scale"]
        dL_dscale += example_weight * dL_dy * x_hat
        dL_doffset = gradient["offset"]
        dL_doffset += example_weight * dL_dy

        if dL_dx is not None:
            dL_dx[...] = dL_dy * self._scale.astype(x.dtype, copy=False) / std
