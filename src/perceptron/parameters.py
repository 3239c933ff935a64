import logging
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

import numpy as np

from perceptron.errors import ConfigurationError, ContractViolationError

logger = logging.getLogger(__name__)


class ParameterSlice(NamedTuple):
    name: str
    offset: int
    shape: Tuple[int, ...]

    @property
    def length(self) -> int:
        return int(np.prod(self.shape, dtype=np.int64))


class Parameters:
    """Ordered aggregation of named parameter arrays.

    A view built by a layer holds references to the layer's own arrays, so
    writes through it change the layer's weights. The flattened order is the
    order in which arrays were added; ``slices`` describes where each array
    lives in that flattened space.

    ``zeros()`` returns an owning container with the same layout, backed by
    one contiguous buffer. That is the shape ``bprop`` accumulates into.
    """

    def __init__(self) -> None:
        self._arrays: Dict[str, np.ndarray] = {}
        self._slices: List[ParameterSlice] = []
        self._size = 0
        self.buffer: Optional[np.ndarray] = None

    def add(self, name: str, array: np.ndarray) -> None:
        if not isinstance(array, np.ndarray):
            raise ConfigurationError(
                f"Parameter '{name}' must be a NumPy array, got "
                f"{type(array).__name__}.")

        if name in self._arrays:
            raise ConfigurationError(
                f"Parameter '{name}' was already added.")

        self._arrays[name] = array
        self._slices.append(ParameterSlice(name, self._size, array.shape))
        self._size += array.size

    def clear(self) -> None:
        self._arrays.clear()
        self._slices.clear()
        self._size = 0
        self.buffer = None

    @property
    def size(self) -> int:
        return self._size

    @property
    def slices(self) -> List[ParameterSlice]:
        return list(self._slices)

    @property
    def names(self) -> List[str]:
        return [s.name for s in self._slices]

    def __getitem__(self, name: str) -> np.ndarray:
        return self._arrays[name]

    def __contains__(self, name: object) -> bool:
        return name in self._arrays

    def __len__(self) -> int:
        return len(self._arrays)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names)

    def items(self) -> List[Tuple[str, np.ndarray]]:
        return [(s.name, self._arrays[s.name]) for s in self._slices]

    def flatten(self, dtype: np.dtype = np.dtype("float64")) -> np.ndarray:
        flat = np.empty(self._size, dtype=dtype)

        for s in self._slices:
            flat[s.offset:s.offset + s.length] = self._arrays[s.name].ravel()

        return flat

    def assign(self, flat: np.ndarray) -> None:
        if flat.shape != (self._size, ):
            raise ContractViolationError(
                f"Flat parameter vector shape mismatch. Expected "
                f"({self._size},), got {flat.shape}.")

        for s in self._slices:
            target = self._arrays[s.name]
            target[...] = flat[s.offset:s.offset + s.length].reshape(s.shape)

    def fill(self, value: float) -> None:
        for array in self._arrays.values():
            array.fill(value)

    def is_finite(self) -> bool:
        return all(np.all(np.isfinite(a)) for a in self._arrays.values())

    def compatible(self, other: "Parameters") -> bool:
        return self._slices == other._slices

    def zeros(self, dtype: np.dtype = np.dtype("float64")) -> "Parameters":
        result = Parameters()
        result.buffer = np.zeros(self._size, dtype=dtype)

        for s in self._slices:
            view = result.buffer[s.offset:s.offset + s.length].reshape(s.shape)
            result.add(s.name, view)

        logger.debug("Allocated %d-element %s accumulator for %d arrays.",
                     self._size,
                     np.dtype(dtype).name, len(self._slices))

        return result

    def accumulate(self, other: "Parameters", scale: float = 1.0) -> None:
        if not self.compatible(other):
            raise ContractViolationError(
                "Cannot accumulate parameters with a different layout. "
                f"Expected {self.names}, got {other.names}.")

        for name, array in self._arrays.items():
            array += scale * other[name]

    def __repr__(self) -> str:
        return (f"Parameters(size={self._size}, "
                f"arrays={[(s.name, s.shape) for s in self._slices]})")
