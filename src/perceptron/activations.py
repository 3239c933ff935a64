import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple, Type

import numpy as np

from perceptron.errors import ConfigurationError

logger = logging.getLogger(__name__)

SCALED_TANH_AMPLITUDE = 1.7159
SCALED_TANH_SLOPE = 2.0 / 3.0


class TransferFunction(ABC):
    """Elementwise (or row-wise, for softmax) output nonlinearity.

    ``backward`` maps the error with respect to the outputs to the error with
    respect to the pre-activation ``z``. Most functions differentiate from
    their output ``y``; those that need ``z`` set ``needs_preactivation`` so
    that the owning layer keeps it in its fprop temporary space.
    """

    needs_preactivation = False

    def __init__(self, name: Optional[str] = None) -> None:
        self.name = name or self.__class__.__name__

    @abstractmethod
    def forward(self, z: np.ndarray) -> np.ndarray:
        pass

    @abstractmethod
    def backward(self,
                 dL_dy: np.ndarray,
                 y: np.ndarray,
                 z: Optional[np.ndarray] = None) -> np.ndarray:
        pass

    @abstractmethod
    def targets(self, maximum: float) -> Tuple[float, float]:
        pass

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other)

    def __hash__(self) -> int:
        return hash(type(self).__name__)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


def _check_shapes(dL_dy: np.ndarray, y: np.ndarray) -> None:
    if dL_dy.shape != y.shape:
        raise ValueError(
            f"Shape mismatch between output gradients ({dL_dy.shape}) and "
            f"output ({y.shape}). They must be identical.")


class Identity(TransferFunction):

    def forward(self, z: np.ndarray) -> np.ndarray:
        return z.copy()

    def backward(self,
                 dL_dy: np.ndarray,
                 y: np.ndarray,
                 z: Optional[np.ndarray] = None) -> np.ndarray:
        _check_shapes(dL_dy, y)
        return dL_dy.copy()

    def targets(self, maximum: float) -> Tuple[float, float]:
        return -maximum, maximum


class Logistic(TransferFunction):

    def forward(self, z: np.ndarray) -> np.ndarray:
        # Written via tanh so large negative z does not overflow exp.
        return 0.5 * (1.0 + np.tanh(0.5 * z))

    def backward(self,
                 dL_dy: np.ndarray,
                 y: np.ndarray,
                 z: Optional[np.ndarray] = None) -> np.ndarray:
        _check_shapes(dL_dy, y)
        return dL_dy * y * (1 - y)

    def targets(self, maximum: float) -> Tuple[float, float]:
        return 0.5 - maximum / 2, 0.5 + maximum / 2


class Tanh(TransferFunction):

    def forward(self, z: np.ndarray) -> np.ndarray:
        y = np.tanh(z)

        logger.debug("%s forward pass: input_shape=%s, output_shape=%s.",
                     self.name, z.shape, y.shape)

        return y

    def backward(self,
                 dL_dy: np.ndarray,
                 y: np.ndarray,
                 z: Optional[np.ndarray] = None) -> np.ndarray:
        _check_shapes(dL_dy, y)

        dtanh_dz = 1 - y**2
        dL_dz = dL_dy * dtanh_dz

        logger.debug(
            "%s backward pass: dL_dy_shape=%s, y_shape=%s, "
            "dL_dz_shape=%s.", self.name, dL_dy.shape, y.shape, dL_dz.shape)

        return dL_dz

    def targets(self, maximum: float) -> Tuple[float, float]:
        return -maximum, maximum


class ScaledTanh(TransferFunction):
    """LeCun's 1.7159 * tanh(2z/3), which keeps unit variance near zero."""

    def forward(self, z: np.ndarray) -> np.ndarray:
        return SCALED_TANH_AMPLITUDE * np.tanh(SCALED_TANH_SLOPE * z)

    def backward(self,
                 dL_dy: np.ndarray,
                 y: np.ndarray,
                 z: Optional[np.ndarray] = None) -> np.ndarray:
        _check_shapes(dL_dy, y)

        t = y / SCALED_TANH_AMPLITUDE
        dy_dz = SCALED_TANH_AMPLITUDE * SCALED_TANH_SLOPE * (1 - t**2)

        return dL_dy * dy_dz

    def targets(self, maximum: float) -> Tuple[float, float]:
        return (-SCALED_TANH_AMPLITUDE * maximum,
                SCALED_TANH_AMPLITUDE * maximum)


class Softmax(TransferFunction):

    def forward(self, z: np.ndarray) -> np.ndarray:
        z_stabilized = z - np.max(z, axis=-1, keepdims=True)
        exp_z = np.exp(z_stabilized)
        y = exp_z / np.sum(exp_z, axis=-1, keepdims=True)

        logger.debug("%s forward pass: input_shape=%s, output_shape=%s.",
                     self.name, z.shape, y.shape)

        return y

    def backward(self,
                 dL_dy: np.ndarray,
                 y: np.ndarray,
                 z: Optional[np.ndarray] = None) -> np.ndarray:
        _check_shapes(dL_dy, y)

        s = np.sum(dL_dy * y, axis=-1, keepdims=True)
        dL_dz = y * (dL_dy - s)

        logger.debug(
            "%s backward pass: dL_dy_shape=%s, y_shape=%s, "
            "dL_dz_shape=%s.", self.name, dL_dy.shape, y.shape, dL_dz.shape)

        return dL_dz

    def targets(self, maximum: float) -> Tuple[float, float]:
        return 0.5 - maximum / 2, 0.5 + maximum / 2


class Softplus(TransferFunction):

    needs_preactivation = True

    def forward(self, z: np.ndarray) -> np.ndarray:
        return np.logaddexp(0, z).astype(z.dtype, copy=False)

    def backward(self,
                 dL_dy: np.ndarray,
                 y: np.ndarray,
                 z: Optional[np.ndarray] = None) -> np.ndarray:
        _check_shapes(dL_dy, y)

        if z is None:
            raise ValueError(f"{self.name} backward pass requires the "
                             "pre-activation values.")

        return dL_dy * (0.5 * (1.0 + np.tanh(0.5 * z)))

    def targets(self, maximum: float) -> Tuple[float, float]:
        return 0.0, maximum


class ReLU(TransferFunction):

    def forward(self, z: np.ndarray) -> np.ndarray:
        return np.maximum(z, 0)

    def backward(self,
                 dL_dy: np.ndarray,
                 y: np.ndarray,
                 z: Optional[np.ndarray] = None) -> np.ndarray:
        _check_shapes(dL_dy, y)
        return dL_dy * (y > 0)

    def targets(self, maximum: float) -> Tuple[float, float]:
        return 0.0, maximum


TRANSFER_FUNCTIONS: Dict[str, Type[TransferFunction]] = {
    cls.__name__: cls
    for cls in (Identity, Logistic, Tanh, ScaledTanh, Softmax, Softplus, ReLU)
}


def get_transfer_function(name: str) -> TransferFunction:
    try:
        cls = TRANSFER_FUNCTIONS[name]
    except KeyError as e:
        raise ConfigurationError(
            f"Unknown transfer function '{name}'. Expected one of "
            f"{sorted(TRANSFER_FUNCTIONS)}.") from e

    return cls()
