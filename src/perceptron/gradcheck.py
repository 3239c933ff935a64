import logging
from typing import NamedTuple, Optional

import numpy as np

from perceptron.context import RandomContext
from perceptron.layers.base import Layer

logger = logging.getLogger(__name__)

DEFAULT_EPSILON = 1e-5
DEFAULT_TOLERANCE = 1e-3
ERROR_FLOOR = 1e-4


class GradientCheckResult(NamedTuple):
    input_error: float
    parameter_error: float
    epsilon: float

    def passed(self, tolerance: float = DEFAULT_TOLERANCE) -> bool:
        return (self.input_error < tolerance
                and self.parameter_error < tolerance)


def relative_error(analytic: np.ndarray, numeric: np.ndarray) -> float:
    if analytic.size == 0:
        return 0.0

    denominator = np.maximum(np.abs(analytic) + np.abs(numeric), ERROR_FLOOR)

    return float(np.max(np.abs(analytic - numeric) / denominator))


def _error(layer: Layer, x: np.ndarray, dL_dy: np.ndarray) -> float:
    return float(np.dot(dL_dy, layer.apply(x)))


def _double_precision_copy(layer: Layer) -> Layer:
    """Deep copy of ``layer`` with every floating-point array widened to
    float64, so that small perturbations are not rounded away."""
    result = layer.deep_copy()

    for attr, value in list(vars(result).items()):
        if isinstance(value, np.ndarray) and value.dtype.kind == "f":
            setattr(result, attr, value.astype(np.float64))

    if hasattr(result, "dtype"):
        result.dtype = np.dtype("float64")
    result.update_parameters()

    return result


def check_gradients(layer: Layer,
                    x: np.ndarray,
                    context: RandomContext,
                    epsilon: float = DEFAULT_EPSILON,
                    example_weight: float = 1.0,
                    dL_dy: Optional[np.ndarray] = None) -> GradientCheckResult:
    """Compare bprop against central finite differences.

    The error function is ``E = dL_dy . y`` for a fixed random ``dL_dy``, so
    that ``dL_dy`` is exactly the output error passed to bprop. The analytic
    gradient comes from ``layer`` itself with a float64 ``x``; the finite
    differences are taken on a float64 copy, so ``layer`` is never modified.
    """
    x = np.asarray(x, dtype=np.float64)

    if dL_dy is None:
        dL_dy = context.uniform(-1.0, 1.0, (layer.outputs, ), np.float64)

    temp_space = layer.allocate_temp_space(x.dtype)
    y = layer.fprop(x, temp_space)

    dL_dx = np.empty_like(x)
    gradient = layer.parameters.zeros(np.float64)
    layer.bprop(x, y, temp_space, dL_dy, dL_dx, gradient, example_weight)

    reference = _double_precision_copy(layer)

    numeric_dx = np.empty_like(x)
    for i in range(x.size):
        x_plus = x.copy()
        x_plus[i] += epsilon
        x_minus = x.copy()
        x_minus[i] -= epsilon
        numeric_dx[i] = (_error(reference, x_plus, dL_dy) -
                         _error(reference, x_minus, dL_dy)) / (2 * epsilon)

    original = reference.parameters.flatten(np.float64)
    numeric_grad = np.empty_like(original)
    for i in range(original.size):
        perturbed = original.copy()
        perturbed[i] += epsilon
        reference.parameters.assign(perturbed)
        e_plus = _error(reference, x, dL_dy)

        perturbed[i] = original[i] - epsilon
        reference.parameters.assign(perturbed)
        e_minus = _error(reference, x, dL_dy)

        numeric_grad[i] = (e_plus - e_minus) / (2 * epsilon)

    result = GradientCheckResult(
        input_error=relative_error(dL_dx, numeric_dx),
        parameter_error=relative_error(gradient.buffer,
                                       example_weight * numeric_grad),
        epsilon=epsilon)

    logger.info(
        "%s gradient check (epsilon=%g): input_error=%.3e, "
        "parameter_error=%.3e.", layer.name, epsilon, result.input_error,
        result.parameter_error)

    return result
