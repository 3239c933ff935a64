import unittest

import numpy as np

from perceptron.activations import (Identity, Logistic, ScaledTanh, Softmax,
                                    Softplus, Tanh)
from perceptron.context import RandomContext
from perceptron.gradcheck import check_gradients, relative_error
from perceptron.layers import Dense, Normalization, Transfer

EPSILONS = (1e-4, 1e-5, 1e-6)
TOLERANCE = 1e-3


class TestGradientCheck(unittest.TestCase):

    def setUp(self):
        self.context = RandomContext(1234)

    def _check(self, layer, example_weight=1.0):
        x = self.context.uniform(-1.0, 1.0, (layer.inputs, ), np.float64)
        before = layer.parameters.flatten()

        for epsilon in EPSILONS:
            result = check_gradients(layer, x, self.context, epsilon,
                                     example_weight)
            self.assertTrue(
                result.passed(TOLERANCE),
                f"{layer.name} ({type(layer).__name__}) epsilon={epsilon}: "
                f"{result}")

        np.testing.assert_array_equal(layer.parameters.flatten(), before)

    def test_dense_layers(self):
        for transfer in (Identity(), Logistic(), Tanh(), ScaledTanh(),
                         Softmax(), Softplus()):
            layer = Dense(5,
                          4,
                          transfer,
                          dtype=np.float64,
                          context=self.context,
                          name=transfer.name)
            self._check(layer)

    def test_dense_with_example_weight(self):
        layer = Dense(3, 3, Tanh(), dtype=np.float64, context=self.context)
        self._check(layer, example_weight=0.3)

    def test_transfer_layers(self):
        for transfer in (Logistic(), Tanh(), Softmax(), Softplus()):
            self._check(Transfer(5, transfer, name=transfer.name))

    def test_normalization_layer(self):
        layer = Normalization(4,
                              mean=[0.5, -1.0, 0.0, 2.0],
                              std=[0.5, 2.0, 1.0, 3.0],
                              dtype=np.float64)
        layer.random_fill(1.0, self.context)
        self._check(layer)

    def test_single_precision_layers(self):
        dense = Dense(4, 3, Softplus(), dtype=np.float32, context=self.context)
        normalization = Normalization(3,
                                      mean=[0.5, -1.0, 0.0],
                                      std=[0.5, 2.0, 1.0],
                                      dtype=np.float32)
        normalization.random_fill(1.0, self.context)

        for layer in (dense, normalization):
            self._check(layer)
            self.assertEqual(layer.dtype, np.float32)
            for _, array in layer.parameters.items():
                self.assertEqual(array.dtype, np.float32)

    def test_detects_wrong_gradient(self):

        class BrokenDense(Dense):

            def _bprop(self, x, y, temp_space, dL_dy, dL_dx, gradient,
                       example_weight):
                super()._bprop(x, y, temp_space, dL_dy, dL_dx, gradient,
                               2 * example_weight)

        layer = BrokenDense(3, 2, Tanh(), dtype=np.float64,
                            context=self.context)
        x = self.context.uniform(-1.0, 1.0, (3, ), np.float64)
        result = check_gradients(layer, x, self.context)

        self.assertLess(result.input_error, TOLERANCE)
        self.assertGreater(result.parameter_error, TOLERANCE)
        self.assertFalse(result.passed(TOLERANCE))

    def test_relative_error(self):
        self.assertEqual(relative_error(np.zeros(0), np.zeros(0)), 0.0)
        self.assertEqual(relative_error(np.ones(3), np.ones(3)), 0.0)
        self.assertAlmostEqual(
            relative_error(np.array([1.0]), np.array([3.0])), 0.5)


if __name__ == "__main__":
    unittest.main()
