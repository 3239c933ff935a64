import io
import tempfile
import unittest
from pathlib import Path

import numpy as np

from perceptron.activations import Logistic, ScaledTanh, Softmax, Softplus
from perceptron.context import RandomContext
from perceptron.errors import (ConfigurationError, StoreFormatError,
                               UnknownLayerTypeError)
from perceptron.layers import Dense, Layer, Normalization, Transfer
from perceptron.registry import (REGISTRY, LayerRegistry,
                                 register_builtin_layers)
from perceptron.store import StoreReader, StoreWriter
from perceptron.utils import load_layer, save_layer


def make_registry():
    registry = LayerRegistry("test")
    register_builtin_layers(registry)
    return registry


def sample_layers():
    context = RandomContext(21)
    normalization = Normalization.from_samples(
        context.normal(2.0, 3.0, (50, 3), np.float64), dtype=np.float64,
        name="norm")
    normalization.random_fill(0.5, context)

    return [
        Dense(5, 3, Logistic(), dtype=np.float32, context=context),
        Dense(3, 3, Softplus(), dtype=np.float64, context=context,
              name="hidden"),
        Transfer(4, ScaledTanh()),
        Transfer(2, Softmax(), name="output"),
        normalization,
    ]


class TestStore(unittest.TestCase):

    def test_fields_round_trip_in_order(self):
        writer = StoreWriter()
        writer.write_int(7)
        writer.write_string("Dense_Layer")
        writer.write_float(0.25)
        writer.write_array(np.arange(6, dtype=np.float32).reshape(2, 3))
        self.assertEqual(writer.fields_written, 4)

        reader = StoreReader(writer.getvalue())
        self.assertEqual(reader.read_int(), 7)
        self.assertEqual(reader.read_string(), "Dense_Layer")
        self.assertEqual(reader.read_float(), 0.25)
        array = reader.read_array()
        self.assertEqual(array.dtype, np.float32)
        np.testing.assert_array_equal(array,
                                      np.arange(6).reshape(2, 3))

    def test_wrong_field_kind(self):
        writer = StoreWriter()
        writer.write_string("not a number")
        writer.write_int(3)

        reader = StoreReader(writer.getvalue())
        with self.assertRaises(StoreFormatError):
            reader.read_int()
        with self.assertRaises(StoreFormatError):
            reader.read_array()

    def test_truncated_store(self):
        writer = StoreWriter()
        writer.write_array(np.ones(100))
        data = writer.getvalue()

        with self.assertRaises(StoreFormatError):
            StoreReader(data[:len(data) // 2]).read_array()
        with self.assertRaises(StoreFormatError):
            StoreReader(b"").read_int()

    def test_scalar_rejected_by_write_array(self):
        with self.assertRaises(ValueError):
            StoreWriter().write_array(np.array(1.0))


class TestRegistry(unittest.TestCase):

    def test_builtin_layers_registered_explicitly(self):
        registry = LayerRegistry()
        self.assertEqual(registry.class_ids(), [])

        register_builtin_layers(registry)
        self.assertEqual(registry.class_ids(), [
            "Dense_Layer", "Normalization_Layer", "Transfer_Layer"
        ])

    def test_registration_is_idempotent(self):
        registry = make_registry()
        register_builtin_layers(registry)
        self.assertTrue(registry.is_registered("Dense_Layer"))

    def test_conflicting_registration(self):
        registry = make_registry()
        with self.assertRaises(ConfigurationError):
            registry.register("Dense_Layer", Transfer.from_store)
        with self.assertRaises(ConfigurationError):
            registry.register("", Dense.from_store)

    def test_unknown_type(self):
        registry = LayerRegistry()
        with self.assertRaises(UnknownLayerTypeError):
            registry.lookup("Dense_Layer")

        registry = make_registry()
        registry.unregister("Dense_Layer")
        self.assertFalse(registry.is_registered("Dense_Layer"))

        store = StoreWriter()
        Dense(2, 2, context=RandomContext(0)).poly_serialize(store)
        with self.assertRaises(UnknownLayerTypeError):
            Layer.poly_reconstitute(StoreReader(store.getvalue()), registry)

        self.assertIsInstance(UnknownLayerTypeError("x"), LookupError)

    def test_default_registry(self):
        register_builtin_layers()
        layer = Transfer(3, Logistic())
        store = StoreWriter()
        layer.poly_serialize(store)

        result = Layer.poly_reconstitute(StoreReader(store.getvalue()))
        self.assertTrue(REGISTRY.is_registered(layer.class_id()))
        self.assertTrue(layer.equal(result))


class TestPolymorphicSerialization(unittest.TestCase):

    def setUp(self):
        self.registry = make_registry()

    def _round_trip(self, layer):
        store = StoreWriter()
        layer.poly_serialize(store)
        return Layer.poly_reconstitute(StoreReader(store.getvalue()),
                                       self.registry)

    def test_round_trip_is_equal(self):
        for layer in sample_layers():
            result = self._round_trip(layer)

            self.assertIsInstance(result, type(layer))
            self.assertIsNot(result, layer)
            self.assertTrue(layer.equal(result), layer.name)
            result.validate()

    def test_round_trip_preserves_behaviour(self):
        rng = np.random.default_rng(4)
        for layer in sample_layers():
            result = self._round_trip(layer)
            x = rng.uniform(-1, 1, layer.inputs)

            np.testing.assert_array_equal(result.apply(x), layer.apply(x))
            self.assertEqual(result.fprop_temporary_space_required(),
                             layer.fprop_temporary_space_required())
            self.assertEqual(result.parameters.slices,
                             layer.parameters.slices)

    def test_reconstituted_parameters_reference_new_storage(self):
        layer = Dense(3, 2, dtype=np.float64, context=RandomContext(0))
        result = self._round_trip(layer)

        result.zero_fill()
        np.testing.assert_array_equal(result.weights, np.zeros((3, 2)))
        self.assertTrue(np.any(layer.weights != 0))

    def test_plain_serialize_round_trip(self):
        layer = Dense(4, 2, context=RandomContext(0), name="plain")
        store = StoreWriter()
        layer.serialize(store)

        result = Dense.from_store(StoreReader(store.getvalue()))
        self.assertTrue(layer.equal(result))

        other = Dense(1, 1, context=RandomContext(1))
        other.reconstitute(StoreReader(store.getvalue()))
        self.assertTrue(layer.equal(other))
        self.assertEqual(other.parameters.size, layer.parameter_count())

    def test_framing_mismatch_fails(self):
        layer = Dense(4, 2, context=RandomContext(0))

        tagged = StoreWriter()
        layer.poly_serialize(tagged)
        with self.assertRaises(StoreFormatError):
            Dense.from_store(StoreReader(tagged.getvalue()))

        untagged = StoreWriter()
        layer.serialize(untagged)
        with self.assertRaises(StoreFormatError):
            Layer.poly_reconstitute(StoreReader(untagged.getvalue()),
                                    self.registry)

    def test_unknown_version(self):
        store = StoreWriter()
        store.write_string(Transfer.CLASS_ID)
        store.write_int(99)

        with self.assertRaises(StoreFormatError):
            Layer.poly_reconstitute(StoreReader(store.getvalue()),
                                    self.registry)

    def test_integer_arrays_rejected(self):
        store = StoreWriter()
        store.write_string(Dense.CLASS_ID)
        store.write_int(Dense.SERIALIZATION_VERSION)
        store.write_string("ints")
        store.write_int(2)
        store.write_int(1)
        store.write_string("Tanh")
        store.write_array(np.ones((2, 1), dtype=np.int64))
        store.write_array(np.zeros(1, dtype=np.int64))

        with self.assertRaises(StoreFormatError):
            Layer.poly_reconstitute(StoreReader(store.getvalue()),
                                    self.registry)

        store = StoreWriter()
        store.write_string(Normalization.CLASS_ID)
        store.write_int(Normalization.SERIALIZATION_VERSION)
        store.write_string("mixed")
        store.write_int(2)
        store.write_array(np.zeros(2))
        store.write_array(np.ones(2))
        store.write_array(np.ones(2, dtype=np.float32))
        store.write_array(np.zeros(2))

        with self.assertRaises(StoreFormatError):
            Layer.poly_reconstitute(StoreReader(store.getvalue()),
                                    self.registry)

    def test_several_layers_in_one_stream(self):
        layers = sample_layers()
        stream = io.BytesIO()
        writer = StoreWriter(stream)
        for layer in layers:
            layer.poly_serialize(writer)

        stream.seek(0)
        reader = StoreReader(stream)
        for layer in layers:
            self.assertTrue(
                layer.equal(Layer.poly_reconstitute(reader, self.registry)))


class TestSaveAndLoad(unittest.TestCase):

    def test_save_and_load_file(self):
        layer = Dense(6, 2, Logistic(), context=RandomContext(8))

        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "nested" / "layer.bin"
            save_layer(layer, path)
            self.assertTrue(path.is_file())

            result = load_layer(path, make_registry())

        self.assertTrue(layer.equal(result))

    def test_load_missing_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(FileNotFoundError):
                load_layer(Path(tmp) / "missing.bin", make_registry())


if __name__ == "__main__":
    unittest.main()
