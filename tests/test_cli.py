import tempfile
import unittest
from pathlib import Path

from perceptron.__main__ import main, parse_args
from perceptron.layers import Dense
from perceptron.utils import load_layer


class TestCommandLine(unittest.TestCase):

    def test_parse_defaults(self):
        args = parse_args(["check"])
        self.assertEqual(args.kind, "dense")
        self.assertEqual(args.transfer, "Tanh")
        self.assertEqual(args.epsilon, [1e-4, 1e-5, 1e-6])

    def test_check_passes_for_each_kind(self):
        for kind, transfer in (("dense", "Tanh"), ("dense", "Softplus"),
                               ("transfer", "Logistic"),
                               ("normalization", "Tanh")):
            self.assertEqual(
                main([
                    "check", "--kind", kind, "--transfer", transfer,
                    "--inputs", "5", "--outputs", "3", "--seed", "3"
                ]), 0, f"{kind}/{transfer}")

    def test_check_single_precision_layers(self):
        for kind in ("dense", "normalization"):
            self.assertEqual(
                main([
                    "check", "--kind", kind, "--dtype", "float32",
                    "--inputs", "5", "--outputs", "3"
                ]), 0, kind)

    def test_check_reports_invalid_configuration(self):
        self.assertEqual(main(["check", "--inputs", "0"]), 1)

    def test_save_then_inspect(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "out" / "dense.bin"

            self.assertEqual(
                main([
                    "save", "--inputs", "4", "--outputs", "2", "--name",
                    "saved",
                    str(path)
                ]), 0)
            self.assertEqual(main(["inspect", str(path)]), 0)

            layer = load_layer(path)

        self.assertIsInstance(layer, Dense)
        self.assertEqual(layer.name, "saved")
        self.assertEqual((layer.inputs, layer.outputs), (4, 2))

    def test_inspect_missing_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            self.assertEqual(main(["inspect", str(Path(tmp) / "none.bin")]),
                             1)


if __name__ == "__main__":
    unittest.main()
