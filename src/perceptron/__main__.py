#!/usr/bin/env python3

import argparse
import logging
import sys
from pathlib import Path

import numpy as np

from perceptron import gradcheck, utils
from perceptron.activations import TRANSFER_FUNCTIONS, get_transfer_function
from perceptron.context import RandomContext
from perceptron.errors import LayerError
from perceptron.layers import Dense, Layer, Normalization, Transfer
from perceptron.registry import register_builtin_layers

logging.basicConfig(level=logging.INFO,
                    format=("%(asctime)s - %(name)s - [%(levelname)s] - "
                            "%(message)s"))

logger = logging.getLogger(__name__)

LAYER_KINDS = ("dense", "transfer", "normalization")
DEFAULT_INPUTS = 8
DEFAULT_OUTPUTS = 4
DEFAULT_TRANSFER = "Tanh"
DEFAULT_SEED = 42
DEFAULT_TARGET_MAXIMUM = 0.8


def build_layer(args: argparse.Namespace, context: RandomContext) -> Layer:
    dtype = np.dtype(args.dtype)

    if args.kind == "dense":
        return Dense(args.inputs,
                     args.outputs,
                     get_transfer_function(args.transfer),
                     dtype=dtype,
                     context=context,
                     name=args.name)

    if args.kind == "transfer":
        return Transfer(args.inputs,
                        get_transfer_function(args.transfer),
                        name=args.name)

    layer = Normalization(args.inputs, dtype=dtype, name=args.name)
    layer.random_fill(1.0, context)

    return layer


def check(args: argparse.Namespace) -> int:
    context = RandomContext(args.seed)
    layer = build_layer(args, context)
    layer.validate()

    x = context.uniform(-1.0, 1.0, (layer.inputs, ), np.float64)

    failed = False
    for epsilon in args.epsilon:
        result = gradcheck.check_gradients(layer, x, context, epsilon)
        if not result.passed(args.tolerance):
            logger.error(
                "Gradient check failed for epsilon=%g: input_error=%.3e, "
                "parameter_error=%.3e, tolerance=%.1e.", epsilon,
                result.input_error, result.parameter_error, args.tolerance)
            failed = True

    low, high = layer.targets(DEFAULT_TARGET_MAXIMUM)
    logger.info("%s targets at maximum=%.2f: (%.4f, %.4f).", layer.name,
                DEFAULT_TARGET_MAXIMUM, low, high)

    return 1 if failed else 0


def save(args: argparse.Namespace) -> int:
    layer = build_layer(args, RandomContext(args.seed))
    layer.validate()
    utils.save_layer(layer, args.path)

    return 0


def inspect_layer(args: argparse.Namespace) -> int:
    layer = utils.load_layer(args.path)
    layer.validate()

    print(layer.print())
    logger.info("%s: class_id=%s, inputs=%d, outputs=%d, parameters=%d.",
                layer.name, layer.class_id(), layer.inputs, layer.outputs,
                layer.parameter_count())

    return 0


def add_layer_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--kind",
                        choices=LAYER_KINDS,
                        default="dense",
                        help="Layer type to build (default: dense).")
    parser.add_argument("--inputs",
                        type=int,
                        default=DEFAULT_INPUTS,
                        help="Number of inputs; also the width of "
                        f"transfer/normalization layers "
                        f"(default: {DEFAULT_INPUTS}).")
    parser.add_argument("--outputs",
                        type=int,
                        default=DEFAULT_OUTPUTS,
                        help="Number of outputs of a dense layer "
                        f"(default: {DEFAULT_OUTPUTS}).")
    parser.add_argument("--transfer",
                        choices=sorted(TRANSFER_FUNCTIONS),
                        default=DEFAULT_TRANSFER,
                        help="Transfer function "
                        f"(default: {DEFAULT_TRANSFER}).")
    parser.add_argument("--dtype",
                        choices=("float32", "float64"),
                        default="float64",
                        help="Parameter precision (default: float64).")
    parser.add_argument("--name", type=str, default=None, help="Layer name.")
    parser.add_argument("--seed",
                        type=int,
                        default=DEFAULT_SEED,
                        help=f"Random seed (default: {DEFAULT_SEED}).")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="perceptron",
        description="Build, check, save and inspect perceptron layers.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser(
        "check", help="Validate a layer and compare bprop with finite "
        "differences.")
    add_layer_arguments(check_parser)
    check_parser.add_argument("--epsilon",
                              type=float,
                              nargs="+",
                              default=[1e-4, 1e-5, 1e-6],
                              help="Finite-difference step sizes.")
    check_parser.add_argument("--tolerance",
                              type=float,
                              default=gradcheck.DEFAULT_TOLERANCE,
                              help="Maximum accepted relative error.")
    check_parser.set_defaults(func=check)

    save_parser = subparsers.add_parser(
        "save", help="Build a layer and write it, with its type tag, to a "
        "file.")
    add_layer_arguments(save_parser)
    save_parser.add_argument("path", type=Path, help="Output file.")
    save_parser.set_defaults(func=save)

    inspect_parser = subparsers.add_parser(
        "inspect", help="Load, validate and print a saved layer.")
    inspect_parser.add_argument("path", type=Path, help="Layer file.")
    inspect_parser.set_defaults(func=inspect_layer)

    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    register_builtin_layers()

    try:
        return args.func(args)
    except LayerError as e:
        logger.error("Layer error (%s): %s", e.kind, e, exc_info=True)
    except (FileNotFoundError, IOError) as e:
        logger.error("File error: %s", e, exc_info=True)

    return 1


if __name__ == "__main__":
    sys.exit(main())
