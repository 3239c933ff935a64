import logging
from pathlib import Path
from typing import Optional

from perceptron.layers.base import Layer
from perceptron.registry import LayerRegistry
from perceptron.store import StoreReader, StoreWriter

logger = logging.getLogger(__name__)


def save_layer(layer: Layer, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(path, "wb") as f:
            layer.poly_serialize(StoreWriter(f))
    except OSError as e:
        raise IOError(f"Failed to save layer to '{path}': {e}") from e

    logger.info("Layer '%s' (%s, %d parameters) successfully saved to '%s'.",
                layer.name, layer.class_id(), layer.parameter_count(), path)


def load_layer(path: Path, registry: Optional[LayerRegistry] = None) -> Layer:
    if not path.is_file():
        raise FileNotFoundError(f"Layer file not found at '{path}'.")

    with open(path, "rb") as f:
        layer = Layer.poly_reconstitute(StoreReader(f), registry)

    logger.info("Successfully loaded layer '%s' (%s) from '%s'.", layer.name,
                layer.class_id(), path)

    return layer
