import logging
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from perceptron.errors import ConfigurationError, UnknownLayerTypeError
from perceptron.store import StoreReader

if TYPE_CHECKING:
    from perceptron.layers.base import Layer

logger = logging.getLogger(__name__)

LayerFactory = Callable[[StoreReader], "Layer"]


class LayerRegistry:
    """Maps a layer's ``class_id()`` to the factory that rebuilds it.

    Entries must be registered before any store mentioning them is read.
    The registry is filled once at startup and only read afterwards.
    """

    def __init__(self, name: Optional[str] = None) -> None:
        self.name = name or self.__class__.__name__
        self._factories: Dict[str, LayerFactory] = {}

    def register(self, class_id: str, factory: LayerFactory) -> None:
        if not class_id:
            raise ConfigurationError("Layer class id must be non-empty.")

        existing = self._factories.get(class_id)
        if existing is not None and existing != factory:
            raise ConfigurationError(
                f"Layer class id '{class_id}' is already registered in "
                f"{self.name} with a different factory.")

        self._factories[class_id] = factory

        logger.info("%s registered layer type '%s'.", self.name, class_id)

    def unregister(self, class_id: str) -> None:
        if self._factories.pop(class_id, None) is None:
            logger.warning("%s has no layer type '%s' to unregister.",
                           self.name, class_id)

    def is_registered(self, class_id: str) -> bool:
        return class_id in self._factories

    def class_ids(self) -> List[str]:
        return sorted(self._factories)

    def lookup(self, class_id: str) -> LayerFactory:
        try:
            return self._factories[class_id]
        except KeyError as e:
            raise UnknownLayerTypeError(
                f"Unknown layer type '{class_id}' in {self.name}. "
                f"Registered types: {self.class_ids()}.") from e

    def reconstitute(self, store: StoreReader) -> "Layer":
        class_id = store.read_string()
        factory = self.lookup(class_id)
        layer = factory(store)

        logger.debug("%s reconstituted layer '%s' of type '%s'.", self.name,
                     layer.name, class_id)

        return layer


REGISTRY = LayerRegistry("REGISTRY")


def register_builtin_layers(registry: LayerRegistry = REGISTRY) -> None:
    from perceptron.layers.dense import Dense
    from perceptron.layers.normalization import Normalization
    from perceptron.layers.transfer import Transfer

    for cls in (Dense, Transfer, Normalization):
        registry.register(cls.CLASS_ID, cls.from_store)
