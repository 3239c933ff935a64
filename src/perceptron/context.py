import logging
from typing import List, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


def glorot_limit(inputs: int, outputs: int) -> float:
    if inputs <= 0 or outputs <= 0:
        raise ValueError("Glorot limit requires positive fan_in and fan_out, "
                         f"got {inputs} and {outputs}.")

    return float(np.sqrt(6.0 / (inputs + outputs)))


class RandomContext:
    """Seeded source of random numbers for weight initialization.

    A context is meant to be driven by one thread at a time. Use ``spawn``
    to hand independent, reproducible streams to parallel workers.
    """

    def __init__(self,
                 seed: Optional[int] = None,
                 name: Optional[str] = None,
                 _seed_sequence: Optional[np.random.SeedSequence] = None
                 ) -> None:
        self.name = name or self.__class__.__name__
        self.seed = seed
        self._seed_sequence = (_seed_sequence if _seed_sequence is not None
                               else np.random.SeedSequence(seed))
        self._rng = np.random.default_rng(self._seed_sequence)

        logger.debug("%s created with seed=%s, spawn_key=%s.", self.name,
                     self.seed, self.spawn_key)

    @property
    def spawn_key(self) -> Tuple[int, ...]:
        """Position of this context in its parent's ``spawn`` tree; empty for
        a root context."""
        return tuple(self._seed_sequence.spawn_key)

    def uniform(self,
                low: float,
                high: float,
                shape: Tuple[int, ...],
                dtype: np.dtype = np.dtype("float32")) -> np.ndarray:
        if low > high:
            raise ValueError("Minimum value must not exceed maximum value, "
                             f"got low={low}, high={high}.")

        return self._rng.uniform(low, high, shape).astype(dtype)

    def normal(self,
               mean: float,
               stddev: float,
               shape: Tuple[int, ...],
               dtype: np.dtype = np.dtype("float32")) -> np.ndarray:
        return self._rng.normal(mean, stddev, shape).astype(dtype)

    def spawn(self, n: int) -> List["RandomContext"]:
        if n <= 0:
            raise ValueError(f"Number of child contexts must be positive, "
                             f"got {n}.")

        children = [
            RandomContext(seed=None,
                          name=f"{self.name}[{i}]",
                          _seed_sequence=child)
            for i, child in enumerate(self._seed_sequence.spawn(n))
        ]

        logger.info("%s spawned %d child contexts.", self.name, n)

        return children
