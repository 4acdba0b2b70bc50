from dataclasses import dataclass
from typing import List

import numpy as np

from acoustic_core.errors import ConfigurationError
from acoustic_core.math import Vec, random_unit_vector
from acoustic_core.sound import Sound


@dataclass(frozen=True)
class Emitter:
    origin: Vec
    sample_count: int
    amplitude: float = 1.0
    frequency: float = 1000.0

    def __post_init__(self):
        if self.sample_count < 0:
            raise ConfigurationError(f"sample_count must be >= 0, got {self.sample_count}")
        if not self.amplitude > 0:
            raise ConfigurationError(f"emitter amplitude must be positive, got {self.amplitude}")

    def emit(self, rng: np.random.Generator, first_id: int = 0) -> List[Sound]:
        """sample_count sounds at the origin with area-uniform random directions."""
        return [
            Sound(
                id=first_id + i,
                position=self.origin,
                direction=random_unit_vector(self.origin.dim, rng),
                time=0.0,
                amplitude=self.amplitude,
                frequency=self.frequency,
            )
            for i in range(self.sample_count)
        ]

    def emit_towards(self, direction: Vec, sound_id: int = 0) -> Sound:
        """A single sound along a fixed direction (scripted scenarios)."""
        return Sound(
            id=sound_id,
            position=self.origin,
            direction=direction.normalize(),
            time=0.0,
            amplitude=self.amplitude,
            frequency=self.frequency,
        )
