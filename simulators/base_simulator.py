import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from acoustic_core.errors import ConfigurationError
from acoustic_core.hitlog import HitLog
from acoustic_core.math import Vec
from acoustic_core.scene import Scene, SimulationSettings
from acoustic_core.sound import Sound, SoundState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TracePoint:
    time: float
    position: Vec
    amplitude: float
    state: SoundState

    @classmethod
    def of(cls, sound: Sound) -> "TracePoint":
        return cls(sound.time, sound.position, sound.amplitude, sound.state)


@dataclass
class SimulationResult:
    hits: HitLog
    emitted: int
    received: int = 0
    absorbed: int = 0
    orphaned: int = 0
    active: int = 0         # still active when the round cap stopped the run
    rounds: int = 0
    truncated: bool = False
    elapsed: float = 0.0
    traces: Dict[int, List[TracePoint]] = field(default_factory=dict)

    @property
    def terminated(self) -> int:
        return self.received + self.absorbed + self.orphaned


class BaseSimulator(ABC):
    """Base class for every bounce-loop implementation."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def simulate(self, scene: Scene, settings: SimulationSettings,
                 sounds: Optional[Sequence[Sound]] = None) -> SimulationResult:
        """Run the bounce loop to completion (or to settings.max_rounds)."""
        pass

    @abstractmethod
    def get_capabilities(self) -> List[str]:
        pass

    def get_name(self) -> str:
        return self.name

    def supports(self, feature: str) -> bool:
        return feature in self.get_capabilities()

    def _initial_sounds(self, scene: Scene, settings: SimulationSettings,
                        sounds: Optional[Sequence[Sound]]) -> List[Sound]:
        """Explicit sounds if given, otherwise emit from the scene's emitters (or the settings' source)."""
        if sounds is not None:
            initial = [s for s in sounds if s.active]
        else:
            emitters = scene.emitters or [settings.default_emitter(scene.dim or 3)]
            rng = np.random.default_rng(settings.seed)
            initial = []
            for emitter in emitters:
                initial.extend(emitter.emit(rng, first_id=len(initial)))

        dim = scene.dim
        for sound in initial:
            if dim is None:
                dim = sound.position.dim
            if sound.position.dim != dim or sound.direction.dim != dim:
                raise ConfigurationError(
                    f"sound {sound.id} at {sound.position!r} heading {sound.direction!r} "
                    f"does not match the {dim}D scene")
        return initial

    def _warn_truncated(self, result: SimulationResult):
        logger.warning(
            "%s stopped after %d rounds with %d sounds still active; hit log is partial",
            self.name, result.rounds, result.active
        )


class SimulatorFactory:
    _simulators = {}

    @classmethod
    def register(cls, name: str, simulator_class):
        cls._simulators[name] = simulator_class

    @classmethod
    def create(cls, name: str, **kwargs) -> BaseSimulator:
        if name not in cls._simulators:
            raise ValueError(f"Unknown simulator: {name}")
        return cls._simulators[name](**kwargs)

    @classmethod
    def list_available(cls) -> List[str]:
        return list(cls._simulators.keys())
