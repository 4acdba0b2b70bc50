import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from acoustic_core.emitter import Emitter
from acoustic_core.errors import ConfigurationError
from acoustic_core.geometry import Hit, Hittable, Sphere, Triangle
from acoustic_core.hitlog import get_intensity_law
from acoustic_core.math import Vec, Ray

logger = logging.getLogger(__name__)


@dataclass
class SimulationSettings:
    sample_count: int = 1000
    initial_amplitude: float = 1.0
    frequency: float = 1000.0
    source_position: Optional[Vec] = None
    speed_of_sound: float = 343.0
    epsilon: float = 1e-3
    seed: Optional[int] = None
    max_rounds: Optional[int] = None
    intensity_law: str = "energy"
    hit_offset: float = 1e-6      # how far a bounced sound is lifted off the surface
    record_traces: bool = False

    def __post_init__(self):
        if self.sample_count < 0:
            raise ConfigurationError(f"sample_count must be >= 0, got {self.sample_count}")
        if not self.initial_amplitude > 0:
            raise ConfigurationError("initial_amplitude must be positive")
        if not self.speed_of_sound > 0:
            raise ConfigurationError("speed_of_sound must be positive")
        if not self.epsilon > 0:
            raise ConfigurationError(f"epsilon must be positive, got {self.epsilon}")
        if not self.hit_offset > 0:
            raise ConfigurationError(f"hit_offset must be positive, got {self.hit_offset}")
        if self.max_rounds is not None and self.max_rounds < 1:
            raise ConfigurationError("max_rounds must be >= 1 when set")
        try:
            get_intensity_law(self.intensity_law)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    def default_emitter(self, dim: int = 3) -> Emitter:
        origin = self.source_position if self.source_position is not None else Vec.zero(dim)
        return Emitter(origin, self.sample_count, self.initial_amplitude, self.frequency)


class Role(Enum):
    SURFACE = "surface"
    RECEIVER = "receiver"


@dataclass(frozen=True)
class SceneObject:
    """A reflective surface or a receiver; the role tag decides how a hit is handled."""
    name: str
    role: Role
    shapes: Tuple[Hittable, ...]
    reflectance: Optional[float] = None

    def __post_init__(self):
        if not self.shapes:
            raise ConfigurationError(f"{self.name}: object has no geometry")
        spheres = [s for s in self.shapes if isinstance(s, Sphere)]
        if spheres and len(self.shapes) > 1:
            raise ConfigurationError(f"{self.name}: a sphere object holds exactly one sphere")
        if len({s.dim for s in self.shapes}) != 1:
            raise ConfigurationError(f"{self.name}: shapes of mixed dimension")

        if self.role is Role.RECEIVER:
            if not spheres:
                raise ConfigurationError(f"{self.name}: receivers must be spheres")
            if self.reflectance is not None:
                raise ConfigurationError(f"{self.name}: receivers have no reflectance")
        else:
            if self.reflectance is None or not 0.0 <= self.reflectance <= 1.0:
                raise ConfigurationError(
                    f"{self.name}: reflectance must be in [0, 1], got {self.reflectance}")

    @classmethod
    def surface(cls, name: str, reflectance: float, shapes: Sequence[Hittable]) -> "SceneObject":
        return cls(name, Role.SURFACE, tuple(shapes), float(reflectance))

    @classmethod
    def receiver(cls, name: str, sphere: Sphere) -> "SceneObject":
        return cls(name, Role.RECEIVER, (sphere,))

    @property
    def dim(self) -> int:
        return self.shapes[0].dim

    @property
    def is_receiver(self) -> bool:
        return self.role is Role.RECEIVER

    def hit(self, ray: Ray, t_min: float = 0.0, t_max: float = math.inf) -> Optional[Hit]:
        closest = None
        closest_so_far = t_max
        for shape in self.shapes:
            rec = shape.hit(ray, t_min, closest_so_far)
            if rec is not None:
                closest = rec
                closest_so_far = rec.time
        return closest


class Scene:
    def __init__(self):
        self.objects: List[SceneObject] = []
        self.emitters: List[Emitter] = []

    @property
    def dim(self) -> Optional[int]:
        if self.objects:
            return self.objects[0].dim
        if self.emitters:
            return self.emitters[0].origin.dim
        return None

    def _check_dim(self, dim: int, what: str):
        if dim not in (2, 3):
            raise ConfigurationError(f"{what}: only 2D and 3D scenes are supported")
        if self.dim is not None and dim != self.dim:
            raise ConfigurationError(f"{what}: dimension {dim} does not match scene dimension {self.dim}")

    def add_object(self, obj: SceneObject) -> SceneObject:
        self._check_dim(obj.dim, obj.name)
        if any(o.name == obj.name for o in self.objects):
            raise ConfigurationError(f"duplicate object name: {obj.name}")
        self.objects.append(obj)
        logger.debug("Added %s %r (%d shapes)", obj.role.value, obj.name, len(obj.shapes))
        return obj

    def add_surface(self, name: str, reflectance: float, shapes: Sequence[Hittable]) -> SceneObject:
        return self.add_object(SceneObject.surface(name, reflectance, shapes))

    def add_receiver(self, name: str, center: Vec, radius: float) -> SceneObject:
        return self.add_object(SceneObject.receiver(name, Sphere(center, radius)))

    def add_emitter(self, emitter: Emitter) -> Emitter:
        self._check_dim(emitter.origin.dim, "emitter")
        self.emitters.append(emitter)
        return emitter

    @property
    def surfaces(self) -> List[SceneObject]:
        return [o for o in self.objects if not o.is_receiver]

    @property
    def receivers(self) -> List[SceneObject]:
        return [o for o in self.objects if o.is_receiver]

    def primitive_count(self) -> int:
        return sum(len(o.shapes) for o in self.objects)

    def nearest_hit(self, ray: Ray, t_min: float = 0.0,
                    t_max: float = math.inf) -> Optional[Tuple[Hit, SceneObject]]:
        """Earliest hit over every object; a linear scan of all primitives."""
        closest = None
        closest_so_far = t_max
        for obj in self.objects:
            rec = obj.hit(ray, t_min, closest_so_far)
            if rec is not None:
                closest = (rec, obj)
                closest_so_far = rec.time
        return closest


def triangle_fan(points: Sequence[Vec]) -> List[Triangle]:
    """Triangles (p0, p[i-1], p[i]) covering a convex polygon given in order."""
    if len(points) < 3:
        raise ConfigurationError("a triangle fan needs at least 3 points")
    origin = points[0]
    return [Triangle(origin, prev, point) for prev, point in zip(points[1:], points[2:])]
