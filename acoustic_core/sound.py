from dataclasses import dataclass, replace
from enum import Enum

from acoustic_core.geometry import Hit
from acoustic_core.math import Vec, Ray


class SoundState(Enum):
    ACTIVE = "active"
    ABSORBED = "absorbed"
    RECEIVED = "received"
    ORPHANED = "orphaned"


@dataclass(frozen=True)
class Sound:
    """One wavefront sample. Transitions return a new Sound instead of mutating."""
    id: int
    position: Vec
    direction: Vec      # unit length
    time: float
    amplitude: float
    frequency: float
    state: SoundState = SoundState.ACTIVE
    bounces: int = 0

    @property
    def active(self) -> bool:
        return self.state is SoundState.ACTIVE

    def ray(self) -> Ray:
        return Ray(self.position, self.direction)

    def arrival_time(self, hit: Hit, speed_of_sound: float) -> float:
        return self.time + hit.time / speed_of_sound

    def bounce(self, hit: Hit, reflectance: float, speed_of_sound: float,
               offset: float = 0.0) -> "Sound":
        """Specular reflection off the surface at `hit`, keeping `reflectance` of the amplitude.

        The new position is lifted `offset` off the surface, on the side the
        reflected direction points to; the next trace starts at t = 0.
        """
        direction = self.direction.reflect(hit.normal).normalize()
        side = hit.normal if direction.dot(hit.normal) > 0 else -hit.normal
        return replace(
            self,
            position=hit.point + side * offset,
            direction=direction,
            time=self.arrival_time(hit, speed_of_sound),
            amplitude=self.amplitude * reflectance,
            bounces=self.bounces + 1,
        )

    def absorb(self, hit: Hit, reflectance: float, speed_of_sound: float) -> "Sound":
        return replace(
            self,
            position=hit.point,
            time=self.arrival_time(hit, speed_of_sound),
            amplitude=self.amplitude * reflectance,
            state=SoundState.ABSORBED,
        )

    def receive(self, hit: Hit, speed_of_sound: float) -> "Sound":
        return replace(
            self,
            position=hit.point,
            time=self.arrival_time(hit, speed_of_sound),
            state=SoundState.RECEIVED,
        )

    def orphan(self) -> "Sound":
        return replace(self, state=SoundState.ORPHANED)
