from typing import Optional

from acoustic_core.emitter import Emitter
from acoustic_core.math import Vec
from acoustic_core.scene import Scene, SimulationSettings, triangle_fan


class CorridorSceneBuilder:
    """Two parallel walls x = 0 and x = separation, open everywhere else.

    Only sounds travelling along the x axis stay inside; anything else is
    eventually orphaned, so this is a scenario for scripted sounds.
    """

    def __init__(self,
                 separation: float = 10.0,
                 extent: float = 50.0,
                 reflectance: float = 0.5,
                 receiver_position: Optional[Vec] = None,
                 receiver_radius: float = 0.5):
        self.separation = separation
        self.extent = extent
        self.reflectance = reflectance
        self.receiver_position = receiver_position
        self.receiver_radius = receiver_radius

    def build_scene(self) -> Scene:
        scene = Scene()
        e = self.extent
        for name, x in (("wall_near", 0.0), ("wall_far", self.separation)):
            quad = [Vec(x, -e, -e), Vec(x, e, -e), Vec(x, e, e), Vec(x, -e, e)]
            scene.add_surface(name, self.reflectance, triangle_fan(quad))
        if self.receiver_position is not None:
            scene.add_receiver("receiver", self.receiver_position, self.receiver_radius)
        return scene

    def create_emitter(self, settings: SimulationSettings) -> Emitter:
        origin = settings.source_position
        if origin is None:
            origin = Vec(self.separation / 2.0, 0.0, 0.0)
        return Emitter(origin, settings.sample_count, settings.initial_amplitude, settings.frequency)
