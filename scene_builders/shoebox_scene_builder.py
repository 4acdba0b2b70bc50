import logging
from typing import Dict, Optional, Union

from acoustic_core.emitter import Emitter
from acoustic_core.errors import ConfigurationError
from acoustic_core.math import Vec
from acoustic_core.scene import Scene, SimulationSettings, triangle_fan

logger = logging.getLogger(__name__)

WALLS = ("floor", "ceiling", "front", "back", "left", "right")


class ShoeboxSceneBuilder:
    """Rectangular room [0, length] x [0, width] x [0, height] with one spherical receiver."""

    def __init__(self,
                 length: float = 8.0,
                 width: float = 6.0,
                 height: float = 3.0,
                 reflectance: Union[float, Dict[str, float]] = 0.8,
                 default_reflectance: float = 0.8,
                 receiver_position: Optional[Vec] = None,
                 receiver_radius: float = 0.25,
                 source_position: Optional[Vec] = None):
        self.length = length
        self.width = width
        self.height = height
        if isinstance(reflectance, dict):
            unknown = set(reflectance) - set(WALLS)
            if unknown:
                raise ConfigurationError(f"unknown walls: {sorted(unknown)}")
        self.reflectance = reflectance
        self.default_reflectance = default_reflectance
        if receiver_position is None:
            receiver_position = Vec(length * 0.75, width * 0.5, height * 0.5)
        if source_position is None:
            source_position = Vec(length * 0.25, width * 0.5, height * 0.5)
        self.receiver_position = receiver_position
        self.receiver_radius = receiver_radius
        self.source_position = source_position

    def wall_reflectance(self, wall: str) -> float:
        if isinstance(self.reflectance, dict):
            return self.reflectance.get(wall, self.default_reflectance)
        return self.reflectance

    def build_scene(self) -> Scene:
        scene = Scene()
        self._create_walls(scene)
        scene.add_receiver("receiver", self.receiver_position, self.receiver_radius)
        logger.info("Shoebox %gx%gx%g: %d primitives",
                    self.length, self.width, self.height, scene.primitive_count())
        return scene

    def create_emitter(self, settings: SimulationSettings) -> Emitter:
        return Emitter(self.source_position, settings.sample_count,
                       settings.initial_amplitude, settings.frequency)

    def _create_walls(self, scene: Scene):
        """Each wall is a quad split into two triangles, wound so its normal faces into the room."""
        L, W, H = self.length, self.width, self.height
        quads = {
            # floor: z = 0
            "floor": [Vec(0, 0, 0), Vec(L, 0, 0), Vec(L, W, 0), Vec(0, W, 0)],
            # ceiling: z = H
            "ceiling": [Vec(0, 0, H), Vec(0, W, H), Vec(L, W, H), Vec(L, 0, H)],
            # front: y = 0
            "front": [Vec(0, 0, 0), Vec(0, 0, H), Vec(L, 0, H), Vec(L, 0, 0)],
            # back: y = W
            "back": [Vec(0, W, 0), Vec(L, W, 0), Vec(L, W, H), Vec(0, W, H)],
            # left: x = 0
            "left": [Vec(0, 0, 0), Vec(0, W, 0), Vec(0, W, H), Vec(0, 0, H)],
            # right: x = L
            "right": [Vec(L, 0, 0), Vec(L, 0, H), Vec(L, W, H), Vec(L, W, 0)],
        }
        for wall in WALLS:
            scene.add_surface(wall, self.wall_reflectance(wall), triangle_fan(quads[wall]))
