import math
from typing import List, Optional

from acoustic_core.emitter import Emitter
from acoustic_core.errors import ConfigurationError
from acoustic_core.geometry import Segment
from acoustic_core.math import Vec
from acoustic_core.scene import Scene, SimulationSettings


def create_polygon_vertices(n_sides: int, radius: float, center: Vec) -> List[Vec]:
    """Counter-clockwise vertices of a regular polygon."""
    return [
        Vec(center.x + radius * math.cos(2 * math.pi * i / n_sides),
            center.y + radius * math.sin(2 * math.pi * i / n_sides))
        for i in range(n_sides)
    ]


class PolygonSceneBuilder:
    """2D regular polygon room; every edge is one wall segment."""

    def __init__(self,
                 n_sides: int = 6,
                 radius: float = 5.0,
                 reflectance: float = 0.8,
                 receiver_position: Optional[Vec] = None,
                 receiver_radius: float = 0.25,
                 source_position: Optional[Vec] = None):
        if n_sides < 3:
            raise ConfigurationError("a polygon room needs at least 3 sides")
        self.n_sides = n_sides
        self.radius = radius
        self.reflectance = reflectance
        self.center = Vec(0.0, 0.0)
        self.receiver_position = receiver_position if receiver_position is not None else Vec(radius / 2, 0.0)
        self.receiver_radius = receiver_radius
        self.source_position = source_position if source_position is not None else Vec(-radius / 2, 0.0)

    def build_scene(self) -> Scene:
        scene = Scene()
        vertices = create_polygon_vertices(self.n_sides, self.radius, self.center)
        # counter-clockwise edges put the segment normals on the inside
        walls = [Segment(vertices[i], vertices[(i + 1) % self.n_sides]) for i in range(self.n_sides)]
        scene.add_surface("walls", self.reflectance, walls)
        scene.add_receiver("receiver", self.receiver_position, self.receiver_radius)
        return scene

    def create_emitter(self, settings: SimulationSettings) -> Emitter:
        return Emitter(self.source_position, settings.sample_count,
                       settings.initial_amplitude, settings.frequency)
