import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from acoustic_core.errors import ConfigurationError
from acoustic_core.math import Vec, Ray

# Below this the ray is treated as parallel to the facet.
DETERMINANT_EPS = 1e-9


@dataclass(frozen=True)
class Hit:
    time: float      # ray parameter (distance along the unit direction)
    point: Vec
    normal: Vec      # unit length


class Hittable(ABC):
    @abstractmethod
    def hit(self, ray: Ray, t_min: float = 0.0, t_max: float = math.inf) -> Optional[Hit]:
        """Earliest intersection with t in [t_min, t_max], or None."""

    @property
    @abstractmethod
    def dim(self) -> int:
        pass


class Sphere(Hittable):
    def __init__(self, center: Vec, radius: float):
        if not radius > 0:
            raise ConfigurationError(f"sphere radius must be positive, got {radius}")
        self.center = center
        self.radius = float(radius)

    @property
    def dim(self) -> int:
        return self.center.dim

    def _roots(self, ray: Ray):
        # t^2 + 2t(d.(O-C)) + |O-C|^2 - r^2 = 0
        oc = ray.origin - self.center
        a = ray.direction.dot(ray.direction)
        b = oc.dot(ray.direction)
        c = oc.dot(oc) - self.radius * self.radius
        discriminant = b * b - a * c
        if discriminant < 0:
            return []
        if discriminant == 0:
            return [-b / a]
        sqrt_d = math.sqrt(discriminant)
        return [(-b - sqrt_d) / a, (-b + sqrt_d) / a]

    def _make_hit(self, ray: Ray, t: float) -> Hit:
        point = ray.point_at_parameter(t)
        return Hit(t, point, (point - self.center) / self.radius)

    def intersections(self, ray: Ray, t_min: float = -math.inf, t_max: float = math.inf) -> List[Hit]:
        """Every crossing of the sphere boundary, in increasing time (one when tangent)."""
        return [self._make_hit(ray, t) for t in self._roots(ray) if t_min <= t <= t_max]

    def hit(self, ray: Ray, t_min: float = 0.0, t_max: float = math.inf) -> Optional[Hit]:
        for t in self._roots(ray):
            if t_min <= t <= t_max:
                return self._make_hit(ray, t)
        return None

    def __repr__(self):
        return f"Sphere({self.center!r}, {self.radius:g})"


class Triangle(Hittable):
    def __init__(self, v0: Vec, v1: Vec, v2: Vec):
        if not (v0.dim == v1.dim == v2.dim == 3):
            raise ConfigurationError("triangles are only supported in 3D scenes")
        self.v0 = v0
        self.v1 = v1
        self.v2 = v2
        self.edge1 = v1 - v0
        self.edge2 = v2 - v0
        n = self.edge1.cross(self.edge2)
        if n.length() < 1e-12:
            raise ConfigurationError(f"degenerate triangle {v0!r}, {v1!r}, {v2!r}")
        self.normal = n.normalize()

    @property
    def dim(self) -> int:
        return 3

    def hit(self, ray: Ray, t_min: float = 0.0, t_max: float = math.inf) -> Optional[Hit]:
        # Moller-Trumbore
        h = ray.direction.cross(self.edge2)
        a = self.edge1.dot(h)
        if abs(a) < DETERMINANT_EPS:
            return None  # parallel

        f = 1.0 / a
        s = ray.origin - self.v0
        u = f * s.dot(h)
        if u < 0.0 or u > 1.0:
            return None

        q = s.cross(self.edge1)
        v = f * ray.direction.dot(q)
        if v < 0.0 or u + v > 1.0:
            return None

        t = f * self.edge2.dot(q)
        if t_min <= t <= t_max:
            return Hit(t, ray.point_at_parameter(t), self.normal)
        return None

    def __repr__(self):
        return f"Triangle({self.v0!r}, {self.v1!r}, {self.v2!r})"


def _cross2(a: Vec, b: Vec) -> float:
    return a.x * b.y - a.y * b.x


class Segment(Hittable):
    """Wall facet of a 2D scene."""

    def __init__(self, p0: Vec, p1: Vec):
        if not (p0.dim == p1.dim == 2):
            raise ConfigurationError("segments are only supported in 2D scenes")
        self.p0 = p0
        self.p1 = p1
        self.edge = p1 - p0
        length = self.edge.length()
        if length < 1e-12:
            raise ConfigurationError(f"degenerate segment {p0!r}, {p1!r}")
        self.normal = Vec(-self.edge.y, self.edge.x) / length

    @property
    def dim(self) -> int:
        return 2

    def hit(self, ray: Ray, t_min: float = 0.0, t_max: float = math.inf) -> Optional[Hit]:
        # origin + t*d = p0 + s*edge, solved with 2D cross products
        denom = _cross2(ray.direction, self.edge)
        if abs(denom) < DETERMINANT_EPS:
            return None

        w = self.p0 - ray.origin
        s = _cross2(w, ray.direction) / denom
        if s < 0.0 or s > 1.0:
            return None

        t = _cross2(w, self.edge) / denom
        if t_min <= t <= t_max:
            return Hit(t, ray.point_at_parameter(t), self.normal)
        return None

    def __repr__(self):
        return f"Segment({self.p0!r}, {self.p1!r})"
