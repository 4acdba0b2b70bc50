import math
import numbers
import numpy as np


class Vec:
    """Immutable vector of any dimension (2D and 3D scenes share this type)."""

    __slots__ = ("_c",)

    def __init__(self, *components):
        if len(components) == 1 and not isinstance(components[0], numbers.Real):
            components = tuple(components[0])
        self._c = tuple(float(c) for c in components)

    @property
    def dim(self) -> int:
        return len(self._c)

    @property
    def x(self):
        return self._c[0]

    @property
    def y(self):
        return self._c[1]

    @property
    def z(self):
        return self._c[2]

    def __len__(self):
        return len(self._c)

    def __iter__(self):
        return iter(self._c)

    def __getitem__(self, i):
        return self._c[i]

    def __eq__(self, other):
        if not isinstance(other, Vec):
            return NotImplemented
        return self._c == other._c

    def __hash__(self):
        return hash(self._c)

    def __add__(self, other):
        return Vec(a + b for a, b in zip(self._c, other._c))

    def __sub__(self, other):
        return Vec(a - b for a, b in zip(self._c, other._c))

    def __mul__(self, t):
        # scalar only; use dot() for the inner product
        return Vec(a * t for a in self._c)

    __rmul__ = __mul__

    def __truediv__(self, t):
        return Vec(a / t for a in self._c)

    def __neg__(self):
        return Vec(-a for a in self._c)

    def dot(self, other):
        return sum(a * b for a, b in zip(self._c, other._c))

    def cross(self, other):
        if self.dim != 3 or other.dim != 3:
            raise ValueError("cross product is only defined for 3D vectors")
        return Vec(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x
        )

    def length(self):
        return math.sqrt(self.dot(self))

    def normalize(self):
        l = self.length()
        if l == 0:
            raise ValueError("cannot normalize a zero vector")
        return self / l

    def reflect(self, normal):
        # r = v - 2 * dot(v, n) * n
        return self - normal * (2 * self.dot(normal))

    def to_np(self):
        return np.array(self._c, dtype=np.float64)

    @classmethod
    def zero(cls, dim: int = 3):
        return cls((0.0,) * dim)

    def __repr__(self):
        return "Vec(" + ", ".join(f"{c:.3f}" for c in self._c) + ")"


class Ray:
    def __init__(self, origin: Vec, direction: Vec):
        if origin.dim != direction.dim:
            raise ValueError("ray origin and direction must share a dimension")
        self.origin = origin
        self.direction = direction.normalize()

    @property
    def dim(self) -> int:
        return self.origin.dim

    def point_at_parameter(self, t):
        return self.origin + self.direction * t

    def __repr__(self):
        return f"Ray({self.origin!r} -> {self.direction!r})"


def random_unit_vector(dim: int, rng: np.random.Generator) -> Vec:
    """Area-uniform direction on the (dim-1)-sphere.

    A standard normal sample is isotropic, so normalising it gives a uniform
    point on the sphere without the pole clustering of per-angle sampling.
    """
    while True:
        sample = rng.standard_normal(dim)
        norm = float(np.linalg.norm(sample))
        if norm > 1e-12:
            return Vec(sample / norm)
