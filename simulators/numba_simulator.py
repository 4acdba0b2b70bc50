import logging
import math
import time
from typing import List, Optional, Sequence

import numpy as np
from numba import njit, prange

from acoustic_core.errors import ConfigurationError
from acoustic_core.geometry import DETERMINANT_EPS, Sphere, Triangle
from acoustic_core.hitlog import HitLog, HitRecord, get_intensity_law
from acoustic_core.math import Vec
from acoustic_core.scene import Scene, SimulationSettings
from acoustic_core.sound import Sound, SoundState
from simulators.base_simulator import BaseSimulator, SimulatorFactory, SimulationResult, TracePoint

logger = logging.getLogger(__name__)

TRIANGLE = 0
SPHERE = 1

# prims row layout
# triangle: v0(3), edge1(3), edge2(3), normal(3)
# sphere:   center(3), radius, 0 * 8
PRIM_WIDTH = 12


@njit(cache=True)
def _triangle_time(ox, oy, oz, dx, dy, dz, p, t_min, t_max):
    """Moller-Trumbore; returns (hit, t)."""
    e1x = p[3]
    e1y = p[4]
    e1z = p[5]
    e2x = p[6]
    e2y = p[7]
    e2z = p[8]

    # h = d x edge2
    h_x = dy * e2z - dz * e2y
    h_y = dz * e2x - dx * e2z
    h_z = dx * e2y - dy * e2x

    a = e1x * h_x + e1y * h_y + e1z * h_z
    if abs(a) < DETERMINANT_EPS:
        return False, 0.0

    f = 1.0 / a
    s_x = ox - p[0]
    s_y = oy - p[1]
    s_z = oz - p[2]

    u = f * (s_x * h_x + s_y * h_y + s_z * h_z)
    if u < 0.0 or u > 1.0:
        return False, 0.0

    # q = s x edge1
    q_x = s_y * e1z - s_z * e1y
    q_y = s_z * e1x - s_x * e1z
    q_z = s_x * e1y - s_y * e1x

    v = f * (dx * q_x + dy * q_y + dz * q_z)
    if v < 0.0 or u + v > 1.0:
        return False, 0.0

    t = f * (e2x * q_x + e2y * q_y + e2z * q_z)
    if t_min <= t <= t_max:
        return True, t
    return False, 0.0


@njit(cache=True)
def _sphere_time(ox, oy, oz, dx, dy, dz, p, t_min, t_max):
    """Smallest root of the ray/sphere quadratic inside [t_min, t_max]; returns (hit, t)."""
    oc_x = ox - p[0]
    oc_y = oy - p[1]
    oc_z = oz - p[2]
    radius = p[3]

    a = dx * dx + dy * dy + dz * dz
    b = oc_x * dx + oc_y * dy + oc_z * dz
    c = (oc_x * oc_x + oc_y * oc_y + oc_z * oc_z) - radius * radius
    discriminant = b * b - a * c
    if discriminant < 0:
        return False, 0.0
    if discriminant == 0:
        t = -b / a
        if t_min <= t <= t_max:
            return True, t
        return False, 0.0

    sqrt_d = math.sqrt(discriminant)
    t = (-b - sqrt_d) / a
    if t_min <= t <= t_max:
        return True, t
    t = (-b + sqrt_d) / a
    if t_min <= t <= t_max:
        return True, t
    return False, 0.0


@njit(parallel=True, cache=True)
def _nearest_hits(origins, directions, kinds, prims, owners, t_min,
                  out_t, out_owner, out_points, out_normals):
    """Nearest primitive for every ray; each ray writes only its own output row."""
    for k in prange(origins.shape[0]):
        ox = origins[k, 0]
        oy = origins[k, 1]
        oz = origins[k, 2]

        dx = directions[k, 0]
        dy = directions[k, 1]
        dz = directions[k, 2]
        length = math.sqrt(dx * dx + dy * dy + dz * dz)
        dx = dx / length
        dy = dy / length
        dz = dz / length

        best_t = math.inf
        best = -1
        for i in range(kinds.shape[0]):
            if kinds[i] == TRIANGLE:
                ok, t = _triangle_time(ox, oy, oz, dx, dy, dz, prims[i], t_min, best_t)
            else:
                ok, t = _sphere_time(ox, oy, oz, dx, dy, dz, prims[i], t_min, best_t)
            if ok:
                best_t = t
                best = i

        out_t[k] = best_t
        out_owner[k] = -1
        if best >= 0:
            out_owner[k] = owners[best]
            px = ox + dx * best_t
            py = oy + dy * best_t
            pz = oz + dz * best_t
            out_points[k, 0] = px
            out_points[k, 1] = py
            out_points[k, 2] = pz
            if kinds[best] == TRIANGLE:
                out_normals[k, 0] = prims[best, 9]
                out_normals[k, 1] = prims[best, 10]
                out_normals[k, 2] = prims[best, 11]
            else:
                out_normals[k, 0] = (px - prims[best, 0]) / prims[best, 3]
                out_normals[k, 1] = (py - prims[best, 1]) / prims[best, 3]
                out_normals[k, 2] = (pz - prims[best, 2]) / prims[best, 3]


class NumbaSimulator(BaseSimulator):
    """Data-parallel bounce loop: one JIT kernel call per round over all active sounds."""

    def __init__(self):
        super().__init__("numba_simulator")

    def get_capabilities(self) -> List[str]:
        return [
            "specular_reflection",
            "triangles",
            "spheres",
            "traces",
            "parallel",
            "jit_compilation",
        ]

    def simulate(self, scene: Scene, settings: SimulationSettings,
                 sounds: Optional[Sequence[Sound]] = None) -> SimulationResult:
        start_time = time.time()

        if scene.dim not in (None, 3):
            raise ConfigurationError(f"{self.name} only supports 3D scenes")

        initial = self._initial_sounds(scene, settings, sounds)
        if initial and initial[0].position.dim != 3:
            raise ConfigurationError(f"{self.name} only supports 3D sounds")
        law = get_intensity_law(settings.intensity_law)
        c = settings.speed_of_sound
        result = SimulationResult(hits=HitLog(), emitted=len(initial))
        if settings.record_traces:
            result.traces = {s.id: [TracePoint.of(s)] for s in initial}

        kinds, prims, owners = self._prepare_scene_data(scene)
        names = [o.name for o in scene.objects]
        # one slot per object; a single dummy slot keeps the lookups valid for an empty scene
        is_receiver = np.array([o.is_receiver for o in scene.objects] or [False], dtype=np.bool_)
        reflectance = np.array([0.0 if o.is_receiver else o.reflectance for o in scene.objects] or [0.0],
                               dtype=np.float64)

        logger.info("%s: %d sounds, %d primitives, %d receivers",
                    self.name, len(initial), len(kinds), len(scene.receivers))

        ids = np.array([s.id for s in initial], dtype=np.int64)
        positions = np.array([tuple(s.position) for s in initial], dtype=np.float64).reshape(-1, 3)
        directions = np.array([tuple(s.direction) for s in initial], dtype=np.float64).reshape(-1, 3)
        times = np.array([s.time for s in initial], dtype=np.float64)
        amplitudes = np.array([s.amplitude for s in initial], dtype=np.float64)
        bounces = np.array([s.bounces for s in initial], dtype=np.int64)

        while ids.size:
            if settings.max_rounds is not None and result.rounds >= settings.max_rounds:
                break
            result.rounds += 1

            n = ids.size
            hit_t = np.empty(n, dtype=np.float64)
            hit_owner = np.empty(n, dtype=np.int64)
            hit_points = np.zeros((n, 3), dtype=np.float64)
            hit_normals = np.zeros((n, 3), dtype=np.float64)
            _nearest_hits(positions, directions, kinds, prims, owners, 0.0,
                          hit_t, hit_owner, hit_points, hit_normals)

            orphan = hit_owner < 0
            owner = np.where(orphan, 0, hit_owner)
            receiver = ~orphan & is_receiver[owner]
            surface = ~orphan & ~receiver

            arrival = np.where(orphan, times, times + hit_t / c)
            new_amplitudes = np.where(surface, amplitudes * reflectance[owner], amplitudes)
            absorbed = surface & (new_amplitudes < settings.epsilon)
            survive = surface & ~absorbed

            # serial section: diagnostics and hit log appends in sound order
            for k in np.flatnonzero(orphan):
                logger.warning("Sound %d at %r heading %r hit nothing; the scene is not closed",
                               int(ids[k]), Vec(positions[k]), Vec(directions[k]))
            for k in np.flatnonzero(receiver):
                t_arrival = float(arrival[k])
                result.hits.append(HitRecord(
                    receiver=names[hit_owner[k]],
                    time=t_arrival,
                    intensity=law(float(amplitudes[k]), t_arrival, c),
                    sound_id=int(ids[k]),
                    bounces=int(bounces[k]),
                ))

            # d' = d - 2(d.n)n, renormalised
            dots = (directions[:, 0] * hit_normals[:, 0] + directions[:, 1] * hit_normals[:, 1]
                    + directions[:, 2] * hit_normals[:, 2])
            reflected = directions - hit_normals * (2 * dots)[:, None]
            norms = np.sqrt(reflected[:, 0] * reflected[:, 0] + reflected[:, 1] * reflected[:, 1]
                            + reflected[:, 2] * reflected[:, 2])
            reflected = reflected / norms[:, None]

            # lift bounced sounds off the surface on the reflected side
            rdots = (reflected[:, 0] * hit_normals[:, 0] + reflected[:, 1] * hit_normals[:, 1]
                     + reflected[:, 2] * hit_normals[:, 2])
            sides = np.where(rdots > 0, 1.0, -1.0)
            lifted = hit_points + (hit_normals * sides[:, None]) * settings.hit_offset

            if settings.record_traces:
                self._record_traces(result, ids, orphan, receiver, absorbed, survive,
                                    positions, hit_points, lifted, arrival, amplitudes, new_amplitudes)

            result.orphaned += int(orphan.sum())
            result.received += int(receiver.sum())
            result.absorbed += int(absorbed.sum())

            ids = ids[survive]
            positions = lifted[survive]
            directions = reflected[survive]
            times = arrival[survive]
            amplitudes = new_amplitudes[survive]
            bounces = bounces[survive] + 1

            logger.debug("Round %d: %d active, %d hits", result.rounds, ids.size, len(result.hits))

        result.active = int(ids.size)
        result.truncated = bool(ids.size)
        result.hits.freeze()
        result.elapsed = time.time() - start_time

        if result.truncated:
            self._warn_truncated(result)
        logger.info("%s finished: %d rounds, %d received, %d absorbed, %d orphaned in %.2fs",
                    self.name, result.rounds, result.received, result.absorbed,
                    result.orphaned, result.elapsed)
        return result

    def _prepare_scene_data(self, scene: Scene):
        """Flatten every primitive, in scene order, into (kinds, prims, owners) arrays."""
        kinds = []
        prims = []
        owners = []
        for index, obj in enumerate(scene.objects):
            for shape in obj.shapes:
                if isinstance(shape, Triangle):
                    kinds.append(TRIANGLE)
                    prims.append([
                        *shape.v0, *shape.edge1, *shape.edge2, *shape.normal
                    ])
                elif isinstance(shape, Sphere):
                    kinds.append(SPHERE)
                    prims.append([*shape.center, shape.radius] + [0.0] * (PRIM_WIDTH - 4))
                else:
                    raise ConfigurationError(f"{self.name} cannot trace {type(shape).__name__}")
                owners.append(index)

        return (
            np.array(kinds, dtype=np.int8),
            np.array(prims, dtype=np.float64).reshape(-1, PRIM_WIDTH),
            np.array(owners, dtype=np.int64),
        )

    @staticmethod
    def _record_traces(result, ids, orphan, receiver, absorbed, survive,
                       positions, hit_points, lifted, arrival, amplitudes, new_amplitudes):
        for k in range(ids.size):
            if orphan[k]:
                point = TracePoint(float(arrival[k]), Vec(positions[k]), float(amplitudes[k]),
                                   SoundState.ORPHANED)
            elif receiver[k]:
                point = TracePoint(float(arrival[k]), Vec(hit_points[k]), float(amplitudes[k]),
                                   SoundState.RECEIVED)
            elif absorbed[k]:
                point = TracePoint(float(arrival[k]), Vec(hit_points[k]), float(new_amplitudes[k]),
                                   SoundState.ABSORBED)
            else:
                point = TracePoint(float(arrival[k]), Vec(lifted[k]), float(new_amplitudes[k]),
                                   SoundState.ACTIVE)
            result.traces[int(ids[k])].append(point)


SimulatorFactory.register("numba_simulator", NumbaSimulator)
