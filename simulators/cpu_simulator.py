import logging
import time
from typing import List, Optional, Sequence

from acoustic_core.hitlog import HitLog, HitRecord, IntensityLaw, get_intensity_law
from acoustic_core.scene import Scene, SimulationSettings
from acoustic_core.sound import Sound, SoundState
from simulators.base_simulator import BaseSimulator, SimulatorFactory, SimulationResult, TracePoint

logger = logging.getLogger(__name__)


class CPUSimulator(BaseSimulator):
    """Pure Python bounce loop, one sound at a time."""

    def __init__(self):
        super().__init__("cpu_simulator")

    def get_capabilities(self) -> List[str]:
        return [
            "specular_reflection",
            "triangles",
            "spheres",
            "segments_2d",
            "traces",
        ]

    def simulate(self, scene: Scene, settings: SimulationSettings,
                 sounds: Optional[Sequence[Sound]] = None) -> SimulationResult:
        start_time = time.time()

        active = self._initial_sounds(scene, settings, sounds)
        law = get_intensity_law(settings.intensity_law)
        result = SimulationResult(hits=HitLog(), emitted=len(active))
        if settings.record_traces:
            result.traces = {s.id: [TracePoint.of(s)] for s in active}

        logger.info("%s: %d sounds, %d primitives, %d receivers",
                    self.name, len(active), scene.primitive_count(), len(scene.receivers))

        while active:
            if settings.max_rounds is not None and result.rounds >= settings.max_rounds:
                break
            result.rounds += 1

            # next generation is built fresh; the current one is never mutated
            next_generation = []
            for sound in active:
                outcome = self._step(sound, scene, settings, law, result.hits)
                if settings.record_traces:
                    result.traces[outcome.id].append(TracePoint.of(outcome))

                if outcome.state is SoundState.ACTIVE:
                    next_generation.append(outcome)
                elif outcome.state is SoundState.RECEIVED:
                    result.received += 1
                elif outcome.state is SoundState.ABSORBED:
                    result.absorbed += 1
                else:
                    result.orphaned += 1
            active = next_generation

            logger.debug("Round %d: %d active, %d hits", result.rounds, len(active), len(result.hits))

        result.active = len(active)
        result.truncated = bool(active)
        result.hits.freeze()
        result.elapsed = time.time() - start_time

        if result.truncated:
            self._warn_truncated(result)
        logger.info("%s finished: %d rounds, %d received, %d absorbed, %d orphaned in %.2fs",
                    self.name, result.rounds, result.received, result.absorbed,
                    result.orphaned, result.elapsed)
        return result

    def _step(self, sound: Sound, scene: Scene, settings: SimulationSettings,
              law: IntensityLaw, hits: HitLog) -> Sound:
        """Advance one sound to its next event."""
        c = settings.speed_of_sound
        # bounced sounds sit hit_offset off their last surface, so tracing starts at 0
        found = scene.nearest_hit(sound.ray(), 0.0)
        if found is None:
            logger.warning("Sound %d at %r heading %r hit nothing; the scene is not closed",
                           sound.id, sound.position, sound.direction)
            return sound.orphan()

        hit, obj = found
        if obj.is_receiver:
            received = sound.receive(hit, c)
            hits.append(HitRecord(
                receiver=obj.name,
                time=received.time,
                intensity=law(sound.amplitude, received.time, c),
                sound_id=sound.id,
                bounces=sound.bounces,
            ))
            return received

        if sound.amplitude * obj.reflectance < settings.epsilon:
            return sound.absorb(hit, obj.reflectance, c)
        return sound.bounce(hit, obj.reflectance, c, settings.hit_offset)


SimulatorFactory.register("cpu_simulator", CPUSimulator)
