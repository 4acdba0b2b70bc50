import csv
import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Tuple

import numpy as np
from PIL import Image, ImageDraw

# (amplitude, time, speed_of_sound) -> recorded intensity
IntensityLaw = Callable[[float, float, float], float]

_intensity_laws: Dict[str, IntensityLaw] = {}


def register_intensity_law(name: str, law: IntensityLaw):
    _intensity_laws[name] = law


def get_intensity_law(name: str) -> IntensityLaw:
    if name not in _intensity_laws:
        raise ValueError(f"Unknown intensity law: {name}")
    return _intensity_laws[name]


def list_intensity_laws() -> List[str]:
    return list(_intensity_laws.keys())


def _amplitude_law(amplitude, time, speed_of_sound):
    return amplitude


def _energy_law(amplitude, time, speed_of_sound):
    return amplitude * amplitude


def _inverse_square_law(amplitude, time, speed_of_sound):
    # spreading loss over the travelled path, referenced to 1 distance unit
    distance = max(time * speed_of_sound, 1.0)
    return amplitude * amplitude / (distance * distance)


register_intensity_law("amplitude", _amplitude_law)
register_intensity_law("energy", _energy_law)
register_intensity_law("inverse_square", _inverse_square_law)


@dataclass(frozen=True)
class HitRecord:
    receiver: str
    time: float
    intensity: float
    sound_id: int
    bounces: int = 0


class HitLog:
    """Append-only record of receiver hits; read-only once frozen."""

    def __init__(self):
        self._records: List[HitRecord] = []
        self._frozen = False

    def append(self, record: HitRecord):
        if self._frozen:
            raise RuntimeError("hit log is frozen")
        self._records.append(record)

    def freeze(self):
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def records(self) -> Tuple[HitRecord, ...]:
        return tuple(self._records)

    def __len__(self):
        return len(self._records)

    def __iter__(self) -> Iterator[HitRecord]:
        return iter(tuple(self._records))

    def __getitem__(self, i):
        return self._records[i]

    def for_receiver(self, name: str) -> List[HitRecord]:
        return [r for r in self._records if r.receiver == name]

    def as_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        """(times, intensities) as float arrays, in log order."""
        times = np.array([r.time for r in self._records], dtype=np.float64)
        intensities = np.array([r.intensity for r in self._records], dtype=np.float64)
        return times, intensities

    def write_delimited(self, path: str, delimiter: str = ","):
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f, delimiter=delimiter)
            writer.writerow(["time", "intensity", "receiver", "sound_id", "bounces"])
            for r in self._records:
                writer.writerow([repr(r.time), repr(r.intensity), r.receiver, r.sound_id, r.bounces])

    def to_echogram(self, width: int = 800, height: int = 300, floor_db: float = -60.0) -> Image.Image:
        """Log-scale time/intensity bar chart; intensities are summed per pixel column."""
        if floor_db >= 0:
            raise ValueError("floor_db must be negative")
        image = Image.new("RGB", (width, height), (255, 255, 255))
        times, intensities = self.as_arrays()
        positive = intensities > 0
        if not np.any(positive):
            return image

        times = times[positive]
        intensities = intensities[positive]
        t_max = float(times.max()) or 1.0

        columns = np.minimum((times / t_max * (width - 1)).astype(int), width - 1)
        energy = np.zeros(width, dtype=np.float64)
        np.add.at(energy, columns, intensities)

        peak = float(energy.max())
        draw = ImageDraw.Draw(image)
        for i in np.flatnonzero(energy):
            level_db = 10.0 * math.log10(energy[i] / peak)
            if level_db < floor_db:
                continue
            bar = int(round((1.0 - level_db / floor_db) * (height - 1)))
            draw.line([(int(i), height - 1), (int(i), height - 1 - bar)], fill=(30, 60, 160))
        return image
