"""Euclidean rhythm patterns and multi-layer combination on a shared grid."""

from __future__ import annotations

from typing import Protocol, Sequence, Tuple

import numpy as np

from ..app.models import EuclideanLayer

DEFAULT_LAYER = EuclideanLayer(pulses=8, steps=16, rotation=0)
BEATS_PER_BAR = 4.0


class PatternCombiner(Protocol):
    def combine(self, layers: Sequence[EuclideanLayer]) -> Tuple[np.ndarray, int]: ...


class TempoMap(Protocol):
    def time_to_beats(self, time: float) -> float: ...

    def beats_to_time(self, beats: float) -> float: ...


class ConstantTempoMap:
    def __init__(self, tempo_bpm: float) -> None:
        self._tempo_bpm = tempo_bpm

    def time_to_beats(self, time: float) -> float:
        return time * self._tempo_bpm / 60.0

    def beats_to_time(self, beats: float) -> float:
        return beats * 60.0 / self._tempo_bpm


def euclidean_pattern(pulses: int, steps: int, rotation: int = 0) -> np.ndarray:
    if steps <= 0:
        return np.zeros(0, dtype=bool)
    if pulses >= steps:
        return np.ones(steps, dtype=bool)
    if pulses <= 0:
        return np.zeros(steps, dtype=bool)

    pattern = np.zeros(steps, dtype=bool)
    bucket = 0
    for index in range(steps):
        bucket += pulses
        if bucket >= steps:
            bucket -= steps
            pattern[index] = True
    # The raw bucket pattern ends on its onset; shift by one so rotation 0
    # starts on a hit.
    return np.roll(pattern, rotation + 1)


def grid_length(layers: Sequence[EuclideanLayer]) -> int:
    return int(np.lcm.reduce([layer.steps for layer in layers]))


class BucketPatternCombiner:
    """Overlay every layer's pattern onto a grid of ``lcm(steps)`` positions."""

    def combine(self, layers: Sequence[EuclideanLayer]) -> Tuple[np.ndarray, int]:
        active = list(layers) or [DEFAULT_LAYER]
        length = grid_length(active)
        combined = np.zeros(length, dtype=bool)
        for layer in active:
            pattern = euclidean_pattern(layer.pulses, layer.steps, layer.rotation)
            hits = np.flatnonzero(pattern)
            positions = np.rint(hits * length / layer.steps).astype(int)
            combined[np.clip(positions, 0, length - 1)] = True
        return combined, length
