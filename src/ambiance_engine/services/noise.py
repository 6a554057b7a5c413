"""Deterministic multi-octave value noise used by noise-mode placement."""

from __future__ import annotations

import math
from typing import List, Protocol

from ..app.models import NoiseSettings
from .exceptions import InvalidNoiseParameters

# Seconds of timeline covered by one unit of noise input.
TIME_SCALE_SECONDS = 10.0


class NoiseOracle(Protocol):
    def value_at_time(
        self,
        time: float,
        range_start: float,
        range_end: float,
        frequency: float,
        octaves: int,
        persistence: float,
        lacunarity: float,
        seed: int,
    ) -> float: ...


def _pseudo_random(x: int, seed: int) -> float:
    n = x + seed * 57
    n = (n * 158371 + 251893) % 2147483647
    n = (n * (n * n * 15731 + 789221) + 1376312589) % 2147483647
    return n / 1073741824.0 - 1.0


def _smoothstep(t: float) -> float:
    return t * t * (3.0 - 2.0 * t)


def _noise1d(x: float, seed: int) -> float:
    cell = math.floor(x)
    weight = _smoothstep(x - cell)
    left = _pseudo_random(cell, seed)
    right = _pseudo_random(cell + 1, seed)
    return left + (right - left) * weight


class ValueNoiseOracle:
    """Fractal value noise normalised to ``[0, 1]``."""

    def fractal(
        self,
        x: float,
        frequency: float,
        octaves: int,
        persistence: float,
        lacunarity: float,
        seed: int,
    ) -> float:
        total = 0.0
        amplitude = 1.0
        max_value = 0.0
        octave_frequency = frequency
        for octave in range(max(1, octaves)):
            total += _noise1d(x * octave_frequency, seed + octave) * amplitude
            max_value += amplitude
            amplitude *= persistence
            octave_frequency *= lacunarity
        if max_value <= 0:
            return 0.5
        return min(1.0, max(0.0, (total / max_value + 1.0) * 0.5))

    def value_at_time(
        self,
        time: float,
        range_start: float,
        range_end: float,
        frequency: float,
        octaves: int,
        persistence: float,
        lacunarity: float,
        seed: int,
    ) -> float:
        if range_end - range_start <= 0:
            return 0.5
        x = (time - range_start) / TIME_SCALE_SECONDS
        return self.fractal(x, frequency, octaves, persistence, lacunarity, seed)


def validate_noise_settings(settings: NoiseSettings) -> None:
    problems: List[str] = []
    if settings.frequency <= 0:
        problems.append(f"frequency must be positive (got {settings.frequency})")
    if settings.octaves < 1:
        problems.append(f"octaves must be at least 1 (got {settings.octaves})")
    if not 0.0 <= settings.persistence <= 1.0:
        problems.append(f"persistence must be within [0, 1] (got {settings.persistence})")
    if settings.lacunarity < 1.0:
        problems.append(f"lacunarity must be at least 1 (got {settings.lacunarity})")
    for name in ("density", "amplitude", "threshold"):
        value = getattr(settings, name)
        if not 0.0 <= value <= 100.0:
            problems.append(f"{name} must be within [0, 100] (got {value})")
    if problems:
        raise InvalidNoiseParameters("; ".join(problems))


def placement_probability(noise_value: float, density: float, amplitude: float) -> float:
    probability = density / 100.0 + (2.0 * noise_value - 1.0) * amplitude / 100.0
    return min(1.0, max(0.0, probability))
