"""Per-grain randomization: drift variation, pitch, volume, pan and fades."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..app.models import DriftDirection, FadeSettings, PlacementParams, PitchMode, SourceItem
from .types import FadePlan, GrainProperties


def uniform(rng: np.random.Generator, low: float, high: float) -> float:
    if low == high:
        return float(low)
    return float(rng.uniform(low, high))


def directional_variation(
    magnitude: float,
    percent: float,
    direction: DriftDirection,
    rng: np.random.Generator,
) -> float:
    """Signed offset of up to ``percent`` of ``magnitude`` in the given direction."""

    if percent <= 0:
        return 0.0
    spread = magnitude * percent / 100.0
    if direction is DriftDirection.NEGATIVE:
        return -float(rng.random()) * spread
    if direction is DriftDirection.POSITIVE:
        return float(rng.random()) * spread
    return uniform(rng, -spread, spread)


def semitones_to_playrate(semitones: float) -> float:
    return float(2.0 ** (semitones / 12.0))


def db_to_linear(db: float) -> float:
    return float(10.0 ** (db / 20.0))


@dataclass(frozen=True)
class PitchDraw:
    pitch: float
    playrate: float
    preserve_pitch: bool


def draw_pitch(params: PlacementParams, item: SourceItem, rng: np.random.Generator) -> PitchDraw:
    semitones = item.original_pitch
    if params.randomize_pitch:
        semitones += uniform(rng, params.pitch_range.min, params.pitch_range.max)
    if params.pitch_mode is PitchMode.STRETCH:
        return PitchDraw(pitch=0.0, playrate=semitones_to_playrate(semitones), preserve_pitch=False)
    return PitchDraw(pitch=semitones, playrate=1.0, preserve_pitch=True)


def stretched_length(length: float, pitch: PitchDraw) -> float:
    if pitch.playrate <= 0:
        return length
    return length / pitch.playrate


def _fade(enabled: bool, duration: float, shape: int, curve: float, length: float, percent: bool) -> Optional[FadePlan]:
    if not enabled:
        return None
    fade_length = length * duration / 100.0 if percent else duration
    return FadePlan(length=max(0.0, min(fade_length, length)), shape=shape, curve=curve)


def fade_plans(fades: FadeSettings, length: float) -> tuple[Optional[FadePlan], Optional[FadePlan]]:
    fade_in = _fade(
        fades.fade_in_enabled,
        fades.fade_in_duration,
        fades.fade_in_shape,
        fades.fade_in_curve,
        length,
        fades.use_percentage,
    )
    fade_out = _fade(
        fades.fade_out_enabled,
        fades.fade_out_duration,
        fades.fade_out_shape,
        fades.fade_out_curve,
        length,
        fades.use_percentage,
    )
    return fade_in, fade_out


def grain_properties(
    params: PlacementParams,
    item: SourceItem,
    pitch: PitchDraw,
    length: float,
    rng: np.random.Generator,
    *,
    allow_pan: bool,
) -> GrainProperties:
    volume = item.original_volume * db_to_linear(item.gain_db)
    if params.randomize_volume:
        volume *= db_to_linear(uniform(rng, params.volume_range.min, params.volume_range.max))

    pan: Optional[float] = None
    if allow_pan:
        pan = item.original_pan
        if params.randomize_pan:
            offset = uniform(rng, params.pan_range.min, params.pan_range.max) / 100.0
            pan = float(np.clip(item.original_pan - offset, -1.0, 1.0))

    fade_in, fade_out = fade_plans(params.fades, length)
    return GrainProperties(
        pitch=pitch.pitch,
        playrate=pitch.playrate,
        preserve_pitch=pitch.preserve_pitch,
        volume=volume,
        pan=pan,
        fade_in=fade_in,
        fade_out=fade_out,
    )
