from __future__ import annotations

import numpy as np
import pytest

from ambiance_engine.app.models import (
    DriftDirection,
    FadeSettings,
    PitchMode,
    PlacementParams,
    SourceItem,
    ValueRange,
)
from ambiance_engine.services.randomization import (
    db_to_linear,
    directional_variation,
    draw_pitch,
    fade_plans,
    grain_properties,
    semitones_to_playrate,
)


@pytest.mark.parametrize(
    ("direction", "low", "high"),
    [
        (DriftDirection.NEGATIVE, -5.0, 0.0),
        (DriftDirection.POSITIVE, 0.0, 5.0),
        (DriftDirection.BIPOLAR, -5.0, 5.0),
    ],
)
def test_directional_variation_respects_direction(direction: DriftDirection, low: float, high: float) -> None:
    rng = np.random.default_rng(3)

    draws = [directional_variation(10.0, 50.0, direction, rng) for _ in range(200)]

    assert all(low <= value <= high for value in draws)
    assert max(abs(value) for value in draws) > 2.0


def test_zero_percent_variation_is_exact() -> None:
    rng = np.random.default_rng(0)

    assert directional_variation(10.0, 0.0, DriftDirection.BIPOLAR, rng) == 0.0


def test_unit_conversions() -> None:
    assert semitones_to_playrate(12.0) == pytest.approx(2.0)
    assert semitones_to_playrate(-12.0) == pytest.approx(0.5)
    assert db_to_linear(0.0) == pytest.approx(1.0)
    assert db_to_linear(-6.0) == pytest.approx(0.501, abs=1e-3)


def test_pitch_mode_keeps_playrate_and_adds_original_pitch() -> None:
    params = PlacementParams(pitch_range=ValueRange(min=2.0, max=2.0))
    item = SourceItem(name="bell", file_path="bell.wav", length=1.0, original_pitch=1.0)

    draw = draw_pitch(params, item, np.random.default_rng(0))

    assert draw.pitch == pytest.approx(3.0)
    assert draw.playrate == 1.0
    assert draw.preserve_pitch
    stretch = draw_pitch(
        PlacementParams(pitch_mode=PitchMode.STRETCH, randomize_pitch=False),
        item,
        np.random.default_rng(0),
    )
    assert stretch.pitch == 0.0
    assert stretch.playrate == pytest.approx(semitones_to_playrate(1.0))


def test_fade_plans_clamp_to_grain_length() -> None:
    fades = FadeSettings(fade_in_duration=5.0, fade_out_duration=0.5)

    fade_in, fade_out = fade_plans(fades, 2.0)

    assert fade_in is not None and fade_in.length == pytest.approx(2.0)
    assert fade_out is not None and fade_out.length == pytest.approx(0.5)
    percent_in, _ = fade_plans(FadeSettings(fade_in_duration=25.0, use_percentage=True), 4.0)
    assert percent_in is not None and percent_in.length == pytest.approx(1.0)
    disabled, _ = fade_plans(FadeSettings(fade_in_enabled=False), 4.0)
    assert disabled is None


def test_grain_properties_apply_gain_and_fixed_ranges() -> None:
    params = PlacementParams(
        volume_range=ValueRange(min=-6.0, max=-6.0),
        pan_range=ValueRange(min=50.0, max=50.0),
    )
    item = SourceItem(name="gust", file_path="gust.wav", length=1.0, gain_db=6.0)
    pitch = draw_pitch(params, item, np.random.default_rng(1))

    stereo = grain_properties(params, item, pitch, 1.0, np.random.default_rng(1), allow_pan=True)
    multichannel = grain_properties(params, item, pitch, 1.0, np.random.default_rng(1), allow_pan=False)

    assert stereo.volume == pytest.approx(1.0)
    assert stereo.pan == pytest.approx(-0.5)
    assert multichannel.pan is None
