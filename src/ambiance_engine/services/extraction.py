"""Per-grain channel extraction decisions."""

from __future__ import annotations

import numpy as np

from ..app.models import ChannelSelectionMode, EffectiveConfig
from .channel_formats import SURROUND_SOURCE_WIDTHS, center_skip_map
from .types import ExtractionPlan, TrackStructure

RANDOM_PAIR = "random"


def _random_index(rng: np.random.Generator, count: int) -> int:
    return int(rng.integers(max(1, count)))


def _mono_plan(
    item_channels: int,
    track_index: int,
    structure: TrackStructure,
    config: EffectiveConfig,
    rng: np.random.Generator,
) -> ExtractionPlan:
    forced = config.mono_channel_selection
    if forced is None:
        forced = structure.mono_channel_selection
    if forced is not None:
        # A forced channel the item does not have means "pick one at random".
        if forced >= item_channels:
            return ExtractionPlan.mono(_random_index(rng, item_channels))
        return ExtractionPlan.mono(forced)

    if structure.use_smart_routing and item_channels in SURROUND_SOURCE_WIDTHS:
        mapping = center_skip_map(structure.source_channel_variant or config.source_channel_variant)
        if track_index < len(mapping):
            return ExtractionPlan.mono(mapping[track_index])
        return ExtractionPlan.mono(mapping[_random_index(rng, len(mapping))])

    return ExtractionPlan.mono(_random_index(rng, item_channels))


def _stereo_plan(
    item_channels: int,
    structure: TrackStructure,
    config: EffectiveConfig,
    rng: np.random.Generator,
) -> ExtractionPlan:
    pairs = item_channels // 2
    if pairs == 0:
        return ExtractionPlan.none()
    pair = config.stereo_pair_selection
    if pair is None:
        pair = structure.stereo_pair_selection
    if pair is None:
        pair = 0
    if pair >= pairs:
        pair = _random_index(rng, pairs)
    return ExtractionPlan.stereo(pair)


def _split_stereo_plan(
    item_channels: int,
    track_index: int,
    config: EffectiveConfig,
    rng: np.random.Generator,
) -> ExtractionPlan:
    pairs = item_channels // 2
    if pairs == 0:
        return ExtractionPlan.none()
    mapped = config.stereo_pair_mapping.get(track_index)
    if mapped == RANDOM_PAIR:
        return ExtractionPlan.stereo(_random_index(rng, pairs))
    pair = track_index if mapped is None else int(mapped)
    if pair >= pairs:
        # More pair tracks than the item provides: upsample from what exists.
        pair = _random_index(rng, pairs)
    return ExtractionPlan.stereo(pair)


def resolve_extraction(
    item_channels: int,
    track_index: int,
    structure: TrackStructure,
    config: EffectiveConfig,
    rng: np.random.Generator,
) -> ExtractionPlan:
    if not structure.needs_channel_selection:
        return ExtractionPlan.none()

    mode = structure.channel_selection_mode
    if mode is ChannelSelectionMode.MONO:
        return _mono_plan(item_channels, track_index, structure, config, rng)
    if mode is ChannelSelectionMode.STEREO:
        return _stereo_plan(item_channels, structure, config, rng)
    if mode is ChannelSelectionMode.SPLIT_STEREO:
        return _split_stereo_plan(item_channels, track_index, config, rng)
    return ExtractionPlan.none()
