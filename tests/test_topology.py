from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import pytest

from ambiance_engine.app.models import (
    ChannelMode,
    ChannelSelectionMode,
    ChannelVariant,
    ContainerConfig,
    EffectiveConfig,
    GroupConfig,
    SourceItem,
)
from ambiance_engine.services.channel_formats import mode_for_channel_count, stereo_pair_labels
from ambiance_engine.services.extraction import resolve_extraction
from ambiance_engine.services.topology import analyze_items, resolve_topology
from ambiance_engine.services.types import ExtractionPlan, TopologyStrategy, TrackType


def _items(*channels: int) -> list[SourceItem]:
    return [
        SourceItem(name=f"item-{index}", file_path=f"item-{index}.wav", num_channels=count, length=3.0)
        for index, count in enumerate(channels)
    ]


def _config(
    channels: Sequence[int],
    mode: ChannelMode,
    selection: ChannelSelectionMode = ChannelSelectionMode.NONE,
    variant: Optional[ChannelVariant] = None,
) -> EffectiveConfig:
    container = ContainerConfig(
        name="Birds",
        items=_items(*channels),
        channel_mode=mode,
        channel_selection_mode=selection,
        source_channel_variant=variant,
    )
    return EffectiveConfig.resolve(GroupConfig(name="Forest"), container)


def _resolve(
    channels: Sequence[int],
    mode: ChannelMode,
    selection: ChannelSelectionMode = ChannelSelectionMode.NONE,
    variant: Optional[ChannelVariant] = None,
):
    config = _config(channels, mode, selection, variant)
    return resolve_topology(config, analyze_items(config.items))


def _extractions(config: EffectiveConfig, structure) -> list[ExtractionPlan]:
    rng = np.random.default_rng(0)
    width = config.items[0].num_channels
    return [resolve_extraction(width, index, structure, config, rng) for index in range(structure.num_tracks)]


def test_analyze_items_reports_dominant_width() -> None:
    analysis = analyze_items(_items(2, 2, 1, 4))

    assert not analysis.is_empty
    assert not analysis.is_homogeneous
    assert analysis.dominant_channel_count == 2
    assert analysis.unique_channel_counts == (1, 2, 4)
    assert analysis.channel_counts == {2: 2, 1: 1, 4: 1}
    assert analysis.total_items == 4


def test_analyze_items_empty_pool_defaults_to_stereo() -> None:
    analysis = analyze_items([])

    assert analysis.is_empty
    assert analysis.is_homogeneous
    assert analysis.dominant_channel_count == 2
    assert analysis.total_items == 0


def test_matching_width_passes_items_through() -> None:
    structure = _resolve([4, 4], ChannelMode.QUAD)

    assert structure.strategy is TopologyStrategy.PERFECT_MATCH_PASSTHROUGH
    assert structure.num_tracks == 1
    assert structure.track_channels == 4
    assert not structure.needs_channel_selection
    assert structure.items_go_directly


def test_stereo_items_in_quad_use_two_labelled_pairs() -> None:
    structure = _resolve([2, 2], ChannelMode.QUAD)

    assert structure.strategy is TopologyStrategy.AUTO_STEREO_PAIRS_QUAD
    assert structure.num_tracks == 2
    assert structure.track_type is TrackType.STEREO
    assert structure.track_labels == ("L+R", "LS+RS")
    assert structure.use_distribution
    assert not structure.needs_channel_selection


def test_stereo_items_in_surround_use_surround_pairs() -> None:
    structure = _resolve([2], ChannelMode.SURROUND_5_0)

    assert structure.strategy is TopologyStrategy.AUTO_STEREO_PAIRS_SURROUND
    assert structure.total_channels == 4


def test_odd_items_with_stereo_selection_fall_back_to_mono() -> None:
    structure = _resolve([5, 5], ChannelMode.QUAD, ChannelSelectionMode.STEREO)

    assert structure.strategy is TopologyStrategy.INVALID_STEREO_FALLBACK_MONO
    assert structure.channel_selection_mode is ChannelSelectionMode.MONO
    assert structure.num_tracks == 4
    assert structure.warning is not None


def test_mixed_widths_force_mono_with_warning() -> None:
    structure = _resolve([1, 2, 6], ChannelMode.QUAD)

    assert structure.strategy is TopologyStrategy.MIXED_ITEMS_FORCED_MONO
    assert structure.num_tracks == 4
    assert structure.track_channels == 1
    assert structure.needs_channel_selection
    assert "1, 2, 6" in (structure.warning or "")


def test_empty_pool_gets_single_track_at_output_width() -> None:
    structure = _resolve([], ChannelMode.SURROUND_7_0)

    assert structure.strategy is TopologyStrategy.EMPTY_DEFAULT
    assert structure.num_tracks == 1
    assert structure.track_channels == 7


def test_mono_items_are_distributed_across_output_channels() -> None:
    structure = _resolve([1, 1, 1], ChannelMode.SURROUND_5_0, variant=ChannelVariant.SMPTE)

    assert structure.strategy is TopologyStrategy.MONO_DISTRIBUTION
    assert structure.num_tracks == 5
    assert structure.track_labels == ("L", "C", "R", "LS", "RS")
    assert not structure.needs_channel_selection


def test_stereo_selection_into_stereo_output_picks_a_pair() -> None:
    structure = _resolve([6], ChannelMode.STEREO, ChannelSelectionMode.STEREO)

    assert structure.strategy is TopologyStrategy.STEREO_PAIR_SELECTION
    assert structure.available_stereo_pairs == 3
    assert structure.channel_selection_mode is ChannelSelectionMode.STEREO


def test_split_stereo_upsamples_when_items_have_fewer_pairs() -> None:
    structure = _resolve([4], ChannelMode.SURROUND_7_0, ChannelSelectionMode.STEREO)

    assert structure.strategy is TopologyStrategy.SPLIT_STEREO_PAIRS
    assert structure.num_tracks == 3
    assert structure.available_stereo_pairs == 2
    assert structure.upsampling
    assert structure.channel_selection_mode is ChannelSelectionMode.SPLIT_STEREO


def test_split_stereo_labels_follow_item_layout() -> None:
    structure = _resolve([8], ChannelMode.SURROUND_7_0, ChannelSelectionMode.STEREO)

    assert structure.track_labels == ("Ch1+2", "Ch3+4", "Ch5+6")
    assert not structure.upsampling


def test_mono_selection_skips_center_in_labels() -> None:
    structure = _resolve([6], ChannelMode.SURROUND_5_0, ChannelSelectionMode.MONO)

    assert structure.strategy is TopologyStrategy.SPLIT_TO_MONO
    assert structure.num_tracks == 5
    assert structure.track_labels == ("L", "R", "LS", "RS")
    assert structure.label_for(4) == "Ch5"


def test_four_channel_items_in_surround_skip_center() -> None:
    structure = _resolve([4], ChannelMode.SURROUND_5_0)

    assert structure.strategy is TopologyStrategy.AUTO_4CH_IN_SURROUND
    assert structure.routing_map == (1, 2, 4, 5)


def test_surround_items_into_quad_need_known_variant() -> None:
    known = _resolve([5], ChannelMode.QUAD, variant=ChannelVariant.ITU)
    unknown = _resolve([5], ChannelMode.QUAD)

    assert known.strategy is TopologyStrategy.SURROUND_TO_QUAD_SKIP_CENTER
    assert known.use_smart_routing
    assert known.source_channel_variant is ChannelVariant.ITU
    assert unknown.strategy is TopologyStrategy.SURROUND_UNKNOWN_FORMAT
    assert unknown.needs_source_variant
    assert unknown.mono_channel_selection == 0


def test_surround_items_into_stereo_keep_front_pair() -> None:
    structure = _resolve([7], ChannelMode.STEREO, variant=ChannelVariant.SMPTE)

    assert structure.strategy is TopologyStrategy.SURROUND_TO_STEREO_FRONT_ONLY
    assert structure.stereo_pair_selection == 0


def test_wide_even_items_downmix_to_stereo() -> None:
    structure = _resolve([4], ChannelMode.STEREO)

    assert structure.strategy is TopologyStrategy.AUTO_DOWNMIX_STEREO
    assert structure.items_go_directly
    assert structure.stereo_pair_selection == 0
    assert structure.warning is not None


def test_other_wide_items_downmix_to_first_channel() -> None:
    structure = _resolve([7], ChannelMode.SURROUND_5_0, variant=ChannelVariant.ITU)

    assert structure.strategy is TopologyStrategy.AUTO_DOWNMIX_TO_FIRST
    assert structure.mono_channel_selection == 0


def test_narrow_items_default_to_mono_tracks() -> None:
    structure = _resolve([3], ChannelMode.QUAD)

    assert structure.strategy is TopologyStrategy.AUTO_DEFAULT
    assert structure.num_tracks == 4
    assert structure.needs_channel_selection
    assert structure.mono_channel_selection == 0


def test_channel_format_lookups() -> None:
    assert mode_for_channel_count(4) is ChannelMode.QUAD
    assert mode_for_channel_count(3) is None
    assert stereo_pair_labels(6, 3) == ("L+R", "C+LFE", "LS+RS")


@pytest.mark.parametrize(
    ("mode", "strategy"),
    [
        (ChannelMode.QUAD, TopologyStrategy.STEREO_PAIRS_QUAD),
        (ChannelMode.SURROUND_5_0, TopologyStrategy.STEREO_PAIRS_SURROUND),
        (ChannelMode.SURROUND_7_0, TopologyStrategy.STEREO_PAIRS_SURROUND),
    ],
)
@pytest.mark.parametrize("selection", [ChannelSelectionMode.STEREO, ChannelSelectionMode.SPLIT_STEREO])
def test_selected_stereo_items_fill_two_pair_tracks(
    mode: ChannelMode,
    strategy: TopologyStrategy,
    selection: ChannelSelectionMode,
) -> None:
    config = _config([2, 2], mode, selection)
    structure = resolve_topology(config, analyze_items(config.items))

    assert structure.strategy is strategy
    assert structure.num_tracks == 2
    assert structure.track_labels == ("L+R", "LS+RS")
    assert structure.use_distribution
    assert _extractions(config, structure) == [ExtractionPlan.none(), ExtractionPlan.none()]


@pytest.mark.parametrize(
    ("channels", "mode", "tracks"),
    [
        (4, ChannelMode.QUAD, 2),
        (6, ChannelMode.SURROUND_7_0, 3),
        (8, ChannelMode.SURROUND_7_0, 3),
        (6, ChannelMode.SURROUND_5_0, 2),
    ],
)
def test_split_stereo_selection_gives_each_track_its_own_pair(
    channels: int,
    mode: ChannelMode,
    tracks: int,
) -> None:
    config = _config([channels], mode, ChannelSelectionMode.SPLIT_STEREO)
    structure = resolve_topology(config, analyze_items(config.items))

    assert structure.strategy is TopologyStrategy.SPLIT_STEREO_PAIRS
    assert structure.num_tracks == tracks
    assert structure.channel_selection_mode is ChannelSelectionMode.SPLIT_STEREO
    assert not structure.use_distribution
    assert _extractions(config, structure) == [ExtractionPlan.stereo(pair) for pair in range(tracks)]


def test_split_stereo_selection_into_stereo_output_picks_a_pair() -> None:
    structure = _resolve([6], ChannelMode.STEREO, ChannelSelectionMode.SPLIT_STEREO)

    assert structure.strategy is TopologyStrategy.STEREO_PAIR_SELECTION
    assert structure.available_stereo_pairs == 3


def test_split_stereo_selection_with_odd_items_falls_back_to_mono() -> None:
    structure = _resolve([5], ChannelMode.QUAD, ChannelSelectionMode.SPLIT_STEREO)

    assert structure.strategy is TopologyStrategy.INVALID_STEREO_FALLBACK_MONO
