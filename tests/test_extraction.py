from __future__ import annotations

import numpy as np

from ambiance_engine.app.models import (
    ChannelMode,
    ChannelSelectionMode,
    ChannelVariant,
    ContainerConfig,
    EffectiveConfig,
    GroupConfig,
    SourceItem,
)
from ambiance_engine.services.extraction import resolve_extraction
from ambiance_engine.services.topology import analyze_items, resolve_topology
from ambiance_engine.services.types import ExtractionPlan, ExtractionType


def _setup(channels: int, mode: ChannelMode, **container_fields):
    container = ContainerConfig(
        name="Rain",
        items=[SourceItem(name="rain", file_path="rain.wav", num_channels=channels, length=5.0)],
        channel_mode=mode,
        **container_fields,
    )
    config = EffectiveConfig.resolve(GroupConfig(name="Weather"), container)
    return config, resolve_topology(config, analyze_items(config.items))


def test_passthrough_needs_no_extraction() -> None:
    config, structure = _setup(2, ChannelMode.STEREO)

    plan = resolve_extraction(2, 0, structure, config, np.random.default_rng(0))

    assert plan == ExtractionPlan.none()


def test_smart_routing_follows_channel_order_variant() -> None:
    rng = np.random.default_rng(1)
    itu_config, itu = _setup(5, ChannelMode.QUAD, source_channel_variant=ChannelVariant.ITU)
    smpte_config, smpte = _setup(5, ChannelMode.QUAD, source_channel_variant=ChannelVariant.SMPTE)

    itu_channels = [resolve_extraction(5, track, itu, itu_config, rng).channel_index for track in range(4)]
    smpte_channels = [
        resolve_extraction(5, track, smpte, smpte_config, rng).channel_index for track in range(4)
    ]

    assert itu_channels == [0, 1, 3, 4]
    assert smpte_channels == [0, 2, 3, 4]


def test_user_mono_channel_overrides_auto_mapping() -> None:
    config, structure = _setup(
        5,
        ChannelMode.QUAD,
        source_channel_variant=ChannelVariant.ITU,
        mono_channel_selection=2,
    )

    plans = {resolve_extraction(5, track, structure, config, np.random.default_rng(2)) for track in range(4)}

    assert plans == {ExtractionPlan.mono(2)}


def test_out_of_range_mono_channel_picks_randomly() -> None:
    config, structure = _setup(
        6,
        ChannelMode.QUAD,
        channel_selection_mode=ChannelSelectionMode.MONO,
        mono_channel_selection=99,
    )
    rng = np.random.default_rng(3)

    channels = {resolve_extraction(6, 0, structure, config, rng).channel_index for _ in range(200)}

    assert channels <= set(range(6))
    assert len(channels) > 1


def test_split_stereo_upsampling_stays_within_available_pairs() -> None:
    config, structure = _setup(4, ChannelMode.SURROUND_7_0, channel_selection_mode=ChannelSelectionMode.STEREO)
    rng = np.random.default_rng(4)

    assert resolve_extraction(4, 0, structure, config, rng) == ExtractionPlan.stereo(0)
    assert resolve_extraction(4, 1, structure, config, rng) == ExtractionPlan.stereo(1)
    for _ in range(50):
        plan = resolve_extraction(4, 2, structure, config, rng)
        assert plan.type is ExtractionType.STEREO
        assert plan.pair_index in (0, 1)


def test_split_stereo_mapping_overrides_default_pairs() -> None:
    config, structure = _setup(
        8,
        ChannelMode.SURROUND_7_0,
        channel_selection_mode=ChannelSelectionMode.STEREO,
        stereo_pair_mapping={0: 3, 1: "random"},
    )
    rng = np.random.default_rng(5)

    assert resolve_extraction(8, 0, structure, config, rng) == ExtractionPlan.stereo(3)
    assert resolve_extraction(8, 2, structure, config, rng) == ExtractionPlan.stereo(2)
    randomized = {resolve_extraction(8, 1, structure, config, rng).pair_index for _ in range(100)}
    assert randomized <= {0, 1, 2, 3}
    assert len(randomized) > 1


def test_front_pair_is_used_unless_user_picks_another() -> None:
    config, structure = _setup(7, ChannelMode.STEREO, source_channel_variant=ChannelVariant.ITU)
    user_config, user_structure = _setup(
        6,
        ChannelMode.STEREO,
        channel_selection_mode=ChannelSelectionMode.STEREO,
        stereo_pair_selection=2,
    )
    rng = np.random.default_rng(6)

    assert resolve_extraction(7, 0, structure, config, rng) == ExtractionPlan.stereo(0)
    assert resolve_extraction(6, 0, user_structure, user_config, rng) == ExtractionPlan.stereo(2)
