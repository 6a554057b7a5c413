"""Channel topology resolution for a container's item pool.

The resolver is an ordered table of ``(predicate, handler)`` rules. The first
predicate that matches decides the track layout; handlers are pure and return a
tagged :class:`TrackStructure`. Selection modes that do not force a layout fall
through to the auto-optimization table.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

from loguru import logger

from ..app.models import ChannelMode, ChannelSelectionMode, ChannelVariant, EffectiveConfig, SourceItem
from .channel_formats import (
    SURROUND_SOURCE_WIDTHS,
    channel_labels,
    mono_track_labels,
    output_channels,
    stereo_pair_labels,
)
from .types import ItemsAnalysis, TopologyStrategy, TrackStructure, TrackType

DEFAULT_ITEM_CHANNELS = 2
PAIR_SELECTIONS = (ChannelSelectionMode.STEREO, ChannelSelectionMode.SPLIT_STEREO)


def analyze_items(items: Sequence[SourceItem]) -> ItemsAnalysis:
    if not items:
        return ItemsAnalysis(
            is_empty=True,
            is_homogeneous=True,
            dominant_channel_count=DEFAULT_ITEM_CHANNELS,
            unique_channel_counts=(),
            channel_counts={},
            total_items=0,
        )

    counts = Counter(item.num_channels or DEFAULT_ITEM_CHANNELS for item in items)
    # Most frequent width wins; ties go to the narrower width.
    dominant = min(counts, key=lambda width: (-counts[width], width))
    return ItemsAnalysis(
        is_empty=False,
        is_homogeneous=len(counts) == 1,
        dominant_channel_count=dominant,
        unique_channel_counts=tuple(sorted(counts)),
        channel_counts=dict(counts),
        total_items=len(items),
    )


@dataclass(frozen=True)
class _TopologyInputs:
    mode: ChannelMode
    selection: ChannelSelectionMode
    variant: Optional[ChannelVariant]
    analysis: ItemsAnalysis
    output_count: int

    @property
    def item_channels(self) -> int:
        return self.analysis.dominant_channel_count

    @property
    def labels(self) -> Tuple[str, ...]:
        return channel_labels(self.mode, self.variant)


Predicate = Callable[[_TopologyInputs], bool]
Handler = Callable[[_TopologyInputs], TrackStructure]


def _mono_tracks(
    inputs: _TopologyInputs,
    strategy: TopologyStrategy,
    *,
    needs_selection: bool,
    labels: Optional[Tuple[str, ...]] = None,
    warning: Optional[str] = None,
    mono_channel: Optional[int] = None,
) -> TrackStructure:
    return TrackStructure(
        strategy=strategy,
        num_tracks=inputs.output_count,
        track_type=TrackType.MONO,
        track_channels=1,
        needs_channel_selection=needs_selection,
        channel_selection_mode=ChannelSelectionMode.MONO if needs_selection else ChannelSelectionMode.NONE,
        use_distribution=True,
        track_labels=labels if labels is not None else inputs.labels,
        warning=warning,
        mono_channel_selection=mono_channel,
    )


def _stereo_pair_tracks(strategy: TopologyStrategy) -> TrackStructure:
    return TrackStructure(
        strategy=strategy,
        num_tracks=2,
        track_type=TrackType.STEREO,
        track_channels=2,
        needs_channel_selection=False,
        channel_selection_mode=ChannelSelectionMode.NONE,
        use_distribution=True,
        track_labels=("L+R", "LS+RS"),
    )


def _mixed_items(inputs: _TopologyInputs) -> TrackStructure:
    widths = ", ".join(str(width) for width in inputs.analysis.unique_channel_counts)
    return _mono_tracks(
        inputs,
        TopologyStrategy.MIXED_ITEMS_FORCED_MONO,
        needs_selection=True,
        warning=f"Mixed item channel counts ({widths}); forcing mono extraction",
    )


def _empty_pool(inputs: _TopologyInputs) -> TrackStructure:
    return TrackStructure(
        strategy=TopologyStrategy.EMPTY_DEFAULT,
        num_tracks=1,
        track_type=TrackType.MULTI,
        track_channels=inputs.output_count,
        needs_channel_selection=False,
        channel_selection_mode=ChannelSelectionMode.NONE,
    )


def _passthrough(inputs: _TopologyInputs) -> TrackStructure:
    return TrackStructure(
        strategy=TopologyStrategy.PERFECT_MATCH_PASSTHROUGH,
        num_tracks=1,
        track_type=TrackType.STEREO if inputs.output_count == 2 else TrackType.MULTI,
        track_channels=inputs.output_count,
        needs_channel_selection=False,
        channel_selection_mode=ChannelSelectionMode.NONE,
        items_go_directly=True,
    )


def _mono_distribution(inputs: _TopologyInputs) -> TrackStructure:
    return _mono_tracks(inputs, TopologyStrategy.MONO_DISTRIBUTION, needs_selection=False)


def _invalid_stereo(inputs: _TopologyInputs) -> TrackStructure:
    return _mono_tracks(
        inputs,
        TopologyStrategy.INVALID_STEREO_FALLBACK_MONO,
        needs_selection=True,
        warning=(
            f"Stereo selection needs an even channel count; "
            f"{inputs.item_channels}-channel items fall back to mono"
        ),
    )


def _stereo_pair_selection(inputs: _TopologyInputs) -> TrackStructure:
    return TrackStructure(
        strategy=TopologyStrategy.STEREO_PAIR_SELECTION,
        num_tracks=1,
        track_type=TrackType.STEREO,
        track_channels=2,
        needs_channel_selection=True,
        channel_selection_mode=ChannelSelectionMode.STEREO,
        available_stereo_pairs=inputs.item_channels // 2,
    )


def _stereo_pairs_fixed(inputs: _TopologyInputs) -> TrackStructure:
    if inputs.output_count == 4:
        return _stereo_pair_tracks(TopologyStrategy.STEREO_PAIRS_QUAD)
    return _stereo_pair_tracks(TopologyStrategy.STEREO_PAIRS_SURROUND)


def _split_stereo(inputs: _TopologyInputs) -> TrackStructure:
    available = inputs.item_channels // 2
    if inputs.output_count % 2 == 0:
        target = inputs.output_count // 2
    else:
        target = (inputs.output_count - 1) // 2
    return TrackStructure(
        strategy=TopologyStrategy.SPLIT_STEREO_PAIRS,
        num_tracks=target,
        track_type=TrackType.STEREO,
        track_channels=2,
        needs_channel_selection=True,
        channel_selection_mode=ChannelSelectionMode.SPLIT_STEREO,
        track_labels=stereo_pair_labels(inputs.item_channels, target),
        available_stereo_pairs=available,
        upsampling=available < target,
    )


def _split_to_mono(inputs: _TopologyInputs) -> TrackStructure:
    return _mono_tracks(
        inputs,
        TopologyStrategy.SPLIT_TO_MONO,
        needs_selection=True,
        labels=mono_track_labels(inputs.output_count),
    )


def _auto_stereo_pairs(inputs: _TopologyInputs) -> TrackStructure:
    if inputs.output_count == 4:
        return _stereo_pair_tracks(TopologyStrategy.AUTO_STEREO_PAIRS_QUAD)
    return _stereo_pair_tracks(TopologyStrategy.AUTO_STEREO_PAIRS_SURROUND)


def _quad_in_surround(inputs: _TopologyInputs) -> TrackStructure:
    return TrackStructure(
        strategy=TopologyStrategy.AUTO_4CH_IN_SURROUND,
        num_tracks=4,
        track_type=TrackType.MONO,
        track_channels=1,
        needs_channel_selection=False,
        channel_selection_mode=ChannelSelectionMode.NONE,
        track_labels=("L", "R", "LS", "RS"),
        routing_map=(1, 2, 4, 5),
    )


def _surround_to_quad(inputs: _TopologyInputs) -> TrackStructure:
    return TrackStructure(
        strategy=TopologyStrategy.SURROUND_TO_QUAD_SKIP_CENTER,
        num_tracks=4,
        track_type=TrackType.MONO,
        track_channels=1,
        needs_channel_selection=True,
        channel_selection_mode=ChannelSelectionMode.MONO,
        use_smart_routing=True,
        track_labels=("L", "R", "LS", "RS"),
        source_channel_variant=inputs.variant,
        warning=f"{inputs.item_channels}.0 source folded to quad; center channel dropped",
    )


def _surround_to_stereo(inputs: _TopologyInputs) -> TrackStructure:
    return TrackStructure(
        strategy=TopologyStrategy.SURROUND_TO_STEREO_FRONT_ONLY,
        num_tracks=1,
        track_type=TrackType.STEREO,
        track_channels=2,
        needs_channel_selection=True,
        channel_selection_mode=ChannelSelectionMode.STEREO,
        stereo_pair_selection=0,
        source_channel_variant=inputs.variant,
        warning=f"{inputs.item_channels}.0 source reduced to its front pair",
    )


def _downmix_stereo(inputs: _TopologyInputs) -> TrackStructure:
    return TrackStructure(
        strategy=TopologyStrategy.AUTO_DOWNMIX_STEREO,
        num_tracks=1,
        track_type=TrackType.STEREO,
        track_channels=2,
        needs_channel_selection=True,
        channel_selection_mode=ChannelSelectionMode.STEREO,
        stereo_pair_selection=0,
        available_stereo_pairs=inputs.item_channels // 2,
        items_go_directly=True,
        warning=f"{inputs.item_channels}-channel items reduced to their first stereo pair",
    )


def _unknown_surround(inputs: _TopologyInputs) -> TrackStructure:
    return TrackStructure(
        strategy=TopologyStrategy.SURROUND_UNKNOWN_FORMAT,
        num_tracks=1,
        track_type=TrackType.MULTI,
        track_channels=inputs.output_count,
        needs_channel_selection=True,
        channel_selection_mode=ChannelSelectionMode.MONO,
        mono_channel_selection=0,
        needs_source_variant=True,
        warning=(
            f"{inputs.item_channels}-channel source with unknown channel order; "
            "set an ITU or SMPTE variant to route it"
        ),
    )


def _downmix_to_first(inputs: _TopologyInputs) -> TrackStructure:
    return TrackStructure(
        strategy=TopologyStrategy.AUTO_DOWNMIX_TO_FIRST,
        num_tracks=1,
        track_type=TrackType.MULTI,
        track_channels=inputs.output_count,
        needs_channel_selection=True,
        channel_selection_mode=ChannelSelectionMode.MONO,
        mono_channel_selection=0,
        warning=f"{inputs.item_channels}-channel items reduced to channel 1",
    )


def _auto_default(inputs: _TopologyInputs) -> TrackStructure:
    needs_selection = inputs.item_channels > 1
    return _mono_tracks(
        inputs,
        TopologyStrategy.AUTO_DEFAULT,
        needs_selection=needs_selection,
        mono_channel=0 if needs_selection else None,
    )


def _wider_than_output(inputs: _TopologyInputs) -> bool:
    return inputs.item_channels > inputs.output_count


def _surround_source(inputs: _TopologyInputs) -> bool:
    return inputs.item_channels in SURROUND_SOURCE_WIDTHS


def _stereo_selected(inputs: _TopologyInputs) -> bool:
    return inputs.selection in PAIR_SELECTIONS


TOPOLOGY_RULES: Tuple[Tuple[Predicate, Handler], ...] = (
    (lambda t: not t.analysis.is_homogeneous, _mixed_items),
    (lambda t: t.analysis.is_empty, _empty_pool),
    (
        lambda t: t.item_channels == t.output_count and t.selection is ChannelSelectionMode.NONE,
        _passthrough,
    ),
    (lambda t: t.item_channels == 1, _mono_distribution),
    (lambda t: _stereo_selected(t) and t.item_channels % 2 == 1, _invalid_stereo),
    (lambda t: _stereo_selected(t) and t.output_count == 2, _stereo_pair_selection),
    (
        lambda t: _stereo_selected(t) and t.item_channels == 2 and t.output_count >= 4,
        _stereo_pairs_fixed,
    ),
    (lambda t: _stereo_selected(t) and t.output_count >= 4, _split_stereo),
    (lambda t: t.selection is ChannelSelectionMode.MONO, _split_to_mono),
)

AUTO_OPTIMIZATION_RULES: Tuple[Tuple[Predicate, Handler], ...] = (
    (lambda t: t.item_channels == 2 and t.output_count >= 4, _auto_stereo_pairs),
    (lambda t: t.item_channels == 4 and t.output_count >= 5, _quad_in_surround),
    (
        lambda t: _wider_than_output(t)
        and _surround_source(t)
        and t.variant is not None
        and t.output_count == 4,
        _surround_to_quad,
    ),
    (
        lambda t: _wider_than_output(t)
        and _surround_source(t)
        and t.variant is not None
        and t.output_count == 2,
        _surround_to_stereo,
    ),
    (
        lambda t: _wider_than_output(t) and t.output_count == 2 and t.item_channels % 2 == 0,
        _downmix_stereo,
    ),
    (lambda t: _wider_than_output(t) and _surround_source(t) and t.variant is None, _unknown_surround),
    (_wider_than_output, _downmix_to_first),
)


def _first_match(
    rules: Sequence[Tuple[Predicate, Handler]],
    inputs: _TopologyInputs,
) -> Optional[TrackStructure]:
    for predicate, handler in rules:
        if predicate(inputs):
            return handler(inputs)
    return None


def resolve_topology(config: EffectiveConfig, analysis: ItemsAnalysis) -> TrackStructure:
    inputs = _TopologyInputs(
        mode=config.channel_mode,
        selection=config.channel_selection_mode,
        variant=config.source_channel_variant,
        analysis=analysis,
        output_count=output_channels(config.channel_mode),
    )
    structure = _first_match(TOPOLOGY_RULES, inputs)
    if structure is None:
        structure = _first_match(AUTO_OPTIMIZATION_RULES, inputs) or _auto_default(inputs)
    logger.debug(
        "Topology {} for {}: {} x {}ch track(s)",
        structure.strategy.value,
        config.name,
        structure.num_tracks,
        structure.track_channels,
    )
    return structure
