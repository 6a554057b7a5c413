"""Target-track selection for placed grains."""

from __future__ import annotations

from typing import Tuple

from ..app.models import DistributionMode, EffectiveConfig
from .types import GenerationContext, TrackStructure


def custom_destinations(config: EffectiveConfig, item_index: int, num_tracks: int) -> Tuple[int, ...] | None:
    routing = config.custom_item_routing.get(item_index)
    if routing is None or routing.is_auto or not routing.routing_matrix:
        return None
    destinations = {
        destination - 1
        for destination in routing.routing_matrix.values()
        if 0 < destination <= num_tracks
    }
    return tuple(sorted(destinations)) or (0,)


def select_target_tracks(
    config: EffectiveConfig,
    structure: TrackStructure,
    item_index: int,
    context: GenerationContext,
) -> Tuple[int, ...]:
    """Return the 0-based track indices a grain of ``item_index`` lands on.

    The first index is the grain's primary track.
    """

    num_tracks = max(1, structure.num_tracks)
    custom = custom_destinations(config, item_index, num_tracks)
    if custom is not None:
        return custom
    if num_tracks == 1:
        return (0,)
    if structure.use_smart_routing:
        return tuple(range(num_tracks))
    if structure.use_distribution:
        if config.distribution_mode is DistributionMode.ROUND_ROBIN:
            return (context.next_round_robin(num_tracks),)
        if config.distribution_mode is DistributionMode.RANDOM:
            return (int(context.rng.integers(num_tracks)),)
    return tuple(range(num_tracks))


def runs_independent_tracks(config: EffectiveConfig, structure: TrackStructure) -> bool:
    return (
        structure.use_distribution
        and structure.num_tracks > 1
        and config.distribution_mode is DistributionMode.ALL_TRACKS
    )
