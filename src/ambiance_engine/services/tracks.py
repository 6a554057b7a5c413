"""Applies resolved track structures to the media host."""

from __future__ import annotations

from typing import Any, List

from loguru import logger

from ..app.models import EffectiveConfig, GroupConfig
from .channel_formats import even_channels
from .host import MediaHost
from .types import TrackStructure


class TrackLayout:
    def __init__(self, host: MediaHost) -> None:
        self._host = host

    def ensure_group(self, group: GroupConfig) -> Any:
        track = self._host.find_track(group.name)
        if track is None:
            track = self._host.create_track(group.name)
        self._host.set_folder_depth(track, 1)
        return track

    def ensure_container(self, group_track: Any, config: EffectiveConfig, structure: TrackStructure) -> List[Any]:
        """Create or reuse the container's tracks and clear their grains.

        Returns the tracks grains are placed on, indexed like the structure.
        """

        host = self._host
        container = host.find_track(config.name, parent=group_track)
        if container is None:
            container = host.create_track(config.name, parent=group_track)
        self._clear_grains(container)

        children = host.child_tracks(container)
        if structure.num_tracks <= 1:
            for child in children:
                host.delete_track(child)
            host.set_folder_depth(container, 0)
            host.set_channel_count(container, even_channels(structure.track_channels))
            return [container]

        reusable = len(children) == structure.num_tracks and all(
            host.get_channel_count(child) == structure.track_channels for child in children
        )
        if reusable:
            for child in children:
                self._clear_grains(child)
        else:
            for child in children:
                host.delete_track(child)
            children = [
                host.create_track(
                    f"{config.name} - {structure.label_for(index)}",
                    parent=container,
                    channels=structure.track_channels,
                )
                for index in range(structure.num_tracks)
            ]
            logger.debug(
                "Rebuilt {} child track(s) for {} ({})",
                len(children),
                config.name,
                structure.strategy.value,
            )

        host.set_folder_depth(container, 1)
        for child in children[:-1]:
            host.set_folder_depth(child, 0)
        host.set_folder_depth(children[-1], -1)
        host.set_channel_count(container, even_channels(structure.total_channels))
        return children

    def _clear_grains(self, track: Any) -> None:
        for grain in self._host.grains(track):
            self._host.delete_grain(grain)
