"""Media host boundary and an in-memory host used for tests and dry runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol

from loguru import logger

from ..app.models import SourceItem
from .exceptions import MissingSourceError


class MediaHost(Protocol):
    """Track and grain primitives the engine applies its plans through."""

    def master_track(self) -> Any: ...

    def find_track(self, name: str, parent: Any = None) -> Any: ...

    def create_track(self, name: str, parent: Any = None, channels: int = 2) -> Any: ...

    def delete_track(self, track: Any) -> None: ...

    def child_tracks(self, track: Any) -> List[Any]: ...

    def get_channel_count(self, track: Any) -> int: ...

    def set_channel_count(self, track: Any, channels: int) -> None: ...

    def get_folder_depth(self, track: Any) -> int: ...

    def set_folder_depth(self, track: Any, depth: int) -> None: ...

    def create_grain(
        self,
        track: Any,
        source: SourceItem,
        position: float,
        length: float,
        start_offset: float,
    ) -> Any: ...

    def set_grain_property(self, grain: Any, name: str, value: Any) -> None: ...

    def delete_grain(self, grain: Any) -> None: ...

    def grains(self, track: Any) -> List[Any]: ...

    def count_grains(self, track: Any) -> int: ...

    def create_crossfade(self, first: Any, second: Any, shape: int) -> None: ...


@dataclass(eq=False)
class HostTrack:
    name: str
    channels: int = 2
    folder_depth: int = 0
    parent: Optional["HostTrack"] = None
    children: List["HostTrack"] = field(default_factory=list)
    grains: List["HostGrain"] = field(default_factory=list)


@dataclass(eq=False)
class HostGrain:
    track: HostTrack
    source: SourceItem
    position: float
    length: float
    start_offset: float
    properties: Dict[str, Any] = field(default_factory=dict)

    @property
    def end(self) -> float:
        return self.position + self.length


class InMemoryHost:
    """Keeps tracks and grains in plain Python objects."""

    def __init__(self, known_sources: Optional[Iterable[str]] = None) -> None:
        self._master = HostTrack(name="MASTER")
        self._roots: List[HostTrack] = []
        self._known_sources = set(known_sources) if known_sources is not None else None
        self.crossfades: List[tuple[HostGrain, HostGrain, int]] = []

    def master_track(self) -> HostTrack:
        return self._master

    def _siblings(self, parent: Optional[HostTrack]) -> List[HostTrack]:
        return self._roots if parent is None else parent.children

    def find_track(self, name: str, parent: Optional[HostTrack] = None) -> Optional[HostTrack]:
        for track in self._siblings(parent):
            if track.name == name:
                return track
        return None

    def create_track(self, name: str, parent: Optional[HostTrack] = None, channels: int = 2) -> HostTrack:
        track = HostTrack(name=name, channels=channels, parent=parent)
        self._siblings(parent).append(track)
        logger.debug("Created track {} ({}ch)", name, channels)
        return track

    def delete_track(self, track: HostTrack) -> None:
        for child in list(track.children):
            self.delete_track(child)
        siblings = self._siblings(track.parent)
        if track in siblings:
            siblings.remove(track)
        track.grains.clear()

    def child_tracks(self, track: HostTrack) -> List[HostTrack]:
        return list(track.children)

    def get_channel_count(self, track: HostTrack) -> int:
        return track.channels

    def set_channel_count(self, track: HostTrack, channels: int) -> None:
        track.channels = channels

    def get_folder_depth(self, track: HostTrack) -> int:
        return track.folder_depth

    def set_folder_depth(self, track: HostTrack, depth: int) -> None:
        track.folder_depth = depth

    def create_grain(
        self,
        track: HostTrack,
        source: SourceItem,
        position: float,
        length: float,
        start_offset: float,
    ) -> HostGrain:
        if self._known_sources is not None and source.file_path not in self._known_sources:
            raise MissingSourceError(f"Source media not found: {source.file_path}")
        grain = HostGrain(track, source, position, length, start_offset)
        track.grains.append(grain)
        return grain

    def set_grain_property(self, grain: HostGrain, name: str, value: Any) -> None:
        grain.properties[name] = value

    def delete_grain(self, grain: HostGrain) -> None:
        if grain in grain.track.grains:
            grain.track.grains.remove(grain)

    def grains(self, track: HostTrack) -> List[HostGrain]:
        return list(track.grains)

    def count_grains(self, track: HostTrack) -> int:
        return len(track.grains)

    def create_crossfade(self, first: HostGrain, second: HostGrain, shape: int) -> None:
        overlap = first.end - second.position
        if overlap <= 0:
            return
        first.properties["fade_out_length"] = overlap
        first.properties["fade_out_shape"] = shape
        second.properties["fade_in_length"] = overlap
        second.properties["fade_in_shape"] = shape
        self.crossfades.append((first, second, shape))

    def all_tracks(self) -> List[HostTrack]:
        ordered: List[HostTrack] = []

        def visit(tracks: List[HostTrack]) -> None:
            for track in tracks:
                ordered.append(track)
                visit(track.children)

        visit(self._roots)
        return ordered
