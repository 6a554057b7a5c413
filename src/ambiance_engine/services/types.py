"""Shared service data structures."""

from __future__ import annotations

import zlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from ..app.models import ChannelMode, ChannelSelectionMode, ChannelVariant, SourceItem, SubArea


class TrackType(str, Enum):
    MONO = "mono"
    STEREO = "stereo"
    MULTI = "multi"


class TopologyStrategy(str, Enum):
    MIXED_ITEMS_FORCED_MONO = "mixed-items-forced-mono"
    EMPTY_DEFAULT = "empty-default"
    PERFECT_MATCH_PASSTHROUGH = "perfect-match-passthrough"
    MONO_DISTRIBUTION = "mono-distribution"
    INVALID_STEREO_FALLBACK_MONO = "invalid-stereo-fallback-mono"
    STEREO_PAIR_SELECTION = "stereo-pair-selection"
    STEREO_PAIRS_QUAD = "stereo-pairs-quad"
    STEREO_PAIRS_SURROUND = "stereo-pairs-surround"
    SPLIT_STEREO_PAIRS = "split-stereo-pairs"
    SPLIT_TO_MONO = "split-to-mono"
    AUTO_STEREO_PAIRS_QUAD = "auto-stereo-pairs-quad"
    AUTO_STEREO_PAIRS_SURROUND = "auto-stereo-pairs-surround"
    AUTO_4CH_IN_SURROUND = "auto-4ch-in-surround"
    SURROUND_TO_QUAD_SKIP_CENTER = "surround-to-quad-skip-center"
    SURROUND_TO_STEREO_FRONT_ONLY = "surround-to-stereo-front-only"
    AUTO_DOWNMIX_STEREO = "auto-downmix-stereo"
    SURROUND_UNKNOWN_FORMAT = "surround-unknown-format"
    AUTO_DOWNMIX_TO_FIRST = "auto-downmix-to-first"
    AUTO_DEFAULT = "auto-default"


class ExtractionType(str, Enum):
    NONE = "none"
    MONO = "mono"
    STEREO = "stereo"


class WarningKind(str, Enum):
    SKIPPED_ITEMS = "skipped_items"
    ITERATION_CAP = "iteration_cap"
    TOPOLOGY_FALLBACK = "topology_fallback"
    NON_CONVERGENCE = "non_convergence"


@dataclass(frozen=True)
class ItemsAnalysis:
    is_empty: bool
    is_homogeneous: bool
    dominant_channel_count: int
    unique_channel_counts: Tuple[int, ...]
    channel_counts: Dict[int, int]
    total_items: int


@dataclass(frozen=True)
class TrackStructure:
    strategy: TopologyStrategy
    num_tracks: int
    track_type: TrackType
    track_channels: int
    needs_channel_selection: bool
    channel_selection_mode: ChannelSelectionMode
    use_distribution: bool = False
    use_smart_routing: bool = False
    track_labels: Tuple[str, ...] = ()
    warning: Optional[str] = None
    available_stereo_pairs: Optional[int] = None
    upsampling: bool = False
    stereo_pair_selection: Optional[int] = None
    mono_channel_selection: Optional[int] = None
    source_channel_variant: Optional[ChannelVariant] = None
    routing_map: Optional[Tuple[int, ...]] = None
    needs_source_variant: bool = False
    items_go_directly: bool = False

    @property
    def total_channels(self) -> int:
        return self.num_tracks * self.track_channels

    def label_for(self, track_index: int) -> str:
        if track_index < len(self.track_labels):
            return self.track_labels[track_index]
        return f"Ch{track_index + 1}"


@dataclass(frozen=True)
class ExtractionPlan:
    type: ExtractionType
    channel_index: Optional[int] = None
    pair_index: Optional[int] = None

    @classmethod
    def none(cls) -> "ExtractionPlan":
        return cls(ExtractionType.NONE)

    @classmethod
    def mono(cls, channel_index: int) -> "ExtractionPlan":
        return cls(ExtractionType.MONO, channel_index=channel_index)

    @classmethod
    def stereo(cls, pair_index: int) -> "ExtractionPlan":
        return cls(ExtractionType.STEREO, pair_index=pair_index)


@dataclass(frozen=True)
class FadePlan:
    length: float
    shape: int
    curve: float


@dataclass(frozen=True)
class GrainProperties:
    pitch: float
    playrate: float
    preserve_pitch: bool
    volume: float
    pan: Optional[float] = None
    fade_in: Optional[FadePlan] = None
    fade_out: Optional[FadePlan] = None


@dataclass(frozen=True)
class PlacedGrain:
    track_index: int
    position: float
    length: float
    source: SourceItem
    start_offset: float
    extraction: ExtractionPlan
    properties: GrainProperties
    sub_area: Optional[SubArea] = None

    @property
    def end(self) -> float:
        return self.position + self.length


@dataclass(frozen=True)
class Crossfade:
    first: int
    second: int
    shape: int


@dataclass(frozen=True)
class GenerationWarning:
    kind: WarningKind
    message: str


@dataclass
class PlacementPlan:
    grains: List[PlacedGrain] = field(default_factory=list)
    crossfades: List[Crossfade] = field(default_factory=list)
    warnings: List[GenerationWarning] = field(default_factory=list)
    skipped_items: int = 0
    min_required_length: float = 0.0
    iterations: int = 0
    hit_iteration_cap: bool = False

    def grains_on(self, track_index: int) -> List[PlacedGrain]:
        return [grain for grain in self.grains if grain.track_index == track_index]


@dataclass
class GenerationContext:
    """Mutable per-container state carried between generation passes."""

    rng: np.random.Generator
    round_robin_counter: int = 0
    previous_channel_mode: Optional[ChannelMode] = None
    needs_regeneration: bool = False

    def next_round_robin(self, num_tracks: int) -> int:
        self.round_robin_counter += 1
        return (self.round_robin_counter - 1) % num_tracks


@dataclass
class GenerationSession:
    seed: Optional[int] = None
    contexts: Dict[str, GenerationContext] = field(default_factory=dict)

    def context_for(self, key: str) -> GenerationContext:
        context = self.contexts.get(key)
        if context is None:
            if self.seed is None:
                rng = np.random.default_rng()
            else:
                rng = np.random.default_rng([self.seed, zlib.crc32(key.encode("utf-8"))])
            context = GenerationContext(rng=rng)
            self.contexts[key] = context
        return context


@dataclass(frozen=True)
class ChannelRequirement:
    logical_channels: int
    physical_channels: int

    @classmethod
    def from_logical(cls, logical_channels: int) -> "ChannelRequirement":
        logical = max(0, int(logical_channels))
        physical = logical + (logical % 2)
        return cls(logical_channels=logical, physical_channels=physical)


@dataclass(frozen=True)
class RequirementSnapshot:
    containers: Dict[str, ChannelRequirement]
    groups: Dict[str, int]
    master: int


@dataclass(frozen=True)
class ProjectState:
    container_channels: Dict[str, int]
    group_channels: Dict[str, int]
    master_channels: int


@dataclass(frozen=True)
class StabilizationResult:
    converged: bool
    iterations: int
    final_state: ProjectState
    requirements: Optional[RequirementSnapshot] = None
    warnings: List[GenerationWarning] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "converged": self.converged,
            "iterations": self.iterations,
            "master_channels": self.final_state.master_channels,
            "group_channels": dict(self.final_state.group_channels),
            "container_channels": dict(self.final_state.container_channels),
        }
        if self.warnings:
            payload["warnings"] = [warning.message for warning in self.warnings]
        return payload
