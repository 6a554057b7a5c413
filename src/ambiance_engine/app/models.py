from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class IntervalMode(str, Enum):
    ABSOLUTE = "absolute"
    RELATIVE = "relative"
    COVERAGE = "coverage"
    CHUNK = "chunk"
    NOISE = "noise"
    EUCLIDEAN = "euclidean"


class DriftDirection(str, Enum):
    NEGATIVE = "negative"
    BIPOLAR = "bipolar"
    POSITIVE = "positive"


class ChannelMode(str, Enum):
    STEREO = "stereo"
    QUAD = "quad"
    SURROUND_5_0 = "5.0"
    SURROUND_7_0 = "7.0"


class ChannelVariant(str, Enum):
    ITU = "itu"
    SMPTE = "smpte"


class ChannelSelectionMode(str, Enum):
    NONE = "none"
    MONO = "mono"
    STEREO = "stereo"
    SPLIT_STEREO = "split-stereo"


class DistributionMode(str, Enum):
    ROUND_ROBIN = "round_robin"
    RANDOM = "random"
    ALL_TRACKS = "all_tracks"


class PitchMode(str, Enum):
    PITCH = "pitch"
    STRETCH = "stretch"


class NoiseAlgorithm(str, Enum):
    PROBABILITY = "probability"
    ACCUMULATION = "accumulation"


class EuclideanTiming(str, Enum):
    TEMPO = "tempo"
    FIT = "fit"


class TimeRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: float
    end: float

    @model_validator(mode="after")
    def _check_bounds(self) -> "TimeRange":
        if self.end < self.start:
            raise ValueError("time range end must not precede its start")
        return self

    @property
    def length(self) -> float:
        return self.end - self.start


class ValueRange(BaseModel):
    min: float = 0.0
    max: float = 0.0


class SubArea(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: float = Field(..., ge=0.0)
    end: float = Field(..., ge=0.0)
    name: Optional[str] = Field(default=None, max_length=128)

    @property
    def length(self) -> float:
        return max(0.0, self.end - self.start)


class SourceItem(BaseModel):
    """Reference to a source media file in a container's pool."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, max_length=256)
    file_path: str = Field(..., min_length=1)
    num_channels: int = Field(default=2, ge=1, le=64)
    length: float = Field(..., ge=0.0)
    start_offset: float = Field(default=0.0, ge=0.0)
    original_pitch: float = 0.0
    original_volume: float = Field(default=1.0, ge=0.0)
    original_pan: float = Field(default=0.0, ge=-1.0, le=1.0)
    gain_db: float = 0.0
    sub_areas: tuple[SubArea, ...] = ()


class FadeSettings(BaseModel):
    fade_in_enabled: bool = True
    fade_out_enabled: bool = True
    fade_in_duration: float = Field(default=0.0, ge=0.0)
    fade_out_duration: float = Field(default=0.0, ge=0.0)
    fade_in_shape: int = Field(default=0, ge=0, le=6)
    fade_out_shape: int = Field(default=0, ge=0, le=6)
    fade_in_curve: float = Field(default=0.0, ge=-1.0, le=1.0)
    fade_out_curve: float = Field(default=0.0, ge=-1.0, le=1.0)
    use_percentage: bool = Field(
        default=False,
        description="Interpret fade durations as a percentage of the grain length.",
    )


class ChunkSettings(BaseModel):
    duration: float = Field(default=10.0, gt=0.0)
    silence: float = Field(default=5.0, ge=0.0)
    duration_variation: float = Field(default=20.0, ge=0.0, le=100.0)
    silence_variation: float = Field(default=20.0, ge=0.0, le=100.0)
    duration_direction: DriftDirection = DriftDirection.BIPOLAR
    silence_direction: DriftDirection = DriftDirection.BIPOLAR


class NoiseSettings(BaseModel):
    # Left unconstrained: invalid values must reach the noise-mode validator,
    # which aborts only the owning container.
    frequency: float = 1.0
    octaves: int = 2
    persistence: float = 0.5
    lacunarity: float = 2.0
    seed: Optional[int] = None
    density: float = 50.0
    amplitude: float = 50.0
    threshold: float = 0.0
    algorithm: NoiseAlgorithm = NoiseAlgorithm.PROBABILITY


class EuclideanLayer(BaseModel):
    pulses: int = Field(default=8, ge=0, le=256)
    steps: int = Field(default=16, ge=1, le=256)
    rotation: int = 0


class EuclideanSettings(BaseModel):
    timing: EuclideanTiming = EuclideanTiming.TEMPO
    tempo_bpm: float = Field(default=120.0, gt=0.0, le=999.0)
    use_tempo_map: bool = Field(
        default=False,
        description="Follow the host tempo map instead of the fixed tempo.",
    )
    layers: list[EuclideanLayer] = Field(default_factory=lambda: [EuclideanLayer()])


class PlacementParams(BaseModel):
    """Parameters a group hands down to containers that do not override them."""

    interval_mode: IntervalMode = IntervalMode.ABSOLUTE
    trigger_rate: float = 10.0
    trigger_drift: float = Field(default=30.0, ge=0.0, le=100.0)
    drift_direction: DriftDirection = DriftDirection.BIPOLAR
    randomize_pitch: bool = True
    randomize_volume: bool = True
    randomize_pan: bool = True
    pitch_range: ValueRange = Field(default_factory=lambda: ValueRange(min=-3.0, max=3.0))
    volume_range: ValueRange = Field(default_factory=lambda: ValueRange(min=-3.0, max=3.0))
    pan_range: ValueRange = Field(default_factory=lambda: ValueRange(min=-100.0, max=100.0))
    pitch_mode: PitchMode = PitchMode.PITCH
    fades: FadeSettings = Field(default_factory=FadeSettings)
    chunk: ChunkSettings = Field(default_factory=ChunkSettings)
    noise: NoiseSettings = Field(default_factory=NoiseSettings)
    euclidean: EuclideanSettings = Field(default_factory=EuclideanSettings)


class ItemRouting(BaseModel):
    routing_matrix: dict[int, int] = Field(
        default_factory=dict,
        description="Source channel (1-based) to destination track (1-based, 0 mutes).",
    )
    is_auto: bool = False


class ContainerConfig(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    items: list[SourceItem] = Field(default_factory=list)
    override_parent: bool = False
    params: PlacementParams = Field(default_factory=PlacementParams)
    channel_mode: ChannelMode = ChannelMode.STEREO
    channel_selection_mode: ChannelSelectionMode = ChannelSelectionMode.NONE
    source_channel_variant: Optional[ChannelVariant] = None
    mono_channel_selection: Optional[int] = Field(default=None, ge=0)
    stereo_pair_selection: Optional[int] = Field(default=None, ge=0)
    stereo_pair_mapping: dict[int, Union[int, Literal["random"]]] = Field(default_factory=dict)
    distribution_mode: DistributionMode = DistributionMode.ROUND_ROBIN
    custom_item_routing: dict[int, ItemRouting] = Field(default_factory=dict)


class GroupConfig(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    params: PlacementParams = Field(default_factory=PlacementParams)
    containers: list[ContainerConfig] = Field(default_factory=list)


class ProjectConfig(BaseModel):
    groups: list[GroupConfig] = Field(default_factory=list)

    def iter_containers(self):
        for group in self.groups:
            for container in group.containers:
                yield group, container


def container_key(group_name: str, container_name: str) -> str:
    return f"{group_name}/{container_name}"


class EffectiveConfig(BaseModel):
    """Container configuration with group inheritance already applied."""

    model_config = ConfigDict(frozen=True)

    group_name: str
    name: str
    items: tuple[SourceItem, ...]
    params: PlacementParams
    channel_mode: ChannelMode
    channel_selection_mode: ChannelSelectionMode
    source_channel_variant: Optional[ChannelVariant]
    mono_channel_selection: Optional[int]
    stereo_pair_selection: Optional[int]
    stereo_pair_mapping: dict[int, Union[int, Literal["random"]]]
    distribution_mode: DistributionMode
    custom_item_routing: dict[int, ItemRouting]

    @classmethod
    def resolve(cls, group: GroupConfig, container: ContainerConfig) -> "EffectiveConfig":
        source = container.params if container.override_parent else group.params
        return cls(
            group_name=group.name,
            name=container.name,
            items=tuple(container.items),
            params=source.model_copy(deep=True),
            channel_mode=container.channel_mode,
            channel_selection_mode=container.channel_selection_mode,
            source_channel_variant=container.source_channel_variant,
            mono_channel_selection=container.mono_channel_selection,
            stereo_pair_selection=container.stereo_pair_selection,
            stereo_pair_mapping=dict(container.stereo_pair_mapping),
            distribution_mode=container.distribution_mode,
            custom_item_routing={
                index: routing.model_copy(deep=True)
                for index, routing in container.custom_item_routing.items()
            },
        )

    @property
    def key(self) -> str:
        return container_key(self.group_name, self.name)


class ContainerReport(BaseModel):
    group: str
    name: str
    strategy: Optional[str] = None
    num_tracks: int = 0
    grains: int = 0
    crossfades: int = 0
    skipped_items: int = 0
    warnings: list[str] = Field(default_factory=list)
    downgraded: list[str] = Field(
        default_factory=list,
        description="Sibling containers whose child tracks were trimmed by this container's channel change.",
    )
    failed: bool = False
    error: Optional[str] = None


class StabilizationSummary(BaseModel):
    converged: bool
    iterations: int
    master_channels: int
    group_channels: dict[str, int] = Field(default_factory=dict)
    container_channels: dict[str, int] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)


class GenerationReport(BaseModel):
    containers: list[ContainerReport] = Field(default_factory=list)
    stabilization: Optional[StabilizationSummary] = None
    generated_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))

    @property
    def failed_containers(self) -> list[ContainerReport]:
        return [report for report in self.containers if report.failed]

    @property
    def total_grains(self) -> int:
        return sum(report.grains for report in self.containers)
