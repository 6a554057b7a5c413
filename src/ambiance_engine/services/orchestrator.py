"""Generation pipeline coordinating topology, placement, host application and stabilization."""

from __future__ import annotations

from typing import Any, List, Optional

from loguru import logger

from ..app.models import (
    ContainerConfig,
    ContainerReport,
    EffectiveConfig,
    GenerationReport,
    GroupConfig,
    ProjectConfig,
    StabilizationSummary,
    TimeRange,
)
from ..app.settings import Settings
from .channel_formats import output_channels
from .exceptions import GenerationFailure
from .host import MediaHost
from .placement import PlacementEngine
from .stabilizer import ChannelStabilizer
from .topology import analyze_items, resolve_topology
from .tracks import TrackLayout
from .types import GenerationContext, GenerationSession, PlacedGrain, PlacementPlan, StabilizationResult


class GenerationOrchestrator:
    """Runs a generation pass over every container of a project."""

    def __init__(
        self,
        settings: Settings,
        host: MediaHost,
        engine: Optional[PlacementEngine] = None,
        stabilizer: Optional[ChannelStabilizer] = None,
    ) -> None:
        self._settings = settings
        self._host = host
        self._engine = engine or PlacementEngine(settings)
        self._layout = TrackLayout(host)
        self._stabilizer = stabilizer or ChannelStabilizer(host, settings)

    def generate(
        self,
        project: ProjectConfig,
        time_range: TimeRange,
        session: Optional[GenerationSession] = None,
        *,
        light: bool = False,
    ) -> GenerationReport:
        session = session or GenerationSession(seed=self._settings.default_seed)
        report = GenerationReport()
        for group in project.groups:
            group_track = self._layout.ensure_group(group)
            for container in group.containers:
                report.containers.append(
                    self._generate_isolated(project, group, group_track, container, time_range, session)
                )

        if self._settings.auto_stabilize:
            report.stabilization = self._summarize(self._stabilizer.stabilize(project, light=light))

        logger.info(
            "Generated {} grain(s) across {} container(s); {} failed",
            report.total_grains,
            len(report.containers),
            len(report.failed_containers),
        )
        return report

    def _generate_isolated(
        self,
        project: ProjectConfig,
        group: GroupConfig,
        group_track: Any,
        container: ContainerConfig,
        time_range: TimeRange,
        session: GenerationSession,
    ) -> ContainerReport:
        try:
            return self.generate_container(project, group, group_track, container, time_range, session)
        except GenerationFailure as exc:
            logger.error(
                "Generation failed for {container}: {error}",
                container=container.name,
                error=str(exc),
            )
            return ContainerReport(group=group.name, name=container.name, failed=True, error=str(exc))
        except Exception as exc:
            logger.exception("Unexpected failure generating {}", container.name)
            return ContainerReport(group=group.name, name=container.name, failed=True, error=str(exc))

    def generate_container(
        self,
        project: ProjectConfig,
        group: GroupConfig,
        group_track: Any,
        container: ContainerConfig,
        time_range: TimeRange,
        session: GenerationSession,
    ) -> ContainerReport:
        config = EffectiveConfig.resolve(group, container)
        context = session.context_for(config.key)
        downgraded = self._track_channel_mode(project, config, context, session)

        structure = resolve_topology(config, analyze_items(config.items))
        plan = self._engine.plan(config, structure, time_range, context)

        tracks = self._layout.ensure_container(group_track, config, structure)
        self.apply_plan(tracks, plan)
        context.needs_regeneration = False

        return ContainerReport(
            group=group.name,
            name=container.name,
            strategy=structure.strategy.value,
            num_tracks=structure.num_tracks,
            grains=len(plan.grains),
            crossfades=len(plan.crossfades),
            skipped_items=plan.skipped_items,
            warnings=[warning.message for warning in plan.warnings],
            downgraded=downgraded,
        )

    def _track_channel_mode(
        self,
        project: ProjectConfig,
        config: EffectiveConfig,
        context: GenerationContext,
        session: GenerationSession,
    ) -> List[str]:
        """Propagate a channel-mode downgrade; returns the sibling keys it trimmed."""

        previous = context.previous_channel_mode
        context.previous_channel_mode = config.channel_mode
        if previous is None or previous is config.channel_mode:
            return []
        old_channels = output_channels(previous)
        new_channels = output_channels(config.channel_mode)
        if new_channels >= old_channels:
            return []
        logger.info(
            "{} changed from {} to {}; propagating downgrade",
            config.key,
            previous.value,
            config.channel_mode.value,
        )
        result = self._stabilizer.propagate_downgrade(
            project,
            session,
            config.channel_mode,
            old_channels,
            new_channels,
            source_key=config.key,
        )
        if result.stabilization is not None and not result.stabilization.converged:
            logger.warning("Stabilization after downgrading {} did not converge", config.key)
        return result.affected

    def apply_plan(self, tracks: List[Any], plan: PlacementPlan) -> List[Any]:
        """Create the plan's grains on the host; removes partial work on failure."""

        created: List[Any] = []
        try:
            for grain in plan.grains:
                ref = self._host.create_grain(
                    tracks[grain.track_index],
                    grain.source,
                    grain.position,
                    grain.length,
                    grain.start_offset,
                )
                created.append(ref)
                self._apply_properties(ref, grain)
            for crossfade in plan.crossfades:
                self._host.create_crossfade(created[crossfade.first], created[crossfade.second], crossfade.shape)
        except GenerationFailure:
            for ref in created:
                self._host.delete_grain(ref)
            raise
        return created

    def _apply_properties(self, ref: Any, grain: PlacedGrain) -> None:
        props = grain.properties
        values = {
            "pitch": props.pitch,
            "playrate": props.playrate,
            "preserve_pitch": props.preserve_pitch,
            "volume": props.volume,
            "extraction": grain.extraction,
        }
        if props.pan is not None:
            values["pan"] = props.pan
        if grain.sub_area is not None:
            values["sub_area"] = grain.sub_area.name
        if props.fade_in is not None:
            values.update(
                fade_in_length=props.fade_in.length,
                fade_in_shape=props.fade_in.shape,
                fade_in_curve=props.fade_in.curve,
            )
        if props.fade_out is not None:
            values.update(
                fade_out_length=props.fade_out.length,
                fade_out_shape=props.fade_out.shape,
                fade_out_curve=props.fade_out.curve,
            )
        for name, value in values.items():
            self._host.set_grain_property(ref, name, value)

    def _summarize(self, result: StabilizationResult) -> StabilizationSummary:
        return StabilizationSummary(**result.as_dict())
