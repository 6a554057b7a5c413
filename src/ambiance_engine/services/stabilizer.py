"""Bottom-up channel requirement stabilization for container/group/master tracks.

Requirements flow upward: each container asks for the channels its real
tracks feed (or its format's width before it has tracks), groups take the
widest of their containers, and the master takes the widest group. Applying
the counts can change what the next pass observes, so the pass repeats until
two consecutive snapshots agree or the iteration budget runs out.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from loguru import logger

from ..app.models import ChannelMode, ContainerConfig, ProjectConfig, container_key
from ..app.settings import Settings
from .channel_formats import mode_for_channel_count, output_channels
from .host import MediaHost
from .types import (
    ChannelRequirement,
    GenerationSession,
    GenerationWarning,
    ProjectState,
    RequirementSnapshot,
    StabilizationResult,
    WarningKind,
)

MIN_BUS_CHANNELS = 2


@dataclass(frozen=True)
class DowngradeResult:
    affected: List[str] = field(default_factory=list)
    stabilization: StabilizationResult | None = None


class ChannelStabilizer:
    def __init__(self, host: MediaHost, settings: Settings) -> None:
        self._host = host
        self._settings = settings

    def _group_track(self, group_name: str) -> Any:
        return self._host.find_track(group_name)

    def _container_track(self, group_track: Any, container: ContainerConfig) -> Any:
        if group_track is None:
            return None
        return self._host.find_track(container.name, parent=group_track)

    def container_requirement(self, container_track: Any, container: ContainerConfig) -> ChannelRequirement:
        if container_track is not None:
            children = self._host.child_tracks(container_track)
            if children:
                width = sum(self._host.get_channel_count(child) for child in children)
                return ChannelRequirement.from_logical(width)
            return ChannelRequirement.from_logical(self._host.get_channel_count(container_track))
        return ChannelRequirement.from_logical(output_channels(container.channel_mode))

    def compute_requirements(self, project: ProjectConfig) -> RequirementSnapshot:
        containers: Dict[str, ChannelRequirement] = {}
        groups: Dict[str, int] = {}
        for group in project.groups:
            group_track = self._group_track(group.name)
            group_channels = MIN_BUS_CHANNELS
            for container in group.containers:
                requirement = self.container_requirement(
                    self._container_track(group_track, container), container
                )
                containers[container_key(group.name, container.name)] = requirement
                group_channels = max(group_channels, requirement.physical_channels)
            groups[group.name] = group_channels
        master = max([MIN_BUS_CHANNELS, *groups.values()])
        return RequirementSnapshot(containers=containers, groups=groups, master=master)

    def apply(self, project: ProjectConfig, snapshot: RequirementSnapshot) -> int:
        """Write requirements to tracks whose counts differ; returns the number changed."""

        changed = 0
        for group in project.groups:
            group_track = self._group_track(group.name)
            if group_track is None:
                continue
            for container in group.containers:
                track = self._container_track(group_track, container)
                requirement = snapshot.containers[container_key(group.name, container.name)]
                changed += self._set_channels(track, requirement.physical_channels)
            changed += self._set_channels(group_track, snapshot.groups[group.name])
        changed += self._set_channels(self._host.master_track(), snapshot.master)
        return changed

    def _set_channels(self, track: Any, channels: int) -> int:
        if track is None or self._host.get_channel_count(track) == channels:
            return 0
        self._host.set_channel_count(track, channels)
        return 1

    def capture(self, project: ProjectConfig) -> ProjectState:
        containers: Dict[str, int] = {}
        groups: Dict[str, int] = {}
        for group in project.groups:
            group_track = self._group_track(group.name)
            groups[group.name] = self._host.get_channel_count(group_track) if group_track is not None else 0
            for container in group.containers:
                track = self._container_track(group_track, container)
                key = container_key(group.name, container.name)
                containers[key] = self._host.get_channel_count(track) if track is not None else 0
        return ProjectState(
            container_channels=containers,
            group_channels=groups,
            master_channels=self._host.get_channel_count(self._host.master_track()),
        )

    def stabilize(self, project: ProjectConfig, *, light: bool = False) -> StabilizationResult:
        budget = (
            self._settings.stabilization_light_iterations
            if light
            else self._settings.stabilization_max_iterations
        )
        iterations = 0
        converged = False
        snapshot = None
        while iterations < budget:
            iterations += 1
            before = self.capture(project)
            snapshot = self.compute_requirements(project)
            self.apply(project, snapshot)
            if self.capture(project) == before:
                converged = True
                break

        warnings: List[GenerationWarning] = []
        if not converged:
            message = f"Channel counts did not settle after {iterations} iteration(s); keeping the last state"
            logger.warning(message)
            warnings.append(GenerationWarning(WarningKind.NON_CONVERGENCE, message))
        final_state = self.capture(project)
        logger.debug(
            "Stabilization finished after {} iteration(s); master at {} channels",
            iterations,
            final_state.master_channels,
        )
        return StabilizationResult(
            converged=converged,
            iterations=iterations,
            final_state=final_state,
            requirements=snapshot,
            warnings=warnings,
        )

    def propagate_downgrade(
        self,
        project: ProjectConfig,
        session: GenerationSession,
        mode: ChannelMode,
        old_channels: int,
        new_channels: int,
        *,
        source_key: str | None = None,
    ) -> DowngradeResult:
        """Shrink every container still laid out for ``old_channels`` under ``mode``."""

        affected: List[str] = []
        for group, container in project.iter_containers():
            key = container_key(group.name, container.name)
            if key == source_key or container.channel_mode is not mode:
                continue
            track = self._container_track(self._group_track(group.name), container)
            if track is None:
                continue
            children = self._host.child_tracks(track)
            if len(children) != old_channels:
                continue
            self._remove_excess_children(children, new_channels)
            context = session.context_for(key)
            context.previous_channel_mode = mode_for_channel_count(new_channels) or mode
            context.needs_regeneration = True
            affected.append(key)
            logger.info("Downgraded {} from {} to {} channel track(s)", key, old_channels, new_channels)

        return DowngradeResult(affected=affected, stabilization=self.stabilize(project))

    def _remove_excess_children(self, children: List[Any], keep: int) -> None:
        for child in children[keep:]:
            self._host.delete_track(child)
        remaining = children[:keep]
        if remaining:
            self._host.set_folder_depth(remaining[-1], -1)
