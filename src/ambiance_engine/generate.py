"""
CLI entry point to run a one-off generation pass against the in-memory host.

Example:
    python -m ambiance_engine.generate --mode coverage --rate 50 --channel-mode quad --item-channels 2
"""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

from .app.models import (
    ChannelMode,
    ChannelSelectionMode,
    ChannelVariant,
    ContainerConfig,
    DistributionMode,
    GroupConfig,
    IntervalMode,
    PlacementParams,
    ProjectConfig,
    SourceItem,
    TimeRange,
)
from .app.settings import Settings
from .services.host import InMemoryHost
from .services.orchestrator import GenerationOrchestrator
from .services.types import GenerationSession


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scatter ambiance grains across a time range.")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in IntervalMode],
        default=IntervalMode.ABSOLUTE.value,
        help="Temporal placement algorithm.",
    )
    parser.add_argument(
        "--rate",
        type=float,
        default=10.0,
        help="Interval in seconds (absolute), percent of range (relative) or coverage percent.",
    )
    parser.add_argument("--drift", type=float, default=30.0, help="Drift percentage (0-100).")
    parser.add_argument("--start", type=float, default=0.0, help="Range start in seconds.")
    parser.add_argument("--end", type=float, default=60.0, help="Range end in seconds.")
    parser.add_argument(
        "--channel-mode",
        choices=[mode.value for mode in ChannelMode],
        default=ChannelMode.STEREO.value,
    )
    parser.add_argument(
        "--selection",
        choices=[mode.value for mode in ChannelSelectionMode],
        default=ChannelSelectionMode.NONE.value,
        help="Channel selection mode applied to multichannel items.",
    )
    parser.add_argument(
        "--variant",
        choices=[variant.value for variant in ChannelVariant],
        default=None,
        help="Channel order of 5.0/7.0 source items.",
    )
    parser.add_argument(
        "--distribution",
        choices=[mode.value for mode in DistributionMode],
        default=DistributionMode.ROUND_ROBIN.value,
    )
    parser.add_argument(
        "--item-channels",
        type=int,
        nargs="+",
        default=[2],
        help="Channel count of each generated source item.",
    )
    parser.add_argument("--item-length", type=float, default=4.0, help="Source item length in seconds.")
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible passes.")
    return parser.parse_args(argv)


def _build_project(args: argparse.Namespace) -> ProjectConfig:
    items = [
        SourceItem(
            name=f"item-{index + 1}",
            file_path=f"item-{index + 1}.wav",
            num_channels=channels,
            length=args.item_length,
        )
        for index, channels in enumerate(args.item_channels)
    ]
    container = ContainerConfig(
        name="Container",
        items=items,
        override_parent=True,
        params=PlacementParams(
            interval_mode=IntervalMode(args.mode),
            trigger_rate=args.rate,
            trigger_drift=args.drift,
        ),
        channel_mode=ChannelMode(args.channel_mode),
        channel_selection_mode=ChannelSelectionMode(args.selection),
        source_channel_variant=ChannelVariant(args.variant) if args.variant else None,
        distribution_mode=DistributionMode(args.distribution),
    )
    return ProjectConfig(groups=[GroupConfig(name="Group", containers=[container])])


def _run(args: argparse.Namespace) -> None:
    settings = Settings()
    host = InMemoryHost()
    orchestrator = GenerationOrchestrator(settings, host)
    report = orchestrator.generate(
        _build_project(args),
        TimeRange(start=args.start, end=args.end),
        GenerationSession(seed=args.seed if args.seed is not None else settings.default_seed),
    )

    for container in report.containers:
        print(f"container     : {container.group}/{container.name}")
        if container.failed:
            print(f"error         : {container.error}")
            continue
        print(f"strategy      : {container.strategy}")
        print(f"tracks        : {container.num_tracks}")
        print(f"grains        : {container.grains}")
        print(f"crossfades    : {container.crossfades}")
        for warning in container.warnings:
            print(f"warning       : {warning}")
    if report.stabilization is not None:
        print(f"master        : {report.stabilization.master_channels}ch")
        print(f"converged     : {report.stabilization.converged}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    _run(_parse_args(argv))


if __name__ == "__main__":
    main()
