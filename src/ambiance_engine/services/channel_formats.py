"""Output channel formats and channel-order variants."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..app.models import ChannelMode, ChannelVariant


@dataclass(frozen=True)
class ChannelFormat:
    mode: ChannelMode
    channels: int
    labels: Dict[ChannelVariant, Tuple[str, ...]]

    def labels_for(self, variant: Optional[ChannelVariant] = None) -> Tuple[str, ...]:
        return self.labels[variant or ChannelVariant.ITU]


def _same_for_all(labels: Tuple[str, ...]) -> Dict[ChannelVariant, Tuple[str, ...]]:
    return {variant: labels for variant in ChannelVariant}


CHANNEL_FORMATS: Dict[ChannelMode, ChannelFormat] = {
    ChannelMode.STEREO: ChannelFormat(ChannelMode.STEREO, 2, _same_for_all(("L", "R"))),
    ChannelMode.QUAD: ChannelFormat(ChannelMode.QUAD, 4, _same_for_all(("L", "R", "LS", "RS"))),
    ChannelMode.SURROUND_5_0: ChannelFormat(
        ChannelMode.SURROUND_5_0,
        5,
        {
            ChannelVariant.ITU: ("L", "R", "C", "LS", "RS"),
            ChannelVariant.SMPTE: ("L", "C", "R", "LS", "RS"),
        },
    ),
    ChannelMode.SURROUND_7_0: ChannelFormat(
        ChannelMode.SURROUND_7_0,
        7,
        {
            ChannelVariant.ITU: ("L", "R", "C", "LS", "RS", "LB", "RB"),
            ChannelVariant.SMPTE: ("L", "C", "R", "LS", "RS", "LB", "RB"),
        },
    ),
}

_MODE_BY_COUNT: Dict[int, ChannelMode] = {fmt.channels: mode for mode, fmt in CHANNEL_FORMATS.items()}

# Source channels (0-based) feeding L, R, LS, RS when a 5.0/7.0 source is
# folded onto four tracks; the center is never used.
_CENTER_SKIP_MAPS: Dict[ChannelVariant, Tuple[int, ...]] = {
    ChannelVariant.ITU: (0, 1, 3, 4),
    ChannelVariant.SMPTE: (0, 2, 3, 4),
}

_NAMED_PAIR_LABELS: Dict[Tuple[int, int], Tuple[str, ...]] = {
    (4, 2): ("L+R", "LS+RS"),
    (6, 3): ("L+R", "C+LFE", "LS+RS"),
    (8, 4): ("L+R", "C+LFE", "LS+RS", "LB+RB"),
}

SURROUND_SOURCE_WIDTHS = (5, 7)


def output_channels(mode: ChannelMode) -> int:
    return CHANNEL_FORMATS[mode].channels


def channel_labels(mode: ChannelMode, variant: Optional[ChannelVariant] = None) -> Tuple[str, ...]:
    return CHANNEL_FORMATS[mode].labels_for(variant)


def mode_for_channel_count(channels: int) -> Optional[ChannelMode]:
    return _MODE_BY_COUNT.get(channels)


def even_channels(channels: int) -> int:
    return channels + (channels % 2)


def center_skip_map(variant: Optional[ChannelVariant]) -> Tuple[int, ...]:
    return _CENTER_SKIP_MAPS[variant or ChannelVariant.ITU]


def stereo_pair_labels(item_channels: int, num_pairs: int) -> Tuple[str, ...]:
    named = _NAMED_PAIR_LABELS.get((item_channels, num_pairs))
    if named is not None:
        return named
    return tuple(f"Ch{2 * index + 1}+{2 * index + 2}" for index in range(num_pairs))


def mono_track_labels(output_count: int) -> Tuple[str, ...]:
    if output_count == 2:
        return ("L", "R")
    return ("L", "R", "LS", "RS")
