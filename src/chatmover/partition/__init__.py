"""Splitting of multi-team exports into per-team exports."""

from chatmover.partition.grid import (
    ChannelCategory,
    ChannelsToMove,
    GridSlackExport,
    GridTransformer,
    grid_precheck,
    load_team_map,
)

__all__ = [
    "ChannelCategory",
    "ChannelsToMove",
    "GridSlackExport",
    "GridTransformer",
    "grid_precheck",
    "load_team_map",
]
