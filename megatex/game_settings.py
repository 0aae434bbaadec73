"""Quality settings chosen by how much memory is available."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class GameSettings:
    display_list_length: int
    tile_cache_entry_count: int
    high_res: bool
    min_lod_bias: float
    min_tile_axis_tile_count: int


def configure(has_expansion: bool) -> GameSettings:
    """Settings for a machine with or without the memory expansion."""
    if has_expansion:
        return GameSettings(
            display_list_length=14400,
            tile_cache_entry_count=2048,
            high_res=True,
            min_lod_bias=0.0,
            min_tile_axis_tile_count=4,
        )
    return GameSettings(
        display_list_length=3600,
        tile_cache_entry_count=1024,
        high_res=False,
        min_lod_bias=0.0,
        min_tile_axis_tile_count=2,
    )