"""Megatexture tile streaming, culling and level-of-detail rendering, with collision, animation and allocator helpers."""

__version__ = "0.1.0"

__all__ = [
    "animator",
    "armature",
    "camera",
    "collision",
    "culling_loop",
    "game_settings",
    "geometry",
    "memory",
    "renderer",
    "tile_index",
    "tilecache",
]