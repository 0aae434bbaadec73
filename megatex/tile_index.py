"""Description of a megatextured surface: its mesh tiles and image layers."""

from __future__ import annotations

from dataclasses import dataclass, field

from .geometry import Box3D, Vector2, Vector3

TILE_PIXELS = 32
TILE_SIZE = TILE_PIXELS * TILE_PIXELS * 2


@dataclass(frozen=True)
class UVBasis:
    """Maps texture space onto the plane of a surface."""

    uv_origin: Vector3
    uv_right: Vector3
    uv_up: Vector3
    normal: Vector3

    def is_back_facing(self, camera_position: Vector3) -> bool:
        """True when the surface faces away from ``camera_position``."""
        offset = self.uv_origin.sub(camera_position)
        return offset.dot(self.normal) >= 0.0


@dataclass(frozen=True)
class MeshTile:
    start_vertex: int
    start_index: int
    index_count: int
    vertex_count: int


@dataclass
class MeshLayer:
    """Geometry of one level of detail split up into a grid of tiles."""

    vertices: list
    indices: list[int]
    tiles: list[MeshTile]
    min_tile_x: int
    min_tile_y: int
    max_tile_x: int
    max_tile_y: int

    def tile_at(self, x: int, y: int) -> MeshTile:
        """The mesh tile at grid position ``(x, y)``."""
        if not (self.min_tile_x <= x < self.max_tile_x and self.min_tile_y <= y < self.max_tile_y):
            raise IndexError(f"tile ({x}, {y}) is outside the mesh layer")
        width = self.max_tile_x - self.min_tile_x
        return self.tiles[(y - self.min_tile_y) * width + (x - self.min_tile_x)]


@dataclass(frozen=True)
class ImageLayer:
    """Image data of one level of detail, stored as consecutive tiles."""

    tile_source: int
    x_tiles: int
    y_tiles: int
    max_tile_axis_tile_count: int

    def rom_address(self, x: int, y: int) -> int:
        """Byte address of the tile at ``(x, y)``."""
        return self.tile_source + TILE_SIZE * (x + y * self.x_tiles)


@dataclass
class TileIndex:
    """Everything needed to render one megatextured surface."""

    mesh_layers: list[MeshLayer]
    image_layers: list[ImageLayer]
    bounding_box: Box3D
    uv_basis: UVBasis
    min_uv: Vector2 = field(default_factory=Vector2)
    max_uv: Vector2 = field(default_factory=lambda: Vector2(1.0, 1.0))
    world_pixel_size: float = 1.0
    sort_group: int = -1

    @property
    def layer_count(self) -> int:
        return len(self.image_layers)