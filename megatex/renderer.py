"""Draws megatextured surfaces, choosing the level of detail per region of the surface."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Callable, NamedTuple, TypeVar, Union

from .camera import SCENE_SCALE, CameraMatrixInfo
from .culling_loop import CullingLoop, project_clipping_plane
from .geometry import Plane, Vector2, Vector3, clamp, inv_lerp, lerp
from .tile_index import TileIndex, UVBasis
from .tilecache import MAX_TILE_UNDER_LOADED, TileCache, TileLoader

MAX_VERTEX_CACHE_SIZE = 32
MIP_SAMPLE_COUNT = 3
LOG_INV_2 = 1.442695041
MIN_PIXEL_AREA = 0.000015259
MAX_TOTAL_TILE_REQUESTS = 500
MIN_TOTAL_TILE_REQUESTS = 400
LOD_BIAS_START = 1.5
LOD_BIAS_STEP = 1.0 / 32.0
LOD_BIAS_FAIL_STEP = 1.0 / 2.0
GROUP_SORT_OFFSET = 1000.0
DEFAULT_SCREEN_HEIGHT = 240
DEFAULT_MATRIX_CAPACITY = 256

_DIRECTION_EPSILON = 0.000001

Matrix = tuple[tuple[float, ...], ...]


@dataclass(frozen=True)
class LoadVertices:
    """Load vertices into the vertex cache, starting at slot 0."""

    vertices: tuple


@dataclass(frozen=True)
class DrawTile:
    """Bind the texture tile that following triangles sample."""

    loader: TileLoader


@dataclass(frozen=True)
class Triangles:
    """Draw one or two triangles from the vertex cache."""

    triangles: tuple[tuple[int, int, int], ...]


@dataclass(frozen=True)
class LoadProjection:
    """Replace the projection matrix."""

    matrix: Matrix


@dataclass(frozen=True)
class MultiplyView:
    """Multiply the projection matrix by the view matrix."""

    matrix: Matrix


Command = Union[LoadVertices, DrawTile, Triangles, LoadProjection, MultiplyView]


def _freeze(matrix: list[list[float]]) -> Matrix:
    return tuple(tuple(row) for row in matrix)


@dataclass
class RenderState:
    """The display list being built and the matrices left to hand out."""

    matrix_capacity: int = DEFAULT_MATRIX_CAPACITY
    commands: list[Command] = field(default_factory=list)
    matrices_used: int = 0

    def emit(self, command: Command) -> None:
        self.commands.append(command)

    def request_matrix(self) -> int | None:
        """Slot number of a fresh matrix, or None when all are used up."""
        if self.matrices_used >= self.matrix_capacity:
            return None
        slot = self.matrices_used
        self.matrices_used += 1
        return slot


class MipSelection(NamedTuple):
    """Distances separating levels of detail and the range of levels to draw."""

    planes: list[float]
    min_lod: int
    max_lod: int


def screen_space(
    camera_info: CameraMatrixInfo, point: Vector2, screen_height: float = DEFAULT_SCREEN_HEIGHT
) -> float:
    """Screen size in pixels of lateral offset ``point.x`` at depth ``point.y``."""
    return (screen_height / 2.0) * camera_info.cot_fov * point.x / point.y


_T = TypeVar("_T")


def _merge_sort(items: list[_T], key: Callable[[_T], float]) -> list[_T]:
    # On equal keys the right half goes first, matching the draw order the
    # renderer has always produced.
    if len(items) <= 1:
        return list(items)
    middle = len(items) // 2
    left = _merge_sort(items[:middle], key)
    right = _merge_sort(items[middle:], key)
    merged: list[_T] = []
    a = b = 0
    while a < len(left) or b < len(right):
        if b >= len(right) or (a < len(left) and key(left[a]) < key(right[b])):
            merged.append(left[a])
            a += 1
        else:
            merged.append(right[b])
            b += 1
    return merged


@dataclass
class MegatextureRenderer:
    """Renders tile indices through a shared tile cache and adapts its detail bias."""

    tile_cache: TileCache
    lod_bias: float = LOD_BIAS_START
    min_lod_bias: float = 1.0
    screen_height: float = DEFAULT_SCREEN_HEIGHT

    def calculate_mip_level(self, pixel_area: float) -> float:
        """Level of detail for a texel covering ``pixel_area`` screen pixels."""
        if pixel_area < MIN_PIXEL_AREA:
            return 10.0
        return math.log(1.0 / pixel_area) * (0.5 * LOG_INV_2) + self.lod_bias

    def determine_mip_levels(
        self,
        basis: UVBasis,
        world_pixel_width: float,
        loop: CullingLoop,
        camera_info: CameraMatrixInfo,
        mip_plane_count: int,
    ) -> MipSelection:
        """Choose depths at which the surface switches level of detail."""
        forward = camera_info.forward_vector
        uv_direction = Vector2(basis.uv_right.dot(forward), basis.uv_up.dot(forward))
        camera_offset = basis.uv_origin.sub(camera_info.camera_position)

        if abs(uv_direction.x) < _DIRECTION_EPSILON and abs(uv_direction.y) < _DIRECTION_EPSILON:
            # looking straight at the plane: one level covers it all
            depth = camera_offset.dot(forward)
            side = screen_space(camera_info, Vector2(world_pixel_width, depth), self.screen_height)
            level = self.calculate_mip_level(side * side)
            lod = math.floor(clamp(level, 0.0, float(mip_plane_count)))
            return MipSelection([depth], lod, lod)

        tangent = basis.normal.project_plane(forward).normalized()

        def to_camera(vector: Vector3) -> Vector2:
            return Vector2(tangent.dot(vector), forward.dot(vector))

        camera_right = to_camera(basis.uv_right)
        camera_up = to_camera(basis.uv_up)
        camera_origin = to_camera(camera_offset)

        def uv_to_camera(point: Vector2) -> Vector2:
            return Vector2(
                camera_origin.x + point.x * camera_right.x + point.y * camera_up.x,
                camera_origin.y + point.x * camera_right.y + point.y * camera_up.y,
            )

        furthest = loop.furthest_point(uv_direction)
        closest = loop.furthest_point(uv_direction.negate())
        texel_offset = furthest.sub(closest).normalized().scale(world_pixel_width)

        distances: list[float] = []
        levels: list[float] = []
        t = 0.0
        for _ in range(MIP_SAMPLE_COUNT):
            uv_point = closest.lerp(furthest, t)
            cross = screen_space(camera_info, uv_to_camera(uv_point), self.screen_height)
            shifted = uv_to_camera(uv_point.add(texel_offset))
            cross = abs(cross - screen_space(camera_info, shifted, self.screen_height))
            width = screen_space(camera_info, Vector2(world_pixel_width, shifted.y), self.screen_height)
            distances.append(shifted.y)
            levels.append(self.calculate_mip_level(width * cross))
            t += 1.0 / (MIP_SAMPLE_COUNT - 1)

        planes: list[float] = []
        min_lod = max_lod = 0
        current = 0
        for level_number in range(mip_plane_count):
            while current < MIP_SAMPLE_COUNT and level_number > levels[current]:
                current += 1

            if current == MIP_SAMPLE_COUNT:
                # the boundary lies beyond the far end of the surface
                planes.append(distances[-1] + 1.0)
                continue

            if current == 0:
                # the boundary lies before the surface; skip this level
                planes.append(distances[0] - 1.0)
                min_lod = max_lod = level_number + 1
                continue

            t = inv_lerp(levels[current - 1], levels[current], float(level_number))
            planes.append(lerp(distances[current - 1], distances[current], t))
            max_lod = level_number

        return MipSelection(planes, min_lod, max_lod)

    def render_row(
        self,
        index: TileIndex,
        layer_index: int,
        row: int,
        min_x: int,
        max_x: int,
        render_state: RenderState,
    ) -> None:
        """Draw the tiles ``min_x`` to ``max_x - 1`` of one tile row."""
        if min_x >= max_x:
            return

        mesh = index.mesh_layers[layer_index]
        start_vertex = mesh.tile_at(min_x, row).start_vertex
        vertex_count = 0
        pending: list[Command] = []

        def flush() -> None:
            render_state.emit(
                LoadVertices(tuple(mesh.vertices[start_vertex:start_vertex + vertex_count]))
            )
            for command in pending:
                render_state.emit(command)

        for x in range(min_x, max_x):
            tile = mesh.tile_at(x, row)
            if tile.index_count == 0:
                continue

            offset = tile.start_vertex - start_vertex

            if tile.vertex_count + offset > MAX_VERTEX_CACHE_SIZE:
                if vertex_count == 0:
                    continue
                flush()
                pending = []
                start_vertex = tile.start_vertex
                offset = 0

            vertex_count = offset + tile.vertex_count

            pending.append(DrawTile(self.tile_cache.request_tile(index, x, row, layer_index)))

            indices = [
                value + offset
                for value in mesh.indices[tile.start_index:tile.start_index + tile.index_count]
            ]
            pair_end = len(indices) - len(indices) % 6
            for start in range(0, pair_end, 6):
                pending.append(Triangles((
                    (indices[start], indices[start + 1], indices[start + 2]),
                    (indices[start + 3], indices[start + 4], indices[start + 5]),
                )))
            rest = indices[pair_end:]
            if len(rest) >= 3:
                pending.append(Triangles(((rest[0], rest[1], rest[2]),)))

        if vertex_count:
            flush()

    def render_layer(
        self,
        index: TileIndex,
        layer_index: int,
        loop: CullingLoop,
        near_plane: float,
        far_plane: float,
        camera_info: CameraMatrixInfo,
        render_state: RenderState,
    ) -> bool:
        """Draw the part of the surface inside ``loop`` at one level of detail.

        Returns False when the render state ran out of matrices.
        """
        if not loop.points:
            return True

        near_plane *= SCENE_SCALE
        far_plane *= SCENE_SCALE

        projection = camera_info.projection_matrix
        projection[2][2] = (near_plane + far_plane) / (near_plane - far_plane)
        projection[3][2] = (2 * near_plane * far_plane) / (near_plane - far_plane)

        left_index = loop.top_index()
        right_index = left_index
        left_boundary = loop.points[left_index].x
        right_boundary = left_boundary

        image_layer = index.image_layers[layer_index]
        mesh = index.mesh_layers[layer_index]
        tile_step = 1.0 / image_layer.y_tiles
        next_boundary = tile_step * (mesh.min_tile_y + 1)

        if mesh.min_tile_y:
            start = mesh.min_tile_y * tile_step
            _, left_index, left_boundary = loop.find_extent(left_index, left_boundary, start, 1)
            _, right_index, right_boundary = loop.find_extent(right_index, right_boundary, start, -1)

        for row in range(mesh.min_tile_y, mesh.max_tile_y):
            min_x, left_index, left_boundary = loop.find_extent(
                left_index, left_boundary, next_boundary, 1
            )
            max_x, right_index, right_boundary = loop.find_extent(
                right_index, right_boundary, next_boundary, -1
            )
            next_boundary += tile_step

            if min_x == max_x:
                continue

            if render_state.request_matrix() is None:
                return False

            render_state.emit(LoadProjection(_freeze(projection)))
            render_state.emit(MultiplyView(_freeze(camera_info.view_matrix)))

            self.render_row(
                index,
                layer_index,
                row,
                max(mesh.min_tile_x, math.floor(min_x * image_layer.x_tiles)),
                min(mesh.max_tile_x, math.ceil(max_x * image_layer.x_tiles)),
                render_state,
            )

        return True

    def render(
        self, index: TileIndex, camera_info: CameraMatrixInfo, render_state: RenderState
    ) -> bool:
        """Draw one surface. Returns False when the render state ran out of matrices."""
        if index.uv_basis.is_back_facing(camera_info.camera_position):
            return True

        frustum = camera_info.culling_information
        if frustum.is_box_outside(index.bounding_box):
            return True

        loop = CullingLoop.from_bounds(index.min_uv, index.max_uv)
        loop.clip(index.uv_basis, frustum)
        if not loop.points:
            return True

        selection = self.determine_mip_levels(
            index.uv_basis, index.world_pixel_size, loop, camera_info, index.layer_count - 1
        )

        forward = camera_info.forward_vector
        previous_plane = camera_info.near_plane

        for layer_index in range(selection.min_lod, selection.max_lod + 1):
            if layer_index == selection.max_lod:
                return self.render_layer(
                    index, layer_index, loop, previous_plane,
                    camera_info.far_plane, camera_info, render_state,
                )

            distance = selection.planes[layer_index]
            mip_plane = Plane(forward, -(forward.dot(camera_info.camera_position) + distance))
            near_part = loop.split(project_clipping_plane(mip_plane, index.uv_basis), behind=True)
            if not self.render_layer(
                index, layer_index, near_part, previous_plane, distance, camera_info, render_state
            ):
                return False
            previous_plane = distance

        return True

    def preload(self, index: TileIndex, min_tile_axis_tile_count: int) -> None:
        """Permanently load every tile of the coarse levels of ``index``."""
        for lod, layer in enumerate(index.image_layers):
            if layer.max_tile_axis_tile_count > min_tile_axis_tile_count:
                continue
            for y in range(layer.y_tiles):
                for x in range(layer.x_tiles):
                    self.tile_cache.preload_tile(index, x, y, lod)

    def render_start(self) -> None:
        self.tile_cache.start_frame()

    def render_end(self, success: bool) -> None:
        """Finish the frame and adjust the detail bias to the tile load seen."""
        cache = self.tile_cache
        cache.wait_for_tiles()

        if not success:
            self.lod_bias += LOD_BIAS_FAIL_STEP
            return

        if cache.overflow_request_count or cache.total_tile_requests > MAX_TOTAL_TILE_REQUESTS:
            self.lod_bias += LOD_BIAS_STEP
        elif (
            cache.has_extra_space(MAX_TILE_UNDER_LOADED)
            and cache.total_tile_requests < MIN_TOTAL_TILE_REQUESTS
        ):
            self.lod_bias -= LOD_BIAS_STEP * 0.25
            if self.lod_bias < self.min_lod_bias:
                self.lod_bias = self.min_lod_bias

    def render_all(
        self,
        indices: list[TileIndex],
        camera_info: CameraMatrixInfo,
        render_state: RenderState,
    ) -> bool:
        """Draw every surface for one frame.

        Leading surfaces with a negative sort group are drawn in the given
        order; the rest are drawn by group, then far to near.
        """
        self.render_start()

        unsorted_count = 0
        for index in indices:
            if index.sort_group >= 0:
                break
            if not self.render(index, camera_info, render_state):
                self.render_end(False)
                return False
            unsorted_count += 1

        forward = camera_info.forward_vector

        def sort_key(index: TileIndex) -> float:
            corner = index.bounding_box.support_function(forward)
            corner = Vector3(corner.x, 0.0, corner.z)
            return index.sort_group * GROUP_SORT_OFFSET - corner.dot(forward)

        for index in _merge_sort(list(indices[unsorted_count:]), sort_key):
            if not self.render(index, camera_info, render_state):
                self.render_end(False)
                return False

        self.render_end(True)
        return True