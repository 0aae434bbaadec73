import pytest

from megatex.camera import CameraMatrixInfo
from megatex.culling_loop import CullingLoop
from megatex.geometry import Box3D, Vector2, Vector3
from megatex.renderer import (
    DrawTile,
    LoadProjection,
    LoadVertices,
    MegatextureRenderer,
    MultiplyView,
    RenderState,
    Triangles,
    screen_space,
)
from megatex.tile_index import TILE_SIZE, ImageLayer, MeshLayer, MeshTile, TileIndex, UVBasis
from megatex.tilecache import TileCache


def make_cache(entries=64):
    return TileCache(entry_count=entries, rom=bytes(TILE_SIZE * 16))


def wall_index(vertices, z=0.0, tile_source=0, sort_group=-1):
    mesh = MeshLayer(
        vertices=list(vertices),
        indices=[0, 1, 2],
        tiles=[MeshTile(0, 0, 3, 3)],
        min_tile_x=0, min_tile_y=0, max_tile_x=1, max_tile_y=1,
    )
    return TileIndex(
        mesh_layers=[mesh],
        image_layers=[ImageLayer(tile_source, 1, 1, 1)],
        bounding_box=Box3D(Vector3(0.0, 0.0, z), Vector3(1.0, 1.0, z)),
        uv_basis=UVBasis(
            Vector3(0.0, 0.0, z), Vector3(1.0, 0.0, 0.0),
            Vector3(0.0, 1.0, 0.0), Vector3(0.0, 0.0, 1.0),
        ),
        sort_group=sort_group,
    )


def row_index(tiles, indices, vertices):
    mesh = MeshLayer(
        vertices=list(vertices), indices=list(indices), tiles=list(tiles),
        min_tile_x=0, min_tile_y=0, max_tile_x=len(tiles), max_tile_y=1,
    )
    return TileIndex(
        mesh_layers=[mesh],
        image_layers=[ImageLayer(0, len(tiles), 1, len(tiles))],
        bounding_box=Box3D(Vector3(0.0, 0.0, 0.0), Vector3(1.0, 1.0, 0.0)),
        uv_basis=UVBasis(
            Vector3(0.0, 0.0, 0.0), Vector3(1.0, 0.0, 0.0),
            Vector3(0.0, 1.0, 0.0), Vector3(0.0, 0.0, 1.0),
        ),
    )


def camera_at(z=5.0):
    return CameraMatrixInfo(
        forward_vector=Vector3(0.0, 0.0, -1.0),
        camera_position=Vector3(0.5, 0.5, z),
        cot_fov=1.0,
        near_plane=0.05,
        far_plane=20.0,
    )


def floor_setup():
    basis = UVBasis(
        Vector3(0.0, 0.0, 0.0), Vector3(1.0, 0.0, 0.0),
        Vector3(0.0, 0.0, 1.0), Vector3(0.0, 1.0, 0.0),
    )
    info = CameraMatrixInfo(
        forward_vector=Vector3(0.0, -0.6, 0.8),
        camera_position=Vector3(0.5, 1.0, -1.0),
        cot_fov=1.0,
    )
    loop = CullingLoop.from_bounds(Vector2(0.0, 0.0), Vector2(1.0, 1.0))
    return basis, info, loop


def test_tiny_pixel_area_uses_coarsest_level():
    renderer = MegatextureRenderer(make_cache())
    assert renderer.calculate_mip_level(0.00001) == 10.0


def test_unit_pixel_area_gives_bias():
    renderer = MegatextureRenderer(make_cache())
    assert renderer.calculate_mip_level(1.0) == pytest.approx(1.5)


def test_mip_level_falls_with_larger_area():
    renderer = MegatextureRenderer(make_cache())
    assert renderer.calculate_mip_level(4.0) < renderer.calculate_mip_level(1.0)
    assert renderer.calculate_mip_level(1.0) - renderer.calculate_mip_level(4.0) == pytest.approx(1.0, rel=1e-6)


def test_screen_space_scales_with_depth():
    info = camera_at()
    near = screen_space(info, Vector2(1.0, 2.0), 240)
    far = screen_space(info, Vector2(1.0, 4.0), 240)
    assert near == pytest.approx(2 * far)


def test_render_state_runs_out_of_matrices():
    state = RenderState(matrix_capacity=2)
    assert state.request_matrix() == 0
    assert state.request_matrix() == 1
    assert state.request_matrix() is None


def test_render_row_single_triangle():
    index = wall_index(["v0", "v1", "v2"])
    renderer = MegatextureRenderer(make_cache())
    state = RenderState()
    renderer.render_row(index, 0, 0, 0, 1, state)
    assert len(state.commands) == 3
    assert state.commands[0] == LoadVertices(("v0", "v1", "v2"))
    assert isinstance(state.commands[1], DrawTile)
    assert state.commands[2] == Triangles(((0, 1, 2),))


def test_render_row_merges_tiles_and_offsets_indices():
    tiles = [MeshTile(0, 0, 6, 3), MeshTile(3, 6, 3, 3)]
    indices = [0, 1, 2, 2, 1, 0, 0, 1, 2]
    vertices = [f"v{i}" for i in range(6)]
    renderer = MegatextureRenderer(make_cache())
    state = RenderState()
    renderer.render_row(row_index(tiles, indices, vertices), 0, 0, 0, 2, state)
    loads = [c for c in state.commands if isinstance(c, LoadVertices)]
    assert loads == [LoadVertices(tuple(vertices))]
    triangles = [c for c in state.commands if isinstance(c, Triangles)]
    assert triangles == [Triangles(((0, 1, 2), (2, 1, 0))), Triangles(((3, 4, 5),))]


def test_render_row_splits_when_vertex_cache_overflows():
    tiles = [MeshTile(0, 0, 3, 20), MeshTile(20, 3, 3, 20)]
    indices = [0, 1, 2, 5, 6, 7]
    vertices = list(range(40))
    renderer = MegatextureRenderer(make_cache())
    state = RenderState()
    renderer.render_row(row_index(tiles, indices, vertices), 0, 0, 0, 2, state)
    kinds = [type(c) for c in state.commands]
    assert kinds == [LoadVertices, DrawTile, Triangles, LoadVertices, DrawTile, Triangles]
    assert state.commands[0].vertices == tuple(range(20))
    assert state.commands[3].vertices == tuple(range(20, 40))
    assert state.commands[5] == Triangles(((5, 6, 7),))


def test_render_row_with_empty_tiles_emits_nothing():
    tiles = [MeshTile(0, 0, 0, 0), MeshTile(0, 0, 0, 0)]
    renderer = MegatextureRenderer(make_cache())
    state = RenderState()
    renderer.render_row(row_index(tiles, [], []), 0, 0, 0, 2, state)
    assert state.commands == []


def test_render_back_facing_surface_draws_nothing():
    renderer = MegatextureRenderer(make_cache())
    state = RenderState()
    assert renderer.render(wall_index(["a", "b", "c"]), camera_at(-5.0), state) is True
    assert state.commands == []


def test_render_front_facing_surface():
    renderer = MegatextureRenderer(make_cache())
    state = RenderState()
    info = camera_at()
    assert renderer.render(wall_index(["a", "b", "c"]), info, state) is True
    kinds = [type(c) for c in state.commands]
    assert kinds == [LoadProjection, MultiplyView, LoadVertices, DrawTile, Triangles]
    assert state.commands[2] == LoadVertices(("a", "b", "c"))
    assert state.matrices_used == 1
    assert info.projection_matrix[2][2] < 0.0


def test_render_layer_with_empty_loop_succeeds_without_output():
    renderer = MegatextureRenderer(make_cache())
    state = RenderState()
    ok = renderer.render_layer(wall_index(["a"]), 0, CullingLoop(), 0.05, 20.0, camera_at(), state)
    assert ok is True
    assert state.commands == []


def test_render_all_fails_without_matrices_and_raises_bias():
    renderer = MegatextureRenderer(make_cache())
    state = RenderState(matrix_capacity=0)
    assert renderer.render_all([wall_index(["a", "b", "c"])], camera_at(), state) is False
    assert renderer.lod_bias == pytest.approx(2.0)


def test_render_all_draws_sorted_surfaces_far_to_near():
    near = wall_index(["n0", "n1", "n2"], z=0.0, tile_source=0, sort_group=0)
    far = wall_index(["f0", "f1", "f2"], z=-3.0, tile_source=TILE_SIZE, sort_group=0)
    first = wall_index(["u0", "u1", "u2"], z=-1.0, tile_source=2 * TILE_SIZE, sort_group=-1)
    renderer = MegatextureRenderer(make_cache())
    state = RenderState()
    assert renderer.render_all([first, near, far], camera_at(), state) is True
    order = [c.vertices[0] for c in state.commands if isinstance(c, LoadVertices)]
    assert order == ["u0", "f0", "n0"]


def test_render_end_overflow_raises_bias():
    renderer = MegatextureRenderer(make_cache())
    renderer.tile_cache.overflow_request_count = 1
    renderer.render_end(True)
    assert renderer.lod_bias == pytest.approx(1.5 + 1.0 / 32.0)


def test_render_end_with_spare_space_lowers_bias_to_minimum():
    renderer = MegatextureRenderer(make_cache(64), lod_bias=2.0, min_lod_bias=1.0)
    renderer.render_start()
    renderer.render_end(True)
    assert renderer.lod_bias == pytest.approx(2.0 - 1.0 / 128.0)
    renderer.lod_bias = 1.0
    renderer.render_end(True)
    assert renderer.lod_bias == 1.0


def test_preload_respects_tile_count_threshold():
    index = wall_index(["a", "b", "c"])
    renderer = MegatextureRenderer(make_cache())
    renderer.preload(index, 0)
    assert renderer.tile_cache.pending_count == 0
    renderer.preload(index, 1)
    assert renderer.tile_cache.pending_count == 1


def test_head_on_view_selects_single_level():
    renderer = MegatextureRenderer(make_cache())
    index = wall_index(["a"])
    loop = CullingLoop.from_bounds(Vector2(0.0, 0.0), Vector2(1.0, 1.0))
    selection = renderer.determine_mip_levels(index.uv_basis, 1.0 / 32.0, loop, camera_at(), 2)
    assert selection.min_lod == selection.max_lod
    assert 0 <= selection.min_lod <= 2
    assert selection.planes[0] == pytest.approx(5.0)


@pytest.mark.parametrize("bias, expected", [(100.0, 2), (-100.0, 0)])
def test_extreme_bias_selects_extreme_levels(bias, expected):
    renderer = MegatextureRenderer(make_cache(), lod_bias=bias)
    basis, info, loop = floor_setup()
    selection = renderer.determine_mip_levels(basis, 1.0 / 256.0, loop, info, 2)
    assert len(selection.planes) == 2
    assert selection.min_lod == expected
    assert selection.max_lod == expected


def test_oblique_view_level_range_is_ordered():
    renderer = MegatextureRenderer(make_cache())
    basis, info, loop = floor_setup()
    selection = renderer.determine_mip_levels(basis, 1.0 / 256.0, loop, info, 4)
    assert len(selection.planes) == 4
    assert 0 <= selection.min_lod <= selection.max_lod <= 4