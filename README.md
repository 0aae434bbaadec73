# megatex

A pure-Python library for drawing planar surfaces that carry very large
textures ("megatextures"). The textures are streamed as 32x32 tiles through a
fixed-size cache, and a level of detail is chosen for each part of a surface
from where the camera is. The package has no dependencies outside the
standard library.

## Modules

- `megatex.geometry`: immutable `Vector2`, `Vector3`, `Quaternion`, `Plane`,
  `Plane2` and `Box3D`, the mutable `Transform`, and the helpers `lerp`,
  `inv_lerp`, `clamp` and `move_towards`.
- `megatex.camera`: `Camera` (with `cot_fov()`), `CameraMatrixInfo` (the
  per-frame data the renderer works from) and `Frustum`, whose
  `is_box_outside` and `is_sphere_outside` cull against up to six clipping
  planes. `extract_clipping_plane` pulls a normalized plane out of a combined
  view-projection matrix; `is_valid_matrix` checks that the translation row
  fits the fixed-point range.
- `megatex.tile_index`: one textured face, described by `TileIndex`,
  `UVBasis`, `MeshLayer`, `MeshTile` and `ImageLayer`.
- `megatex.culling_loop`: `CullingLoop`, a convex polygon of at most ten
  points in texture space. It can be clipped against a `Frustum`, split by a
  `Plane2`, and walked row by row with `top_index` and `find_extent`.
  `project_clipping_plane` carries a world plane into a surface's texture
  space.
- `megatex.tilecache`: `TileCache`, a least-recently-used cache of tiles read
  from a `bytes` image of the texture data. It limits how many new tiles each
  frame may fetch, never evicts tiles used in the previous frame, and falls
  back to the nearest coarser level that is already cached (or to
  `NOP_LOADER`). `preload_tile` keeps tiles resident for good. Reads are
  queued and completed by `wait_for_tiles`; `tile_data` returns a slot's bytes.
- `megatex.renderer`: `MegatextureRenderer` and `RenderState`. The renderer
  selects mip levels, walks the visible tile rows and records draw commands
  (`LoadVertices`, `DrawTile`, `Triangles`, `LoadProjection`, `MultiplyView`)
  in the render state. Its `lod_bias` rises when the cache overflows and falls
  back when there is room to spare. `render_all` draws surfaces with a
  negative sort group first, then the rest by group and far to near.
- `megatex.collision`: `CollisionQuad`, `collide_sphere` (pushes a sphere out
  of a quad) and `floor_height`.
- `megatex.game_settings`: `GameSettings` and `configure(has_expansion)`, the
  presets for the standard and the expanded memory configurations.
- `megatex.animator`: `AnimationClip`, `BoneFrame`, `extract_bone`,
  `Animator` (playback with looping and blending between neighbouring
  frames), `AnimatorBlender` (cross-fade between two animators),
  `AnimatorFlags` and `SegmentTable` for segmented address translation.
- `megatex.armature`: `ArmatureDefinition` and `Armature`, with
  `bone_position` and `bone_rotation` walking up the bone hierarchy.
- `megatex.memory`: `HeapAllocator`, a first-fit heap that merges free
  neighbours, and `StackAllocator`, a bump allocator. Both work over a
  simulated address range and raise `MemoryError` when out of space.

## What it does not do

The renderer does not draw pixels. It records commands in a `RenderState`
for another layer to carry out. The package does not read model, level or
texture files: surfaces are built as `TileIndex` objects, and tile data is
passed to `TileCache` as `bytes`. It has no windowing, input, audio or game
loop, and it installs no command.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Example

```python
from megatex.geometry import Plane2, Vector2
from megatex.culling_loop import CullingLoop

loop = CullingLoop.from_bounds(Vector2(0.0, 0.0), Vector2(1.0, 1.0))
# keep the part with x >= 0.5, and get back the part with x < 0.5
behind = loop.split(Plane2(Vector2(1.0, 0.0), -0.5), behind=True)
print(len(loop), len(behind), loop.top_index())
```