"""Convex polygons in texture space, clipped against the view."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

from .camera import Frustum
from .geometry import Plane, Plane2, Vector2, inv_lerp, lerp
from .tile_index import UVBasis

MAX_CULLING_LOOP_SIZE = 10

_PLANE_EPSILON = 0.000001
_POINT_EPSILON = 0.00001


def project_clipping_plane(plane: Plane, basis: UVBasis) -> Plane2:
    """Express a world-space plane in the texture space of ``basis``."""
    return Plane2(
        Vector2(plane.normal.dot(basis.uv_right), plane.normal.dot(basis.uv_up)),
        plane.d + plane.normal.dot(basis.uv_origin),
    )


@dataclass
class CullingLoop:
    """A convex polygon of at most ``MAX_CULLING_LOOP_SIZE`` points."""

    points: list[Vector2] = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.points) > MAX_CULLING_LOOP_SIZE:
            raise OverflowError(f"a culling loop holds at most {MAX_CULLING_LOOP_SIZE} points")

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[Vector2]:
        return iter(self.points)

    @classmethod
    def from_bounds(cls, minimum: Vector2, maximum: Vector2) -> CullingLoop:
        """The rectangle spanned by ``minimum`` and ``maximum``."""
        return cls([
            Vector2(minimum.x, minimum.y),
            Vector2(minimum.x, maximum.y),
            Vector2(maximum.x, maximum.y),
            Vector2(maximum.x, minimum.y),
        ])

    def add(self, point: Vector2) -> None:
        if len(self.points) >= MAX_CULLING_LOOP_SIZE:
            raise OverflowError(f"a culling loop holds at most {MAX_CULLING_LOOP_SIZE} points")
        self.points.append(point)

    def clip(self, basis: UVBasis, frustum: Frustum) -> None:
        """Cut away every part of the loop outside the frustum planes."""
        for world_plane in frustum.clipping_planes:
            plane = project_clipping_plane(world_plane, basis)

            if abs(plane.normal.x) < _PLANE_EPSILON and abs(plane.normal.y) < _PLANE_EPSILON:
                if plane.d < 0.0:
                    return
                continue

            self.split(plane)

            if not self.points:
                return

    def split(self, plane: Plane2, behind: bool = False) -> CullingLoop | None:
        """Keep the part in front of ``plane``; return the part behind it when ``behind`` is set."""
        front = CullingLoop()
        back = CullingLoop() if behind else None

        def add_to(target: CullingLoop | None, point: Vector2) -> None:
            if target is not None:
                target.add(point)

        count = len(self.points)
        for i, current in enumerate(self.points):
            following = self.points[(i + 1) % count]
            current_distance = plane.distance_to_point(current)

            if abs(current_distance) < _POINT_EPSILON:
                add_to(back, current)
                front.add(current)
                continue

            next_distance = plane.distance_to_point(following)

            if current_distance < 0.0:
                add_to(back, current)
            else:
                front.add(current)

            if current_distance * next_distance < 0.0:
                total = current_distance - next_distance
                clip_point = current.lerp(following, current_distance / total)
                add_to(back, clip_point)
                front.add(clip_point)

        self.points = front.points
        return back

    def top_index(self) -> int:
        """Index of the point with the lowest ``y``, walking from the first point."""
        count = len(self.points)
        if count == 0:
            raise ValueError("culling loop is empty")

        points = self.points
        result = 0
        next_point = 1 % count
        prev_point = count - 1

        for _ in range(count):
            if points[next_point].y < points[result].y:
                prev_point = result
                result = next_point
                next_point = (next_point + 1) % count
                continue

            if points[prev_point].y < points[result].y:
                next_point = result
                result = prev_point
                prev_point = (prev_point - 1) % count
                continue

            break

        return result

    def find_extent(
        self, index: int, last_boundary: float, until: float, direction: int
    ) -> tuple[float, int, float]:
        """Walk one side of the loop down to ``until``.

        Returns the extreme ``x`` reached (smallest when ``direction`` is
        positive, largest otherwise), the index reached and the new
        boundary ``x`` at ``until``.
        """
        result = last_boundary
        count = len(self.points)

        for _ in range(count):
            next_index = (index + direction) % count
            current = self.points[index]

            if current.y > until:
                return result, index, last_boundary

            following = self.points[next_index]

            if following.y < current.y:
                return result, index, last_boundary

            if following.y <= until or following.y == current.y:
                if (direction > 0) == (following.x < result):
                    result = following.x
                index = next_index
                continue

            t = inv_lerp(current.y, following.y, until)
            last_boundary = lerp(current.x, following.x, t)

            if (direction > 0) == (last_boundary < result):
                result = last_boundary

            break

        return result, index, last_boundary

    def furthest_point(self, direction: Vector2) -> Vector2:
        """The first point with the largest projection onto ``direction``."""
        if not self.points:
            raise ValueError("culling loop is empty")
        return max(self.points, key=direction.dot)