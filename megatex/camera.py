"""Camera description, frustum culling and clipping plane extraction."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from .geometry import Box3D, Plane, Transform, Vector3

SCENE_SCALE = 128
MAX_CLIPPING_PLANE_COUNT = 6
_MATRIX_LIMIT = 0x7FFF


def _identity_matrix() -> list[list[float]]:
    return [[1.0 if row == col else 0.0 for col in range(4)] for row in range(4)]


@dataclass
class Frustum:
    """Clipping planes used to cull geometry against the view."""

    clipping_planes: list[Plane] = field(default_factory=list)
    camera_pos: Vector3 = field(default_factory=Vector3)

    def __post_init__(self) -> None:
        if len(self.clipping_planes) > MAX_CLIPPING_PLANE_COUNT:
            raise ValueError(
                f"at most {MAX_CLIPPING_PLANE_COUNT} clipping planes are supported"
            )

    def is_box_outside(self, box: Box3D) -> bool:
        """True when the box lies entirely behind one of the planes."""
        for plane in self.clipping_planes:
            normal = plane.normal
            corner = Vector3(
                box.minimum.x if normal.x < 0.0 else box.maximum.x,
                box.minimum.y if normal.y < 0.0 else box.maximum.y,
                box.minimum.z if normal.z < 0.0 else box.maximum.z,
            )
            if plane.distance_to_point(corner) < 0.00001:
                return True
        return False

    def is_sphere_outside(self, center: Vector3, radius: float) -> bool:
        """True when the sphere lies entirely behind one of the planes."""
        return any(
            plane.distance_to_point(center) < -radius for plane in self.clipping_planes
        )


@dataclass
class Camera:
    fov: float
    near_plane: float
    far_plane: float
    transform: Transform = field(default_factory=Transform)

    def cot_fov(self) -> float:
        """Cotangent of half the vertical field of view."""
        fovy = self.fov * 3.1415926 / 180.0
        return math.cos(fovy / 2) / math.sin(fovy / 2)


@dataclass
class CameraMatrixInfo:
    """Per-frame camera data that rendering works from."""

    projection_matrix: list[list[float]] = field(default_factory=_identity_matrix)
    view_matrix: list[list[float]] = field(default_factory=_identity_matrix)
    culling_information: Frustum = field(default_factory=Frustum)
    forward_vector: Vector3 = field(default_factory=lambda: Vector3(0.0, 0.0, -1.0))
    camera_position: Vector3 = field(default_factory=Vector3)
    cot_fov: float = 1.0
    near_plane: float = 0.0
    far_plane: float = 0.0


def extract_clipping_plane(
    view_persp: list[list[float]],
    axis: int,
    direction: float,
    scene_scale: float = SCENE_SCALE,
) -> Plane:
    """Extract a normalized clipping plane from a combined view-projection matrix."""
    m = view_persp
    normal = Vector3(
        m[0][axis] * direction + m[0][3],
        m[1][axis] * direction + m[1][3],
        m[2][axis] * direction + m[2][3],
    )
    d = m[3][axis] * direction + m[3][3]
    magnitude = math.sqrt(normal.mag_sqrd())
    if magnitude == 0.0:
        raise ValueError("matrix yields a degenerate clipping plane")
    mult = 1.0 / magnitude
    return Plane(normal.scale(mult), d * mult * (1.0 / scene_scale))


def is_valid_matrix(matrix: list[list[float]]) -> bool:
    """True when the translation row fits into fixed point range."""
    return all(abs(matrix[3][col]) <= _MATRIX_LIMIT for col in range(3))