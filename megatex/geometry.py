"""Small vector, quaternion, plane and box types used by the renderer."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterator


def lerp(a: float, b: float, t: float) -> float:
    """Linear interpolation between ``a`` and ``b``."""
    return a + (b - a) * t


def inv_lerp(a: float, b: float, value: float) -> float:
    """Return ``t`` such that ``lerp(a, b, t) == value``."""
    return (value - a) / (b - a)


def clamp(value: float, low: float, high: float) -> float:
    """Clamp ``value`` to the closed range ``[low, high]``."""
    return max(low, min(high, value))


def move_towards(value: float, target: float, max_step: float) -> float:
    """Move ``value`` towards ``target`` by at most ``max_step``."""
    offset = target - value
    if abs(offset) <= max_step:
        return target
    return value + math.copysign(max_step, offset)


@dataclass(frozen=True)
class Vector2:
    x: float = 0.0
    y: float = 0.0

    def __iter__(self) -> Iterator[float]:
        yield self.x
        yield self.y

    def add(self, other: Vector2) -> Vector2:
        return Vector2(self.x + other.x, self.y + other.y)

    def sub(self, other: Vector2) -> Vector2:
        return Vector2(self.x - other.x, self.y - other.y)

    def scale(self, factor: float) -> Vector2:
        return Vector2(self.x * factor, self.y * factor)

    def dot(self, other: Vector2) -> float:
        return self.x * other.x + self.y * other.y

    def negate(self) -> Vector2:
        return Vector2(-self.x, -self.y)

    def normalized(self) -> Vector2:
        """Unit-length copy; a zero vector is returned unchanged."""
        length = math.sqrt(self.dot(self))
        if length == 0.0:
            return self
        return self.scale(1.0 / length)

    def lerp(self, other: Vector2, t: float) -> Vector2:
        return Vector2(lerp(self.x, other.x, t), lerp(self.y, other.y, t))

    __add__ = add
    __sub__ = sub
    __neg__ = negate

    def __mul__(self, factor: float) -> Vector2:
        return self.scale(factor)


@dataclass(frozen=True)
class Vector3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __iter__(self) -> Iterator[float]:
        yield self.x
        yield self.y
        yield self.z

    def add(self, other: Vector3) -> Vector3:
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def sub(self, other: Vector3) -> Vector3:
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)

    def scale(self, factor: float) -> Vector3:
        return Vector3(self.x * factor, self.y * factor, self.z * factor)

    def add_scaled(self, other: Vector3, factor: float) -> Vector3:
        return Vector3(
            self.x + other.x * factor,
            self.y + other.y * factor,
            self.z + other.z * factor,
        )

    def dot(self, other: Vector3) -> float:
        return self.x * other.x + self.y * other.y + self.z * other.z

    def mag_sqrd(self) -> float:
        return self.dot(self)

    def negate(self) -> Vector3:
        return Vector3(-self.x, -self.y, -self.z)

    def normalized(self) -> Vector3:
        """Unit-length copy; a zero vector is returned unchanged."""
        length = math.sqrt(self.mag_sqrd())
        if length == 0.0:
            return self
        return self.scale(1.0 / length)

    def project_plane(self, normal: Vector3) -> Vector3:
        """Remove the component of this vector along ``normal``."""
        normal_sqrd = normal.mag_sqrd()
        if normal_sqrd == 0.0:
            return self
        return self.add_scaled(normal, -self.dot(normal) / normal_sqrd)

    __add__ = add
    __sub__ = sub
    __neg__ = negate

    def __mul__(self, factor: float) -> Vector3:
        return self.scale(factor)


@dataclass(frozen=True)
class Quaternion:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    w: float = 1.0

    def __iter__(self) -> Iterator[float]:
        yield self.x
        yield self.y
        yield self.z
        yield self.w

    @classmethod
    def identity(cls) -> Quaternion:
        return cls(0.0, 0.0, 0.0, 1.0)

    def multiply(self, other: Quaternion) -> Quaternion:
        a, b = self, other
        return Quaternion(
            a.w * b.x + a.x * b.w + a.y * b.z - a.z * b.y,
            a.w * b.y + a.y * b.w + a.z * b.x - a.x * b.z,
            a.w * b.z + a.z * b.w + a.x * b.y - a.y * b.x,
            a.w * b.w - a.x * b.x - a.y * b.y - a.z * b.z,
        )

    def rotate(self, vector: Vector3) -> Vector3:
        """Rotate ``vector`` by this quaternion."""
        pure = Quaternion(vector.x, vector.y, vector.z, 0.0)
        conjugate = Quaternion(-self.x, -self.y, -self.z, self.w)
        result = self.multiply(pure).multiply(conjugate)
        return Vector3(result.x, result.y, result.z)

    def dot(self, other: Quaternion) -> float:
        return self.x * other.x + self.y * other.y + self.z * other.z + self.w * other.w

    def normalized(self) -> Quaternion:
        """Unit-length copy; a zero quaternion becomes the identity."""
        length = math.sqrt(self.dot(self))
        if length == 0.0:
            return Quaternion.identity()
        inv = 1.0 / length
        return Quaternion(self.x * inv, self.y * inv, self.z * inv, self.w * inv)

    __mul__ = multiply


@dataclass
class Transform:
    position: Vector3 = field(default_factory=Vector3)
    rotation: Quaternion = field(default_factory=Quaternion)
    scale: Vector3 = field(default_factory=lambda: Vector3(1.0, 1.0, 1.0))

    def transform_point(self, point: Vector3) -> Vector3:
        """Apply scale, then rotation, then translation to ``point``."""
        scaled = Vector3(point.x * self.scale.x, point.y * self.scale.y, point.z * self.scale.z)
        return self.rotation.rotate(scaled).add(self.position)


@dataclass(frozen=True)
class Plane:
    normal: Vector3
    d: float

    def distance_to_point(self, point: Vector3) -> float:
        return self.normal.dot(point) + self.d


@dataclass(frozen=True)
class Plane2:
    normal: Vector2
    d: float

    def distance_to_point(self, point: Vector2) -> float:
        return self.normal.dot(point) + self.d


@dataclass(frozen=True)
class Box3D:
    minimum: Vector3
    maximum: Vector3

    def support_function(self, direction: Vector3) -> Vector3:
        """The corner of the box furthest along ``direction``."""
        return Vector3(
            self.maximum.x if direction.x > 0.0 else self.minimum.x,
            self.maximum.y if direction.y > 0.0 else self.minimum.y,
            self.maximum.z if direction.z > 0.0 else self.minimum.z,
        )