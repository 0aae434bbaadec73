"""Sphere and floor tests against rectangular collision quads."""

from __future__ import annotations

import math
from dataclasses import dataclass

from .geometry import Plane, Vector3


@dataclass(frozen=True)
class CollisionQuad:
    """A rectangle spanned by two unit edges from a corner."""

    corner: Vector3
    edge_a: Vector3
    edge_a_length: float
    edge_b: Vector3
    edge_b_length: float
    plane: Plane


def collide_sphere(quad: CollisionQuad, origin: Vector3, radius: float) -> Vector3:
    """Return ``origin`` pushed out of ``quad`` so a sphere of ``radius`` no longer overlaps it."""
    plane_distance = quad.plane.distance_to_point(origin)
    if abs(plane_distance) > radius:
        return origin

    relative = origin.sub(quad.corner)

    a_distance = relative.dot(quad.edge_a)
    if a_distance < -radius or a_distance > quad.edge_a_length + radius:
        return origin

    b_distance = relative.dot(quad.edge_b)
    if b_distance < -radius or b_distance > quad.edge_b_length + radius:
        return origin

    closest = quad.edge_a.scale(a_distance).add_scaled(quad.edge_b, b_distance)
    push_dir = relative.sub(closest)
    distance_sqrd = push_dir.mag_sqrd()

    if distance_sqrd > radius * radius:
        return origin

    distance = math.sqrt(distance_sqrd)
    if distance < 0.00001:
        return origin.add_scaled(quad.plane.normal, radius)

    return closest.add_scaled(push_dir, radius / distance).add(quad.corner)


def floor_height(quad: CollisionQuad, origin: Vector3) -> float | None:
    """Height of ``quad`` directly above or below ``origin``, or None if it does not cover it."""
    normal = quad.plane.normal
    if abs(normal.y) < 0.001:
        return None

    contact_y = (normal.x * origin.x + normal.z * origin.z + quad.plane.d) / -normal.y
    contact = Vector3(origin.x, contact_y, origin.z)
    relative = contact.sub(quad.corner)

    a_distance = relative.dot(quad.edge_a)
    if a_distance < 0 or a_distance > quad.edge_a_length:
        return None

    b_distance = relative.dot(quad.edge_b)
    if b_distance < 0 or b_distance > quad.edge_b_length:
        return None

    return contact_y