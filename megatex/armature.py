"""A posed skeleton and queries on the world placement of its bones."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from .geometry import Quaternion, Transform, Vector3

NO_BONE_PARENT = 0xFFFF


@dataclass
class ArmatureDefinition:
    """Static description of a skeleton: its bones, rest pose and hierarchy."""

    number_of_bones: int
    pose: list[Transform] | None = None
    bone_parent_index: list[int] | None = None
    number_of_attachments: int = 0
    display_list: Any = None


@dataclass
class Armature:
    """A skeleton instance with its own copy of the pose."""

    definition: ArmatureDefinition
    pose: list[Transform] = field(init=False)

    def __post_init__(self) -> None:
        definition = self.definition
        count = definition.number_of_bones
        if count < 0:
            raise ValueError("bone count cannot be negative")
        if definition.pose is None:
            self.pose = [Transform() for _ in range(count)]
        else:
            if len(definition.pose) < count:
                raise ValueError("pose holds fewer transforms than there are bones")
            self.pose = [copy.deepcopy(t) for t in definition.pose[:count]]
        self.bone_parent_index = definition.bone_parent_index
        self.number_of_attachments = definition.number_of_attachments
        self.display_list = definition.display_list

    @property
    def number_of_bones(self) -> int:
        return len(self.pose)

    def _chain(self, bone_index: int):
        parents = self.bone_parent_index
        while 0 <= bone_index < self.number_of_bones:
            yield self.pose[bone_index]
            bone_index = parents[bone_index]

    def bone_position(self, bone_index: int, position: Vector3) -> Vector3 | None:
        """``position`` in bone space carried up to the root; None without a hierarchy."""
        if not self.bone_parent_index:
            return None
        result = position
        for transform in self._chain(bone_index):
            result = transform.transform_point(result)
        return result

    def bone_rotation(self, bone_index: int) -> Quaternion | None:
        """Accumulated rotation of a bone; None without a hierarchy."""
        if not self.bone_parent_index:
            return None
        result = Quaternion.identity()
        for transform in self._chain(bone_index):
            result = transform.rotation.multiply(result)
        return result