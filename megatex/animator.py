"""Skeletal animation playback with blending between neighbouring frames."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import IntFlag

from .geometry import Quaternion, Transform, Vector3

SEGMENT_COUNT = 16
ANIMATION_EVENT_END = 0xFFFF
ANIMATION_EVENT_START = 0xFFFE

_ROTATION_SCALE = 1.0 / 32767.0
_NO_FRAME = -1


class AnimatorFlags(IntFlag):
    NONE = 0
    LOOP = 1 << 0
    DONE = 1 << 1


@dataclass(frozen=True)
class BoneFrame:
    """One bone's pose in one frame, stored as 16 bit integers.

    The rotation holds the x, y and z parts of a unit quaternion scaled by 32767.
    """

    position: tuple[int, int, int] = (0, 0, 0)
    rotation: tuple[int, int, int] = (0, 0, 0)


@dataclass(frozen=True)
class AnimationClip:
    """A sequence of frames, each holding one ``BoneFrame`` per bone."""

    frames: tuple[tuple[BoneFrame, ...], ...]
    fps: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "frames", tuple(tuple(frame) for frame in self.frames))
        if self.fps <= 0.0:
            raise ValueError("fps must be positive")
        if len({len(frame) for frame in self.frames}) > 1:
            raise ValueError("every frame must hold the same number of bones")

    @property
    def n_frames(self) -> int:
        return len(self.frames)

    @property
    def n_bones(self) -> int:
        return len(self.frames[0]) if self.frames else 0

    @property
    def duration(self) -> float:
        return self.n_frames / self.fps


def extract_bone(frame: BoneFrame) -> Transform:
    """Decode a stored bone frame into a transform."""
    x, y, z = (value * _ROTATION_SCALE for value in frame.rotation)
    w_sqrd = 1.0 - (x * x + y * y + z * z)
    w = math.sqrt(w_sqrd) if w_sqrd > 0.0 else 0.0
    return Transform(
        position=Vector3(*(float(value) for value in frame.position)),
        rotation=Quaternion(x, y, z, w),
    )


@dataclass
class SegmentTable:
    """Maps segmented addresses (segment number in bits 24-27) to physical ones."""

    locations: list[int] = field(default_factory=lambda: [0] * SEGMENT_COUNT)

    def set_location(self, segment: int, location: int) -> None:
        if not 0 <= segment < SEGMENT_COUNT:
            raise IndexError(f"segment must be between 0 and {SEGMENT_COUNT - 1}")
        self.locations[segment] = location

    def translate(self, address: int) -> int:
        segment = (address >> 24) & 0xF
        return ((address & 0xFFFFFF) + self.locations[segment]) & 0xFFFFFFFF


def _check_transforms(transforms: list[Transform], n_bones: int) -> None:
    if len(transforms) < n_bones:
        raise ValueError(f"expected at least {n_bones} transforms, got {len(transforms)}")


def _blend_transforms(
    frames: list[BoneFrame], transforms: list[Transform], weight: float
) -> None:
    for transform, frame in zip(transforms, frames):
        bone = extract_bone(frame)
        transform.position = transform.position.add_scaled(bone.position, weight)
        sign = -1.0 if transform.rotation.dot(bone.rotation) < 0 else 1.0
        current, add = transform.rotation, bone.rotation
        factor = sign * weight
        transform.rotation = Quaternion(
            current.x + add.x * factor,
            current.y + add.y * factor,
            current.z + add.z * factor,
            current.w + add.w * factor,
        )


@dataclass
class Animator:
    """Plays one clip, keeping the two frames around the current time loaded."""

    n_bones: int
    current_clip: AnimationClip | None = field(default=None, init=False)
    current_time: float = field(default=0.0, init=False)
    blend_lerp: float = field(default=0.0, init=False)
    flags: AnimatorFlags = field(default=AnimatorFlags.NONE, init=False)

    def __post_init__(self) -> None:
        if self.n_bones < 0:
            raise ValueError("bone count cannot be negative")
        self._bone_state = [[BoneFrame()] * self.n_bones for _ in range(2)]
        self._bone_state_frames = [_NO_FRAME, _NO_FRAME]
        self._next_state = _NO_FRAME

    @property
    def has_pose(self) -> bool:
        """True once a frame has been loaded."""
        return self._next_state != _NO_FRAME

    def is_running(self) -> bool:
        return self.current_clip is not None

    def run_clip(
        self, clip: AnimationClip | None, start_time: float = 0.0, flags: int = AnimatorFlags.NONE
    ) -> None:
        """Start playing ``clip`` at ``start_time``; None stops playback."""
        self.current_clip = clip
        if clip is None:
            return

        if self._next_state != _NO_FRAME:
            self._next_state ^= 1

        self._bone_state_frames = [_NO_FRAME, _NO_FRAME]
        self.blend_lerp = 1.0
        self.current_time = start_time
        self.flags = AnimatorFlags(flags)
        self.step(0.0)

    def step(self, delta_time: float) -> None:
        """Advance time and make sure the frames around it are loaded."""
        clip = self.current_clip
        if clip is None:
            return

        self.current_time += delta_time
        duration = clip.duration

        if (self.current_time >= duration and delta_time > 0.0) or (
            self.current_time < 0.0 and delta_time < 0.0
        ):
            if self.flags & AnimatorFlags.LOOP:
                self.current_time = self.current_time % duration
            else:
                self.current_time = min(duration, max(0.0, self.current_time))
                self.flags |= AnimatorFlags.DONE

        fractional = self.current_time * clip.fps
        prev_frame = math.floor(fractional)
        next_frame = math.ceil(fractional)
        lerp_value = fractional - prev_frame

        prev_frame = self._clamp_frame(prev_frame)
        next_frame = self._clamp_frame(next_frame)

        if next_frame == prev_frame:
            lerp_value = 1.0

        existing_prev = self._state_of_frame(prev_frame)
        existing_next = self._state_of_frame(next_frame)

        if existing_prev == _NO_FRAME and existing_next == _NO_FRAME:
            self.blend_lerp = lerp_value
            if prev_frame != next_frame:
                self._next_state = 0
                self._request_frame(prev_frame)
            self._next_state = 1
            self._request_frame(next_frame)
            return

        if existing_next == _NO_FRAME:
            self.blend_lerp = lerp_value
            self._next_state = existing_prev ^ 1
            self._request_frame(next_frame)
            return

        if existing_prev == _NO_FRAME:
            self.blend_lerp = 1.0 - lerp_value
            self._next_state = existing_next ^ 1
            self._request_frame(prev_frame)
            return

        if existing_next == existing_prev:
            self.blend_lerp = 1.0
            self._next_state = existing_next
            return

        self.blend_lerp = lerp_value if existing_next == 1 else 1.0 - lerp_value

    def update(self, transforms: list[Transform], delta_time: float) -> None:
        """Write the current pose into ``transforms`` and advance time."""
        if self.current_clip is None:
            return

        self.read_transforms(transforms)

        if self.flags & AnimatorFlags.DONE:
            self.current_clip = None
            return

        self.step(delta_time)

    def read_transforms(self, transforms: list[Transform]) -> None:
        """Overwrite ``transforms`` with the current pose; untouched before any frame loads."""
        if self._next_state == _NO_FRAME:
            return
        _check_transforms(transforms, self.n_bones)
        self._init_zero_transforms(transforms)
        self._read_with_weight(transforms, 1.0)
        for transform in transforms[:self.n_bones]:
            transform.rotation = transform.rotation.normalized()

    def _init_zero_transforms(self, transforms: list[Transform]) -> None:
        if self._next_state == _NO_FRAME:
            return
        _check_transforms(transforms, self.n_bones)
        for i in range(self.n_bones):
            transforms[i] = Transform(
                Vector3(), Quaternion(0.0, 0.0, 0.0, 0.0), Vector3(1.0, 1.0, 1.0)
            )

    def _read_with_weight(self, transforms: list[Transform], weight: float) -> None:
        current = self._bone_state[self._next_state]
        if self.blend_lerp >= 1.0:
            _blend_transforms(current, transforms, weight)
            return
        _blend_transforms(current, transforms, self.blend_lerp * weight)
        _blend_transforms(
            self._bone_state[self._next_state ^ 1], transforms, (1.0 - self.blend_lerp) * weight
        )

    def _state_of_frame(self, frame: int) -> int:
        if self._bone_state_frames[0] == frame:
            return 0
        if self._bone_state_frames[1] == frame:
            return 1
        return _NO_FRAME

    def _clamp_frame(self, frame: int) -> int:
        n_frames = self.current_clip.n_frames
        if frame < n_frames:
            return frame
        if self.flags & AnimatorFlags.LOOP:
            return frame - n_frames
        return n_frames - 1

    def _request_frame(self, frame: int) -> None:
        clip = self.current_clip
        if clip is None or not 0 <= frame < clip.n_frames:
            return

        if self._next_state == _NO_FRAME:
            self._next_state = 0

        if self._bone_state_frames[self._next_state] == frame:
            return

        self._bone_state_frames[self._next_state] = frame
        bone_count = min(self.n_bones, clip.n_bones)
        self._bone_state[self._next_state][:bone_count] = clip.frames[frame][:bone_count]


@dataclass
class AnimatorBlender:
    """Cross-fades between two animators by ``blend_lerp`` (0 is ``source``, 1 is ``target``)."""

    n_bones: int
    blend_lerp: float = 0.0

    def __post_init__(self) -> None:
        self.source = Animator(self.n_bones)
        self.target = Animator(self.n_bones)

    def apply(self, transforms: list[Transform]) -> None:
        """Write the blended pose into ``transforms``."""
        lerp = self.blend_lerp

        if not self.source.has_pose:
            if not self.target.has_pose:
                return
            lerp = 1.0

        if not self.target.has_pose:
            lerp = 0.0

        _check_transforms(transforms, self.n_bones)
        self.source._init_zero_transforms(transforms)

        if lerp == 1.0:
            self.target._read_with_weight(transforms, 1.0)
        elif lerp == 0.0:
            self.source._read_with_weight(transforms, 1.0)
        else:
            self.target._read_with_weight(transforms, lerp)
            self.source._read_with_weight(transforms, 1.0 - lerp)

    def update(self, transforms: list[Transform], delta_time: float) -> None:
        self.apply(transforms)
        self.source.step(delta_time)
        self.target.step(delta_time)