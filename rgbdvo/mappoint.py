"""Landmarks: 3-D points of the map with their descriptors and statistics."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar

import numpy as np

if TYPE_CHECKING:
    from .frame import Frame


def _point(values, name: str) -> np.ndarray:
    arr = np.array(values, dtype=float)
    if arr.shape != (3,):
        raise ValueError(f"{name} must have shape (3,), got {arr.shape}")
    return arr


@dataclass(eq=False)
class MapPoint:
    """A landmark in world coordinates.

    ``visible_times`` counts frames in which the point fell inside the image,
    ``matched_times`` counts frames in which it was a pose-estimation inlier.
    """

    id: int = -1
    pos: np.ndarray = field(default_factory=lambda: np.zeros(3))
    norm: np.ndarray = field(default_factory=lambda: np.zeros(3))
    descriptor: np.ndarray | None = None
    good: bool = True
    observed_frames: list[Frame] = field(default_factory=list)
    matched_times: int = 0
    visible_times: int = 0

    _ids: ClassVar[itertools.count] = itertools.count()

    def __post_init__(self):
        self.pos = _point(self.pos, "position")
        self.norm = _point(self.norm, "norm")

    @classmethod
    def create(cls, position=None, norm=None, descriptor=None, frame=None) -> MapPoint:
        """Make a point with the next id, seen and matched once."""
        return cls(
            id=next(cls._ids),
            pos=np.zeros(3) if position is None else position,
            norm=np.zeros(3) if norm is None else norm,
            descriptor=descriptor,
            observed_frames=[] if frame is None else [frame],
            matched_times=1,
            visible_times=1,
        )

    @property
    def position_f32(self) -> np.ndarray:
        """The position in single precision, as image-geometry routines take it."""
        return self.pos.astype(np.float32)