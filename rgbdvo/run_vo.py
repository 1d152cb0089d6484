"""Run visual odometry over an RGB-D dataset described by associate.txt."""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from PIL import Image

from .camera import Camera
from .config import Config
from .frame import Frame
from .se3 import SE3
from .visual_odometry import VisualOdometry, VOState

_log = logging.getLogger(__name__)

ASSOCIATION_FILE = "associate.txt"
_USAGE = "usage: run_vo parameter_file"


@dataclass(frozen=True)
class Association:
    """A colour image and a depth image taken at about the same time."""

    rgb_time: float
    rgb_file: Path
    depth_time: float
    depth_file: Path


def read_associations(dataset_dir) -> list[Association]:
    """Entries of ``associate.txt``: rgb time, rgb file, depth time, depth file."""
    root = Path(dataset_dir)
    path = root / ASSOCIATION_FILE
    try:
        tokens = path.read_text(encoding="utf-8").split()
    except FileNotFoundError:
        raise FileNotFoundError("please generate the associate file called associate.txt!") from None
    entries = []
    for start in range(0, len(tokens) - 3, 4):
        rgb_time, rgb_file, depth_time, depth_file = tokens[start:start + 4]
        entries.append(Association(float(rgb_time), root / rgb_file, float(depth_time), root / depth_file))
    return entries


def load_image(path) -> np.ndarray | None:
    """The image's pixels unchanged, or None if it cannot be read."""
    try:
        with Image.open(path) as image:
            return np.array(image)
    except OSError:
        return None


def _track(associations, camera: Camera, odometry) -> Iterator[tuple[Association, SE3]]:
    for entry in associations:
        color = load_image(entry.rgb_file)
        depth = load_image(entry.depth_file)
        if color is None or depth is None:
            break
        frame = Frame.create(camera, color, depth, entry.rgb_time)
        start = time.perf_counter()
        odometry.add_frame(frame)
        _log.debug("VO costs time: %.6f", time.perf_counter() - start)
        if odometry.state is VOState.LOST:
            break
        yield entry, frame.T_c_w.inverse()


def run(config, odometry=None) -> list[SE3]:
    """Track every frame of the dataset; returns each frame's camera-to-world pose."""
    if odometry is None:
        odometry = VisualOdometry.from_config(config)
    associations = read_associations(config["dataset_dir"])
    return [pose for _, pose in _track(associations, Camera.from_config(config), odometry)]


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 1:
        print(_USAGE)
        return 1
    try:
        config = Config.load(args[0])
    except FileNotFoundError as exc:
        print(exc, file=sys.stderr)
        return 1
    dataset_dir = config["dataset_dir"]
    print(f"dataset: {dataset_dir}")
    try:
        associations = read_associations(dataset_dir)
    except FileNotFoundError as exc:
        print(exc)
        return 1
    odometry = VisualOdometry.from_config(config)
    camera = Camera.from_config(config)
    print(f"read total {len(associations)} entries")
    for entry, pose in _track(associations, camera, odometry):
        tx, ty, tz = pose.translation
        print(f"{entry.rgb_time:.6f} {tx:.6f} {ty:.6f} {tz:.6f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())