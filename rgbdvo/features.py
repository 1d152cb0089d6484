"""ORB keypoints and binary descriptors, with brute-force Hamming matching."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from PIL import Image

DESCRIPTOR_BYTES = 32
_DESCRIPTOR_BITS = DESCRIPTOR_BYTES * 8

# Bresenham circle of radius 3 as (dx, dy), walked in order around the centre.
_CIRCLE = (
    (0, -3), (1, -3), (2, -2), (3, -1), (3, 0), (3, 1), (2, 2), (1, 3),
    (0, 3), (-1, 3), (-2, 2), (-3, 1), (-3, 0), (-3, -1), (-2, -2), (-1, -3),
)
_ARC = 9
_HARRIS_K = 0.04
_HARRIS_BLOCK = 7
_BLUR_SIGMA = 2.0
_BLUR_RADIUS = 3
_PATTERN_SEED = 0x4F5242
_MATCH_CHUNK = 256

_POPCOUNT = np.array([bin(i).count("1") for i in range(256)], dtype=np.uint8)


@dataclass(frozen=True)
class KeyPoint:
    """A detected feature; ``pt`` is in full-resolution pixel coordinates."""

    pt: tuple[float, float]
    size: float = 31.0
    angle: float = -1.0
    response: float = 0.0
    octave: int = 0


@dataclass(frozen=True)
class Match:
    """The nearest train descriptor for one query descriptor."""

    query_idx: int
    train_idx: int
    distance: float


def _to_gray(image) -> np.ndarray:
    arr = np.asarray(image)
    if arr.ndim == 2:
        return arr.astype(np.float64)
    if arr.ndim == 3 and arr.shape[2] >= 3:
        return arr[..., :3].astype(np.float64) @ np.array([0.299, 0.587, 0.114])
    if arr.ndim == 3 and arr.shape[2] == 1:
        return arr[..., 0].astype(np.float64)
    raise ValueError(f"unsupported image shape {arr.shape}")


def _resize(img: np.ndarray, scale: float) -> np.ndarray:
    rows, cols = img.shape
    width = max(1, int(round(cols / scale)))
    height = max(1, int(round(rows / scale)))
    resized = Image.fromarray(img.astype(np.float32)).resize((width, height), Image.Resampling.BILINEAR)
    return np.asarray(resized, dtype=np.float64)


def _box_sum(a: np.ndarray, k: int) -> np.ndarray:
    r = k // 2
    padded = np.pad(a, r, mode="edge")
    c = np.cumsum(np.cumsum(padded, axis=0), axis=1)
    c = np.pad(c, ((1, 0), (1, 0)))
    return c[k:, k:] - c[:-k, k:] - c[k:, :-k] + c[:-k, :-k]


def _harris(img: np.ndarray) -> np.ndarray:
    gy, gx = np.gradient(img)
    ixx = _box_sum(gx * gx, _HARRIS_BLOCK)
    iyy = _box_sum(gy * gy, _HARRIS_BLOCK)
    ixy = _box_sum(gx * gy, _HARRIS_BLOCK)
    return ixx * iyy - ixy * ixy - _HARRIS_K * (ixx + iyy) ** 2


def _gaussian_blur(img: np.ndarray) -> np.ndarray:
    offsets = np.arange(-_BLUR_RADIUS, _BLUR_RADIUS + 1)
    kernel = np.exp(-(offsets**2) / (2.0 * _BLUR_SIGMA**2))
    kernel /= kernel.sum()
    rows, cols = img.shape
    padded = np.pad(img, _BLUR_RADIUS, mode="edge")
    horizontal = sum(w * padded[:, i:i + cols] for i, w in enumerate(kernel))
    return sum(w * horizontal[i:i + rows] for i, w in enumerate(kernel))


def _has_arc(flags: np.ndarray) -> np.ndarray:
    extended = np.concatenate([flags, flags[: _ARC - 1]])
    run = extended[0:16].copy()
    for shift in range(1, _ARC):
        run &= extended[shift:shift + 16]
    return run.any(axis=0)


def _fast_mask(img: np.ndarray, threshold: float, border: int) -> np.ndarray:
    rows, cols = img.shape
    b = max(border, 3)
    mask = np.zeros((rows, cols), dtype=bool)
    if rows <= 2 * b or cols <= 2 * b:
        return mask
    centre = img[b:rows - b, b:cols - b]
    ring = np.stack([img[b + dy:rows - b + dy, b + dx:cols - b + dx] for dx, dy in _CIRCLE])
    brighter = ring > centre + threshold
    darker = ring < centre - threshold
    mask[b:rows - b, b:cols - b] = _has_arc(brighter) | _has_arc(darker)
    return mask


def _local_max(score: np.ndarray) -> np.ndarray:
    rows, cols = score.shape
    padded = np.pad(score, 1, constant_values=-np.inf)
    return np.max(
        np.stack([padded[dy:dy + rows, dx:dx + cols] for dy in range(3) for dx in range(3)]),
        axis=0,
    )


def _circle_offsets(radius: int) -> tuple[np.ndarray, np.ndarray]:
    dy, dx = np.mgrid[-radius:radius + 1, -radius:radius + 1]
    inside = dx * dx + dy * dy <= radius * radius
    return dx[inside], dy[inside]


def _make_pattern(patch_size: int) -> np.ndarray:
    half = patch_size // 2
    rng = np.random.default_rng(_PATTERN_SEED)
    points = np.rint(rng.normal(0.0, patch_size / 5.0, size=(_DESCRIPTOR_BITS, 4)))
    return np.clip(points, -half, half).astype(int)


class OrbExtractor:
    """Oriented FAST corners ranked by Harris response, described by rotated BRIEF."""

    def __init__(
        self,
        num_features: int = 500,
        scale_factor: float = 1.2,
        levels: int = 8,
        fast_threshold: float = 20.0,
        edge_threshold: int = 31,
        patch_size: int = 31,
    ):
        if num_features < 0:
            raise ValueError("num_features must not be negative")
        if scale_factor < 1.0:
            raise ValueError("scale_factor must be at least 1")
        if levels < 1:
            raise ValueError("levels must be at least 1")
        if patch_size < 3:
            raise ValueError("patch_size must be at least 3")
        self.num_features = int(num_features)
        self.scale_factor = float(scale_factor)
        self.levels = int(levels)
        self.fast_threshold = float(fast_threshold)
        self.edge_threshold = int(edge_threshold)
        self.patch_size = int(patch_size)
        self._pattern = _make_pattern(self.patch_size)
        self._centroid_dx, self._centroid_dy = _circle_offsets(self.patch_size // 2)

    def _features_per_level(self) -> list[int]:
        if self.levels == 1:
            return [self.num_features]
        factor = 1.0 / self.scale_factor
        if factor == 1.0:
            desired = self.num_features / self.levels
        else:
            desired = self.num_features * (1.0 - factor) / (1.0 - factor**self.levels)
        counts = []
        for _ in range(self.levels - 1):
            counts.append(int(round(desired)))
            desired *= factor
        counts.append(max(self.num_features - sum(counts), 0))
        return counts

    def _pyramid(self, gray: np.ndarray, levels: int) -> list[np.ndarray]:
        return [gray if level == 0 else _resize(gray, self.scale_factor**level) for level in range(levels)]

    def _orientation(self, img: np.ndarray, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        values = img[ys[:, None] + self._centroid_dy, xs[:, None] + self._centroid_dx]
        m10 = values @ self._centroid_dx
        m01 = values @ self._centroid_dy
        return np.degrees(np.arctan2(m01, m10)) % 360.0

    def _detect_level(self, img: np.ndarray, want: int, level: int) -> list[KeyPoint]:
        if want <= 0:
            return []
        border = max(self.edge_threshold, self.patch_size // 2)
        mask = _fast_mask(img, self.fast_threshold, border)
        if not mask.any():
            return []
        score = np.where(mask, _harris(img), -np.inf)
        keep = mask & (score >= _local_max(score))
        ys, xs = np.nonzero(keep)
        order = np.argsort(-score[ys, xs], kind="stable")[:want]
        ys, xs = ys[order], xs[order]
        angles = self._orientation(img, xs, ys)
        scale = self.scale_factor**level
        return [
            KeyPoint(
                pt=(float(x) * scale, float(y) * scale),
                size=self.patch_size * scale,
                angle=float(angle),
                response=float(score[y, x]),
                octave=level,
            )
            for x, y, angle in zip(xs, ys, angles)
        ]

    def detect(self, image) -> list[KeyPoint]:
        """Keypoints of an image, at most ``num_features`` of them."""
        gray = _to_gray(image)
        keypoints: list[KeyPoint] = []
        for level, (img, want) in enumerate(zip(self._pyramid(gray, self.levels), self._features_per_level())):
            keypoints.extend(self._detect_level(img, want, level))
        return keypoints

    def compute(self, image, keypoints) -> tuple[list[KeyPoint], np.ndarray]:
        """Descriptors for keypoints; those too close to the border are dropped.

        Returns the kept keypoints and a ``(len(kept), 32)`` array of bytes.
        """
        keypoints = list(keypoints)
        if not keypoints:
            return [], np.empty((0, DESCRIPTOR_BYTES), dtype=np.uint8)
        gray = _to_gray(image)
        levels = max(self.levels, max(kp.octave for kp in keypoints) + 1)
        pyramid = [_gaussian_blur(img) for img in self._pyramid(gray, levels)]
        px, py = self._pattern[:, 0::2], self._pattern[:, 1::2]
        kept, rows = [], []
        for kp in keypoints:
            if kp.octave < 0:
                continue
            img = pyramid[kp.octave]
            height, width = img.shape
            scale = self.scale_factor**kp.octave
            x = int(round(kp.pt[0] / scale))
            y = int(round(kp.pt[1] / scale))
            a = math.radians(kp.angle) if kp.angle >= 0 else 0.0
            c, s = math.cos(a), math.sin(a)
            xs = x + np.rint(c * px - s * py).astype(int)
            ys = y + np.rint(s * px + c * py).astype(int)
            if xs.min() < 0 or ys.min() < 0 or xs.max() >= width or ys.max() >= height:
                continue
            values = img[ys, xs]
            rows.append(np.packbits(values[:, 0] < values[:, 1]))
            kept.append(kp)
        if not rows:
            return [], np.empty((0, DESCRIPTOR_BYTES), dtype=np.uint8)
        return kept, np.vstack(rows).astype(np.uint8)

    def detect_and_compute(self, image) -> tuple[list[KeyPoint], np.ndarray]:
        return self.compute(image, self.detect(image))


def _descriptor_rows(values) -> np.ndarray:
    arr = np.asarray(values, dtype=np.uint8)
    if arr.size == 0:
        return arr.reshape(0, arr.shape[-1] if arr.ndim == 2 else 0)
    if arr.ndim != 2:
        raise ValueError(f"descriptors must be a 2-D array, got shape {arr.shape}")
    return arr


def match_descriptors(query, train) -> list[Match]:
    """For each query descriptor, its nearest train descriptor by Hamming distance."""
    q = _descriptor_rows(query)
    t = _descriptor_rows(train)
    if len(q) == 0 or len(t) == 0:
        return []
    if q.shape[1] != t.shape[1]:
        raise ValueError(f"descriptor lengths differ: {q.shape[1]} and {t.shape[1]}")
    matches = []
    for start in range(0, len(q), _MATCH_CHUNK):
        block = q[start:start + _MATCH_CHUNK]
        distances = _POPCOUNT[np.bitwise_xor(block[:, None, :], t[None, :, :])].sum(axis=2, dtype=np.int32)
        best = np.argmin(distances, axis=1)
        for offset, j in enumerate(best):
            matches.append(Match(start + offset, int(j), float(distances[offset, j])))
    return matches


def select_good_matches(matches, match_ratio: float) -> list[Match]:
    """Matches closer than ``max(min_distance * match_ratio, 30)``."""
    matches = list(matches)
    if not matches:
        return []
    min_distance = min(m.distance for m in matches)
    threshold = max(min_distance * match_ratio, 30.0)
    return [m for m in matches if m.distance < threshold]