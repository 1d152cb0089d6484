"""Levenberg-Marquardt refinement of a single camera pose."""

from __future__ import annotations

import math
from collections.abc import Iterable

import numpy as np

from .se3 import SE3

_TAU = 1e-5
_MAX_TRIALS = 10


def pose_update(pose: SE3, delta) -> SE3:
    """Apply an increment ``(rotation, translation)`` on the left of a pose."""
    d = np.asarray(delta, dtype=float)
    if d.shape != (6,):
        raise ValueError(f"increment must have shape (6,), got {d.shape}")
    return SE3.exp(np.concatenate([d[3:], d[:3]])) * pose


def _chi2(pose: SE3, edges) -> float:
    total = 0.0
    for edge in edges:
        e = edge.error(pose)
        total += float(e @ edge.information @ e)
    return total if math.isfinite(total) else math.inf


def _linearize(pose: SE3, edges) -> tuple[np.ndarray, np.ndarray, float]:
    h = np.zeros((6, 6))
    b = np.zeros(6)
    chi2 = 0.0
    for edge in edges:
        e = edge.error(pose)
        j = edge.jacobian(pose)
        if not (np.all(np.isfinite(e)) and np.all(np.isfinite(j))):
            continue
        omega = edge.information
        h += j.T @ omega @ j
        b -= j.T @ omega @ e
        chi2 += float(e @ omega @ e)
    return h, b, chi2


def optimize_pose(pose: SE3, edges: Iterable, iterations: int = 10) -> SE3:
    """Minimise the summed weighted squared errors of unary pose edges.

    Each edge provides ``error(pose)``, ``jacobian(pose)`` and ``information``.
    Returns the refined pose; the input is returned unchanged when there is
    nothing to optimise.
    """
    edges = list(edges)
    if not edges or iterations <= 0:
        return pose
    h, b, chi2 = _linearize(pose, edges)
    lam = _TAU * float(np.max(np.diag(h)))
    if not lam > 0.0:
        lam = _TAU
    nu = 2.0
    for _ in range(iterations):
        for _trial in range(_MAX_TRIALS):
            try:
                delta = np.linalg.solve(h + lam * np.eye(6), b)
            except np.linalg.LinAlgError:
                lam *= nu
                nu *= 2.0
                continue
            candidate = pose_update(pose, delta)
            new_chi2 = _chi2(candidate, edges)
            predicted = float(delta @ (lam * delta + b))
            gain = chi2 - new_chi2
            if math.isfinite(new_chi2) and gain > 0.0 and predicted > 0.0:
                rho = gain / predicted
                pose = candidate
                lam *= max(1.0 / 3.0, 1.0 - (2.0 * rho - 1.0) ** 3)
                nu = 2.0
                break
            lam *= nu
            nu *= 2.0
        else:
            return pose
        h, b, chi2 = _linearize(pose, edges)
    return pose