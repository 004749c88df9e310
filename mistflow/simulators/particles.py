# --------------------------------------------------------------------------------
# Copyright (c) 2026 Krushang Gabani
# All rights reserved.
#
# ParticleStore: fixed-capacity particle state, of which a prefix is active.
#
# Author: Krushang Gabani
# Date: October 19, 2026
# --------------------------------------------------------------------------------

from typing import Dict, Optional

import numpy as np
import taichi as ti

# fields published to the renderer, in order
PUBLISHED = ("position", "velocity", "density", "mass", "direction", "color")

# snapshot key -> field attribute
_FIELDS = {
    "position": "x",
    "velocity": "v",
    "affine": "C",
    "mass": "mass",
    "density": "density",
    "direction": "direction",
    "color": "color",
}


@ti.data_oriented
class ParticleStore:
    def __init__(self, cfg):
        self.cfg = cfg
        self.max_particles = cfg.max_particles
        n = cfg.max_particles

        self.x         = ti.Vector.field(3, dtype=ti.f32, shape=n)  # position (grid units)
        self.v         = ti.Vector.field(3, dtype=ti.f32, shape=n)  # velocity
        self.C         = ti.Matrix.field(3, 3, dtype=ti.f32, shape=n)  # affine velocity field
        self.mass      = ti.field(dtype=ti.f32, shape=n)
        self.density   = ti.field(dtype=ti.f32, shape=n)
        self.direction = ti.Vector.field(3, dtype=ti.f32, shape=n)  # smoothed velocity, render only
        self.color     = ti.Vector.field(3, dtype=ti.f32, shape=n)  # render only

        self.rng = np.random.default_rng(cfg.seed)

    def reset_rng(self):
        self.rng = np.random.default_rng(self.cfg.seed)

    def seed(self, start: int = 0, stop: Optional[int] = None):
        """(Re)initialise particles ``[start, stop)`` from the spawn distribution."""
        cfg = self.cfg
        stop = self.max_particles if stop is None else stop
        count = stop - start
        if count <= 0:
            return

        g = float(cfg.grid_size)
        lo = np.maximum(np.asarray(cfg.spawn_min) * g, cfg.margin_low)
        hi = np.minimum(np.asarray(cfg.spawn_max) * g, g - cfg.margin_high)
        pos = lo + self.rng.random((count, 3)) * (hi - lo)
        vel = (self.rng.random((count, 3)) * 2.0 - 1.0) * cfg.spawn_speed
        mass = 1.0 - cfg.mass_jitter * self.rng.random(count)

        state = self.snapshot()
        state["position"][start:stop] = pos
        state["velocity"][start:stop] = vel
        state["affine"][start:stop] = 0.0
        state["mass"][start:stop] = mass
        state["density"][start:stop] = 0.0
        state["direction"][start:stop] = vel
        state["color"][start:stop] = cfg.color_slow
        self.restore(state)

    def snapshot(self, n: Optional[int] = None) -> Dict[str, np.ndarray]:
        """Copies of every field, optionally only the first ``n`` particles."""
        state = {}
        for key, attr in _FIELDS.items():
            arr = getattr(self, attr).to_numpy()
            state[key] = arr if n is None else arr[:n].copy()
        return state

    def restore(self, state: Dict[str, np.ndarray]):
        """Write a snapshot back; shorter arrays fill the leading particles."""
        for key, attr in _FIELDS.items():
            if key not in state:
                continue
            field = getattr(self, attr)
            value = np.asarray(state[key], dtype=np.float32)
            if value.shape[0] > self.max_particles:
                raise ValueError(f"{key} holds {value.shape[0]} particles, capacity is {self.max_particles}")
            if value.shape[0] < self.max_particles:
                full = field.to_numpy()
                full[:value.shape[0]] = value
                value = full
            field.from_numpy(value)

    def export(self, n: int) -> Dict[str, np.ndarray]:
        state = self.snapshot(n)
        return {key: state[key] for key in PUBLISHED}
