# --------------------------------------------------------------------------------
# Copyright (c) 2026 Krushang Gabani
# All rights reserved.
#
# Grid: per-frame scratch lattice of mass and momentum / velocity.
#
# Author: Krushang Gabani
# Date: October 19, 2026
# --------------------------------------------------------------------------------

import numpy as np
import taichi as ti


@ti.data_oriented
class Grid:
    """
    ``grid_size^3`` nodes. ``v`` holds momentum while the particles scatter
    into it and velocity after the grid update. Nothing survives ``clear``.
    """

    def __init__(self, grid_size: int):
        self.n_grid = grid_size
        g = grid_size
        self.m = ti.field(dtype=ti.f32, shape=(g, g, g))
        self.v = ti.Vector.field(3, dtype=ti.f32, shape=(g, g, g))

    @ti.kernel
    def clear(self):
        for I in ti.grouped(self.m):
            self.m[I] = 0.0
            self.v[I] = ti.Vector.zero(ti.f32, 3)

    def total_mass(self) -> float:
        return float(self.m.to_numpy().astype(np.float64).sum())

    def total_momentum(self) -> np.ndarray:
        return self.v.to_numpy().astype(np.float64).sum(axis=(0, 1, 2))

    def is_empty(self) -> bool:
        return not (self.m.to_numpy().any() or self.v.to_numpy().any())
