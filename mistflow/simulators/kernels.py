# --------------------------------------------------------------------------------
# Copyright (c) 2026 Krushang Gabani
# All rights reserved.
#
# Shared Taichi functions: quadratic B-spline stencil, velocity saturation
# and the triangle-wave turbulence field.
#
# Author: Krushang Gabani
# Date: October 19, 2026
# --------------------------------------------------------------------------------

import numpy as np
import taichi as ti

# inverse of D = dx^2 / 4 for the quadratic kernel with unit cells
APIC_SCALE = 4.0

# rough mean of tri_noise3d, subtracted so turbulence has no net drift
NOISE_MEAN = 0.285

# offsets decorrelating the three turbulence components
NOISE_OFFSET_Y = (31.416, 17.3, -4.9)
NOISE_OFFSET_Z = (-12.7, 45.2, 23.1)


@ti.func
def stencil(xp, grid_size: ti.i32):
    """
    Base node, fractional offset and per-axis quadratic B-spline weights of a
    particle at ``xp`` (grid units). Node ``base + i`` lies at ``base + i``;
    ``w[i][d]`` is the weight along axis ``d`` for stencil slot ``i``.
    """
    base = ti.cast(ti.floor(xp - 0.5), ti.i32)
    base = ti.max(ti.min(base, grid_size - 3), 0)
    fx = xp - base.cast(ti.f32)
    w = [0.5 * (1.5 - fx) ** 2, 0.75 - (fx - 1.0) ** 2, 0.5 * (fx - 0.5) ** 2]
    return base, fx, w


@ti.func
def saturate(v, limit: ti.f32):
    # norm of the pre-scaled vector, |v| itself overflows f32 above ~1.8e19
    s = ti.max(ti.abs(v).max(), 1e-30)
    u = v / s
    un = u.norm()
    out = v
    if un * s > limit:
        out = u * (limit / un)
    return out


@ti.func
def tri(x):
    return ti.abs(x - ti.floor(x) - 0.5)


@ti.func
def tri3(p):
    return ti.Vector([tri(p.z + tri(p.y)),
                      tri(p.z + tri(p.x)),
                      tri(p.y + tri(p.x))])


@ti.func
def tri_noise3d(position, speed: ti.f32, time: ti.f32):
    p = position
    bp = position
    z = 1.4
    rz = 0.0
    for _ in ti.static(range(4)):
        dg = tri3(bp * 2.0)
        p += dg + time * 0.1 * speed
        bp *= 1.8
        z *= 1.5
        p *= 1.2
        t = tri(p.z + tri(p.x + tri(p.y)))
        rz += t / z
        bp += 0.14
    return rz


@ti.func
def turbulence(position, time: ti.f32, speed: ti.f32):
    # smooth pseudo-curl, not divergence free
    return ti.Vector([
        tri_noise3d(position, speed, time) - NOISE_MEAN,
        tri_noise3d(position + ti.Vector(NOISE_OFFSET_Y), speed, time) - NOISE_MEAN,
        tri_noise3d(position + ti.Vector(NOISE_OFFSET_Z), speed, time) - NOISE_MEAN,
    ])


def world_to_grid(point, cfg) -> np.ndarray:
    point = np.asarray(point, dtype=np.float32)
    return (point - np.asarray(cfg.world_origin, dtype=np.float32)) * (cfg.grid_size / cfg.world_size)


def grid_to_world(point, cfg) -> np.ndarray:
    point = np.asarray(point, dtype=np.float32)
    return point * (cfg.world_size / cfg.grid_size) + np.asarray(cfg.world_origin, dtype=np.float32)


def direction_to_grid(direction) -> np.ndarray:
    direction = np.asarray(direction, dtype=np.float32)
    norm = float(np.linalg.norm(direction))
    if norm == 0.0:
        return direction
    return direction / norm
